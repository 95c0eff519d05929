"""Serialize a screen into the frame documents the host client consumes.

Two shapes are produced from the same `ScreenResponse`:

- an HTML page carrying `fc:frame` vNext meta tags (what feed clients read);
- a JSON document with the inline layout, for tools and tests.

The layout is rasterized elsewhere: `image_url_for` points the host at the
configured image renderer with the layout encoded in the query string.
"""
from __future__ import annotations

import base64
import json
from html import escape
from typing import Any, Callable, Dict, List, Tuple

from degen_frame.domain import Route, ScreenResponse

FRAME_VERSION = "vNext"
MAX_BUTTONS = 4
ASPECT_RATIO = "1.91:1"

RouteUrl = Callable[[Route], str]


def encode_layout(response: ScreenResponse) -> str:
    """Compact URL-safe base64 of the layout JSON."""
    raw = response.layout.model_dump_json(exclude_none=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_layout(token: str) -> Dict[str, Any]:
    """Inverse of `encode_layout`, for image renderers written against this module."""
    padded = token + "=" * (-len(token) % 4)
    return json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))


def image_url_for(response: ScreenResponse, renderer_url: str) -> str:
    """URL the host fetches the rasterized screen from."""
    return f"{renderer_url}?layout={encode_layout(response)}"


def _buttons(response: ScreenResponse, route_url: RouteUrl) -> List[Tuple[int, str, str]]:
    if len(response.actions) > MAX_BUTTONS:
        raise ValueError(f"a frame supports at most {MAX_BUTTONS} buttons, got {len(response.actions)}")
    return [(idx, action.label, route_url(action.target)) for idx, action in enumerate(response.actions, start=1)]


def build_meta_tags(
    response: ScreenResponse,
    *,
    image_url: str,
    post_url: str,
    route_url: RouteUrl,
) -> List[Tuple[str, str]]:
    """Ordered (property, content) pairs for the frame head."""
    tags: List[Tuple[str, str]] = [
        ("fc:frame", FRAME_VERSION),
        ("fc:frame:image", image_url),
        ("fc:frame:image:aspect_ratio", ASPECT_RATIO),
        ("og:image", image_url),
        ("fc:frame:post_url", post_url),
    ]
    for idx, label, target in _buttons(response, route_url):
        tags.append((f"fc:frame:button:{idx}", label))
        tags.append((f"fc:frame:button:{idx}:action", "post"))
        tags.append((f"fc:frame:button:{idx}:target", target))
    return tags


def package_html(
    response: ScreenResponse,
    *,
    title: str,
    image_url: str,
    post_url: str,
    route_url: RouteUrl,
) -> str:
    """Render the frame as a minimal HTML document."""
    meta = "\n".join(
        f'    <meta property="{escape(prop)}" content="{escape(content)}" />'
        for prop, content in build_meta_tags(response, image_url=image_url, post_url=post_url, route_url=route_url)
    )
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "  <head>\n"
        f"    <title>{escape(title)}</title>\n"
        f'    <meta property="og:title" content="{escape(title)}" />\n'
        f"{meta}\n"
        "  </head>\n"
        "  <body></body>\n"
        "</html>\n"
    )


def package_json(
    response: ScreenResponse,
    *,
    image_url: str,
    post_url: str,
    route_url: RouteUrl,
) -> Dict[str, Any]:
    """Structured equivalent of the meta tags, with the layout inline."""
    return {
        "version": FRAME_VERSION,
        "state": response.state.value,
        "image": image_url,
        "image_aspect_ratio": ASPECT_RATIO,
        "layout": response.layout.model_dump(mode="json", exclude_none=True),
        "post_url": post_url,
        "buttons": [
            {"index": idx, "label": label, "action": "post", "target": target}
            for idx, label, target in _buttons(response, route_url)
        ],
    }
