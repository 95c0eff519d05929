"""Map a screen and its data to a declarative layout and button list.

Rendering is pure apart from the decorative background pick, which uses the
supplied `rng` (the `random` module by default). Numbers are shown exactly as
the ledger reported them.
"""
from __future__ import annotations

import random
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from degen_frame.domain import (
    AggregateResult,
    AllowanceSnapshot,
    ContainerNode,
    FramePolicy,
    ImageNode,
    LayoutNode,
    ScreenResponse,
    ScreenState,
    TextNode,
    UserIdentity,
)
from degen_frame.state_machine import actions_for


def select_background(result: Optional[AggregateResult], policy: FramePolicy, rng=None) -> str:
    """Pick the background asset for a data screen.

    An exhausted allowance always gets the zero-balance asset. Otherwise a
    palette with several entries is sampled uniformly with `rng.choice`.
    """
    allowance = result.allowance if result is not None else None
    if allowance is not None and allowance.is_exhausted:
        return policy.zero_balance_asset
    palette = policy.asset_palette
    if len(palette) > 1:
        return (rng or random).choice(palette)
    if palette:
        return palette[0]
    return policy.landing_asset


def format_as_of(as_of: datetime, tz_name: str) -> str:
    """e.g. 'Mar 14, 2024' in the display timezone."""
    local = as_of.astimezone(ZoneInfo(tz_name))
    return f"{local:%b} {local.day}, {local.year}"


def _identity_nodes(identity: Optional[UserIdentity], policy: FramePolicy) -> List[LayoutNode]:
    unavailable = policy.unavailable_text
    avatar = identity.avatar_ref if identity is not None else None
    if avatar:
        nodes: List[LayoutNode] = [ImageNode(src=avatar, alt="Profile", shape="circle")]
    else:
        nodes = [TextNode(text=policy.label("avatar", avatar=unavailable), role="caption")]
    name = (identity.display_name if identity is not None else None) or unavailable
    nodes.append(TextNode(text=policy.label("display_name", display_name=name), role="title"))
    return nodes


def _allowance_nodes(allowance: Optional[AllowanceSnapshot], policy: FramePolicy) -> List[LayoutNode]:
    unavailable = policy.unavailable_text
    if allowance is None:
        daily = remaining = rank = as_of = unavailable
    else:
        daily = allowance.daily_display
        remaining = allowance.remaining_display
        rank = allowance.rank or unavailable
        as_of = format_as_of(allowance.as_of, policy.display_timezone)
    return [
        TextNode(text=policy.label("daily_allowance", daily_allowance=daily)),
        TextNode(text=policy.label("remaining_allowance", remaining_allowance=remaining)),
        TextNode(text=policy.label("rank", rank=rank)),
        TextNode(text=policy.label("as_of", as_of=as_of), role="caption"),
    ]


def render(state: ScreenState, result: Optional[AggregateResult], policy: FramePolicy, *, rng=None) -> ScreenResponse:
    """Build the screen for `state`."""
    if state is ScreenState.LANDING:
        children: List[LayoutNode] = [TextNode(text=policy.label("landing_title"), role="title")]
        background = policy.landing_asset
    elif state is ScreenState.MISSING_IDENTIFIER:
        children = [TextNode(text=policy.label("missing_identifier"), role="title")]
        background = policy.landing_asset
    elif state is ScreenState.UPSTREAM_ERROR:
        children = [TextNode(text=policy.label("upstream_error"), role="title")]
        background = policy.landing_asset
    else:
        result = result or AggregateResult()
        if state is ScreenState.RESULT and (result.identity is None or result.allowance is None):
            raise ValueError("result screen needs both identity and allowance")
        children = _identity_nodes(result.identity, policy) + _allowance_nodes(result.allowance, policy)
        background = select_background(result, policy, rng)

    layout = ContainerNode(direction="column", background=background, children=tuple(children))
    return ScreenResponse(state=state, layout=layout, actions=actions_for(state, policy))
