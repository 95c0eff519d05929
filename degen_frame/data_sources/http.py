"""Shared httpx plumbing for the upstream clients.

Every upstream call goes through `request_with_retries`, which bounds each
attempt with the client timeout and retries 5xx responses and network errors
with exponential backoff. 404 and other 4xx responses are returned on the
first attempt so callers can classify them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx

from degen_frame.config import Settings
from degen_frame.domain import Source
from degen_frame.errors import UpstreamTransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/http")

USER_AGENT = "degen-frame/0.1"

_sleep = asyncio.sleep


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff."""
    max_retries: int = 2
    backoff_seconds: float = 0.2

    def delay(self, attempt: int) -> float:
        """Sleep before retry number `attempt + 1`."""
        return self.backoff_seconds * (2 ** attempt)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(max_retries=settings.upstream_max_retries, backoff_seconds=settings.upstream_backoff_seconds)


def build_async_client(settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared `httpx.AsyncClient` with the upstream timeout applied."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_timeout_seconds),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
        transport=transport,
    )


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    source: Source,
    fid: str,
    retry: RetryPolicy,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient failures.

    Returns any response below 500. Raises `UpstreamTransportError` once the
    retries are spent on 5xx responses or network errors (timeouts included).
    """
    attempt = 0
    while True:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            detail = str(exc) or exc.__class__.__name__
            logger.warning(
                "Upstream request failed",
                extra={"source": source.value, "status": None, "fid": fid, "attempt": attempt + 1, "error": detail},
            )
            if attempt >= retry.max_retries:
                raise UpstreamTransportError(source, fid=fid, detail=detail) from exc
        else:
            if resp.status_code < 500:
                return resp
            logger.warning(
                "Upstream returned server error",
                extra={"source": source.value, "status": resp.status_code, "fid": fid, "attempt": attempt + 1},
            )
            if attempt >= retry.max_retries:
                raise UpstreamTransportError(source, fid=fid, status=resp.status_code, detail=resp.text[:200])

        await _sleep(retry.delay(attempt))
        attempt += 1
