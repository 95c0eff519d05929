"""Factory helpers for wiring the upstream clients at startup."""

from __future__ import annotations

import httpx

from degen_frame import config
from degen_frame.data_sources.allowance_client import AllowanceClient
from degen_frame.data_sources.base import FrameSources
from degen_frame.data_sources.http import RetryPolicy
from degen_frame.data_sources.identity_client import IdentityClient
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="data_sources/factory")


def build_sources(client: httpx.AsyncClient, settings: config.Settings | None = None) -> FrameSources:
    """Instantiate both upstream clients sharing one HTTP client."""
    settings = settings or config.settings
    retry = RetryPolicy.from_settings(settings)

    if not settings.identity_api_key:
        logger.warning("No identity API key configured; identity lookups will likely be rejected")

    logger.info(
        "Using identity and allowance upstreams",
        extra={
            "identity_url": settings.identity_api_url,
            "identity_api_key": mask_secret(settings.identity_api_key),
            "allowance_url": settings.allowance_api_url,
            "timeout_seconds": settings.upstream_timeout_seconds,
            "max_retries": retry.max_retries,
        },
    )
    return FrameSources(
        identity=IdentityClient(
            client,
            url=settings.identity_api_url,
            api_key=settings.identity_api_key,
            retry=retry,
        ),
        allowance=AllowanceClient(
            client,
            url=settings.allowance_api_url,
            season=settings.allowance_season,
            limit=settings.allowance_limit,
            offset=settings.allowance_offset,
            retry=retry,
        ),
    )
