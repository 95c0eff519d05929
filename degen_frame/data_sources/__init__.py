"""Upstream data sources for identity and allowance lookups."""

from .base import (
    AllowanceSource,
    CallableAllowanceSource,
    CallableIdentitySource,
    FrameSources,
    IdentitySource,
)
from .allowance_client import AllowanceClient, parse_allowance_body, sort_snapshots
from .factory import build_sources
from .http import RetryPolicy, build_async_client, request_with_retries
from .identity_client import IdentityClient, build_identity_query, parse_identity_body

__all__ = [
    "AllowanceClient",
    "AllowanceSource",
    "CallableAllowanceSource",
    "CallableIdentitySource",
    "FrameSources",
    "IdentityClient",
    "IdentitySource",
    "RetryPolicy",
    "build_async_client",
    "build_identity_query",
    "build_sources",
    "parse_allowance_body",
    "parse_identity_body",
    "request_with_retries",
    "sort_snapshots",
]
