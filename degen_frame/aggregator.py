"""Fetch identity and allowance concurrently and merge them into one result."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, Tuple, TypeVar

from degen_frame.data_sources.base import AllowanceSource, IdentitySource
from degen_frame.domain import AggregateResult, FailureKind, Source, SourceFailure
from degen_frame.errors import UpstreamTransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="aggregator")

T = TypeVar("T")


async def _settle(source: Source, fid: str, call: Awaitable[Optional[T]]) -> Tuple[Optional[T], Optional[SourceFailure]]:
    """Await one resolver and capture its failure as a value.

    `asyncio.CancelledError` is a BaseException and passes through, so a
    cancelled join cancels both branches.
    """
    try:
        return await call, None
    except UpstreamTransportError as exc:
        return None, exc.to_failure()
    except Exception as exc:
        logger.exception(
            "Unexpected resolver failure",
            extra={"source": source.value, "status": None, "fid": fid},
        )
        return None, SourceFailure(source=source, kind=FailureKind.MALFORMED, detail=str(exc) or exc.__class__.__name__)


async def aggregate(fid: str, identity_source: IdentitySource, allowance_source: AllowanceSource) -> AggregateResult:
    """Run both resolvers concurrently and wait for both to settle.

    Not-found outcomes leave the field absent; transport failures leave it
    absent and add an entry to `failures`.
    """
    logger.info("Aggregating frame data", extra={"fid": fid})
    (identity, identity_failure), (allowance, allowance_failure) = await asyncio.gather(
        _settle(Source.IDENTITY, fid, identity_source.fetch_identity(fid)),
        _settle(Source.ALLOWANCE, fid, allowance_source.fetch_current(fid)),
    )
    failures = frozenset(f for f in (identity_failure, allowance_failure) if f is not None)

    result = AggregateResult(identity=identity, allowance=allowance, failures=failures)
    logger.info(
        "Aggregated frame data",
        extra={
            "fid": fid,
            "identity_found": identity is not None,
            "allowance_found": allowance is not None,
            "failed_sources": sorted(f.source.value for f in failures),
        },
    )
    return result
