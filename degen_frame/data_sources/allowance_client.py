"""Allowance resolver backed by the degen.tips tip-allowance ledger API."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from degen_frame.data_sources.http import RetryPolicy, request_with_retries
from degen_frame.data_sources.identity_client import validate_fid
from degen_frame.domain import AllowanceSnapshot, FailureKind, Source
from degen_frame.errors import UpstreamTransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="allowance_client")


def sort_snapshots(snapshots: List[AllowanceSnapshot]) -> List[AllowanceSnapshot]:
    """Newest first. `sorted` is stable, so equal dates keep fetch order."""
    return sorted(snapshots, key=lambda s: s.as_of, reverse=True)


def parse_allowance_body(fid: str, body: Any, *, status: int = 200) -> List[AllowanceSnapshot]:
    """Validate the ledger array and return snapshots sorted newest first."""
    if not isinstance(body, list):
        raise _malformed(fid, status, f"expected an array, got {type(body).__name__}")
    snapshots: List[AllowanceSnapshot] = []
    for idx, record in enumerate(body):
        if not isinstance(record, dict):
            raise _malformed(fid, status, f"record {idx} is not an object")
        try:
            snapshots.append(AllowanceSnapshot.from_wire(record))
        except ValidationError as exc:
            raise _malformed(fid, status, f"record {idx}: {exc.errors()[0].get('msg', 'invalid')}") from exc
    return sort_snapshots(snapshots)


def _malformed(fid: str, status: int, detail: str) -> UpstreamTransportError:
    logger.warning(
        "Malformed allowance response",
        extra={"source": Source.ALLOWANCE.value, "status": status, "fid": fid, "error": detail},
    )
    return UpstreamTransportError(Source.ALLOWANCE, fid=fid, status=status, detail=detail, kind=FailureKind.MALFORMED)


class AllowanceClient:
    """Fetch dated allowance snapshots for a user id."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        season: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
        retry: RetryPolicy | None = None,
    ):
        self.client = client
        self.url = url
        self.season = season
        self.limit = limit
        self.offset = offset
        self.retry = retry or RetryPolicy()

    def build_params(
        self,
        fid: str,
        *,
        season: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Dict[str, str]:
        """Query parameters; unset window options fall back to the configured defaults."""
        params: Dict[str, str] = {"fid": fid}
        window = {
            "season": season if season is not None else self.season,
            "limit": limit if limit is not None else self.limit,
            "offset": offset if offset is not None else self.offset,
        }
        for key, value in window.items():
            if value is not None:
                params[key] = str(value)
        return params

    async def fetch_snapshots(
        self,
        fid: str,
        *,
        season: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[AllowanceSnapshot]:
        """Return all snapshots newest first; an empty list means not found."""
        validate_fid(fid)
        params = self.build_params(fid, season=season, limit=limit, offset=offset)
        resp = await request_with_retries(
            self.client,
            "GET",
            self.url,
            source=Source.ALLOWANCE,
            fid=fid,
            retry=self.retry,
            params=params,
        )
        if resp.status_code == 404:
            logger.info("No allowance record for fid", extra={"fid": fid})
            return []
        if not resp.is_success:
            logger.warning(
                "Allowance lookup rejected",
                extra={"source": Source.ALLOWANCE.value, "status": resp.status_code, "fid": fid},
            )
            raise UpstreamTransportError(Source.ALLOWANCE, fid=fid, status=resp.status_code, detail=resp.text[:200])

        try:
            # fractional numbers stay as their wire text so display never reformats them
            body = json.loads(resp.content, parse_float=str)
        except ValueError as exc:
            raise _malformed(fid, resp.status_code, "body is not JSON") from exc

        snapshots = parse_allowance_body(fid, body, status=resp.status_code)
        logger.debug("Allowance lookup finished", extra={"fid": fid, "snapshots": len(snapshots)})
        return snapshots

    async def fetch_current(self, fid: str, **window: Any) -> Optional[AllowanceSnapshot]:
        """Return the snapshot with the latest `as_of`, or None if not found."""
        snapshots = await self.fetch_snapshots(fid, **window)
        return snapshots[0] if snapshots else None
