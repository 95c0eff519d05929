"""Identity resolver backed by the Airstack identity-graph GraphQL API."""
from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from degen_frame.data_sources.http import RetryPolicy, request_with_retries
from degen_frame.domain import FailureKind, Source, UserIdentity
from degen_frame.errors import UpstreamTransportError
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="identity_client")

IDENTITY_QUERY_TEMPLATE = """
query GetUserFidInformation {
  Socials(input: {filter: {userId: {_eq: "%(fid)s"}}, blockchain: ethereum}) {
    Social {
      dappName
      profileName
      profileImage
    }
  }
}
"""


def build_identity_query(fid: str) -> str:
    """Interpolate a validated numeric id into the single-filter query."""
    return IDENTITY_QUERY_TEMPLATE % {"fid": fid}


def validate_fid(fid: str) -> str:
    """Return `fid` unchanged if it is a non-empty numeric string."""
    if not isinstance(fid, str) or not fid.isdigit():
        raise ValueError(f"fid must be a non-empty numeric string, got {fid!r}")
    return fid


def _malformed(fid: str, status: int, detail: str) -> UpstreamTransportError:
    logger.warning(
        "Malformed identity response",
        extra={"source": Source.IDENTITY.value, "status": status, "fid": fid, "error": detail},
    )
    return UpstreamTransportError(Source.IDENTITY, fid=fid, status=status, detail=detail, kind=FailureKind.MALFORMED)


def parse_identity_body(fid: str, body: Any, *, status: int = 200) -> Optional[UserIdentity]:
    """Extract the first Social record, or None when the graph has none."""
    if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
        raise _malformed(fid, status, "missing data object")
    socials = body["data"].get("Socials")
    if socials is None:
        return None
    if not isinstance(socials, dict):
        raise _malformed(fid, status, "Socials is not an object")
    records = socials.get("Social")
    if records is None:
        return None
    if not isinstance(records, list):
        raise _malformed(fid, status, "Social is not a list")
    if not records:
        return None

    first = records[0]
    if not isinstance(first, dict):
        raise _malformed(fid, status, "Social record is not an object")
    try:
        return UserIdentity(
            id=fid,
            display_name=first.get("profileName"),
            avatar_ref=first.get("profileImage"),
            dapp_name=first.get("dappName"),
        )
    except ValidationError as exc:
        raise _malformed(fid, status, str(exc)) from exc


class IdentityClient:
    """Fetch profile metadata for a user id from the identity graph."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        url: str,
        api_key: str | None,
        retry: RetryPolicy | None = None,
    ):
        self.client = client
        self.url = url
        self.api_key = api_key
        self.retry = retry or RetryPolicy()
        logger.debug("Identity client configured", extra={"url": url, "api_key": mask_secret(api_key)})

    async def fetch_identity(self, fid: str) -> Optional[UserIdentity]:
        """Return the first matching identity record, or None if not found."""
        validate_fid(fid)
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = self.api_key

        resp = await request_with_retries(
            self.client,
            "POST",
            self.url,
            source=Source.IDENTITY,
            fid=fid,
            retry=self.retry,
            json={"query": build_identity_query(fid)},
            headers=headers,
        )
        if not resp.is_success:
            logger.warning(
                "Identity lookup rejected",
                extra={"source": Source.IDENTITY.value, "status": resp.status_code, "fid": fid},
            )
            raise UpstreamTransportError(Source.IDENTITY, fid=fid, status=resp.status_code, detail=resp.text[:200])

        try:
            body = resp.json()
        except ValueError as exc:
            raise _malformed(fid, resp.status_code, "body is not JSON") from exc

        identity = parse_identity_body(fid, body, status=resp.status_code)
        logger.debug("Identity lookup finished", extra={"fid": fid, "found": identity is not None})
        return identity
