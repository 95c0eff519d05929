# degen_frame/check_upstreams.py
"""Startup preflight and health probe for the identity and allowance upstreams."""

import sys
from typing import Any, Dict, Optional

import requests

from degen_frame.config import Settings
from utils.logging_utils import get_tagged_logger, mask_secret

logger = get_tagged_logger(__name__, tag="check_upstreams")

PROBE_TIMEOUT_SECONDS = 3
# fid 1 exists on every deployment of the ledger
PROBE_FID = "1"


def _probe(method: str, url: str, **kwargs) -> Dict[str, Any]:
    """Issue one request; any answer below 500 means the service is up."""
    result: Dict[str, Any] = {"url": url, "reachable": False, "status": None, "error": None}
    try:
        resp = requests.request(method, url, timeout=PROBE_TIMEOUT_SECONDS, **kwargs)
    except Exception as e:
        result["error"] = str(e)
        return result
    result["status"] = resp.status_code
    result["reachable"] = resp.status_code < 500
    return result


def get_upstream_status(settings: Settings) -> Dict[str, Any]:
    """
    Non-fatal probe of both upstreams.

    Returns a dict like:
    {
      "ok": bool,
      "identity": {"url": ..., "reachable": bool, "status": int | None, "error": str | None,
                   "authorized": bool},
      "allowance": {"url": ..., "reachable": bool, "status": int | None, "error": str | None},
    }

    This NEVER sys.exit(). Suitable for health checks.
    """
    headers = {"Content-Type": "application/json"}
    if settings.identity_api_key:
        headers["Authorization"] = settings.identity_api_key
    identity = _probe("POST", settings.identity_api_url, json={"query": "{ __typename }"}, headers=headers)
    identity["authorized"] = identity["reachable"] and identity["status"] not in (401, 403)

    allowance = _probe("GET", settings.allowance_api_url, params={"fid": PROBE_FID})

    return {
        "ok": identity["authorized"] and allowance["reachable"],
        "identity": identity,
        "allowance": allowance,
    }


def check_upstreams(settings: Settings, status: Optional[Dict[str, Any]] = None) -> None:
    """
    "Hard" check for startup.

    Fails with sys.exit(1) when an upstream the policy marks as required is
    unreachable; optional upstreams only warn.
    """
    status = status or get_upstream_status(settings)
    required = {f.value for f in settings.required_fields}

    allowance = status["allowance"]
    identity = status["identity"]

    if identity["authorized"]:
        logger.info(f"Identity upstream reachable at {identity['url']}")
    else:
        level = logger.error if "identity" in required else logger.warning
        level(
            f"Identity upstream check failed at {identity['url']} "
            f"(status={identity['status']}, error={identity['error']}, "
            f"api_key={mask_secret(settings.identity_api_key)})"
        )
        if "identity" in required:
            sys.exit(1)

    if allowance["reachable"]:
        logger.info(f"Allowance upstream reachable at {allowance['url']}")
        return

    logger.error(
        f"Allowance upstream does not appear to be reachable.\n"
        f"   Tried: {allowance['url']}\n"
        f"   Details: status={allowance['status']}, error={allowance['error']}"
    )
    if "allowance" in required:
        sys.exit(1)
