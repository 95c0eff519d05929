"""HTTP routes for the allowance frame."""

import asyncio
import contextlib
from typing import Any, Awaitable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .check_upstreams import get_upstream_status
from .domain import FrameActionPayload, Route, ScreenResponse
from .frame_service import FrameService
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="degen_frame/api")

DISCONNECT_POLL_SECONDS = 0.1
# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499

router = APIRouter()


def get_frame_service(request: Request) -> FrameService:
    """Return the pipeline built during application startup."""
    return request.app.state.frame_service


async def _read_payload(request: Request) -> FrameActionPayload:
    """Parse the interaction body; anything unreadable counts as no payload."""
    if request.method != "POST":
        return FrameActionPayload()
    try:
        body: Any = await request.json()
    except ValueError:
        logger.debug("Frame POST without a JSON body")
        return FrameActionPayload()
    return FrameActionPayload.from_body(body)


async def run_until_disconnect(
    request: Request,
    work: Awaitable[ScreenResponse],
    poll_seconds: float = DISCONNECT_POLL_SECONDS,
) -> Optional[ScreenResponse]:
    """Await `work`, cancelling it if the client goes away first.

    Returns None when the client disconnected. Cancelling the pipeline task
    cancels both outstanding upstream calls.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _pending = await asyncio.wait({task}, timeout=poll_seconds)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected; cancelling frame pipeline", extra={"path": request.url.path})
                return None
    finally:
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def _wants_json(request: Request) -> bool:
    if request.query_params.get("format") == "json":
        return True
    return "application/json" in request.headers.get("accept", "")


async def _respond(request: Request, service: FrameService, route: Route) -> Response:
    payload = await _read_payload(request)
    screen = await run_until_disconnect(request, service.handle(route, payload))
    if screen is None:
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    if _wants_json(request):
        return JSONResponse(service.to_json(screen))
    return HTMLResponse(service.to_html(screen))


@router.api_route("/", methods=["GET", "POST"])
async def landing(request: Request, service: FrameService = Depends(get_frame_service)):
    """Initial frame with the check button."""
    return await _respond(request, service, Route.LANDING)


@router.post("/check-allowance")
async def check_allowance(request: Request, service: FrameService = Depends(get_frame_service)):
    """Fetch identity and allowance for the interacting user and render the outcome."""
    return await _respond(request, service, Route.CHECK_REQUESTED)


@router.get("/healthz")
async def healthz(probe: bool = False, service: FrameService = Depends(get_frame_service)):
    """Liveness, plus a non-fatal upstream probe when `probe=true`."""
    out: dict = {"status": "ok", "title": service.settings.title}
    if probe:
        out["upstreams"] = await asyncio.to_thread(get_upstream_status, service.settings)
    return out
