"""One request through the whole pipeline: transition, render, package."""
from __future__ import annotations

from typing import Any, Dict

from degen_frame.aggregator import aggregate
from degen_frame.config import Settings
from degen_frame.data_sources.base import FrameSources
from degen_frame.domain import FrameActionPayload, Route, ScreenResponse, ScreenState
from degen_frame.packager import image_url_for, package_html, package_json
from degen_frame.renderer import render
from degen_frame.state_machine import AggregateFn, FrameStateMachine
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="frame_service")

ROUTE_PATHS: Dict[Route, str] = {
    Route.LANDING: "",
    Route.CHECK_REQUESTED: "check-allowance",
}


class FrameService:
    """Stateless frame pipeline; safe to share across concurrent requests."""

    def __init__(self, sources: FrameSources, settings: Settings, *, rng=None, aggregate_fn: AggregateFn = aggregate):
        self.settings = settings
        self.policy = settings.to_policy()
        self.machine = FrameStateMachine(sources, self.policy, aggregate_fn=aggregate_fn)
        self.rng = rng

    def route_url(self, route: Route) -> str:
        return self.settings.route(ROUTE_PATHS[route])

    def error_screen(self) -> ScreenResponse:
        """Last-resort screen with a retry action."""
        return render(ScreenState.UPSTREAM_ERROR, None, self.policy)

    async def handle(self, route: Route, payload: FrameActionPayload) -> ScreenResponse:
        """Resolve a request to a screen. Never raises except on cancellation."""
        try:
            transition = await self.machine.transition(route, payload)
            return render(transition.state, transition.result, self.policy, rng=self.rng)
        except Exception:
            logger.exception(
                "Frame pipeline failed; rendering error screen",
                extra={"route": route.value, "fid": payload.user_id},
            )
            return self.error_screen()

    def _post_url(self, response: ScreenResponse) -> str:
        target = response.actions[0].target if response.actions else Route.LANDING
        return self.route_url(target)

    def to_html(self, response: ScreenResponse) -> str:
        return package_html(
            response,
            title=self.settings.title,
            image_url=image_url_for(response, self.settings.image_renderer_url),
            post_url=self._post_url(response),
            route_url=self.route_url,
        )

    def to_json(self, response: ScreenResponse) -> Dict[str, Any]:
        return package_json(
            response,
            image_url=image_url_for(response, self.settings.image_renderer_url),
            post_url=self._post_url(response),
            route_url=self.route_url,
        )
