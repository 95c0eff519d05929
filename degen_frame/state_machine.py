r"""Frame navigation: which screen a request lands on and where its buttons go.

    landing --check--> check_requested --> result
                                       \-> missing_identifier
                                       \-> partial_data
                                       \-> upstream_error

Every terminal screen has a single action back to landing. Nothing is kept
between requests.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from degen_frame.aggregator import aggregate
from degen_frame.data_sources.base import AllowanceSource, FrameSources, IdentitySource
from degen_frame.domain import (
    FIELD_SOURCES,
    Action,
    AggregateResult,
    DataField,
    FrameActionPayload,
    FramePolicy,
    Route,
    ScreenState,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="state_machine")

AggregateFn = Callable[[str, IdentitySource, AllowanceSource], Awaitable[AggregateResult]]

TERMINAL_STATES = frozenset(
    {
        ScreenState.RESULT,
        ScreenState.MISSING_IDENTIFIER,
        ScreenState.PARTIAL_DATA,
        ScreenState.UPSTREAM_ERROR,
    }
)

# state -> (label template key, target route)
TRANSITIONS: Dict[ScreenState, Tuple[str, Route]] = {
    ScreenState.LANDING: ("check", Route.CHECK_REQUESTED),
    ScreenState.RESULT: ("check_again", Route.LANDING),
    ScreenState.MISSING_IDENTIFIER: ("try_again", Route.LANDING),
    ScreenState.PARTIAL_DATA: ("try_again", Route.LANDING),
    ScreenState.UPSTREAM_ERROR: ("try_again", Route.LANDING),
}


def actions_for(state: ScreenState, policy: FramePolicy) -> Tuple[Action, ...]:
    """The ordered buttons available from `state`."""
    label_key, target = TRANSITIONS[state]
    return (Action(label=policy.label(label_key), target=target),)


def decide(user_id: Optional[str], result: Optional[AggregateResult], policy: FramePolicy) -> ScreenState:
    """Pick the terminal screen for a check. Rules are evaluated in order."""
    if not user_id:
        return ScreenState.MISSING_IDENTIFIER
    if result is None:
        raise ValueError("an aggregate result is required once a user id is present")

    for required in sorted(policy.required_fields, key=lambda f: f.value):
        if result.failed(FIELD_SOURCES[required]):
            return ScreenState.UPSTREAM_ERROR

    if all(result.has(f) for f in DataField):
        return ScreenState.RESULT
    return ScreenState.PARTIAL_DATA


@dataclass
class Transition:
    """Outcome of one request: the screen to render and the data behind it."""
    state: ScreenState
    result: AggregateResult = field(default_factory=AggregateResult)


class FrameStateMachine:
    """Drives one request from its route key to a terminal screen."""

    def __init__(self, sources: FrameSources, policy: FramePolicy, *, aggregate_fn: AggregateFn = aggregate):
        self.sources = sources
        self.policy = policy
        self.aggregate_fn = aggregate_fn

    async def transition(self, route: Route, payload: FrameActionPayload) -> Transition:
        """Resolve `route` for `payload`. Only a check with an id touches the upstreams."""
        if route is Route.LANDING:
            return Transition(ScreenState.LANDING)

        user_id = payload.user_id
        if not user_id:
            logger.info("Check requested without a user id", extra={"button_index": payload.button_index})
            return Transition(ScreenState.MISSING_IDENTIFIER)

        result = await self.aggregate_fn(user_id, self.sources.identity, self.sources.allowance)
        state = decide(user_id, result, self.policy)
        logger.info(
            "Check resolved",
            extra={"fid": user_id, "state": state.value, "required": sorted(f.value for f in self.policy.required_fields)},
        )
        return Transition(state, result)
