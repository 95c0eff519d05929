"""Domain vocabulary and strict schemas for the allowance frame.

This module defines the contract shared by the resolvers, the aggregator, the
state machine and the renderer: enums, the fetched records, the aggregate
result, the declarative layout tree and the render policy. No fetching or
transition logic lives here.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class _FrozenModel(BaseModel):
    """Immutable strict model."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ScreenState(str, Enum):
    """Screens the frame can render. Exactly one is active per response."""
    LANDING = "landing"
    MISSING_IDENTIFIER = "missing_identifier"
    RESULT = "result"
    PARTIAL_DATA = "partial_data"
    UPSTREAM_ERROR = "upstream_error"


class Route(str, Enum):
    """Inbound route keys. `CHECK_REQUESTED` is transient and never rendered."""
    LANDING = "landing"
    CHECK_REQUESTED = "check_requested"


class Source(str, Enum):
    """Upstream services consulted per check."""
    IDENTITY = "identity"
    ALLOWANCE = "allowance"


class DataField(str, Enum):
    """Aggregate fields a policy can mark as required."""
    IDENTITY = "identity"
    ALLOWANCE = "allowance"


FIELD_SOURCES: Dict[DataField, Source] = {
    DataField.IDENTITY: Source.IDENTITY,
    DataField.ALLOWANCE: Source.ALLOWANCE,
}


class FailureKind(str, Enum):
    """How an upstream call failed. Both kinds are transport errors."""
    TRANSPORT = "transport"
    MALFORMED = "malformed"


class UserIdentity(_FrozenModel):
    """Profile metadata from the identity graph."""
    id: str
    display_name: str | None = None
    avatar_ref: str | None = None
    dapp_name: str | None = None


def _to_decimal(value: Any) -> Decimal:
    """Parse a wire number (string or JSON number) without rounding it."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc


def _to_utc_datetime(value: Any) -> datetime:
    """Parse an ISO day or timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            d = date.fromisoformat(text)
            parsed = datetime(d.year, d.month, d.day)
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"not an ISO date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _wire_text(value: Any) -> str | None:
    """The number as the ledger wrote it, for display."""
    if value is None or isinstance(value, bool):
        return None
    return value.strip() if isinstance(value, str) else str(value)


class AllowanceSnapshot(_FrozenModel):
    """A dated allowance record from the ledger service.

    `daily_text` and `remaining_text` keep the literal wire text next to the
    parsed amounts; the renderer shows those, never a reformatted Decimal.
    """
    as_of: datetime
    daily_allowance: Decimal
    remaining_allowance: Decimal
    rank: str | None = None
    daily_text: str | None = None
    remaining_text: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _keep_wire_text(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if data.get("daily_text") is None:
                data["daily_text"] = _wire_text(data.get("daily_allowance"))
            if data.get("remaining_text") is None:
                data["remaining_text"] = _wire_text(data.get("remaining_allowance"))
        return data

    @field_validator("as_of", mode="before")
    @classmethod
    def _parse_as_of(cls, v):
        return _to_utc_datetime(v)

    @field_validator("daily_allowance", "remaining_allowance", mode="before")
    @classmethod
    def _parse_amount(cls, v):
        return _to_decimal(v)

    @field_validator("rank", mode="before")
    @classmethod
    def _rank_as_text(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @property
    def is_exhausted(self) -> bool:
        """True when a positive daily allowance has been fully spent."""
        return self.remaining_allowance == 0 and self.daily_allowance > 0

    @property
    def daily_display(self) -> str:
        return self.daily_text or str(self.daily_allowance)

    @property
    def remaining_display(self) -> str:
        return self.remaining_text or str(self.remaining_allowance)

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "AllowanceSnapshot":
        """Build a snapshot from a ledger record.

        Older ledger deployments report the daily figure as `allowance` and
        omit `remaining_tip_allowance`; the remaining figure then defaults to
        the daily one.
        """
        daily = record.get("tip_allowance", record.get("allowance"))
        remaining = record.get("remaining_tip_allowance", record.get("remaining_allowance", daily))
        return cls(
            as_of=record.get("snapshot_day", record.get("snapshot_date")),
            daily_allowance=daily,
            remaining_allowance=remaining,
            rank=record.get("user_rank"),
        )


class SourceFailure(_FrozenModel):
    """A transport-level failure captured as a value by the aggregator."""
    source: Source
    kind: FailureKind = FailureKind.TRANSPORT
    status: int | None = None
    detail: str = ""


class AggregateResult(_FrozenModel):
    """Unified outcome of one check. Absent fields mean not found or failed."""
    identity: UserIdentity | None = None
    allowance: AllowanceSnapshot | None = None
    failures: FrozenSet[SourceFailure] = Field(default_factory=frozenset)

    def has(self, field: DataField) -> bool:
        """Return True when the field was fetched."""
        return getattr(self, field.value) is not None

    def failed(self, source: Source) -> bool:
        """Return True when the source reported a transport failure."""
        return any(f.source == source for f in self.failures)


class TextNode(_FrozenModel):
    """A line of text. `role` lets the rasterizer pick a type scale."""
    kind: Literal["text"] = "text"
    text: str
    role: Literal["title", "body", "caption"] = "body"


class ImageNode(_FrozenModel):
    """An embedded image, e.g. the profile avatar."""
    kind: Literal["image"] = "image"
    src: str
    alt: str = ""
    shape: Literal["square", "circle"] = "square"


class ContainerNode(_FrozenModel):
    """A flex container; the root of every layout carries the background."""
    kind: Literal["container"] = "container"
    direction: Literal["row", "column"] = "column"
    background: str | None = None
    children: Tuple["LayoutNode", ...] = ()


LayoutNode = Union[ContainerNode, TextNode, ImageNode]
ContainerNode.model_rebuild()


class Action(_FrozenModel):
    """A labeled button that posts to another frame route."""
    label: str
    target: Route


class ScreenResponse(_FrozenModel):
    """Presentation-agnostic screen: a layout tree plus ordered actions."""
    state: ScreenState
    layout: ContainerNode
    actions: Tuple[Action, ...] = ()


DEFAULT_LABEL_TEMPLATES: Dict[str, str] = {
    "landing_title": "Check your $DEGEN allowance",
    "missing_identifier": "Unable to retrieve user information",
    "upstream_error": "Error fetching user information or allowance",
    "avatar": "Avatar: {avatar}",
    "display_name": "{display_name}",
    "daily_allowance": "$DEGEN allowance: {daily_allowance}",
    "remaining_allowance": "Remaining: {remaining_allowance}",
    "rank": "Rank: {rank}",
    "as_of": "As of {as_of}",
    "check": "Check My Allowance",
    "check_again": "Check Again",
    "try_again": "Try Again",
}


class FramePolicy(_FrozenModel):
    """Render and transition policy shared by every screen.

    `required_fields` decides whether a missing identity or allowance is
    fatal (`upstream_error` on failure) or tolerated (`partial_data`).
    """
    required_fields: FrozenSet[DataField] = frozenset({DataField.ALLOWANCE})
    asset_palette: Tuple[str, ...] = ()
    zero_balance_asset: str
    landing_asset: str
    label_templates: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_LABEL_TEMPLATES))
    display_timezone: str = "UTC"
    unavailable_text: str = "unavailable"

    @field_validator("label_templates", mode="after")
    @classmethod
    def _merge_defaults(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {**DEFAULT_LABEL_TEMPLATES, **v}

    def label(self, key: str, **values: Any) -> str:
        """Fill a label template with literal values."""
        return self.label_templates[key].format(**values)


class FrameActionPayload(BaseModel):
    """Inbound interaction body. Unknown keys are ignored.

    Hosts post `{untrustedData: {...}, trustedData: {...}}`; local tools often
    post the inner fields flat. Signature verification of `trustedData`
    happens upstream of this service.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    fid: int | None = None
    button_index: int | None = Field(default=None, alias="buttonIndex")
    input_text: str | None = Field(default=None, alias="inputText")
    trusted_data: Dict[str, Any] | None = Field(default=None, alias="trustedData")

    @field_validator("fid", mode="before")
    @classmethod
    def _coerce_fid(cls, v):
        if v is None or isinstance(v, bool):
            return None
        text = str(v).strip()
        if not text.isdigit() or int(text) <= 0:
            return None
        return int(text)

    @classmethod
    def from_body(cls, body: Any) -> "FrameActionPayload":
        """Parse either the wrapped or the flat body shape.

        Never raises: fields with the wrong type are dropped, so a bad
        `inputText` still leaves the `fid` usable.
        """
        if not isinstance(body, dict):
            return cls()
        inner = body.get("untrustedData")
        data: Dict[str, Any] = dict(inner) if isinstance(inner, dict) else dict(body)
        if "trustedData" in body:
            data["trustedData"] = body["trustedData"]
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            invalid = {err["loc"][0] for err in exc.errors() if err.get("loc")}
        try:
            return cls.model_validate({k: v for k, v in data.items() if k not in invalid})
        except ValidationError:
            return cls()

    @property
    def user_id(self) -> str | None:
        """Numeric id string, or None when the payload carries no id."""
        return str(self.fid) if self.fid is not None else None


__all__: List[str] = [
    "Action",
    "AggregateResult",
    "AllowanceSnapshot",
    "ContainerNode",
    "DataField",
    "DEFAULT_LABEL_TEMPLATES",
    "FailureKind",
    "FIELD_SOURCES",
    "FrameActionPayload",
    "FramePolicy",
    "ImageNode",
    "LayoutNode",
    "Route",
    "ScreenResponse",
    "ScreenState",
    "Source",
    "SourceFailure",
    "TextNode",
    "UserIdentity",
]
