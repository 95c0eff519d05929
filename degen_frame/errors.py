"""Exceptions raised by the upstream clients.

Not-found outcomes are returned as `None`/empty values and a missing id is a
screen state, so the only exception the pipeline has to reason about is the
transport error below. The aggregator turns it into a `SourceFailure` value.
"""

from __future__ import annotations

from degen_frame.domain import FailureKind, Source, SourceFailure


class FrameError(Exception):
    """Base class for errors raised inside the frame pipeline."""


class UpstreamTransportError(FrameError):
    """Network failure, unexpected status or malformed body from an upstream."""

    def __init__(
        self,
        source: Source,
        *,
        fid: str | None = None,
        status: int | None = None,
        detail: str = "",
        kind: FailureKind = FailureKind.TRANSPORT,
    ) -> None:
        self.source = source
        self.fid = fid
        self.status = status
        self.detail = detail
        self.kind = kind
        super().__init__(f"{source.value} upstream failed (status={status}, fid={fid}): {detail}")

    def to_failure(self) -> SourceFailure:
        """Capture this error as an immutable value."""
        return SourceFailure(source=self.source, kind=self.kind, status=self.status, detail=self.detail)
