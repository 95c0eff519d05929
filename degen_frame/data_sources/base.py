"""Interfaces and helpers for the upstream data sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

from degen_frame.domain import AllowanceSnapshot, UserIdentity


class IdentitySource(Protocol):
    """Anything that can resolve a user id to profile metadata."""

    async def fetch_identity(self, fid: str) -> Optional[UserIdentity]:
        """Return the first matching identity, or None when not found."""
        ...


class AllowanceSource(Protocol):
    """Anything that can resolve a user id to its current allowance snapshot."""

    async def fetch_current(self, fid: str) -> Optional[AllowanceSnapshot]:
        """Return the snapshot with the latest `as_of`, or None when not found."""
        ...


@dataclass
class FrameSources:
    """The pair of sources consulted on every check."""
    identity: IdentitySource
    allowance: AllowanceSource


@dataclass
class CallableIdentitySource(IdentitySource):
    """Wrap a coroutine function so it can stand in for the identity client."""

    fetch: Callable[[str], Awaitable[Optional[UserIdentity]]]

    async def fetch_identity(self, fid: str) -> Optional[UserIdentity]:
        return await self.fetch(fid)


@dataclass
class CallableAllowanceSource(AllowanceSource):
    """Wrap a coroutine function so it can stand in for the allowance client."""

    fetch: Callable[[str], Awaitable[Optional[AllowanceSnapshot]]]

    async def fetch_current(self, fid: str) -> Optional[AllowanceSnapshot]:
        return await self.fetch(fid)
