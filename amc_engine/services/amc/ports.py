"""Interfaces to collaborators outside the engine.

The engine never reads the system clock or customer/user master data
directly; callers inject these.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class CustomerDirectory(Protocol):
    def exists(self, customer_id: str) -> bool:
        ...


class UserDirectory(Protocol):
    def exists(self, user_id: str) -> bool:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to one instant, for tests and replays."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def set(self, instant: datetime) -> None:
        self.instant = instant


class StaticDirectory:
    """
    In-memory id directory.

    With ``permissive=True`` every id resolves, which is how local runs
    behave when no customer or user service is wired in.
    """

    def __init__(self, ids: Optional[Iterable[str]] = None, permissive: bool = False):
        self.ids = {str(i) for i in (ids or [])}
        self.permissive = permissive

    def exists(self, identifier: str) -> bool:
        return self.permissive or str(identifier) in self.ids

    def add(self, identifier: str) -> None:
        self.ids.add(str(identifier))
