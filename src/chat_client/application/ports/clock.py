from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Protocol


class Clock(Protocol):
    """Source of "now". Its tz decides how recency strings are rendered."""

    def now(self) -> datetime: ...


class SystemClock:
    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or timezone.utc

    def now(self) -> datetime:
        return datetime.now(self._tz)

    @classmethod
    def local(cls) -> SystemClock:
        return cls(datetime.now().astimezone().tzinfo)
