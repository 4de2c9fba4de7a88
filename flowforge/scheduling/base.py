"""Base interface for schedule backends."""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from ..contracts import RecoveredSchedule, ScheduleEntry

FireCallback = Callable[[], Awaitable[None]]


class ScheduleBackend(metaclass=abc.ABCMeta):
    """Abstract backend that turns schedule entries into timed fires."""

    name: str = "base"

    async def open(self) -> None:
        """Start the backend (no-op by default)."""
        pass

    async def close(self) -> None:
        """Stop the backend (no-op by default)."""
        pass

    @abc.abstractmethod
    async def start(self, entry: ScheduleEntry, callback: FireCallback) -> Any:
        """Begin firing ``entry`` and return an opaque handle."""
        raise NotImplementedError

    @abc.abstractmethod
    async def stop(self, handle: Any) -> None:
        """Stop the schedule behind ``handle``. Stopping twice is harmless."""
        raise NotImplementedError

    @abc.abstractmethod
    def next_fire_time(self, handle: Any) -> Optional[datetime]:
        raise NotImplementedError

    async def recover(self) -> list[RecoveredSchedule]:
        """Schedules that outlived the previous process (none by default)."""
        return []
