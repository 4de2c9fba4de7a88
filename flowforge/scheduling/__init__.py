"""Recurring triggers: cron normalisation, backends, registry and bootstrap."""

from __future__ import annotations

from typing import Optional

import httpx

from ..config import FlowforgeConfig, load_config
from .base import FireCallback, ScheduleBackend
from .bootstrap import BootstrapReport, ScheduleBootstrapper, reset_first_start
from .cron import SHORTHANDS, normalize_cron
from .external import ExternalScheduleBackend, ExternalScheduleHandle
from .inprocess import InProcessScheduleBackend
from .registry import ScheduleRegistry


def get_schedule_backend(
    config: Optional[FlowforgeConfig] = None, client: Optional[httpx.AsyncClient] = None
) -> ScheduleBackend:
    """Factory returning the backend named by ``scheduler.backend``."""

    config = config or load_config()
    if config.scheduler.backend == "external":
        return ExternalScheduleBackend(config.external, client=client)
    return InProcessScheduleBackend()


__all__ = [
    "BootstrapReport",
    "ExternalScheduleBackend",
    "ExternalScheduleHandle",
    "FireCallback",
    "InProcessScheduleBackend",
    "SHORTHANDS",
    "ScheduleBackend",
    "ScheduleBootstrapper",
    "ScheduleRegistry",
    "get_schedule_backend",
    "normalize_cron",
    "reset_first_start",
]
