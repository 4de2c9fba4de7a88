"""Schedule backend for an externally-hosted (QStash compatible) scheduler.

The external service keeps the schedule and calls back into the webhook
entry point on every fire, so ``start`` never holds on to the callback.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..config import ExternalSchedulerConfig
from ..constants import EXTERNAL_SCHEDULE_LABEL_PREFIX
from ..contracts import RecoveredSchedule, ScheduleEntry
from ..errors import ConfigurationError, FlowforgeError
from ..persistence.models import utcnow
from .base import FireCallback, ScheduleBackend
from .cron import build_trigger

logger = logging.getLogger(__name__)

LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0", "::1"}


@dataclass
class ExternalScheduleHandle:
    schedule_id: str
    cron_expression: str
    timezone: str


def _workflow_id_from(item: dict[str, Any]) -> Optional[str]:
    label = item.get("label") or ""
    if label.startswith(EXTERNAL_SCHEDULE_LABEL_PREFIX):
        return label[len(EXTERNAL_SCHEDULE_LABEL_PREFIX):]
    body = item.get("body")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None
    if isinstance(body, dict) and body.get("trigger") == "cron":
        return body.get("workflowId")
    return None


class ExternalScheduleBackend(ScheduleBackend):
    name = "external"

    def __init__(
        self, config: ExternalSchedulerConfig, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
            self._owns_client = True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        if not self.config.token:
            raise ConfigurationError(
                "External scheduler token not configured. Set QSTASH_TOKEN or external.token."
            )
        return {"Authorization": f"Bearer {self.config.token}"}

    def _destination(self) -> str:
        destination = self.config.destination_url
        if not destination:
            raise ConfigurationError(
                "External scheduler needs a public application URL. Set FLOWFORGE_APP_URL "
                "or external.app_url."
            )
        host = (urlparse(destination).hostname or "").lower()
        if host in LOCAL_HOSTS or host.endswith(".localhost"):
            raise ConfigurationError(
                f"External scheduler destination {destination} is not reachable from the "
                "internet. Use a public domain or the in-process backend."
            )
        return destination

    def _url(self, path: str) -> str:
        return f"{self.config.api_url.rstrip('/')}{path}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        await self.open()
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(
                method, self._url(path), headers=headers, **kwargs
            )
        except httpx.HTTPError as e:
            raise FlowforgeError(f"External scheduler request failed: {e}") from e
        return response

    # ------------------------------------------------------------------
    async def start(
        self, entry: ScheduleEntry, callback: FireCallback
    ) -> ExternalScheduleHandle:
        destination = self._destination()
        body = {
            "workflowId": entry.workflow_id,
            "trigger": "cron",
            "timestamp": utcnow().isoformat(),
            "source": "qstash",
        }
        response = await self._request(
            "POST",
            f"/v2/schedules/{destination}",
            content=json.dumps(body),
            headers={
                "Content-Type": "application/json",
                "Upstash-Cron": f"CRON_TZ={entry.timezone} {entry.cron_expression}",
                "Upstash-Retries": str(self.config.retries),
                "Upstash-Timeout": f"{self.config.timeout_seconds}s",
                "Upstash-Label": f"{EXTERNAL_SCHEDULE_LABEL_PREFIX}{entry.workflow_id}",
            },
        )
        if response.is_error:
            raise FlowforgeError(
                f"External scheduler rejected schedule for {entry.workflow_id}: "
                f"{response.status_code} {response.text}"
            )
        schedule_id = response.json()["scheduleId"]
        logger.info(f"External schedule {schedule_id} created for workflow {entry.workflow_id}")
        return ExternalScheduleHandle(schedule_id, entry.cron_expression, entry.timezone)

    async def stop(self, handle: Any) -> None:
        schedule_id = handle.schedule_id if isinstance(handle, ExternalScheduleHandle) else handle
        response = await self._request("DELETE", f"/v2/schedules/{schedule_id}")
        if response.status_code == 404:
            logger.debug(f"External schedule {schedule_id} already deleted")
            return
        if response.is_error:
            raise FlowforgeError(
                f"Failed to delete external schedule {schedule_id}: "
                f"{response.status_code} {response.text}"
            )
        logger.info(f"External schedule {schedule_id} deleted")

    def next_fire_time(self, handle: Any) -> Optional[datetime]:
        if not isinstance(handle, ExternalScheduleHandle):
            return None
        trigger = build_trigger(handle.cron_expression, handle.timezone)
        return trigger.get_next_fire_time(None, utcnow())

    async def recover(self) -> list[RecoveredSchedule]:
        response = await self._request("GET", "/v2/schedules")
        if response.is_error:
            raise FlowforgeError(
                f"Failed to list external schedules: {response.status_code} {response.text}"
            )
        recovered = []
        for item in response.json() or []:
            workflow_id = _workflow_id_from(item)
            if not workflow_id:
                continue
            recovered.append(
                RecoveredSchedule(
                    workflow_id=workflow_id,
                    backing_handle=item.get("scheduleId"),
                    cron_expression=item.get("cron"),
                )
            )
        return recovered
