"""Error taxonomy for the execution and scheduling engine."""

from __future__ import annotations

from typing import Optional


class FlowforgeError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(FlowforgeError):
    """Missing credentials or an action config that does not fit its type.

    Fatal to the action and never retried.
    """


class ActionExecutionError(FlowforgeError):
    """An action failed while talking to its provider."""

    def __init__(
        self, action_type: str, cause: BaseException | str, message: Optional[str] = None
    ) -> None:
        self.action_type = action_type
        self.cause = cause
        super().__init__(message or str(cause))


class NotFoundError(FlowforgeError):
    """The referenced workflow definition does not exist."""

    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class InvalidScheduleError(FlowforgeError):
    """A cron schedule could not be normalised or validated."""

    def __init__(self, schedule: object, reason: str) -> None:
        self.schedule = schedule
        self.reason = reason
        super().__init__(f"Invalid schedule {schedule!r}: {reason}")


class AuthError(FlowforgeError):
    """A webhook delivery failed signature verification."""


class MalformedPayloadError(FlowforgeError):
    """A webhook body could not be parsed into a trigger payload."""
