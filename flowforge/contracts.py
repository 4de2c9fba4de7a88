"""Core contracts: workflow definitions, schedule entries and trigger payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .constants import DEFAULT_ACTION_TIMEOUT, DEFAULT_TIMEZONE

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
ActionType = Literal["http", "email", "telegram", "database", "transform"]
TriggerType = Literal["webhook", "cron", "email"]


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ----------------------------------------------------------------------
# Trigger configuration


class WebhookTriggerConfig(_Model):
    url: Optional[str] = None
    method: HttpMethod = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)


class CronTriggerConfig(_Model):
    schedule: Any = None
    timezone: str = DEFAULT_TIMEZONE


class EmailTriggerConfig(_Model):
    from_: Optional[str] = Field(default=None, alias="from")
    subject: Optional[str] = None
    body: Optional[str] = None


TriggerConfig = Union[WebhookTriggerConfig, CronTriggerConfig, EmailTriggerConfig]

_TRIGGER_CONFIGS: dict[str, type[_Model]] = {
    "webhook": WebhookTriggerConfig,
    "cron": CronTriggerConfig,
    "email": EmailTriggerConfig,
}


class WorkflowTrigger(_Model):
    """Event source that starts a workflow run."""

    id: Optional[str] = None
    type: TriggerType
    config: TriggerConfig

    @model_validator(mode="before")
    @classmethod
    def _parse_config(cls, data: Any) -> Any:
        return _coerce_config(data, _TRIGGER_CONFIGS, "trigger")


# ----------------------------------------------------------------------
# Action configuration


class HttpActionConfig(_Model):
    url: str
    method: HttpMethod = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    timeout: float = Field(default=DEFAULT_ACTION_TIMEOUT, gt=0)


class EmailActionConfig(_Model):
    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")


class TelegramActionConfig(_Model):
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    message: Optional[str] = None
    parse_mode: Optional[Literal["HTML", "Markdown", "MarkdownV2"]] = Field(
        default=None, alias="parseMode"
    )


class DatabaseActionConfig(_Model):
    operation: Literal["insert", "update", "delete", "select"]
    table: str = ""
    data: Optional[Dict[str, Any]] = None
    where: Optional[Dict[str, Any]] = None


class TransformActionConfig(_Model):
    input: Optional[str] = None
    transformation: str
    output: str


ActionConfig = Union[
    HttpActionConfig,
    EmailActionConfig,
    TelegramActionConfig,
    DatabaseActionConfig,
    TransformActionConfig,
]

ACTION_CONFIGS: dict[str, type[_Model]] = {
    "http": HttpActionConfig,
    "email": EmailActionConfig,
    "telegram": TelegramActionConfig,
    "database": DatabaseActionConfig,
    "transform": TransformActionConfig,
}


class WorkflowAction(_Model):
    """One step in a workflow's action chain."""

    id: str
    type: ActionType
    config: ActionConfig

    @model_validator(mode="before")
    @classmethod
    def _parse_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") == "chat":
            data = {**data, "type": "telegram"}
        return _coerce_config(data, ACTION_CONFIGS, "action")


def _coerce_config(data: Any, registry: dict[str, type[_Model]], kind: str) -> Any:
    """Parse ``data["config"]`` with the model matching ``data["type"]``.

    Without this step pydantic would pick the first union member that happens
    to validate, which lets a config of the wrong shape slip through.
    """

    if not isinstance(data, dict):
        return data
    config_cls = registry.get(data.get("type"))
    config = data.get("config")
    if config_cls is None or config is None:
        return data
    if isinstance(config, BaseModel):
        if not isinstance(config, config_cls):
            raise ValueError(
                f"{kind} config {type(config).__name__} does not match type {data['type']!r}"
            )
        return data
    return {**data, "config": config_cls.model_validate(config)}


# ----------------------------------------------------------------------
# Workflow definition


class WorkflowDefinition(_Model):
    """Stored workflow definition. Read-only to the engine apart from ``is_active``."""

    id: str
    name: str = ""
    description: Optional[str] = None
    trigger: WorkflowTrigger
    actions: List[WorkflowAction] = Field(default_factory=list)
    is_active: bool = Field(default=False, alias="isActive")

    @property
    def is_cron(self) -> bool:
        return self.trigger.type == "cron"

    @property
    def cron_config(self) -> Optional[CronTriggerConfig]:
        if isinstance(self.trigger.config, CronTriggerConfig):
            return self.trigger.config
        return None


# ----------------------------------------------------------------------
# Scheduling


class ScheduleEntry(_Model):
    """Live registration of a recurring trigger for one workflow."""

    workflow_id: str = Field(alias="workflowId")
    cron_expression: str = Field(alias="cronExpression")
    timezone: str = DEFAULT_TIMEZONE
    backend: str = "inprocess"
    backing_handle: Any = Field(default=None, exclude=True)
    next_execution: Optional[datetime] = Field(default=None, alias="nextExecution")

    @property
    def is_running(self) -> bool:
        # Presence in the registry is what makes an entry live.
        return True


class RecoveredSchedule(_Model):
    """Schedule found in a backend that outlives the process."""

    workflow_id: str
    backing_handle: Any = None
    cron_expression: Optional[str] = None


class ExternalTriggerPayload(_Model):
    """Body delivered by an externally-hosted scheduler."""

    workflow_id: str = Field(alias="workflowId", min_length=1)
    trigger: Literal["cron"] = Field(validation_alias=AliasChoices("triggerKind", "trigger"))
    source: Literal["qstash", "external-scheduler"]
    timestamp: Optional[str] = None


class DuplicateRunSkipped(_Model):
    """Outcome of the duplicate guard declining to start a run."""

    workflow_id: str
    blocking_execution_ids: List[str] = Field(default_factory=list)
    reason: str = "execution already running or recently completed"
