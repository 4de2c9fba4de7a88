from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_ACTION_TIMEOUT,
    DEFAULT_DUPLICATE_WINDOW_SECONDS,
    DEFAULT_ISOLATION_TIMEOUT_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DEFAULT_TIMEZONE,
)


class DefinitionsConfig(BaseModel):
    """Where workflow definitions are read from.

    ``url`` is ``None`` for an in-memory store, ``file://<path>`` for a YAML
    document, or an SQLAlchemy async URL for a database table.
    """

    url: Optional[str] = None


class SchedulerConfig(BaseModel):
    """Schedule registry settings."""

    backend: Literal["inprocess", "external"] = "inprocess"
    bootstrap_policy: Literal["resume", "reset"] = "resume"
    default_timezone: str = DEFAULT_TIMEZONE
    duplicate_window_seconds: float = Field(default=DEFAULT_DUPLICATE_WINDOW_SECONDS, ge=0)
    sweep_interval_seconds: float = Field(default=DEFAULT_SWEEP_INTERVAL_SECONDS, gt=0)


class ExternalSchedulerConfig(BaseModel):
    """Settings for the externally-hosted (QStash compatible) scheduler."""

    api_url: str = "https://qstash.upstash.io"
    token: Optional[str] = None
    current_signing_key: Optional[str] = None
    next_signing_key: Optional[str] = None
    app_url: Optional[str] = None
    webhook_path: str = "/api/qstash/webhook"
    issuer: str = "Upstash"
    retries: int = Field(default=3, ge=0)
    timeout_seconds: int = Field(default=30, gt=0)
    clock_tolerance_seconds: int = Field(default=5, ge=0)

    @property
    def destination_url(self) -> Optional[str]:
        if not self.app_url:
            return None
        return self.app_url.rstrip("/") + self.webhook_path


class ProvidersConfig(BaseModel):
    """Credentials and defaults for action providers."""

    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com"
    from_email: str = "onboarding@resend.dev"
    telegram_bot_token: Optional[str] = None
    telegram_api_url: str = "https://api.telegram.org"
    database_url: Optional[str] = None
    http_timeout: float = Field(default=DEFAULT_ACTION_TIMEOUT, gt=0)


class NotificationsConfig(BaseModel):
    """Operator channels that receive failure notifications."""

    error_email: Optional[str] = None
    telegram_error_chat_id: Optional[str] = None


class IsolationConfig(BaseModel):
    """Run workflows in a separate worker process."""

    enabled: bool = False
    timeout_seconds: float = Field(default=DEFAULT_ISOLATION_TIMEOUT_SECONDS, gt=0)


class FlowforgeConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    definitions: DefinitionsConfig = DefinitionsConfig()
    scheduler: SchedulerConfig = SchedulerConfig()
    external: ExternalSchedulerConfig = ExternalSchedulerConfig()
    providers: ProvidersConfig = ProvidersConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    isolation: IsolationConfig = IsolationConfig()


# (env var, section, attribute); section ``None`` means top level.
_ENV_OVERRIDES: tuple[tuple[str, Optional[str], str], ...] = (
    ("FLOWFORGE_DEFINITIONS_URL", "definitions", "url"),
    ("FLOWFORGE_SCHEDULER_BACKEND", "scheduler", "backend"),
    ("FLOWFORGE_BOOTSTRAP_POLICY", "scheduler", "bootstrap_policy"),
    ("QSTASH_URL", "external", "api_url"),
    ("QSTASH_TOKEN", "external", "token"),
    ("QSTASH_CURRENT_SIGNING_KEY", "external", "current_signing_key"),
    ("QSTASH_NEXT_SIGNING_KEY", "external", "next_signing_key"),
    ("FLOWFORGE_APP_URL", "external", "app_url"),
    ("RESEND_API_KEY", "providers", "resend_api_key"),
    ("FROM_EMAIL", "providers", "from_email"),
    ("TELEGRAM_BOT_TOKEN", "providers", "telegram_bot_token"),
    ("FLOWFORGE_ACTION_DATABASE_URL", "providers", "database_url"),
    ("ERROR_NOTIFICATION_EMAIL", "notifications", "error_email"),
    ("TELEGRAM_ERROR_CHAT_ID", "notifications", "telegram_error_chat_id"),
)


def load_config(path: Optional[str] = None) -> FlowforgeConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWFORGE_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWFORGE_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowforgeConfig(**data)
    else:
        config = FlowforgeConfig()

    env_db_url = os.getenv("FLOWFORGE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url

    for env_name, section, attribute in _ENV_OVERRIDES:
        value = os.getenv(env_name)
        if not value:
            continue
        target = getattr(config, section) if section else config
        setattr(target, attribute, value)

    # Re-validate so env overrides go through the same field checks.
    return FlowforgeConfig.model_validate(config.model_dump())
