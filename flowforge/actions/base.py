"""Action executor: runs one workflow action against the shared payload."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ..constants import DEFAULT_ACTION_TIMEOUT
from ..contracts import (
    ACTION_CONFIGS,
    DatabaseActionConfig,
    EmailActionConfig,
    HttpActionConfig,
    TelegramActionConfig,
    TransformActionConfig,
    WorkflowAction,
)
from ..errors import ActionExecutionError, ConfigurationError

logger = logging.getLogger(__name__)

# Payload keys that later actions and the final result snapshot read from.
HTTP_RESULT_KEY = "httpResponse"
EMAIL_RESULT_KEY = "emailResult"
TELEGRAM_RESULT_KEY = "telegramResult"
DATABASE_RESULT_KEY = "dbResult"


class HttpProvider(Protocol):
    async def http_request(self, config: HttpActionConfig, payload: dict[str, Any]) -> Any:
        ...


class MailProvider(Protocol):
    async def send_mail(self, config: EmailActionConfig, payload: dict[str, Any]) -> Any:
        ...


class ChatProvider(Protocol):
    async def send_chat_message(
        self, config: TelegramActionConfig, payload: dict[str, Any]
    ) -> Any:
        ...


class DatabaseProvider(Protocol):
    async def run_query(
        self, config: DatabaseActionConfig, payload: dict[str, Any]
    ) -> dict[str, Any]:
        ...


class TransformProvider(Protocol):
    async def evaluate_transform(
        self, config: TransformActionConfig, payload: dict[str, Any]
    ) -> Any:
        ...


@dataclass
class ActionProviders:
    """One capability per action type."""

    http: HttpProvider
    mail: MailProvider
    chat: ChatProvider
    database: DatabaseProvider
    transform: TransformProvider


class ActionExecutor:
    """Execute a single action and write its output into the payload.

    Errors are never swallowed: configuration problems surface as
    :class:`ConfigurationError`, everything else as
    :class:`ActionExecutionError`.
    """

    def __init__(
        self, providers: ActionProviders, default_timeout: float = DEFAULT_ACTION_TIMEOUT
    ) -> None:
        self.providers = providers
        self.default_timeout = default_timeout

    async def execute(self, action: WorkflowAction, payload: dict[str, Any]) -> None:
        expected = ACTION_CONFIGS.get(action.type)
        if expected is None:
            raise ConfigurationError(f"Unknown action type: {action.type}")
        if not isinstance(action.config, expected):
            raise ConfigurationError(
                f"Action {action.id} has type {action.type!r} but a "
                f"{type(action.config).__name__} config"
            )

        try:
            await self._dispatch(action, payload)
        except (ActionExecutionError, ConfigurationError):
            raise
        except Exception as e:
            raise ActionExecutionError(action.type, e) from e

    async def _dispatch(self, action: WorkflowAction, payload: dict[str, Any]) -> None:
        config = action.config
        if action.type == "http":
            payload[HTTP_RESULT_KEY] = await self._with_timeout(
                action.type,
                self.providers.http.http_request(config, payload),
                config.timeout,
            )
        elif action.type == "email":
            payload[EMAIL_RESULT_KEY] = await self._with_timeout(
                action.type, self.providers.mail.send_mail(config, payload)
            )
        elif action.type == "telegram":
            payload[TELEGRAM_RESULT_KEY] = await self._with_timeout(
                action.type, self.providers.chat.send_chat_message(config, payload)
            )
        elif action.type == "database":
            payload[DATABASE_RESULT_KEY] = await self._with_timeout(
                action.type, self.providers.database.run_query(config, payload)
            )
        elif action.type == "transform":
            payload[config.output] = await self.providers.transform.evaluate_transform(
                config, payload
            )

    async def _with_timeout(
        self, action_type: str, call: Any, timeout: float | None = None
    ) -> Any:
        timeout = timeout or self.default_timeout
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Action {action_type} timed out after {timeout}s")
            raise ActionExecutionError(
                action_type, e, f"Action {action_type} timed out after {timeout}s"
            ) from e
