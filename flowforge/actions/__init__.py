"""Workflow actions and the providers that carry them out."""

from __future__ import annotations

from typing import Optional

import httpx

from ..config import FlowforgeConfig
from .base import (
    DATABASE_RESULT_KEY,
    EMAIL_RESULT_KEY,
    HTTP_RESULT_KEY,
    TELEGRAM_RESULT_KEY,
    ActionExecutor,
    ActionProviders,
)
from .chat import TelegramChatProvider
from .database import AsyncpgDatabaseProvider, build_query
from .http import HttpxProvider
from .mail import ResendMailProvider
from .transform import ExpressionTransformProvider, SafeExpressionEvaluator, TransformError


def build_action_providers(
    config: FlowforgeConfig, client: Optional[httpx.AsyncClient] = None
) -> ActionProviders:
    """Wire the default providers from configuration.

    ``client`` is shared by every HTTP-based provider when given.
    """

    providers = config.providers
    return ActionProviders(
        http=HttpxProvider(client),
        mail=ResendMailProvider(
            providers.resend_api_key,
            from_email=providers.from_email,
            api_url=providers.resend_api_url,
            client=client,
        ),
        chat=TelegramChatProvider(
            providers.telegram_bot_token, api_url=providers.telegram_api_url, client=client
        ),
        database=AsyncpgDatabaseProvider(providers.database_url, timeout=providers.http_timeout),
        transform=ExpressionTransformProvider(),
    )


def build_action_executor(
    config: FlowforgeConfig, client: Optional[httpx.AsyncClient] = None
) -> ActionExecutor:
    return ActionExecutor(
        build_action_providers(config, client), default_timeout=config.providers.http_timeout
    )


__all__ = [
    "ActionExecutor",
    "ActionProviders",
    "AsyncpgDatabaseProvider",
    "DATABASE_RESULT_KEY",
    "EMAIL_RESULT_KEY",
    "ExpressionTransformProvider",
    "HTTP_RESULT_KEY",
    "HttpxProvider",
    "ResendMailProvider",
    "SafeExpressionEvaluator",
    "TELEGRAM_RESULT_KEY",
    "TelegramChatProvider",
    "TransformError",
    "build_action_executor",
    "build_action_providers",
    "build_query",
]
