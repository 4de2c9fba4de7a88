"""Chat action provider backed by the Telegram Bot API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..contracts import TelegramActionConfig
from ..errors import ActionExecutionError, ConfigurationError
from .http import response_body

logger = logging.getLogger(__name__)


class TelegramChatProvider:
    def __init__(
        self,
        bot_token: Optional[str],
        api_url: str = "https://api.telegram.org",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self._client = client

    async def send_chat_message(
        self, config: TelegramActionConfig, payload: dict[str, Any]
    ) -> Any:
        if not config.chat_id:
            raise ConfigurationError("Telegram action requires a chatId")
        text = (
            config.message
            or payload.get("message")
            or f"Message from {payload.get('name') or 'Workflow'}"
        )
        return await self.send(config.chat_id, text, parse_mode=config.parse_mode)

    async def send(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> Any:
        if not self.bot_token:
            raise ConfigurationError(
                "Telegram bot token not configured. Set TELEGRAM_BOT_TOKEN or "
                "providers.telegram_bot_token."
            )

        body: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            body["parse_mode"] = parse_mode
        url = f"{self.api_url}/bot{self.bot_token}/sendMessage"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=body)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=body)
        except httpx.HTTPError as e:
            raise ActionExecutionError("telegram", e, f"Telegram sending failed: {e}") from e

        data = response_body(response)
        if response.is_error or (isinstance(data, dict) and not data.get("ok", True)):
            detail = data.get("description") if isinstance(data, dict) else data
            raise ActionExecutionError(
                "telegram", str(detail), f"Telegram sending failed: {detail}"
            )

        logger.info(f"Telegram message sent to chat {chat_id}")
        return data.get("result", data) if isinstance(data, dict) else data
