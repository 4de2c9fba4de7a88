"""Email action provider backed by the Resend HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..contracts import EmailActionConfig
from ..errors import ActionExecutionError, ConfigurationError
from .http import response_body

logger = logging.getLogger(__name__)

TEST_MODE_RESTRICTION = "You can only send testing emails to your own email address"


class ResendMailProvider:
    def __init__(
        self,
        api_key: Optional[str],
        from_email: str = "onboarding@resend.dev",
        api_url: str = "https://api.resend.com",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url.rstrip("/")
        self._client = client

    async def send_mail(self, config: EmailActionConfig, payload: dict[str, Any]) -> Any:
        recipient = config.to or payload.get("email")
        if not recipient:
            raise ConfigurationError("Email action requires a recipient ('to')")
        subject = config.subject or f"Message from {payload.get('name') or 'Workflow'}"
        text = config.body or payload.get("message") or ""
        sender = (config.from_ or "").strip() or self.from_email
        return await self.send(recipient, subject, text=text, sender=sender)

    async def send(
        self,
        to: str,
        subject: str,
        text: Optional[str] = None,
        html: Optional[str] = None,
        sender: Optional[str] = None,
    ) -> Any:
        """Send one message; shared by the email action and failure notifications."""
        if not self.api_key:
            raise ConfigurationError(
                "Resend API key not configured. Set RESEND_API_KEY or providers.resend_api_key."
            )

        message: dict[str, Any] = {
            "from": sender or self.from_email,
            "to": to,
            "subject": subject,
        }
        if html is not None:
            message["html"] = html
        if text is not None:
            message["text"] = text

        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.api_url}/emails"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=message, headers=headers)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(url, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise ActionExecutionError("email", e, f"Email sending failed: {e}") from e

        body = response_body(response)
        if response.is_error:
            detail = body.get("message") if isinstance(body, dict) else str(body)
            raise ActionExecutionError("email", detail, self._describe_failure(str(detail)))

        logger.info(f"Email sent to {to}")
        return body

    def _describe_failure(self, detail: str) -> str:
        if TEST_MODE_RESTRICTION in detail:
            return (
                "Emails can only be sent to verified addresses while the mail provider is in "
                f"test mode. Send to your own address ({self.from_email}) or verify a domain."
            )
        return f"Email sending failed: {detail}"
