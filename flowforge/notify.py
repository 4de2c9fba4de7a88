"""Failure notifications sent to operators when a workflow run fails."""

from __future__ import annotations

import html
import logging
from typing import Optional, Protocol, Sequence

from .config import FlowforgeConfig
from .persistence.models import ExecutionRecord, utcnow

logger = logging.getLogger(__name__)


class FailureNotifier(Protocol):
    async def notify(
        self, workflow_id: str, error: BaseException, execution: Optional[ExecutionRecord]
    ) -> None:
        ...


class LoggingNotifier:
    async def notify(
        self, workflow_id: str, error: BaseException, execution: Optional[ExecutionRecord]
    ) -> None:
        execution_id = execution.id if execution else "N/A"
        logger.error(
            f"Workflow execution error: workflow={workflow_id} execution={execution_id} "
            f"error={error}"
        )


class ChannelNotifier:
    """Send the failure to the operator's email address and Telegram chat.

    Each channel is independent: a failure on one is logged and the other is
    still tried.
    """

    def __init__(
        self,
        mail=None,
        chat=None,
        error_email: Optional[str] = None,
        chat_id: Optional[str] = None,
    ) -> None:
        self.mail = mail
        self.chat = chat
        self.error_email = error_email
        self.chat_id = chat_id

    async def notify(
        self, workflow_id: str, error: BaseException, execution: Optional[ExecutionRecord]
    ) -> None:
        execution_id = execution.id if execution else "N/A"
        when = utcnow().isoformat(timespec="seconds")
        message = html.escape(str(error))

        if self.mail is not None and self.error_email:
            try:
                await self.mail.send(
                    self.error_email,
                    f"Workflow {workflow_id} failed",
                    html=(
                        "<h2>Workflow execution failed</h2>"
                        f"<p><strong>Workflow ID:</strong> {html.escape(workflow_id)}</p>"
                        f"<p><strong>Execution ID:</strong> {execution_id}</p>"
                        f"<p><strong>Error:</strong> {message}</p>"
                        f"<p><strong>Time:</strong> {when}</p>"
                    ),
                )
            except Exception:
                logger.exception(f"Failed to send email notification for {workflow_id}")

        if self.chat is not None and self.chat_id:
            try:
                await self.chat.send(
                    self.chat_id,
                    "<b>Workflow execution failed</b>\n\n"
                    f"<b>Workflow:</b> {html.escape(workflow_id)}\n"
                    f"<b>Execution:</b> {execution_id}\n"
                    f"<b>Error:</b> {message}\n"
                    f"<b>Time:</b> {when}",
                    parse_mode="HTML",
                )
            except Exception:
                logger.exception(f"Failed to send Telegram notification for {workflow_id}")


class CompositeNotifier:
    def __init__(self, notifiers: Sequence[FailureNotifier]) -> None:
        self.notifiers = list(notifiers)

    async def notify(
        self, workflow_id: str, error: BaseException, execution: Optional[ExecutionRecord]
    ) -> None:
        for notifier in self.notifiers:
            await notify_safely(notifier, workflow_id, error, execution)


async def notify_safely(
    notifier: Optional[FailureNotifier],
    workflow_id: str,
    error: BaseException,
    execution: Optional[ExecutionRecord],
) -> None:
    """Call ``notifier`` and log, rather than raise, anything it throws."""
    if notifier is None:
        return
    try:
        await notifier.notify(workflow_id, error, execution)
    except Exception:
        logger.exception(f"Failure notifier {type(notifier).__name__} raised for {workflow_id}")


def build_notifier(config: FlowforgeConfig, mail=None, chat=None) -> FailureNotifier:
    """Logging notifier plus the operator channels that are configured."""

    notifiers: list[FailureNotifier] = [LoggingNotifier()]
    settings = config.notifications
    if settings.error_email or settings.telegram_error_chat_id:
        notifiers.append(
            ChannelNotifier(
                mail=mail if config.providers.resend_api_key else None,
                chat=chat if config.providers.telegram_bot_token else None,
                error_email=settings.error_email,
                chat_id=settings.telegram_error_chat_id,
            )
        )
    return CompositeNotifier(notifiers)
