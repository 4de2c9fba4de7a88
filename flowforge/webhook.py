"""Entry point for deliveries from the external scheduler."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from .contracts import DuplicateRunSkipped, ExternalTriggerPayload
from .errors import MalformedPayloadError, NotFoundError
from .guard import DuplicateGuard
from .security import SigningKeyVerifier

logger = logging.getLogger(__name__)


class WebhookResult(BaseModel):
    processed: bool
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    reason: Optional[str] = None


def parse_trigger_payload(raw_body: bytes | str) -> ExternalTriggerPayload:
    try:
        data: Any = json.loads(raw_body)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"Body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedPayloadError("Body must be a JSON object")
    try:
        return ExternalTriggerPayload.model_validate(data)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid trigger payload: {e}") from e


class WebhookEntryPoint:
    """Verify, parse and run one scheduled delivery.

    ``expected_url`` pins the URL the signature must be bound to; without it
    the URL of the incoming request is used.
    """

    def __init__(
        self,
        verifier: SigningKeyVerifier,
        guard: DuplicateGuard,
        expected_url: Optional[str] = None,
    ) -> None:
        self.verifier = verifier
        self.guard = guard
        self.expected_url = expected_url

    async def handle(
        self, signature: Optional[str], raw_body: bytes | str, request_url: Optional[str] = None
    ) -> WebhookResult:
        self.verifier.verify(signature, raw_body, self.expected_url or request_url)
        payload = parse_trigger_payload(raw_body)
        workflow_id = payload.workflow_id
        logger.info(f"Scheduled delivery for workflow {workflow_id} from {payload.source}")

        try:
            outcome = await self.guard.run_guarded(
                workflow_id,
                {
                    "trigger": payload.trigger,
                    "timestamp": payload.timestamp,
                    "source": payload.source,
                },
            )
        except NotFoundError as e:
            logger.warning(f"Ignoring delivery for missing workflow: {e}")
            return WebhookResult(processed=False, workflow_id=workflow_id, reason=str(e))

        if isinstance(outcome, DuplicateRunSkipped):
            return WebhookResult(processed=False, workflow_id=workflow_id, reason=outcome.reason)
        return WebhookResult(processed=True, workflow_id=workflow_id, execution_id=outcome.id)
