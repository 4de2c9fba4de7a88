import json

import pytest

from flowforge.errors import AuthError, MalformedPayloadError
from flowforge.security import SigningKeyVerifier, sign
from flowforge.webhook import WebhookEntryPoint, parse_trigger_payload
from tests.conftest import make_workflow

KEY = "sig_current_0123456789abcdef0123456789abcdef"
NEXT_KEY = "sig_next_0123456789abcdef0123456789abcdef0123"
URL = "https://flows.example.com/api/qstash/webhook"


def _body(**overrides) -> bytes:
    payload = {"workflowId": "wf_1", "trigger": "cron", "source": "qstash", "timestamp": "t"}
    payload.update(overrides)
    return json.dumps(payload).encode()


@pytest.fixture
def entry_point(guard) -> WebhookEntryPoint:
    return WebhookEntryPoint(SigningKeyVerifier(KEY, NEXT_KEY), guard)


@pytest.mark.asyncio
async def test_signed_delivery_runs_workflow(entry_point, definitions, repository):
    definitions.put(make_workflow("wf_1", schedule="1"))
    body = _body()

    result = await entry_point.handle(sign(KEY, body, URL), body, URL)

    assert result.processed
    record = await repository.get_execution(result.execution_id)
    assert record.status == "completed"
    assert record.result == {"trigger": "cron", "timestamp": "t", "source": "qstash"}


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected_before_running(entry_point, definitions, repository):
    definitions.put(make_workflow("wf_1", schedule="1"))
    body = _body()

    with pytest.raises(AuthError):
        wrong = sign("wrong_key_0123456789abcdef0123456789abcd", body, URL)
        await entry_point.handle(wrong, body, URL)
    with pytest.raises(AuthError):
        await entry_point.handle(None, body, URL)

    assert await repository.list_executions() == []


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        b"[1, 2]",
        _body(workflowId=""),
        _body(source="random-post"),
        _body(trigger="webhook"),
        json.dumps({"trigger": "cron", "source": "qstash"}).encode(),
    ],
)
@pytest.mark.asyncio
async def test_malformed_payloads_are_rejected(entry_point, body):
    with pytest.raises(MalformedPayloadError):
        await entry_point.handle(sign(KEY, body, URL), body, URL)


@pytest.mark.asyncio
async def test_external_scheduler_source_is_accepted(entry_point, definitions):
    definitions.put(make_workflow("wf_1", schedule="1"))
    body = _body(source="external-scheduler")

    assert (await entry_point.handle(sign(KEY, body, URL), body, URL)).processed


@pytest.mark.asyncio
async def test_trigger_kind_key_is_accepted(entry_point, definitions, repository):
    definitions.put(make_workflow("wf_1", schedule="1"))
    body = json.dumps(
        {"workflowId": "wf_1", "triggerKind": "cron", "source": "external-scheduler"}
    ).encode()

    result = await entry_point.handle(sign(KEY, body, URL), body, URL)

    assert result.processed
    record = await repository.get_execution(result.execution_id)
    assert record.result["trigger"] == "cron"


def test_trigger_kind_must_be_cron():
    body = json.dumps({"workflowId": "wf_1", "triggerKind": "webhook", "source": "qstash"})

    with pytest.raises(MalformedPayloadError):
        parse_trigger_payload(body)


@pytest.mark.asyncio
async def test_delivery_for_deleted_workflow_is_acknowledged(entry_point):
    body = _body(workflowId="deleted")

    result = await entry_point.handle(sign(KEY, body, URL), body, URL)

    assert not result.processed
    assert "not found" in result.reason


@pytest.mark.asyncio
async def test_duplicate_delivery_is_absorbed(entry_point, definitions, repository):
    definitions.put(make_workflow("wf_1", schedule="1"))
    body = _body()
    signature = sign(KEY, body, URL)

    first = await entry_point.handle(signature, body, URL)
    second = await entry_point.handle(signature, body, URL)

    assert first.processed
    assert not second.processed
    assert len(await repository.list_executions("wf_1")) == 1


@pytest.mark.asyncio
async def test_expected_url_overrides_request_url(guard, definitions):
    definitions.put(make_workflow("wf_1", schedule="1"))
    entry_point = WebhookEntryPoint(SigningKeyVerifier(KEY, None), guard, expected_url=URL)
    body = _body()

    internal_url = "http://10.0.0.5:8000/api/qstash/webhook"
    result = await entry_point.handle(sign(KEY, body, URL), body, internal_url)

    assert result.processed
