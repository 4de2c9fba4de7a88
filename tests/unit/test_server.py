import json

import pytest
from fastapi.testclient import TestClient

from flowforge.config import FlowforgeConfig
from flowforge.constants import SIGNATURE_HEADER
from flowforge.security import sign
from flowforge.server import create_app
from tests.conftest import make_workflow

KEY = "sig_current_0123456789abcdef0123456789abcdef"
WEBHOOK_URL = "http://testserver/api/qstash/webhook"


@pytest.fixture
def client(engine_factory, definitions):
    config = FlowforgeConfig()
    config.external.current_signing_key = KEY
    definitions.put(make_workflow("wf_1", schedule="1"))
    return TestClient(create_app(engine_factory(config)))


def _body(**overrides) -> bytes:
    payload = {"workflowId": "wf_1", "trigger": "cron", "source": "qstash"}
    payload.update(overrides)
    return json.dumps(payload).encode()


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "scheduler": "fake", "activeSchedules": 0}


def test_signed_delivery_runs_workflow(client, repository):
    body = _body()
    response = client.post(
        "/api/qstash/webhook",
        content=body,
        headers={SIGNATURE_HEADER: sign(KEY, body, WEBHOOK_URL)},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["received"] and data["processed"]
    assert data["workflowId"] == "wf_1"
    assert data["executionId"].startswith("exec_")


def test_second_delivery_inside_window_is_skipped(client):
    body = _body()
    headers = {SIGNATURE_HEADER: sign(KEY, body, WEBHOOK_URL)}

    assert client.post("/api/qstash/webhook", content=body, headers=headers).json()["processed"]
    second = client.post("/api/qstash/webhook", content=body, headers=headers)

    assert second.status_code == 200
    assert second.json()["processed"] is False
    assert second.json()["reason"]


def test_unsigned_delivery_is_unauthorized(client):
    response = client.post("/api/qstash/webhook", content=_body())

    assert response.status_code == 401


def test_malformed_delivery_is_bad_request(client):
    body = b"not json"
    response = client.post(
        "/api/qstash/webhook",
        content=body,
        headers={SIGNATURE_HEADER: sign(KEY, body, WEBHOOK_URL)},
    )

    assert response.status_code == 400
