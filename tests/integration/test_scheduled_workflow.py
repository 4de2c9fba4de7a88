import asyncio
import json

import httpx
import pytest

from flowforge.config import FlowforgeConfig
from flowforge.constants import CANCELLED_EXECUTION_ERROR
from flowforge.definitions import InMemoryDefinitionStore
from flowforge.engine import build_engine
from flowforge.persistence import InMemoryExecutionRepository
from flowforge.scheduling import InProcessScheduleBackend
from tests.conftest import RecordingNotifier, make_workflow

PING_URL = "https://api.example.com/ping"


def _hourly_workflow(active: bool = True):
    return make_workflow(
        "wf_hourly",
        schedule="11",
        active=active,
        actions=[
            {
                "id": "ping",
                "type": "http",
                "config": {"url": PING_URL, "method": "POST", "body": {"hello": "world"}},
            },
            {
                "id": "shape",
                "type": "transform",
                "config": {
                    "input": "httpResponse.count",
                    "transformation": "value * 10",
                    "output": "scaled",
                },
            },
        ],
    )


def _engine(handler, workflows):
    definitions = InMemoryDefinitionStore(workflows)
    repository = InMemoryExecutionRepository()
    notifier = RecordingNotifier()
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    engine = build_engine(
        FlowforgeConfig(),
        definitions=definitions,
        repository=repository,
        notifier=notifier,
        client=client,
    )
    return engine, notifier, client


async def _fire(engine, workflow_id):
    entry = engine.registry.get(workflow_id)
    job = engine.registry.backend.scheduler.get_job(entry.backing_handle.id)
    await job.func()


@pytest.mark.asyncio
async def test_hourly_http_workflow_runs_on_fire():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"count": 4})

    engine, notifier, client = _engine(handler, [_hourly_workflow()])
    report = await engine.start()
    try:
        assert isinstance(engine.registry.backend, InProcessScheduleBackend)
        assert report.registered == ["wf_hourly"]
        [entry] = engine.list_active_schedules()
        assert entry.cron_expression == "0 * * * *"
        assert entry.next_execution is not None
        assert entry.next_execution.minute == 0

        await _fire(engine, "wf_hourly")
        # A second fire right after a completed run is skipped.
        await _fire(engine, "wf_hourly")

        [record] = await engine.list_executions("wf_hourly")
        assert record.status == "completed"
        assert record.result["httpResponse"] == {"count": 4}
        assert record.result["scaled"] == 40
        assert record.result["trigger"] == "cron"
        assert record.result["timezone"] == "UTC"
        assert len(requests) == 1
        assert json.loads(requests[0].content) == {"hello": "world"}
        assert notifier.calls == []
    finally:
        await engine.stop()
        await client.aclose()

    assert engine.list_active_schedules() == []


@pytest.mark.asyncio
async def test_failed_scheduled_run_is_recorded_and_notified():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    engine, notifier, client = _engine(handler, [_hourly_workflow()])
    await engine.start()
    try:
        await _fire(engine, "wf_hourly")

        [record] = await engine.list_executions("wf_hourly")
        assert record.status == "failed"
        assert "connection refused" in record.error
        assert record.result is None
        [(workflow_id, _, execution)] = notifier.calls
        assert workflow_id == "wf_hourly"
        assert execution.id == record.id
    finally:
        await engine.stop()
        await client.aclose()


@pytest.mark.asyncio
async def test_deactivate_with_clear_queue_cancels_running_fire():
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        await release.wait()
        return httpx.Response(200, json={"count": 1})

    engine, _, client = _engine(handler, [_hourly_workflow()])
    await engine.start()
    try:
        entry = engine.registry.get("wf_hourly")
        job = engine.registry.backend.scheduler.get_job(entry.backing_handle.id)
        task = asyncio.create_task(job.func())
        await asyncio.wait_for(started.wait(), timeout=5)
        assert engine.registry.in_flight("wf_hourly") == 1

        assert await engine.deactivate_schedule("wf_hourly", also_clear_queue=True)
        with pytest.raises(asyncio.CancelledError):
            await task

        [record] = await engine.list_executions("wf_hourly")
        assert record.status == "failed"
        assert record.error == CANCELLED_EXECUTION_ERROR
        assert not (await engine.definitions.get_by_id("wf_hourly")).is_active
        assert engine.list_active_schedules() == []
    finally:
        release.set()
        await engine.stop()
        await client.aclose()


@pytest.mark.asyncio
async def test_activate_after_start_schedules_inactive_workflow():
    engine, _, client = _engine(
        lambda request: httpx.Response(200, json={"count": 2}),
        [_hourly_workflow(active=False)],
    )
    report = await engine.start()
    try:
        assert report.registered == []

        entry = await engine.activate_schedule("wf_hourly")

        assert entry.workflow_id == "wf_hourly"
        assert (await engine.definitions.get_by_id("wf_hourly")).is_active
        assert [e.workflow_id for e in engine.list_active_schedules()] == ["wf_hourly"]
    finally:
        await engine.stop()
        await client.aclose()
