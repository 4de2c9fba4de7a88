import pytest

from flowforge.contracts import RecoveredSchedule
from flowforge.scheduling import ScheduleBootstrapper, ScheduleRegistry
from tests.conftest import make_workflow


@pytest.fixture
def registry(backend, guard):
    return ScheduleRegistry(backend, guard)


@pytest.mark.asyncio
async def test_reset_deactivates_cron_workflows_once(definitions, registry):
    definitions.put(make_workflow("cron_a", schedule="1"))
    definitions.put(make_workflow("cron_b", schedule="11"))
    definitions.put(make_workflow("hook"))
    definitions.put(make_workflow("idle", schedule="1", active=False))

    report = await ScheduleBootstrapper(definitions, registry, "reset").run()

    assert sorted(report.deactivated) == ["cron_a", "cron_b"]
    assert not (await definitions.get_by_id("cron_a")).is_active
    assert not (await definitions.get_by_id("cron_b")).is_active
    assert (await definitions.get_by_id("hook")).is_active
    assert registry.list_active() == []

    definitions.put(make_workflow("cron_c", schedule="1"))
    second = await ScheduleBootstrapper(definitions, registry, "reset").run()
    assert second.deactivated == []
    assert (await definitions.get_by_id("cron_c")).is_active


@pytest.mark.asyncio
async def test_resume_registers_active_cron_workflows(definitions, registry):
    definitions.put(make_workflow("good", schedule="111"))
    definitions.put(make_workflow("broken", schedule="every hour"))
    definitions.put(make_workflow("idle", schedule="1", active=False))
    definitions.put(make_workflow("hook"))

    report = await ScheduleBootstrapper(definitions, registry, "resume").run()

    assert report.registered == ["good"]
    assert report.failed == ["broken"]
    assert [e.workflow_id for e in registry.list_active()] == ["good"]


@pytest.mark.asyncio
async def test_stale_backend_schedules_are_removed_first(definitions, registry, backend):
    backend.recoverable = [
        RecoveredSchedule(workflow_id="deleted", backing_handle="sched_1"),
        RecoveredSchedule(workflow_id="good", backing_handle="sched_2"),
    ]
    definitions.put(make_workflow("good", schedule="1"))

    report = await ScheduleBootstrapper(definitions, registry, "resume").run()

    assert report.removed_stale == ["deleted", "good"]
    assert backend.stopped == ["sched_1", "sched_2"]
    assert report.registered == ["good"]
