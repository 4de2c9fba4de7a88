from datetime import timedelta

import pytest
import yaml

from flowforge.config import FlowforgeConfig
from flowforge.isolation import IsolatedExecutor, _worker_main
from flowforge.persistence import ExecutionRecord, InMemoryExecutionRepository
from flowforge.persistence.models import utcnow


class FakeConnection:
    def __init__(self, message=None, ready=True):
        self.message = message
        self.ready = ready
        self.sent = []
        self.closed = False

    def poll(self, timeout=None):
        return self.ready

    def recv(self):
        if self.message is None:
            raise EOFError
        return self.message

    def send(self, message):
        self.sent.append(message)

    def close(self):
        self.closed = True


class FakeProcess:
    def __init__(self, alive=True, exitcode=0):
        self.alive = alive
        self.exitcode = exitcode
        self.pid = 4242
        self.started = False
        self.terminated = False

    def start(self):
        self.started = True

    def is_alive(self):
        return self.alive

    def terminate(self):
        self.terminated = True
        self.alive = False
        self.exitcode = -15

    def join(self, timeout=None):
        pass


class FakeContext:
    def __init__(self, parent, process):
        self.parent = parent
        self.child = FakeConnection()
        self.process = process
        self.process_kwargs = None

    def Pipe(self, duplex=True):
        return self.parent, self.child

    def Process(self, **kwargs):
        self.process_kwargs = kwargs
        return self.process


@pytest.mark.asyncio
async def test_isolated_run_returns_worker_result():
    document = {"id": "exec_1", "status": "completed"}
    context = FakeContext(
        FakeConnection({"success": True, "result": document}), FakeProcess(alive=False)
    )
    executor = IsolatedExecutor(FlowforgeConfig(), timeout=5, context=context)

    result = await executor.run("wf_1", {"email": "a@example.com"})

    assert result.success
    assert result.result == document
    assert result.exit_code == 0
    assert context.process_kwargs["daemon"] is True
    assert context.process_kwargs["args"][2:] == ("wf_1", {"email": "a@example.com"})
    assert context.child.closed and context.parent.closed


@pytest.mark.asyncio
async def test_isolated_run_is_terminated_after_timeout():
    process = FakeProcess(alive=True)
    context = FakeContext(FakeConnection(ready=False), process)
    executor = IsolatedExecutor(FlowforgeConfig(), timeout=0.05, context=context)

    result = await executor.run("wf_1")

    assert not result.success
    assert result.error == "Workflow execution timed out after 0.05s"
    assert process.terminated
    assert result.exit_code == -15


@pytest.mark.asyncio
async def test_worker_crash_without_result_is_reported():
    context = FakeContext(FakeConnection(None), FakeProcess(alive=False, exitcode=1))
    executor = IsolatedExecutor(FlowforgeConfig(), timeout=5, context=context)

    result = await executor.run("wf_1")

    assert not result.success
    assert result.exit_code == 1
    assert "without a result" in result.error


async def _seed(repository, workflow_id, started_at):
    record = ExecutionRecord(workflow_id=workflow_id, started_at=started_at)
    await repository.create_execution(record)
    return record.id


@pytest.mark.asyncio
async def test_timeout_fails_records_left_running_by_the_worker():
    repository = InMemoryExecutionRepository()
    orphan = await _seed(repository, "wf_1", utcnow() + timedelta(seconds=1))
    earlier = await _seed(repository, "wf_1", utcnow() - timedelta(hours=1))
    other = await _seed(repository, "wf_2", utcnow() + timedelta(seconds=1))
    context = FakeContext(FakeConnection(ready=False), FakeProcess(alive=True))
    executor = IsolatedExecutor(
        FlowforgeConfig(), timeout=0.05, context=context, repository=repository
    )

    await executor.run("wf_1")

    failed = await repository.get_execution(orphan)
    assert failed.status == "failed"
    assert failed.error == "Workflow execution timed out after 0.05s"
    assert failed.completed_at is not None
    assert failed.logs[-1].level == "error"
    assert (await repository.get_execution(earlier)).status == "running"
    assert (await repository.get_execution(other)).status == "running"


@pytest.mark.asyncio
async def test_worker_crash_fails_records_left_running():
    repository = InMemoryExecutionRepository()
    orphan = await _seed(repository, "wf_1", utcnow() + timedelta(seconds=1))
    context = FakeContext(FakeConnection(None), FakeProcess(alive=False, exitcode=-9))
    executor = IsolatedExecutor(FlowforgeConfig(), timeout=5, context=context, repository=repository)

    await executor.run("wf_1")

    failed = await repository.get_execution(orphan)
    assert failed.status == "failed"
    assert failed.error == "Worker exited without a result (exit code -9)"


def _config_with_workflows(tmp_path, monkeypatch) -> FlowforgeConfig:
    monkeypatch.delenv("FLOWFORGE_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    path = tmp_path / "workflows.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "workflows": [
                    {
                        "id": "wf_1",
                        "trigger": {"type": "webhook", "config": {}},
                        "actions": [
                            {
                                "id": "t1",
                                "type": "transform",
                                "config": {
                                    "input": "count",
                                    "transformation": "value * 2",
                                    "output": "doubled",
                                },
                            }
                        ],
                    }
                ]
            }
        )
    )
    return FlowforgeConfig(definitions={"url": f"file://{path}"})


def test_worker_main_reports_success(tmp_path, monkeypatch):
    config = _config_with_workflows(tmp_path, monkeypatch)
    conn = FakeConnection()

    _worker_main(conn, config.model_dump(), "wf_1", {"count": 21})

    [message] = conn.sent
    assert message["success"]
    assert message["result"]["status"] == "completed"
    assert message["result"]["result"] == {"count": 21, "doubled": 42}
    assert conn.closed


def test_worker_main_reports_failure(tmp_path, monkeypatch):
    config = _config_with_workflows(tmp_path, monkeypatch)
    conn = FakeConnection()

    _worker_main(conn, config.model_dump(), "missing", {})

    assert conn.sent == [{"success": False, "error": "Workflow missing not found"}]
