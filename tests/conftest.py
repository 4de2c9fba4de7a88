"""Shared fixtures: workflow factories, fake providers and a fake schedule backend."""

from __future__ import annotations

import itertools
from typing import Any, Optional

import pytest

import flowforge.persistence as persistence
from flowforge.actions import ActionExecutor, ActionProviders, ExpressionTransformProvider
from flowforge.config import FlowforgeConfig
from flowforge.contracts import WorkflowDefinition
from flowforge.definitions import InMemoryDefinitionStore
from flowforge.engine import build_engine
from flowforge.execute import WorkflowOrchestrator
from flowforge.guard import DuplicateGuard
from flowforge.persistence import InMemoryExecutionRepository
from flowforge.scheduling import ScheduleBackend, reset_first_start


def make_workflow(
    workflow_id: str = "wf_1",
    actions: Optional[list[dict[str, Any]]] = None,
    schedule: Any = None,
    active: bool = True,
    timezone: str = "UTC",
) -> WorkflowDefinition:
    if schedule is None:
        trigger = {"type": "webhook", "config": {}}
    else:
        trigger = {"type": "cron", "config": {"schedule": schedule, "timezone": timezone}}
    return WorkflowDefinition.model_validate(
        {
            "id": workflow_id,
            "name": f"Workflow {workflow_id}",
            "trigger": trigger,
            "actions": actions or [],
            "isActive": active,
        }
    )


class RecordingProvider:
    """Fake for every network-bound provider; records each call."""

    def __init__(self, name: str, result: Any = None, error: Optional[BaseException] = None):
        self.name = name
        self.result = result if result is not None else {"ok": name}
        self.error = error
        self.calls: list[tuple[Any, dict[str, Any]]] = []
        self.sent: list[tuple[Any, ...]] = []

    async def _call(self, config: Any, payload: dict[str, Any]) -> Any:
        self.calls.append((config, dict(payload)))
        if self.error is not None:
            raise self.error
        return self.result

    http_request = _call
    send_mail = _call
    send_chat_message = _call
    run_query = _call

    async def send(self, *args: Any, **kwargs: Any) -> Any:
        self.sent.append(args)
        if self.error is not None:
            raise self.error
        return self.result


def make_providers(**overrides: Any) -> ActionProviders:
    providers = {
        "http": RecordingProvider("http"),
        "mail": RecordingProvider("mail"),
        "chat": RecordingProvider("chat"),
        "database": RecordingProvider("database", result={"affectedRows": 1}),
        "transform": ExpressionTransformProvider(),
    }
    providers.update(overrides)
    return ActionProviders(**providers)


class FakeBackend(ScheduleBackend):
    """Schedule backend that never fires on its own."""

    name = "fake"

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.started: dict[int, Any] = {}
        self.stopped: list[int] = []
        self.callbacks: dict[int, Any] = {}
        self.recoverable: list[Any] = []
        self.opened = False

    async def open(self) -> None:
        self.opened = True

    async def start(self, entry, callback):
        handle = next(self._ids)
        self.started[handle] = entry
        self.callbacks[handle] = callback
        return handle

    async def stop(self, handle):
        self.stopped.append(handle)

    def next_fire_time(self, handle):
        return None

    async def recover(self):
        return list(self.recoverable)


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[tuple[str, BaseException, Any]] = []

    async def notify(self, workflow_id, error, execution):
        self.calls.append((workflow_id, error, execution))


@pytest.fixture(autouse=True)
def _reset_process_state():
    persistence._repository_instance = None
    reset_first_start()
    yield
    persistence._repository_instance = None


@pytest.fixture
def definitions() -> InMemoryDefinitionStore:
    return InMemoryDefinitionStore()


@pytest.fixture
def repository() -> InMemoryExecutionRepository:
    return InMemoryExecutionRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def providers() -> ActionProviders:
    return make_providers()


@pytest.fixture
def orchestrator(definitions, repository, providers, notifier) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(definitions, repository, ActionExecutor(providers), notifier)


@pytest.fixture
def guard(repository, orchestrator) -> DuplicateGuard:
    return DuplicateGuard(repository, orchestrator, window_seconds=30)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def engine_factory(definitions, repository, providers, notifier, backend):
    def _build(config: Optional[FlowforgeConfig] = None, **overrides: Any):
        kwargs = {
            "definitions": definitions,
            "repository": repository,
            "providers": providers,
            "notifier": notifier,
            "backend": backend,
        }
        kwargs.update(overrides)
        return build_engine(config or FlowforgeConfig(), **kwargs)

    return _build
