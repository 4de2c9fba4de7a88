"""Workflow engine: the public surface wiring every component together."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Optional

import httpx

from .actions import ActionExecutor, ActionProviders, build_action_providers
from .config import FlowforgeConfig, load_config
from .contracts import ScheduleEntry
from .definitions import WorkflowDefinitionStore, get_definition_store
from .errors import FlowforgeError, InvalidScheduleError, NotFoundError
from .execute import WorkflowOrchestrator
from .guard import DuplicateGuard
from .isolation import IsolatedExecutor, IsolatedResult
from .notify import FailureNotifier, build_notifier
from .persistence import ExecutionRecord, ExecutionRepository, get_repository
from .scheduling import (
    BootstrapReport,
    ScheduleBackend,
    ScheduleBootstrapper,
    ScheduleRegistry,
    get_schedule_backend,
    normalize_cron,
)
from .security import SigningKeyVerifier
from .webhook import WebhookEntryPoint, WebhookResult

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Run workflows, manage their schedules and accept scheduled deliveries."""

    def __init__(
        self,
        config: FlowforgeConfig,
        definitions: WorkflowDefinitionStore,
        repository: ExecutionRepository,
        orchestrator: WorkflowOrchestrator,
        guard: DuplicateGuard,
        registry: ScheduleRegistry,
        webhook: WebhookEntryPoint,
    ) -> None:
        self.config = config
        self.definitions = definitions
        self.repository = repository
        self.orchestrator = orchestrator
        self.guard = guard
        self.registry = registry
        self.webhook = webhook
        self.bootstrapper = ScheduleBootstrapper(
            definitions, registry, config.scheduler.bootstrap_policy
        )
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    async def start(self) -> BootstrapReport:
        """Open the backend, reconcile schedules and start the duplicate sweep."""

        await self.registry.backend.open()
        report = await self.bootstrapper.run()
        self.guard.start_sweeper(self.config.scheduler.sweep_interval_seconds)
        self._started = True
        logger.info(
            f"Engine started with {self.registry.backend.name} scheduling "
            f"({report.policy} bootstrap)"
        )
        return report

    async def stop(self) -> None:
        """Stop local timers and the sweep. External schedules keep running."""

        await self.guard.stop_sweeper()
        if self.registry.backend.name != "external":
            await self.registry.unregister_all()
        self._started = False
        await self.close()
        logger.info("Engine stopped")

    async def close(self) -> None:
        await self.registry.backend.close()
        for resource, method in (
            (self.repository, "close"),
            (self.repository, "disconnect"),
            (self.definitions, "dispose"),
        ):
            closer = getattr(resource, method, None)
            if closer is None:
                continue
            result = closer()
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Runs
    async def run_workflow(
        self, workflow_id: str, payload: Optional[dict[str, Any]] = None
    ) -> ExecutionRecord:
        return await self.orchestrator.run(workflow_id, payload)

    async def run_isolated(
        self, workflow_id: str, payload: Optional[dict[str, Any]] = None
    ) -> IsolatedResult:
        executor = IsolatedExecutor(
            self.config,
            timeout=self.config.isolation.timeout_seconds,
            repository=self.repository,
        )
        return await executor.run(workflow_id, payload)

    async def list_executions(self, workflow_id: Optional[str] = None) -> list[ExecutionRecord]:
        return await self.repository.list_executions(workflow_id)

    async def get_execution(self, execution_id: str) -> Optional[ExecutionRecord]:
        return await self.repository.get_execution(execution_id)

    async def reconcile(self) -> list[str]:
        return await self.guard.reconcile_running()

    # ------------------------------------------------------------------
    # Schedules
    async def activate_schedule(self, workflow_id: str) -> ScheduleEntry:
        workflow = await self.definitions.get_by_id(workflow_id)
        if workflow is None:
            raise NotFoundError(workflow_id)
        config = workflow.cron_config
        if config is None:
            raise InvalidScheduleError(None, f"workflow {workflow_id} has no cron trigger")
        normalize_cron(config.schedule, config.timezone)

        if not await self.registry.register(workflow):
            raise FlowforgeError(f"Failed to schedule workflow {workflow_id}")
        await self.definitions.set_active(workflow_id, True)
        return self.registry.get(workflow_id)

    async def deactivate_schedule(
        self, workflow_id: str, also_clear_queue: bool = False
    ) -> bool:
        removed = await self.registry.unregister(workflow_id, cancel_pending=also_clear_queue)
        if await self.definitions.get_by_id(workflow_id) is not None:
            await self.definitions.set_active(workflow_id, False)
        return removed

    def list_active_schedules(self) -> list[ScheduleEntry]:
        return self.registry.list_active()

    async def deactivate_all_schedules(self) -> int:
        workflow_ids = [entry.workflow_id for entry in self.registry.list_active()]
        count = await self.registry.unregister_all()
        for workflow_id in workflow_ids:
            try:
                await self.definitions.set_active(workflow_id, False)
            except Exception:
                logger.exception(f"Failed to mark workflow {workflow_id} inactive")
        return count

    # ------------------------------------------------------------------
    # Deliveries
    async def handle_webhook(
        self, signature: Optional[str], raw_body: bytes | str, request_url: Optional[str] = None
    ) -> WebhookResult:
        return await self.webhook.handle(signature, raw_body, request_url)


def build_engine(
    config: Optional[FlowforgeConfig] = None,
    *,
    definitions: Optional[WorkflowDefinitionStore] = None,
    repository: Optional[ExecutionRepository] = None,
    providers: Optional[ActionProviders] = None,
    notifier: Optional[FailureNotifier] = None,
    backend: Optional[ScheduleBackend] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> WorkflowEngine:
    """Assemble an engine from configuration; any component can be injected."""

    config = config or load_config()
    definitions = definitions or get_definition_store(config.definitions.url, config)
    if repository is None:
        repository = get_repository(config.database_url, config)
    if providers is None:
        providers = build_action_providers(config, client)
    if notifier is None:
        notifier = build_notifier(config, mail=providers.mail, chat=providers.chat)

    executor = ActionExecutor(providers, default_timeout=config.providers.http_timeout)
    orchestrator = WorkflowOrchestrator(definitions, repository, executor, notifier)
    guard = DuplicateGuard(
        repository, orchestrator, window_seconds=config.scheduler.duplicate_window_seconds
    )
    registry = ScheduleRegistry(
        backend or get_schedule_backend(config, client),
        guard,
        default_timezone=config.scheduler.default_timezone,
    )
    verifier = SigningKeyVerifier(
        config.external.current_signing_key,
        config.external.next_signing_key,
        issuer=config.external.issuer,
        clock_tolerance=config.external.clock_tolerance_seconds,
    )
    webhook = WebhookEntryPoint(verifier, guard, expected_url=config.external.destination_url)
    return WorkflowEngine(config, definitions, repository, orchestrator, guard, registry, webhook)
