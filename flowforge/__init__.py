"""flowforge: workflow execution and cron scheduling engine."""

from .actions import ActionExecutor, ActionProviders, build_action_executor
from .config import FlowforgeConfig, load_config
from .contracts import DuplicateRunSkipped, ScheduleEntry, WorkflowAction, WorkflowDefinition
from .definitions import get_definition_store
from .engine import WorkflowEngine, build_engine
from .execute import WorkflowOrchestrator
from .guard import DuplicateGuard
from .persistence import ExecutionRecord, get_repository
from .scheduling import ScheduleRegistry, normalize_cron

__version__ = "0.1.0"
__all__ = [
    "ActionExecutor",
    "ActionProviders",
    "DuplicateGuard",
    "DuplicateRunSkipped",
    "ExecutionRecord",
    "FlowforgeConfig",
    "ScheduleEntry",
    "ScheduleRegistry",
    "WorkflowAction",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowOrchestrator",
    "build_action_executor",
    "build_engine",
    "get_definition_store",
    "get_repository",
    "load_config",
    "normalize_cron",
]
