"""Workflow definition stores."""

from __future__ import annotations

from typing import Optional

from ..config import FlowforgeConfig, load_config
from .file import FileDefinitionStore
from .inmemory import InMemoryDefinitionStore
from .repository import WorkflowDefinitionStore


def get_definition_store(
    url: Optional[str] = None, config: Optional[FlowforgeConfig] = None
) -> WorkflowDefinitionStore:
    """Build the definition store named by ``url`` or the loaded configuration."""

    if url is None:
        config = config or load_config()
        url = config.definitions.url

    if not url:
        return InMemoryDefinitionStore()
    if url.startswith("file://"):
        return FileDefinitionStore(url.replace("file://", "", 1))
    if "://" in url:
        from ..db import WorkflowDB

        return WorkflowDB(url)
    raise ValueError(f"Unsupported definitions store: {url}")


__all__ = [
    "FileDefinitionStore",
    "InMemoryDefinitionStore",
    "WorkflowDefinitionStore",
    "get_definition_store",
]
