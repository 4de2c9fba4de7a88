from .models import WorkflowRow
from .workflow_db import WorkflowDB

__all__ = [
    "WorkflowRow",
    "WorkflowDB",
]
