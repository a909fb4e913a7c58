"""Worker package initializer.

Re-exports the dispatcher, pipeline and task records so callers can import
them from `worker` directly.
"""

from __future__ import annotations

from .models import StageKind, Task
from .pool import PoolSaturated, TaskPool
from .service import WorkerService, build_pipeline, create_server, main
from .worker import Pipeline, StageOutcome, hydrate

__all__ = [
    "main",
    "build_pipeline",
    "create_server",
    "WorkerService",
    "Pipeline",
    "StageOutcome",
    "StageKind",
    "Task",
    "TaskPool",
    "PoolSaturated",
    "hydrate",
]
