"""flowmanager — in-process task orchestration.

Runs a set of named tasks concurrently, gating each on the successful
completion of its declared dependencies, sharing a write-once context
between them, bounding each with a timeout and reporting every failure
in a single aggregate error.
"""

from flowmanager.core.config import FlowOptions
from flowmanager.core.context import Context
from flowmanager.core.engine import ExecutionEngine, ExecutionPlan, FlowRun
from flowmanager.core.events import Event, EventBus, EventType
from flowmanager.core.exceptions import (
    CircularDependencyError,
    ContextConflictError,
    ContextWriteError,
    DuplicateTaskError,
    FlowError,
    FlowExecutionError,
    FlowSealedError,
    FlowValidationError,
    TaskError,
    TaskExecutionError,
    TaskSkippedError,
    TaskTimeoutError,
    UnknownDependencyError,
)
from flowmanager.core.flow import Flow
from flowmanager.core.hooks import TaskHook
from flowmanager.core.models import Task, TaskResult, TaskStatus

__version__ = "1.0.0"

__all__ = [
    "CircularDependencyError",
    "Context",
    "ContextConflictError",
    "ContextWriteError",
    "DuplicateTaskError",
    "Event",
    "EventBus",
    "EventType",
    "ExecutionEngine",
    "ExecutionPlan",
    "Flow",
    "FlowError",
    "FlowExecutionError",
    "FlowOptions",
    "FlowRun",
    "FlowSealedError",
    "FlowValidationError",
    "Task",
    "TaskError",
    "TaskExecutionError",
    "TaskHook",
    "TaskResult",
    "TaskSkippedError",
    "TaskStatus",
    "TaskTimeoutError",
    "UnknownDependencyError",
    "__version__",
]
