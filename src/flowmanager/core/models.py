"""Domain models for flowmanager.

Defines the core value objects: :class:`Task` (a named unit of work with
declared dependencies) and :class:`TaskResult` (the settled outcome of one
task within one run).
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime

    from flowmanager.core.context import Context
    from flowmanager.core.exceptions import TaskError


class TaskStatus(enum.Enum):
    """Settled states of an individual task."""

    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


# Executors receive the run's read-only context and return (or resolve to) an output.
TaskExecutor = Callable[["Context"], Any]


@dataclass(frozen=True)
class Task:
    """A unit of work inside a flow.

    Dependencies are declared by name and resolved against the flow's
    registry at run time; a task does not know its dependents.  Tasks hold
    no per-run state, so the same instance may be reused across runs.
    """

    name: str
    executor: TaskExecutor
    depends_on: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError("Task name must be a non-empty string")
        if not callable(self.executor):
            raise TypeError(f"Executor of task '{self.name}' is not callable")
        if isinstance(self.depends_on, str):
            raise TypeError(
                f"depends_on of task '{self.name}' must be a collection of names, not a string"
            )
        # ordered set: keep first occurrence
        object.__setattr__(self, "depends_on", tuple(dict.fromkeys(self.depends_on)))


@dataclass
class TaskResult:
    """Settled outcome of one task in one run."""

    task_name: str
    status: TaskStatus
    output: Any = None
    error: TaskError | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.SUCCESS

    @property
    def duration_ms(self) -> float | None:
        """Wall-clock duration in milliseconds, or ``None`` if the task never ran."""
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds() * 1000
        return None
