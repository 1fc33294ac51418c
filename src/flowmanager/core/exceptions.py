"""Error hierarchy for flowmanager.

Structural errors (:class:`FlowValidationError` and subclasses) are raised
synchronously before any executor runs.  Per-task runtime errors
(:class:`TaskError` and subclasses) never escape the scheduler; they are
recorded on the task's result and collected into a single
:class:`FlowExecutionError` once every task has settled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from flowmanager.core.context import Context
    from flowmanager.core.models import TaskResult


class FlowError(Exception):
    """Base class for every error raised by flowmanager."""


# ── Flow validation ──────────────────────────────────────────────────


class FlowValidationError(FlowError):
    """The flow definition is invalid and cannot be run."""


class DuplicateTaskError(FlowValidationError):
    def __init__(self, task_name: str) -> None:
        self.task_name = task_name
        super().__init__(f"Task '{task_name}' is already registered in this flow")


class UnknownDependencyError(FlowValidationError):
    def __init__(self, task_name: str, dependency: str) -> None:
        self.task_name = task_name
        self.dependency = dependency
        super().__init__(f"Task '{task_name}' depends on unknown task '{dependency}'")


class CircularDependencyError(FlowValidationError):
    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(
            "Circular dependency detected involving task "
            f"'{self.cycle[0]}': {' -> '.join(self.cycle)}"
        )


class ContextConflictError(FlowValidationError):
    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = tuple(sorted(keys))
        super().__init__(
            f"Initial context keys collide with task names: {', '.join(self.keys)}"
        )


class FlowSealedError(FlowError):
    def __init__(self, flow_name: str) -> None:
        self.flow_name = flow_name
        super().__init__(f"Flow '{flow_name}' has already been run; tasks can no longer be added")


# ── Context ──────────────────────────────────────────────────────────


class ContextWriteError(FlowError):
    def __init__(self, key: str, reason: str = "entry already written") -> None:
        self.key = key
        super().__init__(f"Cannot write context entry '{key}': {reason}")


# ── Task execution ───────────────────────────────────────────────────


class TaskError(FlowError):
    """A single task did not produce a result."""

    def __init__(self, task_name: str, reason: str) -> None:
        self.task_name = task_name
        self.reason = reason
        super().__init__(f"Task {task_name} {reason}")


class TaskExecutionError(TaskError):
    def __init__(self, task_name: str, cause: BaseException) -> None:
        detail = str(cause) or type(cause).__name__
        super().__init__(task_name, f"failed: {detail}")
        self.__cause__ = cause


class TaskTimeoutError(TaskError):
    def __init__(self, task_name: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(task_name, f"timed out after {timeout_ms}ms")


class TaskSkippedError(TaskError):
    def __init__(self, task_name: str, dependency: str) -> None:
        self.dependency = dependency
        super().__init__(task_name, f"skipped: dependency failed ('{dependency}')")


class FlowExecutionError(FlowError):
    """Aggregate failure of a run: one entry per failed, timed-out or skipped task.

    Outputs of the tasks that did succeed stay reachable through
    :attr:`context` and :attr:`results` for diagnostics.
    """

    def __init__(
        self,
        flow_name: str,
        errors: Iterable[TaskError],
        context: Context | None = None,
        results: Mapping[str, TaskResult] | None = None,
    ) -> None:
        self.flow_name = flow_name
        self.errors = tuple(errors)
        self.context = context
        self.results = dict(results or {})
        lines = "\n".join(f"  - {err}" for err in self.errors)
        super().__init__(f"Flow '{flow_name}' failed with {len(self.errors)} error(s):\n{lines}")

    @property
    def failed_tasks(self) -> tuple[str, ...]:
        return tuple(err.task_name for err in self.errors)
