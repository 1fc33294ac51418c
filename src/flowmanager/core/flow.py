"""The :class:`Flow` — an ordered set of tasks plus execution options.

A flow is built by registering tasks, then run one or more times.  The
first call to :meth:`Flow.run` seals it: no task can be added afterwards.
Every run gets a fresh context and fresh completion signals, so runs do
not share state beyond the task list itself.

Concurrent calls to :meth:`Flow.run` on the same instance are not
supported.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flowmanager.core.config import FlowOptions
from flowmanager.core.engine import ExecutionEngine
from flowmanager.core.exceptions import DuplicateTaskError, FlowSealedError
from flowmanager.core.graph import DependencyGraph
from flowmanager.core.models import Task

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from flowmanager.core.context import Context
    from flowmanager.core.engine import ExecutionPlan, FlowRun
    from flowmanager.core.events import EventBus
    from flowmanager.core.hooks import TaskHook
    from flowmanager.core.models import TaskExecutor


class Flow:
    """A named collection of tasks run as one unit.

    Args:
        name: Used for logging and error messages only.
        tasks: Tasks to register, in order.
        options: Base options; defaults come from ``FLOWMANAGER_*`` env vars.
        event_bus: Receives lifecycle events of every run.
        hooks: Invoked around every executed task.
        **overrides: ``FlowOptions`` fields (``timeout``, ``debug``) applied
            on top of *options*.

    Example::

        flow = Flow("etl", timeout=5_000)
        flow.add("extract", extract)
        flow.add("load", load, depends_on=["extract"])
        context = await flow.run()
    """

    def __init__(
        self,
        name: str,
        tasks: Iterable[Task] | None = None,
        options: FlowOptions | None = None,
        *,
        event_bus: EventBus | None = None,
        hooks: list[TaskHook] | None = None,
        **overrides: Any,
    ) -> None:
        self.name = name
        if overrides:
            options = FlowOptions(**{**(options.model_dump() if options else {}), **overrides})
        self.options = options or FlowOptions()
        self.event_bus = event_bus
        self.hooks: list[TaskHook] = list(hooks or [])
        self._tasks: dict[str, Task] = {}
        self._sealed = False
        for task in tasks or ():
            self.add_task(task)

    def __repr__(self) -> str:
        return f"Flow(name={self.name!r}, tasks={list(self._tasks)!r})"

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    @property
    def tasks(self) -> tuple[Task, ...]:
        """Registered tasks in insertion order."""
        return tuple(self._tasks.values())

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get_task(self, name: str) -> Task | None:
        return self._tasks.get(name)

    # ── Registration ─────────────────────────────────────────────────

    def add_task(self, task: Task) -> Flow:
        """Register an already constructed :class:`Task`."""
        if self._sealed:
            raise FlowSealedError(self.name)
        if task.name in self._tasks:
            raise DuplicateTaskError(task.name)
        self._tasks[task.name] = task
        return self

    def add(self, name: str, executor: TaskExecutor, depends_on: Iterable[str] = ()) -> Flow:
        """Build a :class:`Task` from its parts and register it."""
        return self.add_task(Task(name=name, executor=executor, depends_on=tuple(depends_on)))

    def task(
        self, name: str | None = None, depends_on: Iterable[str] = ()
    ) -> Callable[[TaskExecutor], TaskExecutor]:
        """Decorator registering the function as a task named *name* (or its own name)."""

        def decorator(func: TaskExecutor) -> TaskExecutor:
            self.add(name or func.__name__, func, depends_on)
            return func

        return decorator

    # ── Execution ────────────────────────────────────────────────────

    def validate(self) -> Flow:
        """Check names and dependencies without running anything."""
        DependencyGraph.from_tasks(self.tasks).validate()
        return self

    def plan(self) -> ExecutionPlan:
        """Dry run: the parallel phases and critical path of this flow."""
        return self._engine().dry_run(self)

    async def execute(self, context: Mapping[str, Any] | None = None) -> FlowRun:
        """Run the flow and return the settled run without raising on task failures."""
        self._sealed = True
        return await self._engine().execute(self, context)

    async def run(self, context: Mapping[str, Any] | None = None) -> Context:
        """Run the flow and return its final context.

        Raises:
            FlowValidationError: the flow is structurally invalid; nothing ran.
            FlowExecutionError: at least one task failed, timed out or was skipped.
        """
        outcome = await self.execute(context)
        outcome.raise_for_failures()
        return outcome.context

    def _engine(self) -> ExecutionEngine:
        return ExecutionEngine(self.options, event_bus=self.event_bus, hooks=self.hooks)
