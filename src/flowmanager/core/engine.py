"""Flow execution engine — validation, dispatch and aggregation.

A run proceeds in four steps:

1. **Validate** the dependency graph synchronously; structural errors are
   raised before any executor is invoked.
2. **Arm** one completion signal (an :class:`asyncio.Future`) per task.
   The signals are collected into a read-only mapping before anything is
   dispatched, so a task can reference its dependencies' signals
   regardless of registration order.
3. **Dispatch** every task concurrently in a single pass.  Each unit of
   work waits on its dependencies' signals, skips itself if one of them
   failed, otherwise runs its ``before_task`` hooks and executor against a
   read-only view of the context, writes its output and only then
   resolves its own signal.
4. **Aggregate** once every signal has settled into a :class:`FlowRun`.

All tasks of a run share one deadline, armed when they are dispatched: it
covers dependency waits, hooks and execution.  A task whose dependency
fails or times out is skipped, even when the deadline passes while it is
still waiting.  Cancellation on timeout is best-effort.  Coroutine
executors are cancelled; plain functions run on a thread pool owned by the
run, keep running in the background and their eventual result is
discarded.  Executors still running when the run settles are listed in
:attr:`FlowRun.abandoned`.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
import uuid
from concurrent.futures import Future as ThreadFuture
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from flowmanager.core.context import Context, ContextStore
from flowmanager.core.events import Event, EventBus, EventType
from flowmanager.core.exceptions import (
    ContextConflictError,
    FlowExecutionError,
    TaskError,
    TaskExecutionError,
    TaskSkippedError,
    TaskTimeoutError,
)
from flowmanager.core.graph import DependencyGraph
from flowmanager.core.models import Task, TaskResult, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from flowmanager.core.config import FlowOptions
    from flowmanager.core.flow import Flow
    from flowmanager.core.hooks import TaskHook

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionPlan:
    """Result of a dry run — shows *how* a flow would execute.

    Attributes:
        phases: Groups of task names that become runnable together, in
            dependency order.  Tasks within a phase run concurrently.
        total_tasks: Number of tasks in the flow.
        critical_path: Longest dependency chain, root first.
        critical_path_length: Number of tasks on the critical path.
    """

    phases: list[list[str]] = field(default_factory=list)
    total_tasks: int = 0
    critical_path: list[str] = field(default_factory=list)
    critical_path_length: int = 0


@dataclass
class FlowRun:
    """Settled outcome of one run: the context plus every task's result.

    ``abandoned`` names the timed-out tasks whose executor was still
    running when the run settled.
    """

    flow_name: str
    run_id: str
    context: Context
    results: dict[str, TaskResult]
    abandoned: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return all(result.ok for result in self.results.values())

    @property
    def failures(self) -> list[TaskError]:
        return [r.error for r in self.results.values() if r.error is not None]

    def raise_for_failures(self) -> None:
        """Raise :class:`FlowExecutionError` listing every failed or skipped task."""
        if not self.succeeded:
            raise FlowExecutionError(self.flow_name, self.failures, self.context, self.results)


@dataclass(frozen=True)
class _Run:
    """Per-run arena.  Built once before dispatch and never rebound."""

    flow: Flow
    options: FlowOptions
    run_id: str
    store: ContextStore
    signals: Mapping[str, asyncio.Future[TaskResult]]
    pool: ThreadPoolExecutor | None = None
    threads: dict[str, ThreadFuture[Any]] = field(default_factory=dict)
    timed_out: dict[str, asyncio.Future[Any]] = field(default_factory=dict)

    def abandoned(self) -> tuple[str, ...]:
        return tuple(
            name
            for name, execution in self.timed_out.items()
            if not execution.done() or (name in self.threads and not self.threads[name].done())
        )


def _discard(future: asyncio.Future[Any]) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.debug("Abandoned executor finished with %r", future.exception())


def _runs_in_thread(task: Task) -> bool:
    return not inspect.iscoroutinefunction(task.executor)


class ExecutionEngine:
    """Runs a :class:`Flow` with dependency gating, timeouts and aggregation.

    *options* override the flow's own options when given.  The engine keeps
    no per-run state, so one instance can execute any number of runs.
    """

    def __init__(
        self,
        options: FlowOptions | None = None,
        event_bus: EventBus | None = None,
        hooks: list[TaskHook] | None = None,
    ) -> None:
        self._options = options
        self._event_bus = event_bus or EventBus()
        self._hooks: list[TaskHook] = hooks or []

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    def dry_run(self, flow: Flow) -> ExecutionPlan:
        """Validate *flow* and describe its parallelism without running anything."""
        graph = DependencyGraph.from_tasks(flow.tasks)
        levels = graph.levels()
        if not levels:
            return ExecutionPlan()

        phases: list[list[str]] = [[] for _ in range(max(levels.values()) + 1)]
        for name in graph.nodes:
            phases[levels[name]].append(name)

        # walk back from the deepest task, always through its deepest dependency
        path = [max(graph.nodes, key=levels.__getitem__)]
        while deps := graph.dependencies_of(path[-1]):
            path.append(max(deps, key=levels.__getitem__))
        path.reverse()

        return ExecutionPlan(
            phases=phases,
            total_tasks=len(levels),
            critical_path=path,
            critical_path_length=len(path),
        )

    async def execute(self, flow: Flow, context: Mapping[str, Any] | None = None) -> FlowRun:
        """Run every task of *flow* and return the settled :class:`FlowRun`.

        Structural problems raise a :class:`FlowValidationError` before
        dispatch.  Task failures never raise here; inspect the returned run
        or call :meth:`FlowRun.raise_for_failures`.
        """
        tasks = flow.tasks
        DependencyGraph.from_tasks(tasks).validate()

        seed = dict(context or {})
        if conflicts := seed.keys() & {task.name for task in tasks}:
            raise ContextConflictError(conflicts)

        loop = asyncio.get_running_loop()
        # one worker per plain-function task, so none of them queues behind another
        workers = sum(_runs_in_thread(task) for task in tasks)
        run = _Run(
            flow=flow,
            options=self._options or flow.options,
            run_id=uuid.uuid4().hex[:12],
            store=ContextStore(seed),
            signals=MappingProxyType({task.name: loop.create_future() for task in tasks}),
            pool=(
                ThreadPoolExecutor(workers, thread_name_prefix=f"flowmanager-{flow.name}")
                if workers
                else None
            ),
        )

        try:
            self._trace(run, "Starting flow with %d task(s)", len(tasks))
            await self._emit(run, EventType.FLOW_STARTED, task_count=len(tasks))

            deadline = loop.time() + run.options.timeout_seconds
            units = [
                asyncio.create_task(
                    self._run_task(task, run, deadline), name=f"{flow.name}:{task.name}"
                )
                for task in tasks
            ]
            self._trace(run, "Dispatched %d task(s), waiting for all to settle", len(units))
            await asyncio.gather(*units)
            abandoned = run.abandoned()
        finally:
            if run.pool is not None:
                run.pool.shutdown(wait=False, cancel_futures=True)

        outcome = FlowRun(
            flow_name=flow.name,
            run_id=run.run_id,
            context=run.store.view(thawed=True),
            results={name: signal.result() for name, signal in run.signals.items()},
            abandoned=abandoned,
        )

        if abandoned:
            logger.warning(
                "Flow %s settled with %d timed-out executor(s) still running (%s)",
                flow.name,
                len(abandoned),
                ", ".join(abandoned),
                extra={"flow_name": flow.name, "run_id": run.run_id},
            )

        if outcome.succeeded:
            self._trace(run, "Flow completed successfully")
            await self._emit(run, EventType.FLOW_COMPLETED, task_count=len(tasks))
        else:
            failed = [err.task_name for err in outcome.failures]
            logger.error(
                "Flow %s failed: %d of %d task(s) did not succeed (%s)",
                flow.name,
                len(failed),
                len(tasks),
                ", ".join(failed),
                extra={"flow_name": flow.name, "run_id": run.run_id},
            )
            await self._emit(run, EventType.FLOW_FAILED, failed_tasks=failed)

        return outcome

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_task(self, task: Task, run: _Run, deadline: float) -> None:
        """Unit of work for one task.  Always settles the task's signal."""
        signal = run.signals[task.name]
        try:
            result = await self._settle(task, run, deadline)
            signal.set_result(result)
            self._trace(run, "Task %s resolved as %s", task.name, result.status.value, task=task)
            if result.started_at is not None:
                await self._after_task(task, result, run, deadline)

            detail: dict[str, Any] = {}
            if result.error is not None:
                detail["error"] = str(result.error)
            if result.duration_ms is not None:
                detail["duration_ms"] = result.duration_ms
            await self._emit(run, EventType.settled(result.status), task=task, **detail)
        finally:
            if not signal.done():
                signal.cancel()

    async def _settle(self, task: Task, run: _Run, deadline: float) -> TaskResult:
        self._trace(run, "Task %s dispatched", task.name, task=task)
        await self._emit(run, EventType.TASK_DISPATCHED, task=task)

        blocked = await self._wait_for_dependencies(task, run, deadline)
        if blocked is not None:
            status = (
                TaskStatus.SKIPPED
                if isinstance(blocked, TaskSkippedError)
                else TaskStatus.TIMED_OUT
            )
            logger.warning(
                "%s", blocked, extra={"flow_name": run.flow.name, "task_name": task.name}
            )
            return TaskResult(task_name=task.name, status=status, error=blocked)

        started = datetime.now(UTC)
        await self._emit(run, EventType.TASK_STARTED, task=task)
        try:
            output = await self._invoke_with_deadline(task, run, deadline)
            # the entry is written before the signal resolves
            run.store.write(task.name, output)
        except TaskTimeoutError as err:
            result = TaskResult(task.name, TaskStatus.TIMED_OUT, error=err, started_at=started)
        except Exception as exc:
            result = TaskResult(
                task.name,
                TaskStatus.FAILED,
                error=TaskExecutionError(task.name, exc),
                started_at=started,
            )
        else:
            result = TaskResult(
                task.name,
                TaskStatus.SUCCESS,
                output=run.store.read(task.name, thawed=True),
                started_at=started,
            )
        result.finished_at = datetime.now(UTC)

        if result.error is not None:
            logger.warning(
                "%s", result.error, extra={"flow_name": run.flow.name, "task_name": task.name}
            )
        return result

    async def _wait_for_dependencies(
        self, task: Task, run: _Run, deadline: float
    ) -> TaskError | None:
        """Block until every dependency succeeded, one failed, or *deadline* passes."""
        pending = {run.signals[dep] for dep in task.depends_on}
        if pending:
            self._trace(run, "Task %s waiting for %s", task.name, list(task.depends_on), task=task)

        loop = asyncio.get_running_loop()
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            _, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if skipped := self._failed_dependency(task, run):
                return skipped

        if pending:
            # dependencies share this deadline, so they are settling right now
            await asyncio.wait(pending)
            if skipped := self._failed_dependency(task, run):
                return skipped
            return TaskTimeoutError(task.name, run.options.timeout)

        if task.depends_on:
            self._trace(run, "Task %s dependencies resolved", task.name, task=task)
        return None

    @staticmethod
    def _failed_dependency(task: Task, run: _Run) -> TaskSkippedError | None:
        for dep in task.depends_on:
            signal = run.signals[dep]
            if signal.done() and (signal.cancelled() or not signal.result().ok):
                return TaskSkippedError(task.name, dep)
        return None

    async def _invoke_with_deadline(self, task: Task, run: _Run, deadline: float) -> Any:
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise TaskTimeoutError(task.name, run.options.timeout)

        execution = asyncio.ensure_future(self._execute(task, run))
        try:
            done, _ = await asyncio.wait({execution}, timeout=remaining)
        except asyncio.CancelledError:
            execution.cancel()
            raise

        if not done:
            execution.cancel()
            execution.add_done_callback(_discard)
            run.timed_out[task.name] = execution
            raise TaskTimeoutError(task.name, run.options.timeout)
        if execution.cancelled():
            raise RuntimeError("executor was cancelled")
        return execution.result()

    async def _execute(self, task: Task, run: _Run) -> Any:
        """``before_task`` hooks, then the executor; plain functions go to the run's pool."""
        for hook in self._hooks:
            await hook.before_task(task, run.flow)

        context = run.store.view()
        if _runs_in_thread(task):
            work = run.pool.submit(contextvars.copy_context().run, task.executor, context)
            run.threads[task.name] = work
            output = await asyncio.wrap_future(work)
        else:
            output = await task.executor(context)
        if inspect.isawaitable(output):
            output = await output
        return output

    async def _after_task(self, task: Task, result: TaskResult, run: _Run, deadline: float) -> None:
        for hook in self._hooks:
            try:
                async with asyncio.timeout_at(deadline):
                    await hook.after_task(task, result, run.flow)
            except TimeoutError:
                logger.warning(
                    "after_task hook %r for task %s was cut off at the deadline",
                    hook,
                    task.name,
                    extra={"flow_name": run.flow.name, "task_name": task.name},
                )
            except Exception:
                logger.exception("after_task hook %r raised for task %s", hook, task.name)

    async def _emit(
        self, run: _Run, event_type: EventType, task: Task | None = None, **detail: Any
    ) -> None:
        await self._event_bus.publish(
            Event(
                event_type,
                flow_name=run.flow.name,
                run_id=run.run_id,
                task_name=task.name if task is not None else None,
                detail=detail,
            )
        )

    def _trace(self, run: _Run, message: str, *args: Any, task: Task | None = None) -> None:
        if not run.options.debug:
            return
        extra = {"flow_name": run.flow.name, "run_id": run.run_id}
        if task is not None:
            extra["task_name"] = task.name
        logger.debug("[%s] " + message, run.flow.name, *args, extra=extra)
