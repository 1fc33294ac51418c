"""Task hooks — middleware around executor invocation.

Hooks add cross-cutting behaviour (timing, auditing, guards) without
touching the executors themselves.

Usage::

    class TimingHook(TaskHook):
        async def after_task(self, task, result, flow):
            print(f"{task.name} took {result.duration_ms}ms")

    flow = Flow("etl", hooks=[TimingHook()])
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowmanager.core.flow import Flow
    from flowmanager.core.models import Task, TaskResult


class TaskHook:
    """Base class for task hooks.

    Both methods are no-ops by default.  Hooks only run for tasks whose
    executor is about to be invoked; skipped tasks never reach them.  Both
    share the task's deadline: a hook still running when it passes is
    abandoned like a slow executor.
    """

    async def before_task(self, task: Task, flow: Flow) -> None:
        """Called once the task's dependencies have succeeded, before its executor.

        Raising here fails the task without invoking its executor; not
        returning before the deadline times it out.
        """

    async def after_task(self, task: Task, result: TaskResult, flow: Flow) -> None:
        """Called after the task settles (success, failure or timeout).

        Dependents may already be running.  Errors are logged and do not
        change *result*.
        """
