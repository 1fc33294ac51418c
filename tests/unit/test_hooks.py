"""Tests for task hooks (middleware)."""

from __future__ import annotations

import asyncio
import time

from flowmanager.core.flow import Flow
from flowmanager.core.hooks import TaskHook
from flowmanager.core.models import Task, TaskResult, TaskStatus


class RecordingHook(TaskHook):
    """Hook that records calls for testing."""

    def __init__(self) -> None:
        self.before_calls: list[str] = []
        self.after_calls: list[tuple[str, str]] = []

    async def before_task(self, task: Task, flow: Flow) -> None:
        self.before_calls.append(task.name)

    async def after_task(self, task: Task, result: TaskResult, flow: Flow) -> None:
        self.after_calls.append((task.name, result.status.value))


async def _noop(context) -> str:
    return "ok"


async def _fail(context) -> None:
    raise RuntimeError("boom")


class TestTaskHooks:
    async def test_hooks_called_on_success(self) -> None:
        hook = RecordingHook()
        flow = Flow("hook-test", hooks=[hook]).add("t1", _noop).add("t2", _noop, ["t1"])

        await flow.run()

        assert hook.before_calls == ["t1", "t2"]
        assert hook.after_calls == [("t1", "success"), ("t2", "success")]

    async def test_hooks_called_on_failure(self) -> None:
        hook = RecordingHook()
        flow = Flow("fail-hook", hooks=[hook]).add("t1", _fail)

        run = await flow.execute()

        assert not run.succeeded
        assert hook.before_calls == ["t1"]
        assert hook.after_calls == [("t1", "failed")]

    async def test_hooks_not_called_for_skipped_tasks(self) -> None:
        hook = RecordingHook()
        flow = Flow("skip-hook", hooks=[hook]).add("bad", _fail).add("after", _noop, ["bad"])

        run = await flow.execute()

        assert run.results["after"].status == TaskStatus.SKIPPED
        assert hook.before_calls == ["bad"]
        assert [name for name, _ in hook.after_calls] == ["bad"]

    async def test_before_hook_failure_fails_task_without_running_it(self) -> None:
        ran: list[str] = []

        class Guard(TaskHook):
            async def before_task(self, task: Task, flow: Flow) -> None:
                if task.name == "forbidden":
                    raise PermissionError("not allowed")

        async def forbidden(context) -> None:
            ran.append("forbidden")

        run = await Flow("guarded", hooks=[Guard()]).add("forbidden", forbidden).execute()

        assert ran == []
        assert run.results["forbidden"].status == TaskStatus.FAILED
        assert "not allowed" in str(run.results["forbidden"].error)

    async def test_after_hook_failure_keeps_result(self) -> None:
        class Broken(TaskHook):
            async def after_task(self, task: Task, result: TaskResult, flow: Flow) -> None:
                raise RuntimeError("hook crash")

        context = await Flow("broken-hook", hooks=[Broken()]).add("t", _noop).run()
        assert context["t"] == "ok"

    async def test_multiple_hooks(self) -> None:
        hook1 = RecordingHook()
        hook2 = RecordingHook()

        await Flow("multi-hook", hooks=[hook1, hook2]).add("t", _noop).run()

        assert hook1.before_calls == ["t"]
        assert hook2.before_calls == ["t"]

    async def test_hanging_before_hook_times_out_the_task(self) -> None:
        ran: list[str] = []

        class Hang(TaskHook):
            async def before_task(self, task: Task, flow: Flow) -> None:
                await asyncio.sleep(3600)

        async def work(context) -> None:
            ran.append("work")

        flow = Flow("hang-before", timeout=50, hooks=[Hang()]).add("work", work)
        started = time.perf_counter()
        run = await flow.execute()

        assert time.perf_counter() - started < 2
        assert run.results["work"].status == TaskStatus.TIMED_OUT
        assert ran == []

    async def test_hanging_after_hook_is_cut_off_at_the_deadline(self) -> None:
        class Hang(TaskHook):
            async def after_task(self, task: Task, result: TaskResult, flow: Flow) -> None:
                await asyncio.sleep(3600)

        flow = Flow("hang-after", timeout=100, hooks=[Hang()]).add("t", _noop)
        started = time.perf_counter()
        context = await flow.run()

        assert time.perf_counter() - started < 2
        assert context["t"] == "ok"
