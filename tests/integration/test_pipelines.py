"""End-to-end flows mixing sync and async executors."""

from __future__ import annotations

import asyncio
import time

import pytest

from flowmanager import (
    EventBus,
    EventType,
    Flow,
    FlowExecutionError,
    TaskExecutionError,
    TaskSkippedError,
    TaskStatus,
)


async def _after(delay: float, value: object) -> object:
    await asyncio.sleep(delay)
    return value


class TestPipelines:
    async def test_chain_with_shortcut_dependency(self) -> None:
        """task-04 depends on task-01 directly and on task-03 through a chain."""
        order: list[str] = []

        def step(name: str):
            async def executor(context):
                order.append(name)
                return await _after(0.02, {"value": True})

            return executor

        flow = Flow("Main", debug=True)
        flow.add("task-01", step("task-01"))
        flow.add("task-02", step("task-02"), depends_on=["task-01"])
        flow.add("task-03", step("task-03"), depends_on=["task-02"])
        flow.add("task-04", step("task-04"), depends_on=["task-01", "task-03"])

        context = await flow.run()

        assert order == ["task-01", "task-02", "task-03", "task-04"]
        for name in order:
            assert context[name] == {"value": True}

    async def test_failure_message_reaches_caller(self) -> None:
        async def broken(context):
            await asyncio.sleep(0.01)
            raise RuntimeError("Task failed")

        flow = Flow("Main").add("task-01", broken)

        with pytest.raises(FlowExecutionError, match="Task failed"):
            await flow.run()

    async def test_fan_out_fan_in(self) -> None:
        async def source(context):
            return list(range(10))

        def shard(index: int):
            async def executor(context):
                await asyncio.sleep(0.05)
                return context["source"][index] ** 2

            return executor

        def combine(context):
            return sum(context[f"shard-{i}"] for i in range(10))

        flow = Flow("squares").add("source", source)
        for i in range(10):
            flow.add(f"shard-{i}", shard(i), depends_on=["source"])
        flow.add("combine", combine, depends_on=[f"shard-{i}" for i in range(10)])

        started = time.perf_counter()
        context = await flow.run()

        assert context["combine"] == sum(i * i for i in range(10))
        # shards overlap instead of running back to back
        assert time.perf_counter() - started < 0.4

    async def test_partial_failure_report(self) -> None:
        bus = EventBus()
        skipped: list[str] = []

        def on_skip(event):
            skipped.append(event.task_name)

        bus.subscribe(on_skip, EventType.TASK_SKIPPED)

        async def fetch_users(context):
            return ["alice", "bob"]

        async def fetch_scores(context):
            raise ConnectionError("scores service unavailable")

        def merge(context):
            return {u: context["fetch_scores"][u] for u in context["fetch_users"]}

        def publish(context):
            return len(context["merge"])

        def audit(context):
            return f"{len(context['fetch_users'])} users"

        flow = Flow("report", event_bus=bus)
        flow.add("fetch_users", fetch_users)
        flow.add("fetch_scores", fetch_scores)
        flow.add("merge", merge, depends_on=["fetch_users", "fetch_scores"])
        flow.add("publish", publish, depends_on=["merge"])
        flow.add("audit", audit, depends_on=["fetch_users"])

        with pytest.raises(FlowExecutionError) as exc_info:
            await flow.run()

        err = exc_info.value
        assert err.failed_tasks == ("fetch_scores", "merge", "publish")
        assert isinstance(err.errors[0], TaskExecutionError)
        assert all(isinstance(e, TaskSkippedError) for e in err.errors[1:])
        assert err.results["audit"].status == TaskStatus.SUCCESS
        assert err.context["audit"] == "2 users"
        assert sorted(skipped) == ["merge", "publish"]

    async def test_flow_is_reusable(self) -> None:
        flow = Flow("reusable").add("now", lambda context: time.monotonic_ns())

        first = await flow.run()
        second = await flow.run()

        assert first["now"] != second["now"]
