"""Unit tests for core domain models — Task and TaskResult."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from flowmanager.core.exceptions import TaskSkippedError
from flowmanager.core.models import Task, TaskResult, TaskStatus


def _noop(context):
    return None


class TestTask:
    def test_defaults(self) -> None:
        task = Task(name="a", executor=_noop)
        assert task.depends_on == ()

    def test_dependencies_are_an_ordered_set(self) -> None:
        task = Task(name="a", executor=_noop, depends_on=["c", "b", "c", "b"])
        assert task.depends_on == ("c", "b")

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValueError, match="non-empty"):
            Task(name="", executor=_noop)

    def test_executor_must_be_callable(self) -> None:
        with pytest.raises(TypeError, match="not callable"):
            Task(name="a", executor="nope")  # type: ignore[arg-type]

    def test_bare_string_dependency_rejected(self) -> None:
        with pytest.raises(TypeError, match="collection of names"):
            Task(name="a", executor=_noop, depends_on="b")  # type: ignore[arg-type]

    def test_task_is_immutable(self) -> None:
        task = Task(name="a", executor=_noop)
        with pytest.raises(AttributeError):
            task.name = "b"  # type: ignore[misc]


class TestTaskResult:
    def test_duration_calculation(self) -> None:
        start = datetime(2025, 1, 1, 0, 0, 0, tzinfo=UTC)
        end = datetime(2025, 1, 1, 0, 0, 1, 500_000, tzinfo=UTC)
        result = TaskResult(
            task_name="t1", status=TaskStatus.SUCCESS, started_at=start, finished_at=end
        )
        assert result.duration_ms is not None
        assert abs(result.duration_ms - 1500.0) < 1.0
        assert result.ok

    def test_skipped_result_has_no_duration(self) -> None:
        result = TaskResult(
            task_name="t1",
            status=TaskStatus.SKIPPED,
            error=TaskSkippedError("t1", "t0"),
        )
        assert result.duration_ms is None
        assert not result.ok
