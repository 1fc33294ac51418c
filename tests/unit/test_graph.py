"""Unit tests for the dependency graph validator."""

from __future__ import annotations

import pytest

from flowmanager.core.exceptions import (
    CircularDependencyError,
    DuplicateTaskError,
    UnknownDependencyError,
)
from flowmanager.core.graph import DependencyGraph
from flowmanager.core.models import Task


def _graph(**edges: list[str]) -> DependencyGraph:
    graph = DependencyGraph()
    for name, deps in edges.items():
        graph.add_node(name, deps)
    return graph


class TestValidation:
    def test_order_is_dependency_first(self) -> None:
        order = _graph(d=["b", "c"], b=["a"], c=["a"], a=[]).validate()
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("a") < order.index("c") < order.index("d")
        assert sorted(order) == ["a", "b", "c", "d"]

    def test_unknown_dependency(self) -> None:
        with pytest.raises(UnknownDependencyError) as exc_info:
            _graph(a=[], b=["a", "ghost"]).validate()
        assert exc_info.value.task_name == "b"
        assert exc_info.value.dependency == "ghost"
        assert "unknown task 'ghost'" in str(exc_info.value)

    def test_unknown_dependency_reported_before_cycles(self) -> None:
        with pytest.raises(UnknownDependencyError):
            _graph(x=["y"], y=["x"], z=["missing"]).validate()

    def test_two_node_cycle(self) -> None:
        with pytest.raises(CircularDependencyError, match="Circular dependency") as exc_info:
            _graph(x=["y"], y=["x"]).validate()
        assert exc_info.value.cycle == ("x", "y", "x")

    def test_self_dependency_is_a_cycle(self) -> None:
        with pytest.raises(CircularDependencyError) as exc_info:
            _graph(a=["a"]).validate()
        assert exc_info.value.cycle == ("a", "a")

    def test_cycle_path_excludes_tasks_leading_into_it(self) -> None:
        with pytest.raises(CircularDependencyError) as exc_info:
            _graph(entry=["a"], a=["b"], b=["c"], c=["a"]).validate()
        assert exc_info.value.cycle == ("a", "b", "c", "a")
        assert "entry" not in exc_info.value.cycle

    def test_long_chain_does_not_hit_recursion_limit(self) -> None:
        graph = DependencyGraph()
        graph.add_node("n0")
        for i in range(1, 5000):
            graph.add_node(f"n{i}", [f"n{i - 1}"])
        order = graph.validate()
        assert order[0] == "n0"
        assert order[-1] == "n4999"


class TestConstruction:
    def test_duplicate_node_rejected(self) -> None:
        graph = DependencyGraph()
        graph.add_node("a")
        with pytest.raises(DuplicateTaskError, match="'a'"):
            graph.add_node("a")

    def test_from_tasks(self) -> None:
        tasks = [
            Task(name="a", executor=print),
            Task(name="b", executor=print, depends_on=["a"]),
        ]
        graph = DependencyGraph.from_tasks(tasks)
        assert graph.nodes == ["a", "b"]
        assert graph.dependencies_of("b") == ("a",)
        assert graph.dependents_of("a") == ["b"]

    def test_levels(self) -> None:
        levels = _graph(a=[], b=["a"], c=["a"], d=["b", "c"], e=[]).levels()
        assert levels == {"a": 0, "b": 1, "c": 1, "d": 2, "e": 0}
