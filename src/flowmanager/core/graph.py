"""Dependency graph and validator.

Edges point from a task to the tasks it depends on.  Validation checks that
every declared dependency is registered and that the relation is acyclic,
using a single white/gray/black depth-first traversal that visits every
node and edge once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flowmanager.core.exceptions import (
    CircularDependencyError,
    DuplicateTaskError,
    UnknownDependencyError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from flowmanager.core.models import Task

_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyGraph:
    """Lookup from task name to its declared dependencies.

    Node order is registration order; it drives iteration and error
    reporting, never execution order.
    """

    def __init__(self) -> None:
        self._dependencies: dict[str, tuple[str, ...]] = {}

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> DependencyGraph:
        graph = cls()
        for task in tasks:
            graph.add_node(task.name, task.depends_on)
        return graph

    def add_node(self, name: str, depends_on: Iterable[str] = ()) -> None:
        """Register *name* with its dependencies.  Names must be unique."""
        if name in self._dependencies:
            raise DuplicateTaskError(name)
        self._dependencies[name] = tuple(depends_on)

    @property
    def nodes(self) -> list[str]:
        return list(self._dependencies)

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return self._dependencies[name]

    def dependents_of(self, name: str) -> list[str]:
        return [node for node, deps in self._dependencies.items() if name in deps]

    def validate(self) -> list[str]:
        """Check the graph and return its nodes in dependency-first order.

        Raises :class:`UnknownDependencyError` for the first undeclared
        dependency (in registration order) and :class:`CircularDependencyError`
        with the offending path if the relation contains a cycle.
        """
        for name, deps in self._dependencies.items():
            for dep in deps:
                if dep not in self._dependencies:
                    raise UnknownDependencyError(name, dep)
        return self._depth_first_order()

    def levels(self) -> dict[str, int]:
        """Depth of each node: 0 for roots, otherwise 1 + deepest dependency."""
        depth: dict[str, int] = {}
        for node in self.validate():
            deps = self._dependencies[node]
            depth[node] = 1 + max(depth[d] for d in deps) if deps else 0
        return depth

    def _depth_first_order(self) -> list[str]:
        color = dict.fromkeys(self._dependencies, _WHITE)
        order: list[str] = []

        for root in self._dependencies:
            if color[root] != _WHITE:
                continue
            color[root] = _GRAY
            path = [root]
            pending = [iter(self._dependencies[root])]

            while pending:
                dep = next(pending[-1], None)
                if dep is None:
                    node = path.pop()
                    pending.pop()
                    color[node] = _BLACK
                    order.append(node)
                elif color[dep] == _GRAY:
                    raise CircularDependencyError([*path[path.index(dep) :], dep])
                elif color[dep] == _WHITE:
                    color[dep] = _GRAY
                    path.append(dep)
                    pending.append(iter(self._dependencies[dep]))

        return order
