"""Decorator API for declaring tasks and flows.

Example:
    from flowmanager.decorators import flow, task

    @task()
    async def extract(context):
        return {"records": 1000}

    @task(depends_on=["extract"])
    def transform(context):
        return context["extract"]["records"] * 2

    @flow(name="ETL Pipeline", timeout=10_000)
    def pipeline():
        return [extract, transform]

    context = await pipeline().run()
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

from flowmanager.core.flow import Flow
from flowmanager.core.models import Task

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from flowmanager.core.models import TaskExecutor


def task(
    name: str | None = None, depends_on: Iterable[str] = ()
) -> Callable[[TaskExecutor], Task]:
    """Turn the decorated executor into a :class:`Task`.

    Args:
        name: Task name; defaults to the function's ``__name__``.
        depends_on: Names of the tasks whose outputs this task reads.

    Returns:
        Decorator producing a ``Task``.  The original function stays
        reachable as ``Task.executor``.
    """

    def decorator(func: TaskExecutor) -> Task:
        return Task(name=name or func.__name__, executor=func, depends_on=tuple(depends_on))

    return decorator


def flow(
    name: str, **options: Any
) -> Callable[[Callable[..., Iterable[Task]]], Callable[..., Flow]]:
    """Turn a function returning tasks into a factory of :class:`Flow` objects.

    Each call of the decorated function builds a new, unsealed flow, so the
    same definition can be run repeatedly.

    Args:
        name: Flow name.
        **options: ``FlowOptions`` fields such as ``timeout`` and ``debug``.

    Example:
        @flow(name="ETL Pipeline", debug=True)
        def pipeline():
            return [extract, transform, load]

        first = await pipeline().run()
    """

    def decorator(func: Callable[..., Iterable[Task]]) -> Callable[..., Flow]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Flow:
            return Flow(name, tasks=func(*args, **kwargs), **options)

        return wrapper

    return decorator
