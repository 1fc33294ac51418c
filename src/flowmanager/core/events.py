"""Lifecycle notifications for flow runs.

Every event names the flow and run it belongs to; task events also name
the task.  Subscribers choose the event types they care about when they
subscribe and get back a callable that cancels the subscription::

    stop = bus.subscribe(on_skip, EventType.TASK_SKIPPED)
    await flow.run()
    stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from flowmanager.core.models import TaskStatus

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the engine during a run."""

    FLOW_STARTED = "flow.started"
    FLOW_COMPLETED = "flow.completed"
    FLOW_FAILED = "flow.failed"
    TASK_DISPATCHED = "task.dispatched"
    TASK_STARTED = "task.started"
    TASK_COMPLETED = "task.completed"
    TASK_FAILED = "task.failed"
    TASK_TIMED_OUT = "task.timed_out"
    TASK_SKIPPED = "task.skipped"

    @classmethod
    def settled(cls, status: TaskStatus) -> EventType:
        """The event announcing a task that settled with *status*."""
        return _SETTLED[status]

    @property
    def is_task_event(self) -> bool:
        return self.value.startswith("task.")


_SETTLED = {
    TaskStatus.SUCCESS: EventType.TASK_COMPLETED,
    TaskStatus.FAILED: EventType.TASK_FAILED,
    TaskStatus.TIMED_OUT: EventType.TASK_TIMED_OUT,
    TaskStatus.SKIPPED: EventType.TASK_SKIPPED,
}


@dataclass(frozen=True)
class Event:
    """One lifecycle notification.

    ``detail`` depends on the type: ``task_count`` for flow start and
    completion, ``failed_tasks`` for flow failure, ``error`` and
    ``duration_ms`` for settled tasks.
    """

    event_type: EventType
    flow_name: str
    run_id: str
    task_name: str | None = None
    detail: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.event_type.is_task_event and self.task_name is None:
            raise ValueError(f"{self.event_type.value} event requires a task_name")
        object.__setattr__(self, "detail", MappingProxyType(dict(self.detail)))


Subscriber = Callable[[Event], Awaitable[None] | None]


class EventBus:
    """In-process event bus shared by any number of runs.

    Subscribers may be coroutine functions or plain callables.  They are
    invoked concurrently for each published event; a failing subscriber is
    logged and never affects other subscribers or the run.
    """

    def __init__(self) -> None:
        self._subscriptions: list[tuple[frozenset[EventType], Subscriber]] = []

    def subscribe(self, handler: Subscriber, *event_types: EventType) -> Callable[[], None]:
        """Deliver *event_types* (every type when none are given) to *handler*.

        Returns a callable removing this subscription; calling it twice is harmless.
        """
        subscription = (frozenset(event_types or EventType), handler)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscriptions.remove(subscription)

        return unsubscribe

    async def publish(self, event: Event) -> None:
        handlers = [handler for types, handler in self._subscriptions if event.event_type in types]
        if not handlers:
            return

        results = await asyncio.gather(
            *(_deliver(handler, event) for handler in handlers), return_exceptions=True
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, BaseException):
                extra = {"flow_name": event.flow_name, "run_id": event.run_id}
                if event.task_name is not None:
                    extra["task_name"] = event.task_name
                logger.error(
                    "Subscriber %s raised %r for %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    result,
                    event.event_type.value,
                    extra=extra,
                )


async def _deliver(handler: Subscriber, event: Event) -> None:
    outcome = handler(event)
    if inspect.isawaitable(outcome):
        await outcome
