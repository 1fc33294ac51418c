"""Shared test fixtures."""

from __future__ import annotations

import pytest

from flowmanager.core.events import Event, EventBus


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLOWMANAGER_TIMEOUT", raising=False)
    monkeypatch.delenv("FLOWMANAGER_DEBUG", raising=False)


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def recorded_events(event_bus: EventBus) -> list[Event]:
    received: list[Event] = []

    async def _capture(event: Event) -> None:
        received.append(event)

    event_bus.subscribe(_capture)
    return received
