"""Example: ETL flow with a diamond dependency and lifecycle events.

Demonstrates registering tasks with dependencies, reading upstream outputs
from the shared context, and observing the run through the event bus.
"""

import asyncio
import logging

from flowmanager import Event, EventBus, Flow, FlowExecutionError
from flowmanager.observability.logging import configure_logging

configure_logging(log_level="INFO", json_format=False)
log = logging.getLogger(__name__)


# ── Task implementations ─────────────────────────────────────────────


async def extract(context) -> dict:
    """Simulate data extraction from a source system."""
    await asyncio.sleep(0.2)
    return {"records": 1_000}


def validate(context) -> dict:
    return {"valid": context["extract"]["records"] > 0}


async def transform(context) -> dict:
    await asyncio.sleep(0.3)
    return {"transformed": context["extract"]["records"]}


async def enrich(context) -> dict:
    await asyncio.sleep(0.15)
    return {"enriched": int(context["extract"]["records"] * 0.95)}


async def load(context) -> dict:
    await asyncio.sleep(0.2)
    return {"loaded": min(context["transform"]["transformed"], context["enrich"]["enriched"])}


# ── Event listener ───────────────────────────────────────────────────


async def on_event(event: Event) -> None:
    log.info("event %s %s", event.event_type.value, event.task_name or "")


# ── Main ─────────────────────────────────────────────────────────────


async def main() -> None:
    bus = EventBus()
    bus.subscribe(on_event)

    flow = Flow("ETL Pipeline", event_bus=bus, timeout=5_000)
    flow.add("extract", extract)
    flow.add("validate", validate, depends_on=["extract"])
    flow.add("transform", transform, depends_on=["validate"])
    flow.add("enrich", enrich, depends_on=["validate"])
    flow.add("load", load, depends_on=["transform", "enrich"])

    plan = flow.plan()
    print(f"Phases: {plan.phases}")
    print(f"Critical path: {' -> '.join(plan.critical_path)}")

    try:
        context = await flow.run()
    except FlowExecutionError as exc:
        print(exc)
        return

    print("\n── Results ────────────────────────────────────")
    for name, output in context.items():
        print(f"  {name}: {dict(output)}")


if __name__ == "__main__":
    asyncio.run(main())
