"""Example: declaring a flow with decorators and handling a partial failure."""

import asyncio

from flowmanager import FlowExecutionError
from flowmanager.decorators import flow, task


@task()
async def fetch_users(context) -> list[str]:
    return ["alice", "bob"]


@task()
async def fetch_scores(context) -> dict[str, int]:
    raise ConnectionError("scores service unavailable")


@task(depends_on=["fetch_users", "fetch_scores"])
def merge(context) -> dict[str, int]:
    return {user: context["fetch_scores"][user] for user in context["fetch_users"]}


@task(depends_on=["fetch_users"])
def audit(context) -> str:
    return f"{len(context['fetch_users'])} users fetched"


@flow(name="scoreboard", timeout=2_000)
def scoreboard():
    return [fetch_users, fetch_scores, merge, audit]


async def main() -> None:
    try:
        await scoreboard().run()
    except FlowExecutionError as exc:
        print(exc)
        print(f"Still available: {exc.context['audit']}")


if __name__ == "__main__":
    asyncio.run(main())
