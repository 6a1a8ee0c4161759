from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from sweepstakes.db.session import dispose_engine

T = TypeVar("T")


async def _run_job(awaitable: Awaitable[T], *, job_name: str | None) -> T:
    # Pooled asyncpg connections are bound to the loop that opened them.
    await dispose_engine()
    try:
        if job_name is None:
            return await awaitable
        with structlog.contextvars.bound_contextvars(job=job_name):
            return await awaitable
    finally:
        await dispose_engine()


def run_async_job(awaitable: Awaitable[T], *, job_name: str | None = None) -> T:
    """Runs a coroutine from a sync Celery task on a private event loop."""
    return asyncio.run(_run_job(awaitable, job_name=job_name))
