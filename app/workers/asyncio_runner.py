from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.core.config import get_settings
from app.db.session import dispose_engine
from app.services.registry import ServiceRegistry, build_service_registry

T = TypeVar("T")


async def _run_with_fresh_db_pool(awaitable: Awaitable[T]) -> T:
    await dispose_engine()
    try:
        return await awaitable
    finally:
        await dispose_engine()


def run_async_job(awaitable: Awaitable[T]) -> T:
    return asyncio.run(_run_with_fresh_db_pool(awaitable))


async def with_services(job: Callable[[ServiceRegistry], Awaitable[T]]) -> T:
    services = build_service_registry(get_settings())
    try:
        return await job(services)
    finally:
        await services.aclose()
