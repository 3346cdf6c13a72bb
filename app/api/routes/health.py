from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.api.deps import get_services
from app.core.config import get_settings
from app.db.session import SessionLocal
from app.services.registry import ServiceRegistry
from app.services.storage import StorageError
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

Check = dict[str, Any]


def _failed(error: str) -> Check:
    return {"status": "failed", "error": error}


async def _check_database() -> Check:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        # Driver messages can carry connection strings.
        logger.warning("health_database_check_failed", error_type=type(exc).__name__)
        return _failed("database_unavailable")
    return {"status": "ok"}


async def _check_redis() -> Check:
    client: Redis | None = None
    try:
        client = Redis.from_url(get_settings().redis_url)
        if await client.ping() is not True:
            return _failed("unexpected_redis_ping_response")
    except Exception as exc:
        logger.warning("health_redis_check_failed", error_type=type(exc).__name__)
        return _failed("redis_unavailable")
    finally:
        if client is not None:
            await client.aclose()
    return {"status": "ok"}


async def _check_storage(services: ServiceRegistry) -> Check:
    try:
        await services.storage.check_bucket()
    except StorageError:
        logger.warning("health_storage_check_failed", bucket=services.storage.bucket)
        return _failed("storage_unavailable")
    return {"status": "ok"}


def _check_celery_worker_sync() -> Check:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception as exc:
        logger.warning("health_celery_check_failed", error_type=type(exc).__name__)
        return _failed("celery_unavailable")
    if not replies:
        return _failed("no_celery_workers")
    return {"status": "ok", "workers": len(replies)}


async def _check_celery_worker() -> Check:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _report(
    checks: dict[str, Awaitable[Check]],
    *,
    ok_label: str,
    failed_label: str,
) -> JSONResponse:
    results = dict(zip(checks, await asyncio.gather(*checks.values()), strict=True))
    passed = all(result.get("status") == "ok" for result in results.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if passed else failed_label, "checks": results},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health(services: ServiceRegistry = Depends(get_services)) -> JSONResponse:
    return await _report(
        {
            "database": _check_database(),
            "redis": _check_redis(),
            "storage": _check_storage(services),
            "celery": _check_celery_worker(),
        },
        ok_label="ok",
        failed_label="degraded",
    )


@router.get("/ready")
async def ready(services: ServiceRegistry = Depends(get_services)) -> JSONResponse:
    # Purchases keep working without a worker; notifications are relayed later.
    return await _report(
        {
            "database": _check_database(),
            "redis": _check_redis(),
            "storage": _check_storage(services),
        },
        ok_label="ready",
        failed_label="not_ready",
    )
