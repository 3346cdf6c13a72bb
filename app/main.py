from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from app.api.errors import request_validation_handler, unhandled_error_handler
from app.api.routes.admin_catalog import router as admin_catalog_router
from app.api.routes.admin_users import router as admin_users_router
from app.api.routes.delivery import router as delivery_router
from app.api.routes.health import router as health_router
from app.api.routes.payment_webhook import router as payment_webhook_router
from app.api.routes.purchases import router as purchases_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import dispose_engine
from app.services.registry import build_service_registry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "services", None) is None:
        app.state.services = build_service_registry(get_settings())
    try:
        yield
    finally:
        services = getattr(app.state, "services", None)
        if services is not None:
            await services.aclose()
            app.state.services = None
        await dispose_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Music Storefront API",
        version="0.1.0",
        docs_url="/docs" if settings.enable_openapi_docs else None,
        redoc_url="/redoc" if settings.enable_openapi_docs else None,
        openapi_url="/openapi.json" if settings.enable_openapi_docs else None,
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(health_router)
    app.include_router(purchases_router)
    app.include_router(payment_webhook_router)
    app.include_router(delivery_router)
    app.include_router(admin_catalog_router)
    app.include_router(admin_users_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
