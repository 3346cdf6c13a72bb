from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, Request, status

from app.api.errors import as_http_exception
from app.core.config import get_settings
from app.core.errors import AuthenticationRequiredError
from app.services.identity import Identity
from app.services.registry import ServiceRegistry, build_service_registry

logger = structlog.get_logger(__name__)
SESSION_COOKIE = "__session"


def get_services(request: Request) -> ServiceRegistry:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_service_registry(get_settings())
        request.app.state.services = services
    return services


def _extract_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    cookie_token = request.cookies.get(SESSION_COOKIE)
    return cookie_token or None


async def get_optional_identity(
    request: Request,
    services: ServiceRegistry = Depends(get_services),
) -> Identity | None:
    token = _extract_token(request)
    if token is None:
        return None
    if services.token_verifier is None:
        logger.warning("identity_verifier_missing_for_request", path=request.url.path)
        return None
    try:
        return await services.token_verifier.verify(token)
    except AuthenticationRequiredError as exc:
        raise as_http_exception(exc) from exc


async def get_identity(identity: Identity | None = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "E_AUTH_REQUIRED", "message": "sign in required"},
        )
    return identity
