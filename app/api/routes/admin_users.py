from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.deps import get_identity, get_services
from app.api.errors import as_http_exception
from app.core.errors import StorefrontError
from app.db.repo.user_profiles_repo import UserProfilesRepo
from app.db.session import SessionLocal
from app.services.identity import Identity
from app.services.registry import ServiceRegistry
from app.store.access import AccessGate

router = APIRouter(prefix="/admin/users", tags=["admin-users"])
logger = structlog.get_logger(__name__)


class RoleUpdateRequest(BaseModel):
    role: Literal["user", "admin"]


class RoleUpdateResponse(BaseModel):
    clerk_id: str
    role: str
    profile_updated: bool


@router.put("/{clerk_id}/role", response_model=RoleUpdateResponse)
async def update_user_role(
    clerk_id: str,
    payload: RoleUpdateRequest,
    identity: Identity = Depends(get_identity),
    services: ServiceRegistry = Depends(get_services),
) -> RoleUpdateResponse:
    try:
        admin = AccessGate.require_admin(identity)
        if services.clerk_admin is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"code": "E_IDENTITY_PROVIDER_DISABLED"},
            )
        # The identity provider is the source of truth; the profile row mirrors it.
        await services.clerk_admin.update_role(clerk_id, payload.role)
        async with SessionLocal.begin() as session:
            profile_updated = await UserProfilesRepo.set_role(session, clerk_id=clerk_id, role=payload.role)
    except StorefrontError as exc:
        raise as_http_exception(exc) from exc

    logger.info(
        "admin_user_role_updated",
        admin_id=admin.subject,
        clerk_id=clerk_id,
        role=payload.role,
        profile_updated=profile_updated,
    )
    return RoleUpdateResponse(clerk_id=clerk_id, role=payload.role, profile_updated=profile_updated)
