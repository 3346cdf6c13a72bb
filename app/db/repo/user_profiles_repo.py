from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user_profiles import UserProfile


class UserProfilesRepo:
    @staticmethod
    async def get_by_clerk_id(session: AsyncSession, clerk_id: str) -> UserProfile | None:
        stmt = select(UserProfile).where(UserProfile.clerk_id == clerk_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_exists(
        session: AsyncSession,
        *,
        clerk_id: str,
        email: str | None,
        first_name: str | None,
        last_name: str | None,
        role: str,
        now_utc: datetime,
    ) -> bool:
        """Inserts the profile if missing; returns True when a row was created."""
        stmt = (
            postgresql_insert(UserProfile)
            .values(
                clerk_id=clerk_id,
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=role,
                created_at=now_utc,
                last_seen_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[UserProfile.clerk_id])
            .returning(UserProfile.id)
        )
        result = await session.execute(stmt)
        created = result.scalar_one_or_none() is not None
        if not created:
            await session.execute(
                update(UserProfile)
                .where(UserProfile.clerk_id == clerk_id)
                .values(last_seen_at=now_utc)
            )
        return created

    @staticmethod
    async def append_entitlement(
        session: AsyncSession,
        *,
        clerk_id: str,
        entitlement_id: UUID,
    ) -> bool:
        stmt = (
            update(UserProfile)
            .where(
                UserProfile.clerk_id == clerk_id,
                ~UserProfile.entitlement_ids.any(entitlement_id),
            )
            .values(entitlement_ids=func.array_append(UserProfile.entitlement_ids, entitlement_id))
            .returning(UserProfile.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_role(session: AsyncSession, *, clerk_id: str, role: str) -> bool:
        stmt = (
            update(UserProfile)
            .where(UserProfile.clerk_id == clerk_id)
            .values(role=role)
            .returning(UserProfile.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
