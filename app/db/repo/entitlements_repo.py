from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.assets import ASSET_KIND_ALBUM, ASSET_KIND_SONG
from app.db.models.entitlements import (
    ENTITLEMENT_STATUS_COMPLETED,
    ENTITLEMENT_STATUS_FAILED,
    ENTITLEMENT_STATUS_PENDING,
    Entitlement,
)


class EntitlementsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, entitlement_id: UUID) -> Entitlement | None:
        return await session.get(Entitlement, entitlement_id)

    @staticmethod
    async def get_by_reference(session: AsyncSession, payment_reference: str) -> Entitlement | None:
        stmt = select(Entitlement).where(Entitlement.payment_reference == payment_reference)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def has_completed_for_asset(
        session: AsyncSession,
        *,
        user_id: str,
        asset_id: UUID,
    ) -> bool:
        stmt = select(Entitlement.id).where(
            Entitlement.user_id == user_id,
            Entitlement.asset_id == asset_id,
            Entitlement.status == ENTITLEMENT_STATUS_COMPLETED,
        )
        result = await session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def has_access(
        session: AsyncSession,
        *,
        user_id: str,
        song_id: UUID | None,
        album_id: UUID | None,
    ) -> bool:
        clauses = []
        if song_id is not None:
            clauses.append(
                and_(Entitlement.asset_id == song_id, Entitlement.asset_kind == ASSET_KIND_SONG)
            )
        if album_id is not None:
            clauses.append(
                and_(Entitlement.asset_id == album_id, Entitlement.asset_kind == ASSET_KIND_ALBUM)
            )
        if not clauses:
            return False

        stmt = (
            select(Entitlement.id)
            .where(
                Entitlement.user_id == user_id,
                Entitlement.status == ENTITLEMENT_STATUS_COMPLETED,
                or_(*clauses),
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_for_user(
        session: AsyncSession,
        *,
        user_id: str,
        status: str | None,
        asset_kind: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Entitlement], int]:
        filters = [Entitlement.user_id == user_id]
        if status is not None:
            filters.append(Entitlement.status == status)
        if asset_kind is not None:
            filters.append(Entitlement.asset_kind == asset_kind)

        total_stmt = select(func.count(Entitlement.id)).where(*filters)
        total = int((await session.execute(total_stmt)).scalar_one() or 0)

        stmt = (
            select(Entitlement)
            .where(*filters)
            .order_by(Entitlement.created_at.desc(), Entitlement.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    @staticmethod
    async def list_pending_older_than(
        session: AsyncSession,
        *,
        older_than_utc: datetime,
        limit: int = 100,
    ) -> list[Entitlement]:
        stmt = (
            select(Entitlement)
            .where(
                Entitlement.status == ENTITLEMENT_STATUS_PENDING,
                Entitlement.created_at <= older_than_utc,
            )
            # Rows never checked come first, then the ones checked longest ago.
            .order_by(Entitlement.last_reconciled_at.asc().nulls_first(), Entitlement.created_at.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def create(session: AsyncSession, *, entitlement: Entitlement) -> Entitlement:
        session.add(entitlement)
        await session.flush()
        return entitlement

    @staticmethod
    async def delete_pending(session: AsyncSession, entitlement_id: UUID) -> bool:
        stmt = (
            delete(Entitlement)
            .where(
                Entitlement.id == entitlement_id,
                Entitlement.status == ENTITLEMENT_STATUS_PENDING,
            )
            .returning(Entitlement.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_mark_completed(
        session: AsyncSession,
        *,
        entitlement_id: UUID,
        completed_via: str,
        now_utc: datetime,
    ) -> Entitlement | None:
        """Moves a pending row to completed; returns None when another path won."""
        stmt = (
            update(Entitlement)
            .where(
                Entitlement.id == entitlement_id,
                Entitlement.status == ENTITLEMENT_STATUS_PENDING,
            )
            .values(
                status=ENTITLEMENT_STATUS_COMPLETED,
                completed_via=completed_via,
                purchased_at=now_utc,
                updated_at=now_utc,
            )
            .returning(Entitlement)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def try_mark_failed(
        session: AsyncSession,
        *,
        entitlement_id: UUID,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(Entitlement)
            .where(
                Entitlement.id == entitlement_id,
                Entitlement.status == ENTITLEMENT_STATUS_PENDING,
            )
            .values(status=ENTITLEMENT_STATUS_FAILED, updated_at=now_utc)
            .returning(Entitlement.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def touch_reconciled(
        session: AsyncSession,
        *,
        entitlement_id: UUID,
        now_utc: datetime,
    ) -> None:
        stmt = (
            update(Entitlement)
            .where(
                Entitlement.id == entitlement_id,
                Entitlement.status == ENTITLEMENT_STATUS_PENDING,
            )
            .values(last_reconciled_at=now_utc)
        )
        await session.execute(stmt)

    @staticmethod
    async def revoke_completed(
        session: AsyncSession,
        *,
        user_id: str,
        asset_id: UUID,
        revoked_by: str,
        reason: str,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(Entitlement)
            .where(
                Entitlement.user_id == user_id,
                Entitlement.asset_id == asset_id,
                Entitlement.status == ENTITLEMENT_STATUS_COMPLETED,
            )
            .values(
                status=ENTITLEMENT_STATUS_FAILED,
                revoked_at=now_utc,
                revoked_by=revoked_by,
                revocation_reason=reason,
                updated_at=now_utc,
            )
            .returning(Entitlement.id)
        )
        result = await session.execute(stmt)
        return len(list(result.scalars()))

    @staticmethod
    async def try_claim_notification(session: AsyncSession, *, entitlement_id: UUID) -> bool:
        stmt = (
            update(Entitlement)
            .where(
                Entitlement.id == entitlement_id,
                Entitlement.status == ENTITLEMENT_STATUS_COMPLETED,
                Entitlement.notification_sent.is_(False),
            )
            .values(notification_sent=True)
            .returning(Entitlement.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def release_notification_claim(session: AsyncSession, *, entitlement_id: UUID) -> None:
        stmt = (
            update(Entitlement)
            .where(Entitlement.id == entitlement_id)
            .values(notification_sent=False)
        )
        await session.execute(stmt)
