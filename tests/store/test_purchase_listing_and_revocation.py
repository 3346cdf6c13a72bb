from __future__ import annotations

from datetime import timedelta

import pytest

from app.db.models.entitlements import (
    ENTITLEMENT_STATUS_COMPLETED,
    ENTITLEMENT_STATUS_FAILED,
)
from app.store.access import AccessGate
from app.store.purchases.service import DEFAULT_REVOCATION_REASON, PurchaseService
from tests.store_fixtures import ADMIN, FAN, NOW, FakeSession


@pytest.mark.asyncio
async def test_listing_pages_newest_first_with_assets(store) -> None:
    songs = [store.add_song(title=f"Song {index}") for index in range(3)]
    for index, song in enumerate(songs):
        store.add_entitlement(
            user_id=FAN.subject,
            asset=song,
            status=ENTITLEMENT_STATUS_COMPLETED,
            created_at=NOW + timedelta(minutes=index),
        )
    store.add_entitlement(user_id="user_other", asset=songs[0], status=ENTITLEMENT_STATUS_COMPLETED)

    listing = await PurchaseService.list_user_purchases(
        FakeSession(),
        user_id=FAN.subject,
        status=None,
        asset_kind=None,
        page=1,
        limit=2,
    )

    assert listing.total == 3
    assert listing.pages == 2
    assert [asset.title for _, asset in listing.items] == ["Song 2", "Song 1"]


@pytest.mark.asyncio
async def test_listing_filters_by_status(store) -> None:
    song = store.add_song()
    store.add_entitlement(user_id=FAN.subject, asset=song, status=ENTITLEMENT_STATUS_FAILED)
    store.add_entitlement(user_id=FAN.subject, asset=song)

    listing = await PurchaseService.list_user_purchases(
        FakeSession(),
        user_id=FAN.subject,
        status="pending",
        asset_kind="song",
        page=1,
        limit=10,
    )

    assert listing.total == 1
    assert listing.items[0][0].status == "pending"


@pytest.mark.asyncio
async def test_revocation_removes_access(store) -> None:
    song = store.add_song()
    entitlement = store.add_entitlement(user_id=FAN.subject, asset=song, status=ENTITLEMENT_STATUS_COMPLETED)

    result = await PurchaseService.revoke_access(
        FakeSession(),
        admin_id=ADMIN.subject,
        target_user_id=FAN.subject,
        asset_id=song.id,
        reason="  ",
        now_utc=NOW,
    )

    assert result.modified_count == 1
    assert result.revoked_at == NOW
    assert entitlement.status == ENTITLEMENT_STATUS_FAILED
    assert entitlement.revoked_by == ADMIN.subject
    assert entitlement.revocation_reason == DEFAULT_REVOCATION_REASON
    assert await AccessGate.can_access(FakeSession(), user_id=FAN.subject, asset_id=song.id) is False


@pytest.mark.asyncio
async def test_revocation_without_completed_entitlement_modifies_nothing(store) -> None:
    song = store.add_song()
    store.add_entitlement(user_id=FAN.subject, asset=song)

    result = await PurchaseService.revoke_access(
        FakeSession(),
        admin_id=ADMIN.subject,
        target_user_id=FAN.subject,
        asset_id=song.id,
        reason="chargeback",
        now_utc=NOW,
    )

    assert result.modified_count == 0
