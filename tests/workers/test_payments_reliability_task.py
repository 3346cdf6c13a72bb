from datetime import datetime, timedelta, timezone

import pytest

from app.db.models.entitlements import (
    ENTITLEMENT_STATUS_COMPLETED,
    ENTITLEMENT_STATUS_FAILED,
    ENTITLEMENT_STATUS_PENDING,
)
from app.db.models.outbox_events import OUTBOX_STATUS_FAILED
from app.store.purchases.service import PURCHASE_COMPLETED_EVENT
from app.workers.tasks import payments_reliability
from tests.store_fixtures import StubTask, build_registry

LONG_AGO = datetime(2020, 1, 1, tzinfo=timezone.utc)


def test_reconcile_pending_entitlements_task_wrapper(monkeypatch) -> None:
    registry = build_registry()
    captured: dict[str, object] = {}

    async def fake_with_services(job):
        return await job(registry)

    async def fake_async(services, *, batch_size: int) -> dict[str, int]:
        captured["services"] = services
        return {"examined": batch_size, "completed": 0, "failed": 0, "still_pending": 0, "skipped": 0}

    monkeypatch.setattr(payments_reliability, "with_services", fake_with_services)
    monkeypatch.setattr(payments_reliability, "reconcile_pending_entitlements_async", fake_async)

    result = payments_reliability.reconcile_pending_entitlements(batch_size=7)

    assert result["examined"] == 7
    assert captured["services"] is registry


def test_relay_pending_outbox_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, stale_minutes: int, batch_size: int) -> dict[str, int]:
        return {"pending": batch_size, "relayed": stale_minutes}

    monkeypatch.setattr(payments_reliability, "relay_pending_outbox_async", fake_async)

    result = payments_reliability.relay_pending_outbox(stale_minutes=4, batch_size=9)
    assert result == {"pending": 9, "relayed": 4}


def test_beat_schedule_registers_reliability_jobs() -> None:
    schedule = payments_reliability.celery_app.conf.beat_schedule
    tasks = {entry["task"] for entry in schedule.values()}
    assert "app.workers.tasks.payments_reliability.reconcile_pending_entitlements" in tasks
    assert "app.workers.tasks.payments_reliability.relay_pending_outbox" in tasks


def test_confirmation_emails_route_to_their_own_queue() -> None:
    routes = payments_reliability.celery_app.conf.task_routes

    assert routes["app.workers.tasks.purchase_notifications.*"] == {"queue": "q_notifications"}
    assert routes["app.workers.tasks.payments_reliability.*"] == {"queue": "q_normal"}
    schedule = payments_reliability.celery_app.conf.beat_schedule
    assert {entry["options"]["queue"] for entry in schedule.values()} == {"q_normal"}


@pytest.mark.asyncio
async def test_reconcile_completes_paid_and_expires_abandoned(store, monkeypatch) -> None:
    task = StubTask()
    monkeypatch.setattr(payments_reliability, "send_purchase_confirmation", task)
    registry = build_registry()
    paid = store.add_entitlement(user_id="user_fan", asset=store.add_song(), created_at=LONG_AGO)
    abandoned = store.add_entitlement(
        user_id="user_other",
        asset=store.add_song(title="Other"),
        created_at=LONG_AGO,
    )
    registry.gateway.succeed(paid)

    result = await payments_reliability.reconcile_pending_entitlements_async(registry)

    assert result["examined"] == 2
    assert result["completed"] == 1
    assert result["failed"] == 1
    assert paid.status == ENTITLEMENT_STATUS_COMPLETED
    assert paid.completed_via == "reconciliation"
    assert abandoned.status == ENTITLEMENT_STATUS_FAILED
    assert [call["entitlement_id"] for call in task.calls] == [str(paid.id)]


@pytest.mark.asyncio
async def test_stuck_rows_do_not_starve_newer_pending_rows(store, monkeypatch) -> None:
    task = StubTask()
    monkeypatch.setattr(payments_reliability, "send_purchase_confirmation", task)
    registry = build_registry()
    started = datetime.now(timezone.utc) - timedelta(hours=2)
    stuck = [
        store.add_entitlement(
            user_id=f"user_stuck_{index}",
            asset=store.add_song(title=f"Stuck {index}"),
            created_at=started + timedelta(minutes=index),
        )
        for index in range(3)
    ]
    for entitlement in stuck:
        registry.gateway.settle(entitlement, status="abandoned")
    newer = store.add_entitlement(
        user_id="user_fan",
        asset=store.add_song(title="Newer"),
        created_at=started + timedelta(minutes=30),
    )
    registry.gateway.succeed(newer)

    first = await payments_reliability.reconcile_pending_entitlements_async(registry, batch_size=2)
    second = await payments_reliability.reconcile_pending_entitlements_async(registry, batch_size=2)

    assert first["still_pending"] == 2
    assert all(item.last_reconciled_at is not None for item in stuck[:2])
    assert second["completed"] == 1
    assert newer.status == ENTITLEMENT_STATUS_COMPLETED
    assert stuck[2].last_reconciled_at is not None
    assert {item.status for item in stuck} == {ENTITLEMENT_STATUS_PENDING}
    assert [call["entitlement_id"] for call in task.calls] == [str(newer.id)]


@pytest.mark.asyncio
async def test_relay_pending_outbox_enqueues_and_abandons(store, monkeypatch) -> None:
    task = StubTask()
    monkeypatch.setattr(payments_reliability, "send_purchase_confirmation", task)
    fresh = store.add_outbox_event(
        event_type=PURCHASE_COMPLETED_EVENT,
        payload={"entitlement_id": "0b6f6a54-7a47-4a55-9d5e-4c1b2a7d0f11"},
        created_at=LONG_AGO,
    )
    exhausted = store.add_outbox_event(
        event_type=PURCHASE_COMPLETED_EVENT,
        payload={"entitlement_id": "5d7d1c1e-2f0a-4c39-8d39-0e4c8f6a1b22"},
        created_at=LONG_AGO,
    )
    exhausted.attempts = payments_reliability.OUTBOX_MAX_RELAY_ATTEMPTS - 1

    result = await payments_reliability.relay_pending_outbox_async(stale_minutes=10)

    assert result == {"pending": 2, "relayed": 1}
    assert task.calls == [
        {"entitlement_id": "0b6f6a54-7a47-4a55-9d5e-4c1b2a7d0f11", "outbox_event_id": fresh.id},
    ]
    assert fresh.attempts == 1
    assert exhausted.status == OUTBOX_STATUS_FAILED


@pytest.mark.asyncio
async def test_relay_survives_broker_failure(store, monkeypatch) -> None:
    class _BrokenTask:
        def delay(self, **kwargs: object) -> None:
            raise ConnectionError("broker down")

    monkeypatch.setattr(payments_reliability, "send_purchase_confirmation", _BrokenTask())
    store.add_outbox_event(
        event_type=PURCHASE_COMPLETED_EVENT,
        payload={"entitlement_id": "0b6f6a54-7a47-4a55-9d5e-4c1b2a7d0f11"},
        created_at=LONG_AGO,
    )

    result = await payments_reliability.relay_pending_outbox_async()

    assert result == {"pending": 1, "relayed": 0}
