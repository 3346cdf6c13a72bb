import pytest

from app.workers.tasks import purchase_notifications


def test_send_purchase_confirmation_task_wrapper(monkeypatch) -> None:
    captured: dict[str, object] = {}

    async def fake_async(*, entitlement_id: str, outbox_event_id: int | None) -> str:
        captured["entitlement_id"] = entitlement_id
        captured["outbox_event_id"] = outbox_event_id
        return "sent"

    monkeypatch.setattr(purchase_notifications, "send_purchase_confirmation_async", fake_async)

    result = purchase_notifications.send_purchase_confirmation(
        entitlement_id="0b6f6a54-7a47-4a55-9d5e-4c1b2a7d0f11",
        outbox_event_id=3,
    )

    assert result == "sent"
    assert captured == {"entitlement_id": "0b6f6a54-7a47-4a55-9d5e-4c1b2a7d0f11", "outbox_event_id": 3}


def test_send_purchase_confirmation_failure_propagates_when_called_directly(monkeypatch) -> None:
    async def fake_async(*, entitlement_id: str, outbox_event_id: int | None) -> str:
        raise RuntimeError("mail provider down")

    monkeypatch.setattr(purchase_notifications, "send_purchase_confirmation_async", fake_async)

    with pytest.raises(RuntimeError):
        purchase_notifications.send_purchase_confirmation(entitlement_id="e-1")


def test_retry_backoff_grows_and_is_capped(monkeypatch) -> None:
    monkeypatch.setattr(purchase_notifications.random, "randint", lambda low, high: high)

    first = purchase_notifications._retry_backoff_seconds(next_retry_attempt=1, backoff_max_seconds=900)
    third = purchase_notifications._retry_backoff_seconds(next_retry_attempt=3, backoff_max_seconds=900)
    tenth = purchase_notifications._retry_backoff_seconds(next_retry_attempt=10, backoff_max_seconds=900)

    assert first == 37
    assert third == 150
    assert tenth == 900
