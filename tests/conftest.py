from __future__ import annotations

import pytest

from app.core.config import get_settings
from app.services.registry import ServiceRegistry
from tests.store_fixtures import MemoryStore, build_registry


@pytest.fixture
def store(monkeypatch) -> MemoryStore:
    memory = MemoryStore()
    memory.install(monkeypatch)
    return memory


@pytest.fixture
def services() -> ServiceRegistry:
    return build_registry()


@pytest.fixture
def settings():
    return get_settings().model_copy(
        update={
            "paystack_secret_key": "sk_test_webhook",
            "admin_notification_email": None,
            "completion_notify_sources": "webhook,client_verify,reconciliation",
        }
    )
