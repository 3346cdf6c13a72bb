from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_services
from app.api.routes import purchase_notifications_queue
from app.main import app
from app.services.registry import ServiceRegistry
from tests.store_fixtures import MemoryStore, StubTask, build_registry

FAN_HEADERS = {"Authorization": "Bearer fan-token"}
ADMIN_HEADERS = {"Authorization": "Bearer admin-token"}


@dataclass
class ApiHarness:
    client: TestClient
    store: MemoryStore
    services: ServiceRegistry
    confirmations: StubTask


@pytest.fixture
def api(store, monkeypatch) -> ApiHarness:
    registry = build_registry()
    confirmations = StubTask()
    monkeypatch.setattr(purchase_notifications_queue, "send_purchase_confirmation", confirmations)
    app.dependency_overrides[get_services] = lambda: registry
    try:
        yield ApiHarness(client=TestClient(app), store=store, services=registry, confirmations=confirmations)
    finally:
        app.dependency_overrides.clear()
