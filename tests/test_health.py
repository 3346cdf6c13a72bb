from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_services
from app.api.routes import health as health_routes
from app.main import app
from app.services.storage import StorageError


async def _ok() -> dict[str, str]:
    return {"status": "ok"}


async def _ok_storage(services) -> dict[str, str]:
    return {"status": "ok"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(health_routes, "_check_database", _ok)
    monkeypatch.setattr(health_routes, "_check_redis", _ok)
    monkeypatch.setattr(health_routes, "_check_storage", _ok_storage)
    monkeypatch.setattr(health_routes, "_check_celery_worker", _ok)
    app.dependency_overrides[get_services] = lambda: SimpleNamespace()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_live_needs_no_dependencies() -> None:
    response = TestClient(app).get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_reports_every_dependency(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
            "storage": {"status": "ok"},
            "celery": {"status": "ok"},
        },
    }


def test_health_degrades_when_storage_unreachable(client, monkeypatch) -> None:
    async def _storage_down(services) -> dict[str, str]:
        return {"status": "failed", "error": "storage_unavailable"}

    monkeypatch.setattr(health_routes, "_check_storage", _storage_down)

    response = client.get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["storage"] == {"status": "failed", "error": "storage_unavailable"}


def test_ready_ignores_celery_but_not_storage(client, monkeypatch) -> None:
    async def _worker_down() -> dict[str, str]:
        return {"status": "failed", "error": "no_celery_workers"}

    monkeypatch.setattr(health_routes, "_check_celery_worker", _worker_down)
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
            "storage": {"status": "ok"},
        },
    }

    async def _storage_down(services) -> dict[str, str]:
        return {"status": "failed", "error": "storage_unavailable"}

    monkeypatch.setattr(health_routes, "_check_storage", _storage_down)
    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


async def test_storage_check_hides_bucket_errors() -> None:
    class _Storage:
        bucket = "music"

        async def check_bucket(self) -> None:
            raise StorageError("bucket music is unreachable")

    result = await health_routes._check_storage(SimpleNamespace(storage=_Storage()))
    assert result == {"status": "failed", "error": "storage_unavailable"}


async def test_database_check_hides_driver_message(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    assert await health_routes._check_database() == {"status": "failed", "error": "database_unavailable"}


def test_celery_check_counts_ping_replies(monkeypatch) -> None:
    class _Inspector:
        def ping(self) -> dict[str, dict[str, str]]:
            return {"worker@a": {"ok": "pong"}, "worker@b": {"ok": "pong"}}

    class _Control:
        def inspect(self, timeout: float):
            return _Inspector()

    monkeypatch.setattr(health_routes.celery_app, "control", _Control())
    assert health_routes._check_celery_worker_sync() == {"status": "ok", "workers": 2}

    class _BrokenControl:
        def inspect(self, timeout: float):
            raise RuntimeError("broker-url=redis://secret")

    monkeypatch.setattr(health_routes.celery_app, "control", _BrokenControl())
    assert health_routes._check_celery_worker_sync() == {"status": "failed", "error": "celery_unavailable"}
