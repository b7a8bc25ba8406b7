from __future__ import annotations

from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from preorder.core.config import get_settings
from preorder.services.notifications import reset_notification_service
from preorder.stores import reset_order_store

KITCHEN_PASSWORD = "test-password"


def _reset_caches() -> None:
    get_settings.cache_clear()
    reset_order_store()
    reset_notification_service()


@pytest.fixture()
def sqlite_url(tmp_path) -> str:
    # a file, not :memory:, so concurrent connections share one database
    return f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"


@pytest.fixture()
def settings_env(monkeypatch: pytest.MonkeyPatch, sqlite_url: str) -> Iterator[None]:
    monkeypatch.setenv("ENV_MODE", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("ORDER_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_URL", sqlite_url)
    monkeypatch.setenv("KITCHEN_PASSWORD", KITCHEN_PASSWORD)
    monkeypatch.setenv("SESSION_SECRET", "test-secret")
    monkeypatch.setenv("MOCK_SMS_FAILURE_RATE", "0")
    monkeypatch.setenv("SHOP_TIMEZONE", "America/New_York")
    _reset_caches()
    yield
    _reset_caches()


@pytest.fixture()
def client(settings_env: None) -> Iterator[TestClient]:
    from preorder.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def kitchen(client: TestClient) -> TestClient:
    """Client holding a valid kitchen session cookie."""
    response = client.post("/api/manage/login", json={"password": KITCHEN_PASSWORD})
    assert response.status_code == 200
    return client


def order_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Jane Doe",
        "building_room": "Lafayette 214",
        "day": "Saturday",
        "slot": "10:00-10:30",
        "item": "bagel",
        "options": {"spread": "Cream Cheese", "hashbrown": True},
        "notes": "Toasted please",
        "phone": "(555) 123-4567",
        "payment_ready": True,
    }
    payload.update(overrides)
    return payload
