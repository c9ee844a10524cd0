from __future__ import annotations

import os
import time
from datetime import timedelta

# Settings are read once at import time.
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["WEBHOOK_API_KEY"] = "test-intake-key"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["ENV"] = "test"

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from printflow.config import settings
from printflow.document_store import create_document_store, set_document_store
from printflow.services.settings_store import MONDAY_SETTINGS_ID, SETTINGS_COLLECTION


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Mint a token the way the identity provider does."""
    now = int(time.time())
    lifetime = expires_delta or timedelta(hours=1)
    claims = {**data, "exp": now + int(lifetime.total_seconds()), "iat": now, "type": "access"}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


class FakeMondayClient:
    """Records calls instead of talking to Monday.com."""

    instances: list["FakeMondayClient"] = []

    def __init__(self, api_token: str, *, fail_with: Exception | None = None):
        self.api_token = api_token
        self.fail_with = fail_with
        self.created: list[tuple[str, str, dict]] = []
        self.status_updates: list[tuple[str, str, str]] = []
        self.notes: list[tuple[str, str]] = []
        self._next_id = 1000 + len(FakeMondayClient.instances) * 100
        FakeMondayClient.instances.append(self)

    def create_item(self, board_id, item_name, column_values):
        if self.fail_with:
            raise self.fail_with
        self._next_id += 1
        self.created.append((board_id, item_name, column_values))
        return str(self._next_id)

    def update_status(self, item_id, board_id, label):
        if self.fail_with:
            raise self.fail_with
        self.status_updates.append((item_id, board_id, label))

    def create_update(self, item_id, body):
        if self.fail_with:
            raise self.fail_with
        self.notes.append((item_id, body))
        return "note-1"

    def test_connection(self, board_ids=None):
        if self.fail_with:
            raise self.fail_with
        return {"user": {"name": "Probe"}, "boards": [{"id": b, "name": f"Board {b}"} for b in board_ids or []]}


@pytest.fixture(autouse=True)
def store(tmp_path):
    document_store = create_document_store(f"sqlite:///{tmp_path / 'printflow.db'}", create_schema=True)
    set_document_store(document_store)
    FakeMondayClient.instances = []
    yield document_store
    set_document_store(None)


@pytest.fixture
def monday_settings(store):
    """Enable the integration with both default boards configured."""

    def _configure(**overrides):
        doc = {
            "enabled": True,
            "apiToken": "token-123",
            "designBoardId": "111",
            "productionBoardId": "222",
        }
        doc.update(overrides)
        store.set(SETTINGS_COLLECTION, MONDAY_SETTINGS_ID, doc)
        return doc

    return _configure


@pytest.fixture
def fake_monday(monkeypatch):
    """Route every Monday client built by the sync layer to FakeMondayClient."""
    from printflow.use_cases import monday_sync

    monkeypatch.setattr(monday_sync, "MondayClient", FakeMondayClient)
    return FakeMondayClient


@pytest.fixture
def client():
    from printflow.main import app

    return TestClient(app)


def auth_headers(role: str, user_id: str | None = None, name: str | None = None) -> dict[str, str]:
    token = create_access_token({"sub": user_id or f"{role}-user", "role": role, "name": name or role.title()})
    return {"Authorization": f"Bearer {token}"}


def order_payload(**overrides) -> dict:
    payload = {
        "orderNumber": "ORD-1001",
        "productType": "ribbons",
        "productConfig": {"ribbon_type": "satin", "ribbon_size": "normal", "ribbon_color": "white"},
        "quantity": 50,
        "deliveryDate": "2026-11-01",
        "salesNotes": "Gold foil",
    }
    payload.update(overrides)
    return payload


def add_linked_order(store, status: str = "pending-design", **fields) -> str:
    """Store an order that already has a design-board item 4242."""
    doc = {
        "orderNumber": "ORD-88",
        "productType": "ribbons",
        "quantity": 5,
        "deliveryDate": "2026-11-01",
        "status": status,
        "createdAt": "2026-10-01T10:00:00+00:00",
        "mondayItemId": "4242",
        "mondayBoardId": "111",
    }
    doc.update(fields)
    return store.add("orders", doc)


def monday_status_event(label: str, item_id: str = "4242", event_type: str = "update_column_value") -> dict:
    return {
        "event": {
            "type": event_type,
            "pulseId": int(item_id),
            "boardId": 111,
            "columnId": "status",
            "value": {"label": {"index": 1, "text": label}},
            "previousValue": {"label": {"index": 0, "text": "New جديد"}},
        }
    }


def salla_payload(**data_overrides) -> dict:
    data = {
        "id": 987,
        "reference_id": "R-55",
        "draft": False,
        "status": {"slug": "under-review", "name": "Under review"},
        "items": [
            {"name": "Satin ribbon", "sku": "RB-1", "quantity": "3", "price": 10},
            {"name": "Gift card", "sku": "GC", "quantity": 2, "price": 5},
        ],
        "date": {"date": "2026-10-01 12:00:00.000000", "timezone": "Asia/Riyadh"},
        "customer": {"first_name": "Sara", "last_name": "Ali", "mobile": "+966500000000", "email": "s@example.com"},
        "amounts": {"total": {"amount": 120, "currency": "SAR"}},
        "payment_method": "mada",
    }
    data.update(data_overrides)
    return {"event": "order.created", "merchant": 1234, "created_at": "2026-10-01", "data": data}


def generic_payload(**overrides) -> dict:
    body = {
        "order_id": "5001",
        "product_type": "belts",
        "quantity": "10",
        "delivery_date": "2026-11-20",
        "notes": "Leave at reception",
    }
    body.update(overrides)
    return body
