"""Monday integration settings kept as the ``settings/monday_integration`` document."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..document_store import DocumentStore
from .order_state import utcnow_iso

SETTINGS_COLLECTION = "settings"
MONDAY_SETTINGS_ID = "monday_integration"


@dataclass(frozen=True)
class MondaySettings:
    enabled: bool = False
    api_token: str = ""
    design_board_id: str = ""
    production_board_id: str = ""
    auto_sync: bool = True
    monday_webhook_secret: Optional[str] = None
    last_sync: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Optional[dict[str, Any]]) -> "MondaySettings":
        if not doc:
            return cls()
        return cls(
            enabled=bool(doc.get("enabled", False)),
            api_token=doc.get("apiToken") or "",
            design_board_id=str(doc.get("designBoardId") or ""),
            production_board_id=str(doc.get("productionBoardId") or ""),
            auto_sync=bool(doc.get("autoSync", True)),
            monday_webhook_secret=doc.get("mondayWebhookSecret") or None,
            last_sync=doc.get("lastSync"),
            updated_at=doc.get("updatedAt"),
            updated_by=doc.get("updatedBy"),
        )

    def board_for(self, kind: str) -> str:
        return self.design_board_id if kind == "design" else self.production_board_id

    def to_public_dict(self) -> dict[str, Any]:
        """Admin view; the token is masked."""
        token = self.api_token
        return {
            "enabled": self.enabled,
            "apiToken": f"{token[:4]}…{token[-4:]}" if len(token) > 8 else ("set" if token else ""),
            "designBoardId": self.design_board_id,
            "productionBoardId": self.production_board_id,
            "autoSync": self.auto_sync,
            "mondayWebhookSecretConfigured": bool(self.monday_webhook_secret),
            "lastSync": self.last_sync,
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
        }


def get_monday_settings(store: DocumentStore) -> MondaySettings:
    """Read the current settings document (never cached across calls)."""
    return MondaySettings.from_document(store.get(SETTINGS_COLLECTION, MONDAY_SETTINGS_ID))


def save_monday_settings(store: DocumentStore, changes: dict[str, Any], *, user_id: str) -> MondaySettings:
    """Merge admin changes into the settings document; last write wins."""
    patch = {key: value for key, value in changes.items() if value is not None}
    patch["updatedAt"] = utcnow_iso()
    patch["updatedBy"] = user_id
    store.set(SETTINGS_COLLECTION, MONDAY_SETTINGS_ID, patch, merge=True)
    return get_monday_settings(store)


def mark_last_sync(store: DocumentStore) -> None:
    store.set(SETTINGS_COLLECTION, MONDAY_SETTINGS_ID, {"lastSync": utcnow_iso()}, merge=True)
