"""Append-only audit records of inbound webhook calls."""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from ..document_store import DocumentStore
from .order_state import utcnow_iso

logger = logging.getLogger(__name__)

WEBHOOK_LOGS = "webhook_logs"
MONDAY_WEBHOOK_LOGS = "monday_webhook_logs"


def payload_digest(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def record_webhook_log(store: DocumentStore, collection: str, *, payload: Any, **fields: Any) -> str:
    entry = {key: value for key, value in fields.items() if value is not None}
    entry["timestamp"] = utcnow_iso()
    entry["payloadDigest"] = payload_digest(payload)
    entry["rawData"] = payload
    return store.add(collection, entry)


def record_error_log(store: DocumentStore, collection: str, *, payload: Any, error: Exception) -> None:
    """Best-effort error entry; a failure here is logged and swallowed."""
    try:
        record_webhook_log(
            store,
            collection,
            payload=payload,
            status="error",
            result="error",
            error=str(error),
            errorType=type(error).__name__,
        )
    except Exception as log_error:
        logger.error(f"❌ Failed to log webhook error: {log_error}")
