"""Reverse sync: Monday status-column changes applied to orders."""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..config import settings
from ..document_store import DocumentStore
from ..services.order_state import is_forward_move
from ..services.settings_store import get_monday_settings
from ..services.status_labels import extract_event_label, inbound_status
from ..services.webhook_log import MONDAY_WEBHOOK_LOGS, record_webhook_log
from .order_lifecycle import apply_external_status, find_order_by_monday_item

logger = logging.getLogger(__name__)

COLUMN_CHANGE_EVENT = "update_column_value"


@dataclass(frozen=True)
class ReverseSyncResponse:
    status_code: int
    body: dict[str, Any]


def challenge_echo(body: Any) -> Optional[dict[str, Any]]:
    """Subscription handshake body, echoed verbatim."""
    if isinstance(body, dict) and body.get("challenge"):
        return {"challenge": body["challenge"]}
    return None


def _secret_matches(authorization: Optional[str], secret: str) -> bool:
    provided = (authorization or "").strip()
    if provided.lower().startswith("bearer "):
        provided = provided[7:].strip()
    return hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8"))


def process_monday_event(
    *,
    store: DocumentStore,
    body: Any,
    authorization: Optional[str] = None,
) -> ReverseSyncResponse:
    """Validate, resolve and apply one webhook delivery. Ignored cases answer 200."""
    monday_settings = get_monday_settings(store)

    if monday_settings.monday_webhook_secret and not _secret_matches(
        authorization, monday_settings.monday_webhook_secret
    ):
        logger.warning("⚠️ Monday webhook: invalid secret")
        return ReverseSyncResponse(401, {"error": "Unauthorized"})

    if not monday_settings.enabled:
        return ReverseSyncResponse(200, {"message": "Monday integration is disabled"})

    event = body.get("event") if isinstance(body, dict) else None
    if not isinstance(event, dict):
        return ReverseSyncResponse(400, {"error": "No event in payload"})

    if event.get("type") != COLUMN_CHANGE_EVENT:
        return ReverseSyncResponse(200, {"message": f"Event type \"{event.get('type')}\" ignored"})

    label = extract_event_label(event.get("value"))
    if not label:
        logger.info("ℹ️ No status label found in Monday event, skipping")
        return ReverseSyncResponse(200, {"message": "No status label found, skipped"})

    item_id = str(event.get("pulseId"))
    system_status = inbound_status(label)
    if not system_status:
        logger.info(f"ℹ️ Unknown Monday label {label!r}, skipping")
        record_webhook_log(
            store,
            MONDAY_WEBHOOK_LOGS,
            payload=event,
            mondayItemId=item_id,
            newLabel=label,
            result="unknown_label",
        )
        return ReverseSyncResponse(200, {"message": f"Unknown label \"{label}\", skipped"})

    order = find_order_by_monday_item(store=store, item_id=item_id)
    if order is None:
        logger.info(f"ℹ️ No order found for Monday item ID: {item_id}")
        record_webhook_log(
            store,
            MONDAY_WEBHOOK_LOGS,
            payload=event,
            mondayItemId=item_id,
            newLabel=label,
            systemStatus=system_status,
            result="order_not_found",
        )
        return ReverseSyncResponse(200, {"message": "Order not found, skipped"})

    previous_status = order.get("status")
    if previous_status == system_status:
        logger.info(f"ℹ️ Order {order['id']} already has status {system_status!r}, skipping")
        return ReverseSyncResponse(200, {"message": "Status unchanged, skipped"})

    if settings.ENFORCE_FORWARD_STATUS and not is_forward_move(previous_status, system_status):
        logger.warning(f"⚠️ Ignoring backwards move of order {order['id']}: {previous_status} -> {system_status}")
        record_webhook_log(
            store,
            MONDAY_WEBHOOK_LOGS,
            payload=event,
            mondayItemId=item_id,
            orderId=order["id"],
            previousStatus=previous_status,
            newStatus=system_status,
            mondayLabel=label,
            result="regression_blocked",
        )
        return ReverseSyncResponse(200, {"message": "Backward status change ignored"})

    apply_external_status(store=store, order_id=order["id"], status=system_status)
    logger.info(
        f"✅ Order {order['id']} status updated: {previous_status!r} -> {system_status!r} "
        f"(from Monday item {item_id})"
    )
    record_webhook_log(
        store,
        MONDAY_WEBHOOK_LOGS,
        payload=event,
        mondayItemId=item_id,
        orderId=order["id"],
        previousStatus=previous_status,
        newStatus=system_status,
        mondayLabel=label,
        result="success",
    )
    return ReverseSyncResponse(
        200,
        {
            "success": True,
            "orderId": order["id"],
            "previousStatus": previous_status,
            "newStatus": system_status,
            "message": f"Order status updated to \"{system_status}\"",
        },
    )
