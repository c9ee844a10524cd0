"""Order lifecycle use-cases: creation, design, production and queries.

Each mutation persists first and only then enqueues the outbound Monday sync,
so order state never depends on the tracker being reachable.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..celery_app import enqueue, push_order_status_to_monday, sync_order_to_monday
from ..config import settings
from ..document_store import DocumentStore, Unsubscribe
from ..domain_errors import DomainError
from ..services.order_state import (
    COMPLETED,
    PENDING_DESIGN,
    PENDING_PRODUCTION,
    PRODUCTION_TARGETS,
    SYSTEM_ACTOR,
    WORKFLOW_TIMESTAMPS,
    is_forward_move,
    is_valid_status,
    stamp_once,
    strip_absent,
    utcnow_iso,
)

logger = logging.getLogger(__name__)

ORDERS = "orders"

DESIGN_REQUIRED_FIELDS = ("designFileUrl", "dimensions", "colors", "material", "finishing")
DESIGN_OPTIONAL_FIELDS = ("designNotes", "printingType", "thermalSubType")
CREATE_REQUIRED_FIELDS = ("orderNumber", "productType", "quantity", "deliveryDate")

# Fields only the lifecycle transitions and the sync layer may write.
LIFECYCLE_FIELDS = frozenset(WORKFLOW_TIMESTAMPS) | {
    "status",
    "createdBy",
    "designedBy",
    "completedBy",
    "mondayItemId",
    "mondayBoardId",
    "mondayProductionItemId",
    "mondayProductionBoardId",
    "isParentOrder",
    "subitemsCount",
    "lastSyncedFromMonday",
}


def _get_order_or_404(*, store: DocumentStore, order_id: str) -> dict[str, Any]:
    order = store.get(ORDERS, order_id)
    if order is None:
        raise DomainError(
            code="ORDER_NOT_FOUND",
            http_status=404,
            message="Order not found",
            details={"orderId": order_id},
        )
    return order


def validate_quantity(quantity: Any) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise DomainError(
            code="INVALID_QUANTITY",
            http_status=400,
            message="Quantity must be a positive integer",
            details={"quantity": quantity},
        )


def _ensure_unique_field_ids(custom_fields: list[dict[str, Any]]) -> None:
    seen: set[str] = set()
    for entry in custom_fields:
        field_id = entry.get("id")
        if field_id in seen:
            raise DomainError(
                code="DUPLICATE_CUSTOM_FIELD_ID",
                http_status=400,
                message="Custom field ids must be unique within an order",
                details={"id": field_id},
            )
        seen.add(field_id)


def _stamp_custom_fields(custom_fields: list[dict[str, Any]], now: str) -> list[dict[str, Any]]:
    return [{**entry, "addedAt": entry.get("addedAt") or now} for entry in custom_fields]


def _guard_forward(order: dict[str, Any], target: str) -> None:
    if settings.ENFORCE_FORWARD_STATUS and not is_forward_move(order.get("status"), target):
        raise DomainError(
            code="STATUS_REGRESSION",
            http_status=409,
            message=f"Cannot move order from {order.get('status')} back to {target}",
            details={"currentStatus": order.get("status"), "targetStatus": target},
        )


def create_order(*, store: DocumentStore, data: dict[str, Any], created_by: str) -> str:
    """Persist a new order in pending-design and queue its design-board item."""
    missing = [name for name in CREATE_REQUIRED_FIELDS if data.get(name) in (None, "")]
    if missing:
        raise DomainError(
            code="ORDER_FIELDS_MISSING",
            http_status=400,
            message="Missing required order fields",
            details={"missing": missing},
        )
    validate_quantity(data["quantity"])

    now = utcnow_iso()
    custom_fields = _stamp_custom_fields(list(data.get("customFields") or []), now)
    _ensure_unique_field_ids(custom_fields)

    order = {key: value for key, value in data.items() if key not in LIFECYCLE_FIELDS}
    order.update(
        {
            "customFields": custom_fields,
            "status": PENDING_DESIGN,
            "createdBy": created_by,
            "createdAt": now,
            "sentToDesignAt": now,
        }
    )
    order_id = store.add(ORDERS, strip_absent(order))
    logger.info(f"✅ Created order {order.get('orderNumber')} ({order_id})")

    enqueue(sync_order_to_monday, order_id)
    return order_id


def start_design_work(*, store: DocumentStore, order_id: str, user_id: str) -> None:
    """Record who started the design and when; status is unchanged.

    Calling it again restarts the clock.
    """
    _get_order_or_404(store=store, order_id=order_id)
    store.update(ORDERS, order_id, {"designedBy": user_id, "designStartedAt": utcnow_iso()})


def update_order_with_design(
    *,
    store: DocumentStore,
    order_id: str,
    design: dict[str, Any],
    user_id: str,
) -> None:
    """Complete the design step and hand the order to production."""
    order = _get_order_or_404(store=store, order_id=order_id)

    missing = [name for name in DESIGN_REQUIRED_FIELDS if not design.get(name)]
    if missing:
        raise DomainError(
            code="DESIGN_FIELDS_MISSING",
            http_status=400,
            message="Missing required design fields",
            details={"missing": missing},
        )
    if design.get("thermalSubType") and design.get("printingType") != "thermal":
        raise DomainError(
            code="INVALID_THERMAL_SUB_TYPE",
            http_status=400,
            message="thermalSubType is only allowed for thermal printing",
        )
    _guard_forward(order, PENDING_PRODUCTION)

    now = utcnow_iso()
    patch: dict[str, Any] = {
        name: design[name]
        for name in DESIGN_REQUIRED_FIELDS + DESIGN_OPTIONAL_FIELDS
        if design.get(name) is not None
    }

    new_fields = _stamp_custom_fields(list(design.get("customFields") or []), now)
    if new_fields:
        combined = list(order.get("customFields") or []) + new_fields
        _ensure_unique_field_ids(combined)
        patch["customFields"] = combined

    patch["designedBy"] = user_id
    patch["status"] = PENDING_PRODUCTION
    stamp_once(order, patch, "designedAt", now)
    stamp_once(order, patch, "sentToProductionAt", now)

    store.update(ORDERS, order_id, patch)
    logger.info(f"🎨 Design completed for order {order_id} by {user_id}")

    enqueue(sync_order_to_monday, order_id)


def update_order(
    *,
    store: DocumentStore,
    order_id: str,
    changes: dict[str, Any],
) -> None:
    """Correct business data; lifecycle fields are never touched here."""
    order = _get_order_or_404(store=store, order_id=order_id)

    ignored = sorted(name for name in changes if name in LIFECYCLE_FIELDS)
    if ignored:
        logger.info(f"⏭️ Ignoring lifecycle fields in order edit {order_id}: {ignored}")
    patch = strip_absent({k: v for k, v in changes.items() if k not in LIFECYCLE_FIELDS})

    if "quantity" in patch:
        validate_quantity(patch["quantity"])

    if "customFields" in patch:
        custom_fields = _stamp_custom_fields(list(patch["customFields"]), utcnow_iso())
        _ensure_unique_field_ids(custom_fields)
        existing_roles = {
            entry.get("id"): entry.get("addedByRole") for entry in order.get("customFields") or []
        }
        for entry in custom_fields:
            previous_role = existing_roles.get(entry.get("id"))
            if previous_role and entry.get("addedByRole") != previous_role:
                raise DomainError(
                    code="CUSTOM_FIELD_ROLE_IMMUTABLE",
                    http_status=400,
                    message="addedByRole cannot change after a custom field is created",
                    details={"id": entry.get("id"), "addedByRole": previous_role},
                )
        patch["customFields"] = custom_fields

    if not patch:
        return
    store.update(ORDERS, order_id, patch)


def update_order_status(
    *,
    store: DocumentStore,
    order_id: str,
    status: str,
    user_id: str,
    production_notes: Optional[str] = None,
) -> None:
    """Production step: start or finish production, then push the label to linked items."""
    if status not in PRODUCTION_TARGETS:
        raise DomainError(
            code="INVALID_STATUS",
            http_status=400,
            message="Production can only move an order to in-production or completed",
            details={"status": status},
        )
    order = _get_order_or_404(store=store, order_id=order_id)
    _guard_forward(order, status)

    patch: dict[str, Any] = {"status": status}
    if production_notes:
        patch["productionNotes"] = production_notes
    if status == COMPLETED and not order.get("completedAt"):
        patch["completedBy"] = user_id
        patch["completedAt"] = utcnow_iso()

    store.update(ORDERS, order_id, patch)
    logger.info(f"🏭 Order {order_id} moved to {status} by {user_id}")

    enqueue(push_order_status_to_monday, order_id)


def apply_external_status(*, store: DocumentStore, order_id: str, status: str) -> dict[str, Any]:
    """Apply a status that arrived from the board. Never pushes back out."""
    if not is_valid_status(status):
        raise DomainError(
            code="INVALID_STATUS",
            http_status=400,
            message="Unknown order status",
            details={"status": status},
        )
    order = _get_order_or_404(store=store, order_id=order_id)
    _guard_forward(order, status)

    now = utcnow_iso()
    patch: dict[str, Any] = {"status": status, "lastSyncedFromMonday": now}
    if status == COMPLETED and not order.get("completedAt"):
        patch["completedAt"] = now
        patch["completedBy"] = SYSTEM_ACTOR
    store.update(ORDERS, order_id, patch)
    return {**order, **patch}


# Queries


def get_order(*, store: DocumentStore, order_id: str) -> dict[str, Any]:
    return _get_order_or_404(store=store, order_id=order_id)


def _validate_status_filter(status: str) -> None:
    if not is_valid_status(status):
        raise DomainError(
            code="INVALID_STATUS",
            http_status=400,
            message="Unknown order status",
            details={"status": status},
        )


def fetch_orders_by_status(*, store: DocumentStore, status: str) -> list[dict[str, Any]]:
    _validate_status_filter(status)
    return store.query(ORDERS, where={"status": status}, order_by="createdAt", descending=True)


def fetch_orders_by_user(*, store: DocumentStore, user_id: str) -> list[dict[str, Any]]:
    return store.query(ORDERS, where={"createdBy": user_id}, order_by="createdAt", descending=True)


def fetch_all_orders(*, store: DocumentStore) -> list[dict[str, Any]]:
    return store.query(ORDERS, order_by="createdAt", descending=True)


def find_order_by_number(*, store: DocumentStore, order_number: str) -> Optional[dict[str, Any]]:
    """Exact match on orderNumber; None when nothing matches."""
    matches = store.query(ORDERS, where={"orderNumber": order_number}, limit=1)
    return matches[0] if matches else None


def find_order_by_monday_item(*, store: DocumentStore, item_id: str) -> Optional[dict[str, Any]]:
    """Design-board item id first, then production-board item id."""
    for item_field in ("mondayItemId", "mondayProductionItemId"):
        matches = store.query(ORDERS, where={item_field: str(item_id)}, limit=1)
        if matches:
            return matches[0]
    return None


def subscribe_to_orders(
    *,
    store: DocumentStore,
    callback: Callable[[list[dict[str, Any]]], None],
    status: Optional[str] = None,
) -> Unsubscribe:
    """Live order list, newest first; call the returned handle to stop."""
    if status is not None:
        _validate_status_filter(status)
    return store.subscribe(
        ORDERS,
        callback,
        where={"status": status} if status else None,
        order_by="createdAt",
        descending=True,
    )
