"""Sub-item use-cases. Sub-items live under ``orders/{order_id}/subitems``."""
from __future__ import annotations

import logging
from typing import Any, Callable

from ..document_store import DocumentStore, Increment, Unsubscribe
from ..domain_errors import DomainError
from ..services.order_state import (
    COMPLETED,
    PENDING_DESIGN,
    PENDING_PRODUCTION,
    is_valid_status,
    stamp_once,
    strip_absent,
    utcnow_iso,
)
from .order_lifecycle import ORDERS, get_order, validate_quantity

logger = logging.getLogger(__name__)

SUB_ITEM_FIELDS = ("productType", "productConfig", "quantity", "salesNotes", "modifications", "fileLinks")


def sub_items_collection(order_id: str) -> str:
    return f"{ORDERS}/{order_id}/subitems"


def _get_sub_item_or_404(*, store: DocumentStore, order_id: str, sub_item_id: str) -> dict[str, Any]:
    sub_item = store.get(sub_items_collection(order_id), sub_item_id)
    if sub_item is None:
        raise DomainError(
            code="SUB_ITEM_NOT_FOUND",
            http_status=404,
            message="Sub-item not found",
            details={"orderId": order_id, "subItemId": sub_item_id},
        )
    return sub_item


def create_sub_item(*, store: DocumentStore, order_id: str, data: dict[str, Any], created_by: str) -> str:
    """Attach a new line item to an order and bump the parent's counter atomically."""
    get_order(store=store, order_id=order_id)
    if not data.get("productType"):
        raise DomainError(
            code="SUB_ITEM_FIELDS_MISSING",
            http_status=400,
            message="Missing required sub-item fields",
            details={"missing": ["productType"]},
        )
    validate_quantity(data.get("quantity"))

    sub_item = {name: data.get(name) for name in SUB_ITEM_FIELDS}
    sub_item["fileLinks"] = list(data.get("fileLinks") or [])
    sub_item.update({"status": PENDING_DESIGN, "createdBy": created_by, "createdAt": utcnow_iso()})
    sub_item_id = store.add(sub_items_collection(order_id), strip_absent(sub_item))

    store.update(ORDERS, order_id, {"isParentOrder": True, "subitemsCount": Increment(1)})
    logger.info(f"✅ Added sub-item {sub_item_id} to order {order_id}")
    return sub_item_id


def fetch_sub_items(*, store: DocumentStore, order_id: str) -> list[dict[str, Any]]:
    return store.query(sub_items_collection(order_id), order_by="createdAt", descending=True)


def subscribe_to_sub_items(
    *,
    store: DocumentStore,
    order_id: str,
    callback: Callable[[list[dict[str, Any]]], None],
) -> Unsubscribe:
    return store.subscribe(
        sub_items_collection(order_id),
        callback,
        order_by="createdAt",
        descending=True,
    )


def update_sub_item_with_design(
    *,
    store: DocumentStore,
    order_id: str,
    sub_item_id: str,
    design: dict[str, Any],
    user_id: str,
) -> None:
    sub_item = _get_sub_item_or_404(store=store, order_id=order_id, sub_item_id=sub_item_id)
    patch = strip_absent(
        {
            "designFileUrl": design.get("designFileUrl"),
            "designNotes": design.get("designNotes"),
            "fileLinks": design.get("fileLinks"),
        }
    )
    patch["designedBy"] = user_id
    patch["status"] = PENDING_PRODUCTION
    stamp_once(sub_item, patch, "designedAt", utcnow_iso())
    store.update(sub_items_collection(order_id), sub_item_id, patch)


def update_sub_item_status(
    *,
    store: DocumentStore,
    order_id: str,
    sub_item_id: str,
    status: str,
    user_id: str,
) -> None:
    """Set a sub-item's status. The parent order's status is left alone."""
    if not is_valid_status(status):
        raise DomainError(
            code="INVALID_STATUS",
            http_status=400,
            message="Unknown sub-item status",
            details={"status": status},
        )
    sub_item = _get_sub_item_or_404(store=store, order_id=order_id, sub_item_id=sub_item_id)
    patch: dict[str, Any] = {"status": status}
    if status == COMPLETED and not sub_item.get("completedAt"):
        patch["completedAt"] = utcnow_iso()
        patch["completedBy"] = user_id
    store.update(sub_items_collection(order_id), sub_item_id, patch)
