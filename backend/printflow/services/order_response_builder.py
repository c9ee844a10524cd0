"""Order response serialization helpers."""
from __future__ import annotations

from typing import Any, Iterable

from .order_state import compute_durations
from .product_types import product_label


def order_to_response(order: dict[str, Any]) -> dict[str, Any]:
    """Stored order document plus derived display fields."""
    response = dict(order)
    response["productLabel"] = product_label(order.get("productType"))
    response["metrics"] = compute_durations(order)
    response.setdefault("customFields", [])
    response.setdefault("isParentOrder", False)
    response.setdefault("subitemsCount", 0)
    return response


def orders_to_response(orders: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    return [order_to_response(order) for order in orders]


def sub_item_to_response(sub_item: dict[str, Any], *, parent_id: str) -> dict[str, Any]:
    response = dict(sub_item)
    response["parentOrderId"] = parent_id
    response["productLabel"] = product_label(sub_item.get("productType"))
    response.setdefault("fileLinks", [])
    return response
