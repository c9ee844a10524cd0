"""Outbound sync of orders to Monday.com boards.

Every entry point reads the integration settings document on each call and
never raises for tracker problems: failures come back as a ``failed`` outcome
and are logged.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from ..config import settings
from ..document_store import DocumentStore
from ..domain_errors import MondayApiError
from ..services.monday_client import MondayClient
from ..services.order_state import IN_PRODUCTION, PENDING_DESIGN, PENDING_PRODUCTION
from ..services.product_types import product_label
from ..services.settings_store import MondaySettings, get_monday_settings, mark_last_sync
from ..services.status_labels import outbound_label

logger = logging.getLogger(__name__)

ORDERS = "orders"
USERS = "users"

DESIGN_BOARD = "design"
PRODUCTION_BOARD = "production"

# Board kind -> (item id field, board id field) cached on the order.
ITEM_FIELDS: dict[str, tuple[str, str]] = {
    DESIGN_BOARD: ("mondayItemId", "mondayBoardId"),
    PRODUCTION_BOARD: ("mondayProductionItemId", "mondayProductionBoardId"),
}

ClientFactory = Callable[[str], Any]


@dataclass(frozen=True)
class SyncOutcome:
    status: str  # created | updated | skipped | failed
    reason: Optional[str] = None
    board_id: Optional[str] = None
    item_id: Optional[str] = None
    updated_items: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _client(client_factory: Optional[ClientFactory], api_token: str):
    return (client_factory or MondayClient)(api_token)


def _skipped(reason: str) -> SyncOutcome:
    logger.info(f"⏭️ Monday sync skipped: {reason}")
    return SyncOutcome(status="skipped", reason=reason)


def board_kind_for_status(status: Optional[str]) -> Optional[str]:
    """Board that should hold an item for ``status``; None for completed orders."""
    if status == PENDING_DESIGN:
        return DESIGN_BOARD
    if status in (PENDING_PRODUCTION, IN_PRODUCTION):
        return PRODUCTION_BOARD
    return None


def resolve_board_id(
    *,
    store: DocumentStore,
    monday_settings: MondaySettings,
    order: dict[str, Any],
    kind: str,
    target_board_id: Optional[str] = None,
) -> str:
    """Explicit target board, then the assigned designer's personal board, then the default."""
    if target_board_id:
        return str(target_board_id)
    if kind == DESIGN_BOARD and order.get("assignedDesignerId"):
        designer = store.get(USERS, str(order["assignedDesignerId"]))
        personal_board = (designer or {}).get("mondayBoardId")
        if personal_board:
            logger.info(f"🎯 Using designer's personal board {personal_board} for order {order.get('id')}")
            return str(personal_board)
    return monday_settings.board_for(kind)


def build_item_name(order: dict[str, Any]) -> str:
    label = order.get("orderType") or product_label(order.get("productType"))
    return f"{order.get('orderNumber', '')} - {label}"


def build_column_values(order: dict[str, Any]) -> dict[str, Any]:
    columns: dict[str, Any] = {settings.MONDAY_ORDER_ID_COLUMN_ID: order["id"]}
    if order.get("deliveryDate"):
        columns[settings.MONDAY_DELIVERY_DATE_COLUMN_ID] = {"date": str(order["deliveryDate"])[:10]}
    if order.get("status"):
        columns[settings.MONDAY_STATUS_COLUMN_ID] = outbound_label(order["status"])
    return columns


def _integration_gate(monday_settings: MondaySettings, *, automatic: bool) -> Optional[str]:
    if not monday_settings.enabled:
        return "integration_disabled"
    if not monday_settings.api_token:
        return "missing_api_token"
    if automatic and not monday_settings.auto_sync:
        return "auto_sync_disabled"
    return None


def sync_order_to_monday(
    *,
    store: DocumentStore,
    order_id: str,
    target_board_id: Optional[str] = None,
    automatic: bool = True,
    client_factory: Optional[ClientFactory] = None,
) -> SyncOutcome:
    """Create the board item for the order's current status, or refresh the existing one.

    Completed orders only update items that already exist.
    """
    order = store.get(ORDERS, order_id)
    if order is None:
        return _skipped("order_not_found")

    monday_settings = get_monday_settings(store)
    gate = _integration_gate(monday_settings, automatic=automatic)
    if gate:
        return _skipped(gate)

    kind = board_kind_for_status(order.get("status"))
    if kind is None:
        return _push_status(store=store, order=order, monday_settings=monday_settings, client_factory=client_factory)

    item_field, board_field = ITEM_FIELDS[kind]
    if order.get(item_field):
        # At most one item per order per board; refresh its status instead.
        return _push_status(store=store, order=order, monday_settings=monday_settings, client_factory=client_factory)

    board_id = resolve_board_id(
        store=store,
        monday_settings=monday_settings,
        order=order,
        kind=kind,
        target_board_id=target_board_id,
    )
    if not board_id:
        return _skipped(f"missing_{kind}_board")

    try:
        client = _client(client_factory, monday_settings.api_token)
        item_id = client.create_item(board_id, build_item_name(order), build_column_values(order))
    except (MondayApiError, ValueError) as exc:
        logger.warning(f"⚠️ Monday sync failed for order {order_id}, order itself is unaffected: {exc}")
        return SyncOutcome(status="failed", reason=str(exc), board_id=board_id)

    store.update(ORDERS, order_id, {item_field: item_id, board_field: board_id})
    mark_last_sync(store)
    logger.info(f"✅ Order {order_id} synced to Monday (Item ID: {item_id})")
    return SyncOutcome(status="created", board_id=board_id, item_id=item_id)


def push_order_status(
    *,
    store: DocumentStore,
    order_id: str,
    automatic: bool = True,
    client_factory: Optional[ClientFactory] = None,
) -> SyncOutcome:
    """Write the order's current status label onto every board item it already has."""
    order = store.get(ORDERS, order_id)
    if order is None:
        return _skipped("order_not_found")

    monday_settings = get_monday_settings(store)
    gate = _integration_gate(monday_settings, automatic=automatic)
    if gate:
        return _skipped(gate)
    return _push_status(store=store, order=order, monday_settings=monday_settings, client_factory=client_factory)


def _linked_items(order: dict[str, Any], monday_settings: MondaySettings) -> list[tuple[str, str]]:
    items = []
    for kind, (item_field, board_field) in ITEM_FIELDS.items():
        item_id = order.get(item_field)
        if not item_id:
            continue
        board_id = order.get(board_field) or monday_settings.board_for(kind)
        if board_id:
            items.append((str(item_id), str(board_id)))
        else:
            logger.warning(f"⚠️ No board known for Monday item {item_id} of order {order.get('id')}")
    return items


def _push_status(
    *,
    store: DocumentStore,
    order: dict[str, Any],
    monday_settings: MondaySettings,
    client_factory: Optional[ClientFactory],
) -> SyncOutcome:
    items = _linked_items(order, monday_settings)
    if not items:
        return _skipped("no_linked_items")

    label = outbound_label(order.get("status", ""))
    updated: list[str] = []
    errors: list[str] = []
    try:
        client = _client(client_factory, monday_settings.api_token)
    except ValueError as exc:
        return SyncOutcome(status="failed", reason=str(exc))

    # Each item is pushed independently; one failure does not block the other.
    for item_id, board_id in items:
        try:
            client.update_status(item_id, board_id, label)
            updated.append(item_id)
        except MondayApiError as exc:
            logger.warning(f"⚠️ Failed to update Monday item {item_id} for order {order['id']}: {exc}")
            errors.append(str(exc))

    if not updated:
        return SyncOutcome(status="failed", reason="; ".join(errors))
    mark_last_sync(store)
    return SyncOutcome(status="updated", updated_items=updated, reason="; ".join(errors) or None)


def add_monday_note(
    *,
    store: DocumentStore,
    order_id: str,
    body: str,
    client_factory: Optional[ClientFactory] = None,
) -> SyncOutcome:
    """Post a free-text update on every board item of the order."""
    order = store.get(ORDERS, order_id)
    if order is None:
        return _skipped("order_not_found")

    monday_settings = get_monday_settings(store)
    gate = _integration_gate(monday_settings, automatic=False)
    if gate:
        return _skipped(gate)

    item_ids = [item_id for item_id, _ in _linked_items(order, monday_settings)]
    if not item_ids:
        return _skipped("no_linked_items")

    noted: list[str] = []
    errors: list[str] = []
    try:
        client = _client(client_factory, monday_settings.api_token)
        for item_id in item_ids:
            try:
                client.create_update(item_id, body)
                noted.append(item_id)
            except MondayApiError as exc:
                logger.warning(f"⚠️ Failed to add note to Monday item {item_id}: {exc}")
                errors.append(str(exc))
    except ValueError as exc:
        return SyncOutcome(status="failed", reason=str(exc))

    if not noted:
        return SyncOutcome(status="failed", reason="; ".join(errors))
    return SyncOutcome(status="updated", updated_items=noted, reason="; ".join(errors) or None)


def probe_monday_connection(
    *,
    api_token: str,
    board_ids: list[str],
    client_factory: Optional[ClientFactory] = None,
) -> dict[str, Any]:
    """Probe the token and the configured boards; never raises for tracker errors."""
    try:
        result = _client(client_factory, api_token).test_connection(board_ids)
    except (MondayApiError, ValueError) as exc:
        logger.warning(f"⚠️ Monday connection test failed: {exc}")
        return {"success": False, "error": str(exc)}
    found = {str(board.get("id")) for board in result.get("boards", [])}
    return {
        "success": True,
        "user": result.get("user"),
        "boards": result.get("boards", []),
        "missingBoards": [b for b in board_ids if b and str(b) not in found],
    }
