"""Order endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from ..auth import CurrentUser, PermissionChecker, get_current_user, user_from_token
from ..celery_app import add_monday_note, enqueue
from ..document_store import DocumentStore, get_document_store
from ..domain_errors import DomainError
from ..schemas import (
    DesignSubmission,
    MondayNoteCreate,
    MondaySyncRequest,
    OrderCreate,
    OrderUpdate,
    StatusChange,
    SubItemCreate,
    SubItemDesign,
    SubItemStatusChange,
)
from ..services.order_response_builder import order_to_response, orders_to_response, sub_item_to_response
from ..services.product_types import get_product_type, missing_config_fields
from ..use_cases import monday_sync
from ..use_cases.order_lifecycle import (
    create_order,
    fetch_all_orders,
    fetch_orders_by_status,
    fetch_orders_by_user,
    find_order_by_number,
    get_order,
    start_design_work,
    subscribe_to_orders,
    update_order,
    update_order_status,
    update_order_with_design,
)
from ..use_cases.sub_items import (
    create_sub_item,
    fetch_sub_items,
    update_sub_item_status,
    update_sub_item_with_design,
)

router = APIRouter(prefix="/orders", tags=["orders"])
logger = logging.getLogger(__name__)


def _with_author(custom_fields: list[dict], user: CurrentUser, existing: Optional[list[dict]] = None) -> list[dict]:
    """Stamp new entries with the caller; entries already on the order keep their tags."""
    known = {entry.get("id"): entry for entry in existing or []}
    stamped = []
    for entry in custom_fields:
        stored = known.get(entry.get("id"))
        if stored is None:
            stamped.append({**entry, "addedBy": user.id, "addedByRole": user.role})
        else:
            tags = {key: stored.get(key) for key in ("addedBy", "addedByRole", "addedAt")}
            stamped.append({**tags, **entry})
    return stamped


def _check_product_config(product_type: str, config: dict) -> None:
    if get_product_type(product_type) is None:
        return
    missing = missing_config_fields(product_type, config)
    if missing:
        raise DomainError(
            code="PRODUCT_CONFIG_INCOMPLETE",
            http_status=400,
            message="Product configuration is missing required fields",
            details={"productType": product_type, "missing": missing},
        )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order_endpoint(
    order_data: OrderCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canCreateOrders")),
    store: DocumentStore = Depends(get_document_store),
):
    """Create a new order; it starts in pending-design."""
    _check_product_config(order_data.product_type, order_data.product_config)
    data = order_data.to_document()
    data["customFields"] = _with_author(data.get("customFields", []), current_user)
    order_id = create_order(store=store, data=data, created_by=current_user.id)
    return order_to_response(get_order(store=store, order_id=order_id))


@router.get("")
def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    """List orders, newest first, optionally filtered by status."""
    if status_filter:
        return orders_to_response(fetch_orders_by_status(store=store, status=status_filter))
    return orders_to_response(fetch_all_orders(store=store))


@router.get("/mine")
def list_my_orders(
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    """Orders created by the current user."""
    return orders_to_response(fetch_orders_by_user(store=store, user_id=current_user.id))


@router.get("/by-number/{order_number}")
def get_order_by_number(
    order_number: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    order = find_order_by_number(store=store, order_number=order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_to_response(order)


async def _stop_sender(sender: asyncio.Task, user_id: str) -> None:
    """Cancel the snapshot sender and collect whatever it ended with."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception as exc:
        logger.warning(f"⚠️ Order stream send failed for {user_id}: {exc}")


@router.websocket("/stream")
async def stream_orders(
    websocket: WebSocket,
    token: str = Query(...),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """Live order list: a full snapshot on connect and after every change."""
    try:
        user = user_from_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    snapshots: asyncio.Queue = asyncio.Queue()

    def on_snapshot(orders: list[dict]) -> None:
        # Store writes notify from worker threads.
        loop.call_soon_threadsafe(snapshots.put_nowait, orders_to_response(orders))

    try:
        unsubscribe = await run_in_threadpool(
            subscribe_to_orders,
            store=get_document_store(),
            callback=on_snapshot,
            status=status_filter,
        )
    except DomainError as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.message)
        return

    logger.info(f"📡 Order stream opened for {user.id} (status={status_filter})")

    async def pump() -> None:
        while True:
            orders = await snapshots.get()
            await websocket.send_json({"type": "snapshot", "orders": orders})

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await _stop_sender(sender, user.id)
        unsubscribe()
        logger.info(f"📴 Order stream closed for {user.id}")


@router.get("/{order_id}")
def get_order_endpoint(
    order_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    return order_to_response(get_order(store=store, order_id=order_id))


@router.patch("/{order_id}")
def update_order_endpoint(
    order_id: str,
    changes: OrderUpdate,
    current_user: CurrentUser = Depends(PermissionChecker("canEditOrders")),
    store: DocumentStore = Depends(get_document_store),
):
    """Correct order business data (never status or workflow timestamps)."""
    patch = changes.to_document(exclude_unset=True)
    if "customFields" in patch:
        current_fields = get_order(store=store, order_id=order_id).get("customFields")
        patch["customFields"] = _with_author(patch["customFields"], current_user, current_fields)
    update_order(store=store, order_id=order_id, changes=patch)
    return order_to_response(get_order(store=store, order_id=order_id))


@router.post("/{order_id}/start-design")
def start_design_endpoint(
    order_id: str,
    current_user: CurrentUser = Depends(PermissionChecker("canDesign")),
    store: DocumentStore = Depends(get_document_store),
):
    start_design_work(store=store, order_id=order_id, user_id=current_user.id)
    return order_to_response(get_order(store=store, order_id=order_id))


@router.post("/{order_id}/design")
def submit_design_endpoint(
    order_id: str,
    design: DesignSubmission,
    current_user: CurrentUser = Depends(PermissionChecker("canDesign")),
    store: DocumentStore = Depends(get_document_store),
):
    """Complete the design step and send the order to production."""
    data = design.to_document()
    current_fields = get_order(store=store, order_id=order_id).get("customFields")
    data["customFields"] = _with_author(data.get("customFields", []), current_user, current_fields)
    update_order_with_design(store=store, order_id=order_id, design=data, user_id=current_user.id)
    return order_to_response(get_order(store=store, order_id=order_id))


@router.post("/{order_id}/status")
def change_status_endpoint(
    order_id: str,
    change: StatusChange,
    current_user: CurrentUser = Depends(PermissionChecker("canManageProduction")),
    store: DocumentStore = Depends(get_document_store),
):
    update_order_status(
        store=store,
        order_id=order_id,
        status=change.status,
        user_id=current_user.id,
        production_notes=change.production_notes,
    )
    return order_to_response(get_order(store=store, order_id=order_id))


@router.post("/{order_id}/monday-sync")
def manual_monday_sync(
    order_id: str,
    sync_request: Optional[MondaySyncRequest] = None,
    current_user: CurrentUser = Depends(PermissionChecker("canManageIntegrations")),
    store: DocumentStore = Depends(get_document_store),
):
    """Run the outbound sync now, regardless of the autoSync flag."""
    get_order(store=store, order_id=order_id)
    outcome = monday_sync.sync_order_to_monday(
        store=store,
        order_id=order_id,
        target_board_id=sync_request.target_board_id if sync_request else None,
        automatic=False,
    )
    return outcome.as_dict()


@router.post("/{order_id}/monday-notes", status_code=status.HTTP_202_ACCEPTED)
def queue_monday_note(
    order_id: str,
    note: MondayNoteCreate,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    get_order(store=store, order_id=order_id)
    author = current_user.name or current_user.id
    queued = enqueue(add_monday_note, order_id, f"{note.body}\n\n({author})")
    return {"queued": queued}


# Sub-items


@router.get("/{order_id}/subitems")
def list_sub_items(
    order_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    store: DocumentStore = Depends(get_document_store),
):
    get_order(store=store, order_id=order_id)
    return [sub_item_to_response(item, parent_id=order_id) for item in fetch_sub_items(store=store, order_id=order_id)]


@router.post("/{order_id}/subitems", status_code=status.HTTP_201_CREATED)
def create_sub_item_endpoint(
    order_id: str,
    sub_item: SubItemCreate,
    current_user: CurrentUser = Depends(PermissionChecker("canCreateOrders")),
    store: DocumentStore = Depends(get_document_store),
):
    _check_product_config(sub_item.product_type, sub_item.product_config)
    sub_item_id = create_sub_item(
        store=store,
        order_id=order_id,
        data=sub_item.to_document(),
        created_by=current_user.id,
    )
    return {"id": sub_item_id, "parentOrderId": order_id}


@router.post("/{order_id}/subitems/{sub_item_id}/design")
def submit_sub_item_design(
    order_id: str,
    sub_item_id: str,
    design: SubItemDesign,
    current_user: CurrentUser = Depends(PermissionChecker("canDesign")),
    store: DocumentStore = Depends(get_document_store),
):
    update_sub_item_with_design(
        store=store,
        order_id=order_id,
        sub_item_id=sub_item_id,
        design=design.to_document(),
        user_id=current_user.id,
    )
    return {"id": sub_item_id, "parentOrderId": order_id}


@router.post("/{order_id}/subitems/{sub_item_id}/status")
def change_sub_item_status(
    order_id: str,
    sub_item_id: str,
    change: SubItemStatusChange,
    current_user: CurrentUser = Depends(PermissionChecker("canManageProduction")),
    store: DocumentStore = Depends(get_document_store),
):
    update_sub_item_status(
        store=store,
        order_id=order_id,
        sub_item_id=sub_item_id,
        status=change.status,
        user_id=current_user.id,
    )
    return {"id": sub_item_id, "parentOrderId": order_id, "status": change.status}
