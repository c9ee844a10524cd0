"""Order intake from the online store webhook.

Payloads are classified once: Salla e-commerce events (``event`` plus
``merchant``) or generic automation-tool bodies. Both end in
``create_order``; every processed call leaves a ``webhook_logs`` entry.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import TypeAdapter, ValidationError

from ..config import settings
from ..document_store import DocumentStore
from ..domain_errors import DomainError
from ..schemas import CustomField, SallaWebhook
from ..services.order_state import utcnow_iso
from ..services.webhook_log import WEBHOOK_LOGS, record_webhook_log
from .order_lifecycle import create_order

logger = logging.getLogger(__name__)

SALLA_ACTOR = "salla-webhook"
GENERIC_ACTOR = "webhook-system"

SALLA_ALLOWED_STATUSES = frozenset({"completed", "under-review", "in-progress"})
GENERIC_REQUIRED_FIELDS = ("product_type", "quantity", "delivery_date")
GENERIC_NOTES_SUFFIX = "[Auto-created from online store]"

PRODUCT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ribbons", ("ribbon", "شريط")),
    ("belts", ("belt", "حزام")),
    ("stickers", ("sticker", "استيكر", "ملصق")),
)

_custom_field_adapter = TypeAdapter(CustomField)
_leading_int = re.compile(r"\s*([+-]?\d+)")


@dataclass(frozen=True)
class EcommerceIntake:
    webhook: SallaWebhook
    raw: dict[str, Any]


@dataclass(frozen=True)
class GenericIntake:
    body: dict[str, Any]


IntakePayload = Union[EcommerceIntake, GenericIntake]


@dataclass(frozen=True)
class IntakeResponse:
    status_code: int
    body: dict[str, Any]


class IntakeRejected(Exception):
    """Payload refused before any order is written."""

    def __init__(self, response: IntakeResponse, *, source: str):
        super().__init__(response.body.get("error", "rejected"))
        self.response = response
        self.source = source


def classify_payload(body: Any) -> IntakePayload:
    if not isinstance(body, dict):
        raise IntakeRejected(
            IntakeResponse(400, {"error": "Invalid payload", "message": "Body must be a JSON object"}),
            source="unknown",
        )
    if "event" in body and "merchant" in body:
        try:
            return EcommerceIntake(webhook=SallaWebhook.model_validate(body), raw=body)
        except ValidationError as exc:
            raise IntakeRejected(
                IntakeResponse(
                    400,
                    {
                        "error": "Invalid Salla payload",
                        "details": exc.errors(include_url=False, include_context=False, include_input=False),
                    },
                ),
                source="salla",
            ) from exc
    return GenericIntake(body=body)


def parse_quantity(value: Any) -> Optional[int]:
    """Leading integer of ``value`` (``"10 pcs"`` -> 10), or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _leading_int.match(str(value)) if value is not None else None
    return int(match.group(1)) if match else None


def extract_product_type(name: Optional[str], sku: Any = None) -> str:
    text = f"{name or ''} {sku or ''}".lower()
    for product_type, keywords in PRODUCT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return product_type
    return "custom"


def delivery_date_from(order_date: Optional[dict[str, Any]]) -> str:
    raw = str((order_date or {}).get("date") or "")[:10]
    try:
        placed = date.fromisoformat(raw)
    except ValueError:
        placed = datetime.now(timezone.utc).date()
    return (placed + timedelta(days=settings.INTAKE_DELIVERY_LEAD_DAYS)).isoformat()


def _text_field(name: str, value: Any, *, added_by: str, now: str) -> dict[str, Any]:
    return {
        "id": uuid4().hex,
        "name": name,
        "type": "text",
        "value": "" if value is None else str(value),
        "addedBy": added_by,
        "addedByRole": "sales",
        "addedAt": now,
    }


def normalize_custom_field(entry: Any, *, added_by: str, now: str) -> dict[str, Any]:
    """Coerce a foreign custom-field entry into a typed custom field; falls back to text."""
    if not isinstance(entry, dict):
        return _text_field("Field", entry, added_by=added_by, now=now)
    name = str(entry.get("name") or entry.get("label") or "Field")
    candidate = {
        "id": str(entry.get("id") or uuid4().hex),
        "name": name,
        "type": entry.get("type") or "text",
        "value": entry.get("value"),
        "addedBy": added_by,
        "addedByRole": "sales",
        "addedAt": now,
    }
    if "options" in entry:
        candidate["options"] = entry["options"]
    try:
        field = _custom_field_adapter.validate_python(candidate)
    except ValidationError:
        return {**_text_field(name, entry.get("value"), added_by=added_by, now=now), "id": candidate["id"]}
    return field.model_dump(by_alias=True, mode="json", exclude_none=True)


def salla_rejection_reason(webhook: SallaWebhook) -> Optional[str]:
    data = webhook.data
    slug = data.status.slug if data.status else None
    if data.draft or slug not in SALLA_ALLOWED_STATUSES:
        state = "draft" if data.draft else "not confirmed"
        status_name = (data.status.name if data.status else None) or "unknown"
        return f"Order is {state} (status: {status_name})"
    return None


def transform_salla_order(webhook: SallaWebhook) -> dict[str, Any]:
    data = webhook.data
    now = utcnow_iso()
    items = data.items
    first = items[0] if items else None
    product_type = extract_product_type(first.name, first.sku) if first else "custom"

    customer = data.customer or {}
    total_value = data.amounts.get("total") or 0
    currency = data.currency or ""
    if isinstance(total_value, dict):
        currency = total_value.get("currency") or currency
        total_value = total_value.get("amount") or 0
    total = f"{total_value} {currency}".strip()
    full_name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    sales_notes = "\n".join(
        [
            f"Customer: {full_name}",
            f"Phone: {customer.get('mobile') or customer.get('mobile_code') or 'N/A'}",
            f"Email: {customer.get('email') or 'N/A'}",
            "",
            f"Order Total: {total}",
            f"Payment Method: {data.payment_method or 'N/A'}",
            "",
            f"[Auto-created from Salla store - Event: {webhook.event}]",
        ]
    )
    quantity = sum(max(parse_quantity(item.quantity) or 0, 0) for item in items)

    return {
        "orderNumber": f"SALLA-{data.reference_id or data.id}",
        "productType": product_type,
        "productConfig": {
            "source": "salla",
            "sallaOrderId": data.id,
            "items": [
                {"name": item.name, "sku": item.sku, "quantity": item.quantity, "price": item.price}
                for item in items
            ],
        },
        "quantity": quantity or 1,
        "deliveryDate": delivery_date_from(data.date),
        "salesNotes": sales_notes,
        "customFields": [
            _text_field("Salla Order ID", data.id, added_by=SALLA_ACTOR, now=now),
            _text_field("Salla Reference ID", data.reference_id, added_by=SALLA_ACTOR, now=now),
            _text_field("Order Total", total, added_by=SALLA_ACTOR, now=now),
        ],
    }


def transform_generic_order(body: dict[str, Any]) -> dict[str, Any]:
    missing = [name for name in GENERIC_REQUIRED_FIELDS if not body.get(name)]
    if missing:
        raise IntakeRejected(
            IntakeResponse(
                400,
                {"error": "Missing required fields", "missing": missing, "received": list(body.keys())},
            ),
            source="custom",
        )

    quantity = parse_quantity(body["quantity"])
    if quantity is None or quantity <= 0:
        raise IntakeRejected(
            IntakeResponse(
                400,
                {"error": "Invalid quantity", "message": "Quantity must be a positive number"},
            ),
            source="custom",
        )

    now = utcnow_iso()
    notes = body.get("notes")
    raw_fields = body.get("custom_fields")
    return {
        "orderNumber": f"WEB-{body.get('order_id') or int(time.time() * 1000)}",
        "productType": str(body["product_type"]),
        "productConfig": body.get("product_config") or {},
        "quantity": quantity,
        "deliveryDate": str(body["delivery_date"]),
        "salesNotes": f"{notes}\n\n{GENERIC_NOTES_SUFFIX}" if notes else GENERIC_NOTES_SUFFIX,
        "assignedDesignerId": body.get("designer_id") or None,
        "assignedDesignerName": body.get("designer_name") or None,
        "customFields": [
            normalize_custom_field(entry, added_by=GENERIC_ACTOR, now=now)
            for entry in (raw_fields if isinstance(raw_fields, list) else [])
        ],
    }


def ingest_order_webhook(
    *,
    store: DocumentStore,
    body: Any,
    user_agent: Optional[str] = None,
) -> IntakeResponse:
    """Classify, transform, create and log. Raises only for unexpected failures."""
    try:
        payload = classify_payload(body)
        if isinstance(payload, EcommerceIntake):
            return _ingest_salla(store=store, payload=payload, user_agent=user_agent)
        return _ingest_generic(store=store, payload=payload, user_agent=user_agent)
    except IntakeRejected as rejected:
        logger.info(f"⏭️ Intake payload rejected ({rejected.source}): {rejected.response.body.get('error')}")
        record_webhook_log(
            store,
            WEBHOOK_LOGS,
            payload=body,
            source=rejected.source,
            status="rejected",
            reason=rejected.response.body.get("error"),
            userAgent=user_agent,
        )
        return rejected.response


def _create(
    *,
    store: DocumentStore,
    order_data: dict[str, Any],
    created_by: str,
    source: str,
) -> str:
    try:
        return create_order(store=store, data=order_data, created_by=created_by)
    except DomainError as exc:
        if exc.http_status >= 500:
            raise
        raise IntakeRejected(
            IntakeResponse(exc.http_status, {"error": exc.message, "code": exc.code, "details": exc.details}),
            source=source,
        ) from exc


def _ingest_salla(*, store: DocumentStore, payload: EcommerceIntake, user_agent: Optional[str]) -> IntakeResponse:
    webhook = payload.webhook
    salla_meta = {
        "merchant": webhook.merchant,
        "event": webhook.event,
        "orderId": webhook.data.id,
        "referenceId": webhook.data.reference_id,
    }

    reason = salla_rejection_reason(webhook)
    if reason:
        record_webhook_log(
            store,
            WEBHOOK_LOGS,
            payload=payload.raw,
            source="salla",
            status="ignored",
            shouldProcess=False,
            reason=reason,
            salla=salla_meta,
            userAgent=user_agent,
        )
        logger.info(f"⏭️ Salla event {webhook.event} logged but not processed: {reason}")
        return IntakeResponse(
            200,
            {
                "success": True,
                "message": "Event logged but not processed",
                "reason": reason,
                "shouldProcess": False,
            },
        )

    order_data = transform_salla_order(webhook)
    order_id = _create(store=store, order_data=order_data, created_by=SALLA_ACTOR, source="salla")
    record_webhook_log(
        store,
        WEBHOOK_LOGS,
        payload=payload.raw,
        source="salla",
        status="success",
        shouldProcess=True,
        reason="Valid order",
        orderId=order_id,
        orderNumber=order_data["orderNumber"],
        salla=salla_meta,
        userAgent=user_agent,
    )
    logger.info(f"✅ Created order {order_data['orderNumber']} from Salla event {webhook.event}")
    return _created(order_id, order_data["orderNumber"], "salla")


def _ingest_generic(*, store: DocumentStore, payload: GenericIntake, user_agent: Optional[str]) -> IntakeResponse:
    order_data = transform_generic_order(payload.body)
    order_id = _create(store=store, order_data=order_data, created_by=GENERIC_ACTOR, source="custom")
    record_webhook_log(
        store,
        WEBHOOK_LOGS,
        payload=payload.body,
        source="custom",
        status="success",
        orderId=order_id,
        orderNumber=order_data["orderNumber"],
        userAgent=user_agent,
    )
    logger.info(f"✅ Created order {order_data['orderNumber']} from intake webhook")
    return _created(order_id, order_data["orderNumber"], "custom")


def _created(order_id: str, order_number: str, source: str) -> IntakeResponse:
    return IntakeResponse(
        200,
        {
            "success": True,
            "orderId": order_id,
            "orderNumber": order_number,
            "message": "Order created successfully",
            "source": source,
        },
    )
