"""Order status state machine, workflow timestamps and duration metrics."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal, Optional

OrderStatus = Literal["pending-design", "pending-production", "in-production", "completed"]

PENDING_DESIGN = "pending-design"
PENDING_PRODUCTION = "pending-production"
IN_PRODUCTION = "in-production"
COMPLETED = "completed"

STATUS_SEQUENCE: tuple[str, ...] = (
    PENDING_DESIGN,
    PENDING_PRODUCTION,
    IN_PRODUCTION,
    COMPLETED,
)

# Targets reachable through the production status entry point.
PRODUCTION_TARGETS: frozenset[str] = frozenset({IN_PRODUCTION, COMPLETED})

WORKFLOW_TIMESTAMPS: tuple[str, ...] = (
    "createdAt",
    "sentToDesignAt",
    "designStartedAt",
    "designedAt",
    "sentToProductionAt",
    "completedAt",
)

DEPARTMENT_ROLES: tuple[str, ...] = ("sales", "design", "production", "admin")

SYSTEM_ACTOR = "monday-sync"


def utcnow_iso() -> str:
    """Timestamp format stored in documents; sorts lexicographically."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_valid_status(status: Any) -> bool:
    return status in STATUS_SEQUENCE


def status_rank(status: str) -> int:
    return STATUS_SEQUENCE.index(status)


def is_forward_move(current: Optional[str], target: str) -> bool:
    """True when ``target`` is not behind ``current`` in the lifecycle."""
    if current not in STATUS_SEQUENCE:
        return True
    return status_rank(target) >= status_rank(current)


def strip_absent(data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is absent; the store rejects them."""
    return {key: value for key, value in data.items() if value is not None}


def stamp_once(order: Mapping[str, Any], patch: dict[str, Any], field: str, now: str) -> None:
    """Set a workflow timestamp on ``patch`` unless the order already carries one."""
    if not order.get(field):
        patch[field] = now


def _seconds_between(start: Any, end: Any) -> Optional[float]:
    start_at = parse_timestamp(start)
    end_at = parse_timestamp(end)
    if start_at is None or end_at is None:
        return None
    return (end_at - start_at).total_seconds()


def compute_durations(order: Mapping[str, Any]) -> dict[str, Optional[float]]:
    """Durations in seconds derived from workflow timestamps (None while incomplete)."""
    return {
        "designSeconds": _seconds_between(order.get("designStartedAt"), order.get("designedAt")),
        "productionSeconds": _seconds_between(order.get("sentToProductionAt"), order.get("completedAt")),
        "totalSeconds": _seconds_between(order.get("createdAt"), order.get("completedAt")),
    }
