"""Mapping between system order statuses and Monday board status labels."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from ..config import settings


def normalize_label(label: Optional[str]) -> str:
    return (label or "").strip().lower()


def outbound_label(status: str, labels: Optional[Mapping[str, str]] = None) -> str:
    """Board label for a system status; unknown statuses pass through unchanged."""
    table = labels if labels is not None else settings.MONDAY_STATUS_LABELS
    return table.get(status, status)


def inbound_status(label: Optional[str], aliases: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """System status for a board label, or None when the label is not mapped."""
    table = aliases if aliases is not None else settings.MONDAY_LABEL_ALIASES
    normalized = {normalize_label(key): value for key, value in table.items()}
    return normalized.get(normalize_label(label))


def extract_event_label(value: Any) -> Optional[str]:
    """Pull the new status label out of a column-change value.

    Monday sends ``{"label": {"text": ...}}``, ``{"label": "..."}`` or ``{"name": ...}``.
    """
    if not isinstance(value, dict):
        return None
    label = value.get("label")
    if isinstance(label, dict) and label.get("text"):
        return str(label["text"])
    if isinstance(label, str) and label:
        return label
    if value.get("name"):
        return str(value["name"])
    return None
