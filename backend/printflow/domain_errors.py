"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class StoreError(DomainError):
    """Document store failure surfaced to callers as a single descriptive error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(code="STORE_ERROR", http_status=500, message=message, details=details)


class DocumentNotFound(DomainError):
    """Update or read targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(
            code="DOCUMENT_NOT_FOUND",
            http_status=404,
            message=f"Document {collection}/{doc_id} not found",
            details={"collection": collection, "id": doc_id},
        )


class MondayApiError(Exception):
    """Monday.com API call failed (transport error, HTTP error or GraphQL errors)."""
