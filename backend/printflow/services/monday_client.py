"""Monday.com GraphQL API client."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from ..config import settings
from ..domain_errors import MondayApiError

logger = logging.getLogger(__name__)


CREATE_ITEM_MUTATION = """
mutation CreateItem($boardId: ID!, $itemName: String!, $columnValues: JSON!) {
    create_item(board_id: $boardId, item_name: $itemName, column_values: $columnValues) {
        id
        name
    }
}
"""

CHANGE_COLUMNS_MUTATION = """
mutation UpdateStatus($itemId: ID!, $boardId: ID!, $columnValues: JSON!) {
    change_multiple_column_values(item_id: $itemId, board_id: $boardId, column_values: $columnValues) {
        id
    }
}
"""

CREATE_UPDATE_MUTATION = """
mutation AddNote($itemId: ID!, $body: String!) {
    create_update(item_id: $itemId, body: $body) {
        id
    }
}
"""

CONNECTION_PROBE_QUERY = """
query Probe($boardIds: [ID!]) {
    me {
        name
        email
    }
    boards(ids: $boardIds) {
        id
        name
    }
}
"""

BOARD_COLUMNS_QUERY = """
query Columns($boardIds: [ID!]) {
    boards(ids: $boardIds) {
        columns {
            id
            title
            type
        }
    }
}
"""


class MondayClient:
    """Typed calls against the Monday API, authenticated per call with the board token."""

    def __init__(
        self,
        api_token: str,
        *,
        api_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        if not api_token:
            raise ValueError("Monday API token must be provided.")
        self.api_token = api_token
        self.api_url = api_url or settings.MONDAY_API_URL
        self.api_version = api_version or settings.MONDAY_API_VERSION
        self.timeout = timeout or settings.MONDAY_TIMEOUT_SECONDS
        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_token}",
            "API-Version": self.api_version,
        }

    def execute(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """POST a GraphQL document and return its ``data``; raise MondayApiError on any failure."""
        try:
            response = requests.post(
                self.api_url,
                json={"query": query, "variables": variables or {}},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MondayApiError(f"Monday API unreachable: {exc}") from exc

        if response.status_code != 200:
            raise MondayApiError(f"Monday API HTTP {response.status_code}: {response.text[:200]}")

        try:
            result = response.json()
        except ValueError as exc:
            raise MondayApiError("Monday API returned a non-JSON response") from exc

        errors = result.get("errors") or result.get("error_message")
        if errors:
            if isinstance(errors, list):
                message = (errors[0] or {}).get("message") or "Monday API request failed"
            else:
                message = str(errors)
            raise MondayApiError(message)
        return result.get("data") or {}

    def create_item(self, board_id: str, item_name: str, column_values: dict[str, Any]) -> str:
        data = self.execute(
            CREATE_ITEM_MUTATION,
            {
                "boardId": str(board_id),
                "itemName": item_name,
                "columnValues": json.dumps(column_values, ensure_ascii=False),
            },
        )
        item = data.get("create_item") or {}
        if not item.get("id"):
            raise MondayApiError("Monday API did not return an item id")
        logger.info(f"✅ Created Monday item {item_name!r} (ID: {item['id']}) in board {board_id}")
        return str(item["id"])

    def change_column_values(self, item_id: str, board_id: str, column_values: dict[str, Any]) -> None:
        self.execute(
            CHANGE_COLUMNS_MUTATION,
            {
                "itemId": str(item_id),
                "boardId": str(board_id),
                "columnValues": json.dumps(column_values, ensure_ascii=False),
            },
        )

    def update_status(self, item_id: str, board_id: str, label: str) -> None:
        self.change_column_values(item_id, board_id, {settings.MONDAY_STATUS_COLUMN_ID: label})
        logger.info(f"✅ Updated Monday item {item_id} status to {label!r}")

    def create_update(self, item_id: str, body: str) -> str:
        data = self.execute(CREATE_UPDATE_MUTATION, {"itemId": str(item_id), "body": body})
        return str((data.get("create_update") or {}).get("id", ""))

    def test_connection(self, board_ids: Optional[list[str]] = None) -> dict[str, Any]:
        """Probe credentials and board visibility."""
        ids = [str(b) for b in (board_ids or []) if b]
        data = self.execute(CONNECTION_PROBE_QUERY, {"boardIds": ids or None})
        return {"user": data.get("me"), "boards": data.get("boards") or []}

    def board_columns(self, board_id: str) -> list[dict[str, Any]]:
        data = self.execute(BOARD_COLUMNS_QUERY, {"boardIds": [str(board_id)]})
        boards = data.get("boards") or []
        return (boards[0] or {}).get("columns", []) if boards else []
