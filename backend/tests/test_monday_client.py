from __future__ import annotations

import json

import pytest
import requests

from printflow.domain_errors import MondayApiError
from printflow.services import monday_client
from printflow.services.monday_client import MondayClient


class _Response:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


@pytest.fixture
def calls(monkeypatch):
    recorded: list[dict] = []
    responses: list[_Response] = []

    def fake_post(url, json=None, headers=None, timeout=None):
        recorded.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return responses.pop(0)

    monkeypatch.setattr(monday_client.requests, "post", fake_post)
    recorded_responses = recorded, responses
    return recorded_responses


def test_token_is_required() -> None:
    with pytest.raises(ValueError):
        MondayClient("")


def test_create_item_posts_graphql_with_token(calls) -> None:
    recorded, responses = calls
    responses.append(_Response(payload={"data": {"create_item": {"id": 4242, "name": "ORD-1"}}}))

    item_id = MondayClient("tok").create_item("111", "ORD-1 - Belts", {"status": "New جديد"})

    assert item_id == "4242"
    request = recorded[0]
    assert request["url"] == "https://api.monday.com/v2"
    assert request["headers"]["Authorization"] == "Bearer tok"
    assert request["headers"]["API-Version"]
    variables = request["json"]["variables"]
    assert variables["boardId"] == "111"
    assert json.loads(variables["columnValues"]) == {"status": "New جديد"}


def test_update_status_writes_status_column(calls) -> None:
    recorded, responses = calls
    responses.append(_Response(payload={"data": {"change_multiple_column_values": {"id": "9"}}}))

    MondayClient("tok").update_status("9", "222", "Done تم")

    variables = recorded[0]["json"]["variables"]
    assert (variables["itemId"], variables["boardId"]) == ("9", "222")
    assert json.loads(variables["columnValues"]) == {"status": "Done تم"}


def test_graphql_errors_raise_monday_api_error(calls) -> None:
    _, responses = calls
    responses.append(_Response(payload={"errors": [{"message": "Board not found"}]}))

    with pytest.raises(MondayApiError, match="Board not found"):
        MondayClient("tok").create_update("9", "note")


def test_error_message_field_raises(calls) -> None:
    _, responses = calls
    responses.append(_Response(payload={"error_message": "Rate limit exceeded"}))

    with pytest.raises(MondayApiError, match="Rate limit"):
        MondayClient("tok").board_columns("111")


def test_http_failure_raises(calls) -> None:
    _, responses = calls
    responses.append(_Response(status_code=401, text="Not Authenticated"))

    with pytest.raises(MondayApiError, match="HTTP 401"):
        MondayClient("tok").test_connection(["111"])


def test_non_json_response_raises(calls) -> None:
    _, responses = calls
    responses.append(_Response(payload=None))

    with pytest.raises(MondayApiError, match="non-JSON"):
        MondayClient("tok").test_connection()


def test_transport_error_raises(monkeypatch) -> None:
    def boom(*args, **kwargs):
        raise requests.ConnectionError("dns failure")

    monkeypatch.setattr(monday_client.requests, "post", boom)

    with pytest.raises(MondayApiError, match="unreachable"):
        MondayClient("tok").create_update("9", "note")


def test_missing_item_id_raises(calls) -> None:
    _, responses = calls
    responses.append(_Response(payload={"data": {"create_item": None}}))

    with pytest.raises(MondayApiError):
        MondayClient("tok").create_item("111", "x", {})


def test_connection_probe_and_board_columns(calls) -> None:
    recorded, responses = calls
    responses.append(
        _Response(payload={"data": {"me": {"name": "Admin"}, "boards": [{"id": "111", "name": "Design"}]}})
    )
    responses.append(
        _Response(payload={"data": {"boards": [{"columns": [{"id": "status", "title": "Status", "type": "status"}]}]}})
    )

    client = MondayClient("tok")
    probe = client.test_connection(["111", ""])
    columns = client.board_columns("111")

    assert probe == {"user": {"name": "Admin"}, "boards": [{"id": "111", "name": "Design"}]}
    assert recorded[0]["json"]["variables"] == {"boardIds": ["111"]}
    assert columns == [{"id": "status", "title": "Status", "type": "status"}]
