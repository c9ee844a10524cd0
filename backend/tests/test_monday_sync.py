from __future__ import annotations

from printflow.domain_errors import MondayApiError
from printflow.services.settings_store import get_monday_settings
from printflow.use_cases import monday_sync
from printflow.use_cases.order_lifecycle import (
    create_order,
    get_order,
    update_order_status,
    update_order_with_design,
)

from conftest import FakeMondayClient, order_payload

DESIGN = {
    "designFileUrl": "https://files.example/design.pdf",
    "dimensions": "30x45",
    "colors": "CMYK",
    "material": "satin",
    "finishing": "matte",
}


def _add_order(store, **fields) -> str:
    doc = {
        "orderNumber": "ORD-7",
        "productType": "ribbons",
        "quantity": 10,
        "deliveryDate": "2026-11-05",
        "status": "pending-design",
        "createdAt": "2026-10-01T10:00:00+00:00",
    }
    doc.update(fields)
    return store.add("orders", doc)


def _sync(store, order_id, **kwargs):
    return monday_sync.sync_order_to_monday(
        store=store, order_id=order_id, client_factory=FakeMondayClient, **kwargs
    )


def test_board_kind_follows_status() -> None:
    assert monday_sync.board_kind_for_status("pending-design") == "design"
    assert monday_sync.board_kind_for_status("pending-production") == "production"
    assert monday_sync.board_kind_for_status("in-production") == "production"
    assert monday_sync.board_kind_for_status("completed") is None


def test_item_name_and_column_values() -> None:
    order = {"id": "abc", "orderNumber": "ORD-7", "productType": "ribbons", "deliveryDate": "2026-11-05T00:00:00",
             "status": "pending-design"}

    assert monday_sync.build_item_name(order) == "ORD-7 - Ribbons الشرايط"
    assert monday_sync.build_item_name({**order, "orderType": "Wedding"}) == "ORD-7 - Wedding"
    assert monday_sync.build_column_values(order) == {
        "order_id": "abc",
        "delivery_date": {"date": "2026-11-05"},
        "status": "New جديد",
    }


def test_sync_creates_design_item_and_caches_ids(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store)

    outcome = _sync(store, order_id)

    assert outcome.status == "created"
    assert outcome.board_id == "111"
    client = FakeMondayClient.instances[-1]
    assert client.api_token == "token-123"
    board_id, item_name, columns = client.created[0]
    assert (board_id, item_name) == ("111", "ORD-7 - Ribbons الشرايط")
    assert columns["order_id"] == order_id

    order = get_order(store=store, order_id=order_id)
    assert order["mondayItemId"] == outcome.item_id
    assert order["mondayBoardId"] == "111"
    assert get_monday_settings(store).last_sync


def test_second_sync_updates_instead_of_creating(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store)

    _sync(store, order_id)
    outcome = _sync(store, order_id)

    assert outcome.status == "updated"
    created = [entry for client in FakeMondayClient.instances for entry in client.created]
    assert len(created) == 1
    assert FakeMondayClient.instances[-1].status_updates[0][1:] == ("111", "New جديد")


def test_designer_personal_board_wins_over_default(store, monday_settings) -> None:
    monday_settings()
    store.set("users", "designer-9", {"name": "Mona", "mondayBoardId": "999"})
    order_id = _add_order(store, assignedDesignerId="designer-9")

    outcome = _sync(store, order_id)

    assert outcome.board_id == "999"
    assert get_order(store=store, order_id=order_id)["mondayBoardId"] == "999"


def test_explicit_target_board_wins_over_designer_board(store, monday_settings) -> None:
    monday_settings()
    store.set("users", "designer-9", {"mondayBoardId": "999"})
    order_id = _add_order(store, assignedDesignerId="designer-9")

    outcome = _sync(store, order_id, target_board_id="555", automatic=False)

    assert outcome.board_id == "555"


def test_designer_without_board_falls_back_to_default(store, monday_settings) -> None:
    monday_settings()
    store.set("users", "designer-9", {"name": "Mona"})
    order_id = _add_order(store, assignedDesignerId="designer-9")

    assert _sync(store, order_id).board_id == "111"


def test_production_status_creates_production_item(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store, status="pending-production", mondayItemId="501", mondayBoardId="111")

    outcome = _sync(store, order_id)

    assert outcome.status == "created"
    assert outcome.board_id == "222"
    order = get_order(store=store, order_id=order_id)
    assert order["mondayItemId"] == "501"
    assert order["mondayProductionItemId"] == outcome.item_id
    assert order["mondayProductionBoardId"] == "222"


def test_sync_is_skipped_when_integration_is_off(store, monday_settings) -> None:
    order_id = _add_order(store)

    assert _sync(store, order_id).reason == "integration_disabled"
    monday_settings(enabled=False)
    assert _sync(store, order_id).reason == "integration_disabled"
    monday_settings(apiToken="")
    assert _sync(store, order_id).reason == "missing_api_token"
    assert FakeMondayClient.instances == []


def test_auto_sync_gate_only_applies_to_automatic_syncs(store, monday_settings) -> None:
    monday_settings(autoSync=False)
    order_id = _add_order(store)

    assert _sync(store, order_id).reason == "auto_sync_disabled"
    assert _sync(store, order_id, automatic=False).status == "created"


def test_missing_board_is_skipped(store, monday_settings) -> None:
    monday_settings(designBoardId="")
    order_id = _add_order(store)

    outcome = _sync(store, order_id)

    assert outcome.status == "skipped"
    assert outcome.reason == "missing_design_board"


def test_unknown_order_is_skipped(store, monday_settings) -> None:
    monday_settings()

    assert _sync(store, "nope").reason == "order_not_found"


def test_api_failure_returns_failed_outcome_and_leaves_order_alone(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store)

    def failing(token):
        return FakeMondayClient(token, fail_with=MondayApiError("board is archived"))

    outcome = monday_sync.sync_order_to_monday(store=store, order_id=order_id, client_factory=failing)

    assert outcome.status == "failed"
    assert "archived" in outcome.reason
    assert "mondayItemId" not in get_order(store=store, order_id=order_id)


def test_completed_order_pushes_to_every_linked_item(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(
        store,
        status="completed",
        mondayItemId="501",
        mondayBoardId="111",
        mondayProductionItemId="601",
        mondayProductionBoardId="222",
    )

    outcome = _sync(store, order_id)

    assert outcome.status == "updated"
    assert outcome.updated_items == ["501", "601"]
    assert FakeMondayClient.instances[-1].status_updates == [
        ("501", "111", "Done تم"),
        ("601", "222", "Done تم"),
    ]


def test_completed_order_without_items_creates_nothing(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store, status="completed")

    outcome = _sync(store, order_id)

    assert outcome.reason == "no_linked_items"
    assert all(not client.created for client in FakeMondayClient.instances)


def test_push_continues_when_one_item_fails(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(
        store,
        status="in-production",
        mondayItemId="501",
        mondayBoardId="111",
        mondayProductionItemId="601",
        mondayProductionBoardId="222",
    )

    class HalfBroken(FakeMondayClient):
        def update_status(self, item_id, board_id, label):
            if item_id == "501":
                raise MondayApiError("item deleted")
            super().update_status(item_id, board_id, label)

    outcome = monday_sync.push_order_status(store=store, order_id=order_id, client_factory=HalfBroken)

    assert outcome.status == "updated"
    assert outcome.updated_items == ["601"]
    assert "item deleted" in outcome.reason


def test_push_falls_back_to_default_board_for_legacy_items(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store, status="in-production", mondayItemId="501")

    monday_sync.push_order_status(store=store, order_id=order_id, client_factory=FakeMondayClient)

    assert FakeMondayClient.instances[-1].status_updates == [("501", "111", "Working on it اشتغل عليه")]


def test_notes_go_to_every_linked_item_even_without_auto_sync(store, monday_settings) -> None:
    monday_settings(autoSync=False)
    order_id = _add_order(store, mondayItemId="501", mondayProductionItemId="601")

    outcome = monday_sync.add_monday_note(
        store=store, order_id=order_id, body="Customer called", client_factory=FakeMondayClient
    )

    assert outcome.updated_items == ["501", "601"]
    assert FakeMondayClient.instances[-1].notes == [("501", "Customer called"), ("601", "Customer called")]


def test_notes_without_items_are_skipped(store, monday_settings) -> None:
    monday_settings()
    order_id = _add_order(store)

    outcome = monday_sync.add_monday_note(
        store=store, order_id=order_id, body="hello", client_factory=FakeMondayClient
    )

    assert outcome.reason == "no_linked_items"


def test_probe_reports_missing_boards(store) -> None:
    result = monday_sync.probe_monday_connection(
        api_token="token-123", board_ids=["111"], client_factory=FakeMondayClient
    )
    assert result["success"] is True
    assert result["missingBoards"] == []

    def partial(token):
        client = FakeMondayClient(token)
        client.test_connection = lambda board_ids=None: {"user": {"name": "Probe"}, "boards": [{"id": "111"}]}
        return client

    result = monday_sync.probe_monday_connection(
        api_token="token-123", board_ids=["111", "222"], client_factory=partial
    )
    assert result["missingBoards"] == ["222"]


def test_probe_failure_is_reported_not_raised(store) -> None:
    def failing(token):
        return FakeMondayClient(token, fail_with=MondayApiError("Not Authenticated"))

    result = monday_sync.probe_monday_connection(api_token="bad", board_ids=[], client_factory=failing)

    assert result == {"success": False, "error": "Not Authenticated"}


def test_lifecycle_flows_through_the_task_queue(store, monday_settings, fake_monday) -> None:
    monday_settings()

    order_id = create_order(store=store, data=order_payload(), created_by="sales-1")
    order = get_order(store=store, order_id=order_id)
    assert order["mondayBoardId"] == "111"
    design_item = order["mondayItemId"]

    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")
    order = get_order(store=store, order_id=order_id)
    assert order["mondayItemId"] == design_item
    assert order["mondayProductionBoardId"] == "222"

    update_order_status(store=store, order_id=order_id, status="completed", user_id="prod-1")
    pushed = [update for client in fake_monday.instances for update in client.status_updates]
    assert {item for item, _, label in pushed if label == "Done تم"} == {
        design_item,
        order["mondayProductionItemId"],
    }


def test_broken_tracker_never_blocks_lifecycle(store, monday_settings, monkeypatch) -> None:
    monday_settings()

    def failing(token):
        return FakeMondayClient(token, fail_with=MondayApiError("HTTP 500"))

    monkeypatch.setattr(monday_sync, "MondayClient", failing)

    order_id = create_order(store=store, data=order_payload(), created_by="sales-1")
    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")

    order = get_order(store=store, order_id=order_id)
    assert order["status"] == "pending-production"
    assert "mondayItemId" not in order


def test_lifecycle_syncs_when_auto_sync_was_never_set(store, fake_monday) -> None:
    store.set(
        "settings",
        "monday_integration",
        {"enabled": True, "apiToken": "token-123", "designBoardId": "111", "productionBoardId": "222"},
    )

    order_id = create_order(store=store, data=order_payload(), created_by="sales-1")
    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")

    order = get_order(store=store, order_id=order_id)
    assert order["mondayItemId"]
    assert order["mondayProductionItemId"]
    created_on = [board for client in fake_monday.instances for board, _, _ in client.created]
    assert created_on == ["111", "222"]
