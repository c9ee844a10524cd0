from __future__ import annotations

import pytest

from printflow.config import settings
from printflow.domain_errors import DomainError
from printflow.use_cases.order_lifecycle import (
    apply_external_status,
    create_order,
    fetch_all_orders,
    fetch_orders_by_status,
    fetch_orders_by_user,
    find_order_by_monday_item,
    find_order_by_number,
    get_order,
    start_design_work,
    subscribe_to_orders,
    update_order,
    update_order_status,
    update_order_with_design,
)

from conftest import order_payload

DESIGN = {
    "designFileUrl": "https://files.example/design.pdf",
    "dimensions": "30x45",
    "colors": "CMYK",
    "material": "satin",
    "finishing": "matte",
}


def _text_field(field_id: str, role: str = "sales", value: str = "x") -> dict:
    return {"id": field_id, "name": field_id, "type": "text", "value": value, "addedByRole": role}


def _create(store, **overrides) -> str:
    return create_order(store=store, data=order_payload(**overrides), created_by="sales-1")


def test_create_order_forces_pending_design_and_stamps_creation(store) -> None:
    order_id = _create(store, status="completed", completedAt="2020-01-01", mondayItemId="x")

    order = get_order(store=store, order_id=order_id)
    assert order["status"] == "pending-design"
    assert order["createdBy"] == "sales-1"
    assert order["createdAt"] == order["sentToDesignAt"]
    assert "completedAt" not in order
    assert "mondayItemId" not in order


def test_create_order_strips_absent_values(store) -> None:
    order_id = _create(store, assignedDesignerId=None, orderType=None)

    order = get_order(store=store, order_id=order_id)
    assert "assignedDesignerId" not in order
    assert "orderType" not in order


@pytest.mark.parametrize("quantity", [0, -3, "5", True])
def test_create_order_rejects_non_positive_or_non_integer_quantity(store, quantity) -> None:
    with pytest.raises(DomainError) as exc:
        _create(store, quantity=quantity)

    assert exc.value.code == "INVALID_QUANTITY"
    assert fetch_all_orders(store=store) == []


def test_create_order_requires_core_fields(store) -> None:
    data = order_payload()
    del data["deliveryDate"]

    with pytest.raises(DomainError) as exc:
        create_order(store=store, data=data, created_by="sales-1")

    assert exc.value.code == "ORDER_FIELDS_MISSING"
    assert exc.value.details == {"missing": ["deliveryDate"]}


def test_create_order_rejects_duplicate_custom_field_ids(store) -> None:
    with pytest.raises(DomainError) as exc:
        _create(store, customFields=[_text_field("f1"), _text_field("f1")])

    assert exc.value.code == "DUPLICATE_CUSTOM_FIELD_ID"


def test_create_order_succeeds_when_integration_disabled(store, fake_monday) -> None:
    order_id = _create(store)

    assert get_order(store=store, order_id=order_id)["status"] == "pending-design"
    assert fake_monday.instances == []


def test_start_design_work_sets_start_without_changing_status(store) -> None:
    order_id = _create(store)

    start_design_work(store=store, order_id=order_id, user_id="designer-1")
    first = get_order(store=store, order_id=order_id)
    start_design_work(store=store, order_id=order_id, user_id="designer-1")
    second = get_order(store=store, order_id=order_id)

    assert first["status"] == "pending-design"
    assert first["designedBy"] == "designer-1"
    # Restarting moves the start timestamp.
    assert second["designStartedAt"] >= first["designStartedAt"]


def test_update_order_with_design_advances_to_pending_production(store) -> None:
    order_id = _create(store, customFields=[_text_field("sales-note")])

    update_order_with_design(
        store=store,
        order_id=order_id,
        design={**DESIGN, "printingType": "thermal", "thermalSubType": "sublimation",
                "customFields": [_text_field("ink", role="design")]},
        user_id="designer-1",
    )

    order = get_order(store=store, order_id=order_id)
    assert order["status"] == "pending-production"
    assert order["designedBy"] == "designer-1"
    assert order["designedAt"] and order["sentToProductionAt"]
    assert order["thermalSubType"] == "sublimation"
    assert [f["id"] for f in order["customFields"]] == ["sales-note", "ink"]


def test_update_order_with_design_requires_design_fields(store) -> None:
    order_id = _create(store)

    with pytest.raises(DomainError) as exc:
        update_order_with_design(
            store=store,
            order_id=order_id,
            design={"designFileUrl": "https://files.example/a.pdf"},
            user_id="designer-1",
        )

    assert exc.value.code == "DESIGN_FIELDS_MISSING"
    assert exc.value.details["missing"] == ["dimensions", "colors", "material", "finishing"]
    assert get_order(store=store, order_id=order_id)["status"] == "pending-design"


def test_thermal_sub_type_only_with_thermal_printing(store) -> None:
    order_id = _create(store)

    with pytest.raises(DomainError) as exc:
        update_order_with_design(
            store=store,
            order_id=order_id,
            design={**DESIGN, "printingType": "silkscreen", "thermalSubType": "sugaris"},
            user_id="designer-1",
        )

    assert exc.value.code == "INVALID_THERMAL_SUB_TYPE"


def test_appended_custom_field_cannot_reuse_existing_id(store) -> None:
    order_id = _create(store, customFields=[_text_field("f1")])

    with pytest.raises(DomainError) as exc:
        update_order_with_design(
            store=store,
            order_id=order_id,
            design={**DESIGN, "customFields": [_text_field("f1", role="design")]},
            user_id="designer-1",
        )

    assert exc.value.code == "DUPLICATE_CUSTOM_FIELD_ID"


def test_update_order_never_touches_status_or_timestamps(store) -> None:
    order_id = _create(store)
    before = get_order(store=store, order_id=order_id)

    update_order(
        store=store,
        order_id=order_id,
        changes={
            "quantity": 75,
            "salesNotes": "changed",
            "status": "completed",
            "sentToDesignAt": "1999-01-01T00:00:00+00:00",
            "completedAt": "1999-01-01T00:00:00+00:00",
        },
    )

    after = get_order(store=store, order_id=order_id)
    assert after["quantity"] == 75
    assert after["salesNotes"] == "changed"
    assert after["status"] == "pending-design"
    assert after["sentToDesignAt"] == before["sentToDesignAt"]
    assert "completedAt" not in after


def test_update_order_keeps_custom_field_role(store) -> None:
    order_id = _create(store, customFields=[_text_field("f1", role="sales")])

    with pytest.raises(DomainError) as exc:
        update_order(
            store=store,
            order_id=order_id,
            changes={"customFields": [_text_field("f1", role="design", value="new")]},
        )
    assert exc.value.code == "CUSTOM_FIELD_ROLE_IMMUTABLE"

    update_order(
        store=store,
        order_id=order_id,
        changes={"customFields": [_text_field("f1", role="sales", value="new")]},
    )
    assert get_order(store=store, order_id=order_id)["customFields"][0]["value"] == "new"


def test_update_order_status_to_completed_stamps_completion(store) -> None:
    order_id = _create(store)
    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")

    update_order_status(store=store, order_id=order_id, status="in-production", user_id="prod-1")
    assert get_order(store=store, order_id=order_id)["status"] == "in-production"

    update_order_status(
        store=store, order_id=order_id, status="completed", user_id="prod-1", production_notes="packed"
    )
    order = get_order(store=store, order_id=order_id)
    assert order["status"] == "completed"
    assert order["completedBy"] == "prod-1"
    assert order["completedAt"]
    assert order["productionNotes"] == "packed"

    first_completed_at = order["completedAt"]
    update_order_status(store=store, order_id=order_id, status="completed", user_id="prod-2")
    assert get_order(store=store, order_id=order_id)["completedAt"] == first_completed_at


@pytest.mark.parametrize("status", ["pending-design", "pending-production", "shipped"])
def test_update_order_status_only_accepts_production_targets(store, status) -> None:
    order_id = _create(store)

    with pytest.raises(DomainError) as exc:
        update_order_status(store=store, order_id=order_id, status=status, user_id="prod-1")

    assert exc.value.code == "INVALID_STATUS"


def test_sent_to_design_at_is_stable_across_the_lifecycle(store) -> None:
    order_id = _create(store)
    created = get_order(store=store, order_id=order_id)

    update_order(store=store, order_id=order_id, changes={"salesNotes": "edit"})
    start_design_work(store=store, order_id=order_id, user_id="designer-1")
    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")
    update_order_status(store=store, order_id=order_id, status="completed", user_id="prod-1")

    order = get_order(store=store, order_id=order_id)
    assert order["sentToDesignAt"] == created["sentToDesignAt"]
    assert order["createdAt"] == created["createdAt"]


def test_status_regression_is_allowed_by_default(store) -> None:
    order_id = _create(store)
    update_order_status(store=store, order_id=order_id, status="completed", user_id="prod-1")

    update_order_status(store=store, order_id=order_id, status="in-production", user_id="prod-1")

    assert get_order(store=store, order_id=order_id)["status"] == "in-production"


def test_status_regression_is_rejected_when_forward_only_enabled(store, monkeypatch) -> None:
    monkeypatch.setattr(settings, "ENFORCE_FORWARD_STATUS", True)
    order_id = _create(store)
    update_order_status(store=store, order_id=order_id, status="completed", user_id="prod-1")

    with pytest.raises(DomainError) as exc:
        update_order_status(store=store, order_id=order_id, status="in-production", user_id="prod-1")

    assert exc.value.http_status == 409
    assert exc.value.code == "STATUS_REGRESSION"


def test_apply_external_status_marks_system_completion(store) -> None:
    order_id = _create(store)

    apply_external_status(store=store, order_id=order_id, status="completed")

    order = get_order(store=store, order_id=order_id)
    assert order["status"] == "completed"
    assert order["completedBy"] == "monday-sync"
    assert order["completedAt"] == order["lastSyncedFromMonday"]


def test_missing_order_raises_not_found(store) -> None:
    with pytest.raises(DomainError) as exc:
        start_design_work(store=store, order_id="missing", user_id="designer-1")

    assert exc.value.http_status == 404
    assert exc.value.code == "ORDER_NOT_FOUND"


def test_queries_by_status_creator_and_number(store) -> None:
    first = _create(store, orderNumber="ORD-1")
    second = create_order(store=store, data=order_payload(orderNumber="ORD-2"), created_by="sales-2")
    update_order_with_design(store=store, order_id=second, design=DESIGN, user_id="designer-1")

    assert [o["id"] for o in fetch_orders_by_status(store=store, status="pending-design")] == [first]
    assert [o["id"] for o in fetch_orders_by_status(store=store, status="pending-production")] == [second]
    assert [o["id"] for o in fetch_orders_by_user(store=store, user_id="sales-2")] == [second]
    assert [o["id"] for o in fetch_all_orders(store=store)] == [second, first]
    assert find_order_by_number(store=store, order_number="ORD-2")["id"] == second
    assert find_order_by_number(store=store, order_number="ORD-404") is None


def test_fetch_by_unknown_status_is_rejected(store) -> None:
    with pytest.raises(DomainError) as exc:
        fetch_orders_by_status(store=store, status="shipped")

    assert exc.value.code == "INVALID_STATUS"


def test_find_order_by_monday_item_checks_design_board_first(store) -> None:
    design_order = _create(store, orderNumber="ORD-D")
    production_order = _create(store, orderNumber="ORD-P")
    store.update("orders", design_order, {"mondayItemId": "555"})
    store.update("orders", production_order, {"mondayProductionItemId": "555"})

    assert find_order_by_monday_item(store=store, item_id="555")["id"] == design_order
    assert find_order_by_monday_item(store=store, item_id="777") is None


def test_subscribe_to_orders_filters_by_status_and_unsubscribes(store) -> None:
    snapshots: list[list[dict]] = []
    unsubscribe = subscribe_to_orders(store=store, callback=snapshots.append, status="pending-design")
    assert snapshots == [[]]

    order_id = _create(store)
    assert [o["id"] for o in snapshots[-1]] == [order_id]

    update_order_with_design(store=store, order_id=order_id, design=DESIGN, user_id="designer-1")
    assert snapshots[-1] == []

    unsubscribe()
    count = len(snapshots)
    _create(store, orderNumber="ORD-2")
    assert len(snapshots) == count
