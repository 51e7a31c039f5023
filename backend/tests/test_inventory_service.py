from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import Update

from orderdesk.models import InventoryEntry, InventoryOutput, InventoryStock, OrderItem
from orderdesk.services import inventory_service
from orderdesk.services.inventory_service import (
    InsufficientStockError,
    LOCATION_MAIN_WAREHOUSE,
    LOCATION_STORE,
    compute_stock,
)
from orderdesk.validation import ConflictError, NotFoundError, ValidationError


def _output(item_id, quantity, location=LOCATION_MAIN_WAREHOUSE, reason="Corte"):
    return inventory_service.record_inventory_output(
        inventory_item_id=item_id,
        location=location,
        quantity=quantity,
        reason=reason,
    )


def _materialized(db_session, item_id, location):
    row = (
        db_session.query(InventoryStock)
        .filter_by(inventory_item_id=item_id, location=location)
        .populate_existing()
        .one()
    )
    return Decimal(str(row.available_qty)).quantize(Decimal("0.01"))


# =============================================================================
# compute_stock
# =============================================================================

def test_stock_is_entries_minus_location_outputs(db_session, stocked_fabric):
    inventory_service.record_inventory_entry(inventory_item_id=stocked_fabric.id, quantity="2.50")
    _output(stocked_fabric.id, "3")
    _output(stocked_fabric.id, "1.25", location=LOCATION_STORE)

    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("9.50")
    assert compute_stock(stocked_fabric.id, LOCATION_STORE) == Decimal("11.25")


def test_stock_of_item_without_movements_is_zero(db_session, fabric):
    assert compute_stock(fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("0.00")


def test_create_item_creates_stock_row_per_location(db_session, fabric):
    rows = db_session.query(InventoryStock).filter_by(inventory_item_id=fabric.id).all()
    assert sorted(r.location for r in rows) == sorted(inventory_service.VALID_LOCATIONS)


# =============================================================================
# record_inventory_output
# =============================================================================

def test_output_within_stock_is_recorded(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "4")

    assert output.id is not None
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("6.00")
    assert _materialized(db_session, stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("6.00")


def test_output_of_exact_stock_leaves_zero(db_session, stocked_fabric):
    _output(stocked_fabric.id, "10")
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("0.00")


def test_output_exceeding_stock_rejected_without_side_effects(db_session, stocked_fabric):
    with pytest.raises(InsufficientStockError) as exc_info:
        _output(stocked_fabric.id, "10.01")

    assert exc_info.value.available == Decimal("10.00")
    assert exc_info.value.requested == Decimal("10.01")
    assert db_session.query(InventoryOutput).count() == 0
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("10.00")


def test_output_rejected_when_item_has_no_entries(db_session, fabric):
    with pytest.raises(InsufficientStockError):
        _output(fabric.id, "1")


@pytest.mark.parametrize("quantity", ["0", "-1", "abc", None, "1e3", True])
def test_output_quantity_validated_before_store_access(db_session, stocked_fabric, quantity):
    with pytest.raises(ValidationError):
        _output(stocked_fabric.id, quantity)


def test_output_location_validated(db_session, stocked_fabric):
    with pytest.raises(ValidationError):
        _output(stocked_fabric.id, "1", location="BACKYARD")


def test_output_reason_required(db_session, stocked_fabric):
    with pytest.raises(ValidationError):
        _output(stocked_fabric.id, "1", reason="   ")
    with pytest.raises(ValidationError):
        _output(stocked_fabric.id, "1", reason="x" * 101)


def test_output_location_defaults_and_is_case_insensitive(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "1", location="store")
    assert output.location == LOCATION_STORE


def test_output_for_unknown_item_not_found(db_session):
    with pytest.raises(NotFoundError):
        _output(999999, "1")


def test_output_with_unknown_order_item_rejected(db_session, stocked_fabric):
    with pytest.raises(ValidationError):
        inventory_service.record_inventory_output(
            inventory_item_id=stocked_fabric.id,
            location=LOCATION_MAIN_WAREHOUSE,
            quantity="1",
            reason="Corte",
            order_item_id=424242,
        )


def test_output_linked_to_order_item(db_session, stocked_fabric, make_order):
    order = make_order()
    order_item = db_session.query(OrderItem).filter_by(order_id=order.id).first()

    output = inventory_service.record_inventory_output(
        inventory_item_id=stocked_fabric.id,
        location=LOCATION_MAIN_WAREHOUSE,
        quantity="2",
        reason="Corte pedido",
        order_item_id=order_item.id,
    )
    assert output.order_item_id == order_item.id


def test_outputs_at_one_location_do_not_limit_another(db_session, stocked_fabric):
    _output(stocked_fabric.id, "10")
    # Entries are not location-scoped: STORE still sees the whole pool
    _output(stocked_fabric.id, "10", location=LOCATION_STORE)

    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("0.00")
    assert compute_stock(stocked_fabric.id, LOCATION_STORE) == Decimal("0.00")


def test_missing_stock_row_is_created_on_first_output(db_session, stocked_fabric):
    db_session.query(InventoryStock).filter_by(inventory_item_id=stocked_fabric.id).delete()
    db_session.commit()

    _output(stocked_fabric.id, "3", location=LOCATION_STORE)

    assert _materialized(db_session, stocked_fabric.id, LOCATION_STORE) == Decimal("7.00")


# =============================================================================
# edit_inventory_output
# =============================================================================

def test_noop_edit_never_rejects_or_changes_stock(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "10")
    before = compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE)

    edited = inventory_service.edit_inventory_output(
        output.id,
        inventory_item_id=stocked_fabric.id,
        location=LOCATION_MAIN_WAREHOUSE,
        quantity="10",
        reason="Corte",
    )

    assert edited.id == output.id
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == before == Decimal("0.00")


def test_edit_same_key_credits_old_quantity(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "8")

    inventory_service.edit_inventory_output(
        output.id,
        inventory_item_id=stocked_fabric.id,
        location=LOCATION_MAIN_WAREHOUSE,
        quantity="10",
        reason="Corte ajustado",
    )

    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("0.00")


def test_edit_same_key_beyond_credit_rejected(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "8")

    with pytest.raises(InsufficientStockError):
        inventory_service.edit_inventory_output(
            output.id,
            inventory_item_id=stocked_fabric.id,
            location=LOCATION_MAIN_WAREHOUSE,
            quantity="10.01",
            reason="Corte",
        )

    db_session.expire_all()
    assert Decimal(str(db_session.get(InventoryOutput, output.id).quantity)) == Decimal("8")


def test_edit_to_other_location_gets_no_credit(db_session, stocked_fabric):
    _output(stocked_fabric.id, "6", location=LOCATION_STORE)
    output = _output(stocked_fabric.id, "6")

    # STORE holds 4; moving the MAIN_WAREHOUSE output there gets no credit
    with pytest.raises(InsufficientStockError):
        inventory_service.edit_inventory_output(
            output.id,
            inventory_item_id=stocked_fabric.id,
            location=LOCATION_STORE,
            quantity="6",
            reason="Corte",
        )

    moved = inventory_service.edit_inventory_output(
        output.id,
        inventory_item_id=stocked_fabric.id,
        location=LOCATION_STORE,
        quantity="4",
        reason="Corte",
    )
    assert moved.location == LOCATION_STORE
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("10.00")
    assert compute_stock(stocked_fabric.id, LOCATION_STORE) == Decimal("0.00")
    assert _materialized(db_session, stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("10.00")
    assert _materialized(db_session, stocked_fabric.id, LOCATION_STORE) == Decimal("0.00")


def test_edit_missing_output_not_found(db_session, stocked_fabric):
    with pytest.raises(NotFoundError):
        inventory_service.edit_inventory_output(
            987654,
            inventory_item_id=stocked_fabric.id,
            location=LOCATION_MAIN_WAREHOUSE,
            quantity="1",
            reason="Corte",
        )


# =============================================================================
# delete_inventory_output
# =============================================================================

def test_delete_output_restores_stock(db_session, stocked_fabric):
    output = _output(stocked_fabric.id, "7")

    deleted = inventory_service.delete_inventory_output(output.id)

    assert deleted["id"] == output.id
    assert deleted["quantity"] == "7.00"
    assert compute_stock(stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("10.00")
    assert _materialized(db_session, stocked_fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("10.00")


def test_delete_missing_output_not_found(db_session):
    with pytest.raises(NotFoundError):
        inventory_service.delete_inventory_output(123456)


# =============================================================================
# entries
# =============================================================================

def test_deleting_consumed_entry_is_blocked(db_session, fabric):
    entry = inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="10")
    _output(fabric.id, "4")

    with pytest.raises(ConflictError):
        inventory_service.delete_inventory_entry(entry.id)

    assert compute_stock(fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("6.00")


def test_deleting_unconsumed_entry_is_allowed(db_session, fabric):
    entry = inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="10")

    inventory_service.delete_inventory_entry(entry.id)

    assert compute_stock(fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("0.00")


def test_entry_reduction_checks_every_location(db_session, fabric):
    entry = inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="10")
    _output(fabric.id, "7", location=LOCATION_STORE)

    with pytest.raises(ConflictError):
        inventory_service.update_inventory_entry(entry.id, quantity="6")

    updated = inventory_service.update_inventory_entry(entry.id, quantity="7")
    assert Decimal(str(updated.quantity)) == Decimal("7")
    assert compute_stock(fabric.id, LOCATION_STORE) == Decimal("0.00")


def test_entry_increase_always_allowed(db_session, fabric):
    entry = inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="1")
    inventory_service.update_inventory_entry(entry.id, quantity="25")
    assert compute_stock(fabric.id, LOCATION_MAIN_WAREHOUSE) == Decimal("25.00")


def test_entry_with_unknown_supplier_rejected(db_session, fabric):
    with pytest.raises(ValidationError):
        inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="1", supplier_id=777)


def test_entry_with_supplier(db_session, fabric, supplier):
    entry = inventory_service.record_inventory_entry(
        inventory_item_id=fabric.id, quantity="3", supplier_id=supplier.id
    )
    assert entry.supplier_id == supplier.id


# =============================================================================
# items and reporting
# =============================================================================

def test_item_with_movements_cannot_be_deleted(db_session, stocked_fabric):
    with pytest.raises(ConflictError):
        inventory_service.delete_inventory_item(stocked_fabric.id)


def test_item_without_movements_can_be_deleted(db_session, fabric):
    assert inventory_service.delete_inventory_item(fabric.id) is True
    assert db_session.query(InventoryStock).filter_by(inventory_item_id=fabric.id).count() == 0


def test_update_item_rejects_quantity_fields(db_session, fabric):
    with pytest.raises(ValidationError):
        inventory_service.update_inventory_item(fabric.id, {"available_qty": "100"})


def test_stock_summary_flags_low_stock(db_session, stocked_fabric):
    _output(stocked_fabric.id, "6")

    summary = inventory_service.get_stock_summary(stocked_fabric.id)

    assert summary["locations"][LOCATION_MAIN_WAREHOUSE] == "4.00"
    assert summary["locations"][LOCATION_STORE] == "10.00"
    assert summary["below_min_stock"] is True
    assert [row["inventory_item_id"] for row in inventory_service.list_low_stock_items()] == [stocked_fabric.id]


def test_sync_rebuilds_drifted_materialized_rows(db_session, stocked_fabric):
    db_session.query(InventoryStock).filter_by(inventory_item_id=stocked_fabric.id).update(
        {InventoryStock.available_qty: Decimal("999")}
    )
    db_session.commit()

    synced = inventory_service.sync_inventory_stock(stocked_fabric.id)

    assert synced[LOCATION_MAIN_WAREHOUSE] == Decimal("10.00")
    assert _materialized(db_session, stocked_fabric.id, LOCATION_STORE) == Decimal("10.00")


def test_stock_never_negative_after_mixed_sequence(db_session, fabric):
    entry = inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="5")
    first = _output(fabric.id, "3")
    with pytest.raises(InsufficientStockError):
        _output(fabric.id, "3")
    inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="1")
    _output(fabric.id, "3")
    inventory_service.delete_inventory_output(first.id)
    with pytest.raises(ConflictError):
        inventory_service.delete_inventory_entry(entry.id)

    for location in inventory_service.VALID_LOCATIONS:
        assert compute_stock(fabric.id, location) >= 0


# =============================================================================
# STOCK KEYS
# =============================================================================

def test_lost_stock_row_creation_race_keeps_earlier_work(db_session, stocked_fabric, monkeypatch):
    """A competing creator of the stock row only rolls back the insert savepoint."""
    db_session.add(InventoryEntry(inventory_item_id=stocked_fabric.id, quantity=Decimal("5.00")))
    db_session.flush()

    real_execute = db_session.execute
    missed = []

    def execute(statement, *args, **kwargs):
        # The first bump misses, as if the row were committed right after it
        if not missed and isinstance(statement, Update):
            missed.append(statement)
            return SimpleNamespace(rowcount=0)
        return real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", execute)
    inventory_service._lock_stock_key(stocked_fabric.id, LOCATION_STORE)
    monkeypatch.undo()
    db_session.commit()

    assert len(missed) == 1
    assert inventory_service.total_entries(stocked_fabric.id) == Decimal("15.00")
    assert db_session.query(InventoryStock).filter_by(
        inventory_item_id=stocked_fabric.id, location=LOCATION_STORE
    ).count() == 1
