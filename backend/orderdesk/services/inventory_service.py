# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

Inventory model:
- Stock is ledger-derived, never a mutable quantity field:
    stock(item, location) = SUM(entries.quantity for item)
                          - SUM(outputs.quantity for item at location)
- Entries are not location-scoped; every location draws from the same pool.
- InventoryStock.available_qty is a materialized copy rebuilt from the ledger
  after every movement. Reads that matter go through compute_stock.

Business invariants:
- stock(item, location) >= 0 right after every committed output write.
- An entry may not be reduced or deleted while outputs depend on it
  (ConflictError), so entry edits never drive a location negative either.

Serialization:
- Every check-then-write on an (item, location) pair first writes that pair's
  InventoryStock row (version + 1). On PostgreSQL that is a row lock; on
  SQLite the first write of a transaction takes the database write lock.
  Either way a second writer for the same pair waits until the first commits
  and then re-checks against the committed ledger.
- Lock contention and deadlocks are retried by run_with_retry. Stock
  rejections are final and never retried.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryItem, InventoryEntry, InventoryOutput, InventoryStock, OrderItem, Supplier
from ..validation import (
    CENT,
    ConflictError,
    NotFoundError,
    ValidationError,
    positive_decimal,
    require_choice,
    require_text,
)
from orderdesk.time_utils import utcnow
from .concurrency import run_with_retry


class InsufficientStockError(ValueError):
    """Raised when an output would take more than the location holds."""

    def __init__(self, message: str, *, available: Decimal | None = None, requested: Decimal | None = None):
        super().__init__(message)
        self.available = available
        self.requested = requested


# =============================================================================
# LOCATIONS (CONSTANTS)
# =============================================================================

LOCATION_MAIN_WAREHOUSE = "MAIN_WAREHOUSE"
LOCATION_STORE = "STORE"

VALID_LOCATIONS = [
    LOCATION_MAIN_WAREHOUSE,
    LOCATION_STORE,
]

MAX_QUANTITY = Decimal("9999999999.99")
MAX_REASON_LENGTH = 100


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


def _validate_movement(*, location, quantity, reason) -> tuple[str, Decimal, str]:
    location = require_choice(location or LOCATION_MAIN_WAREHOUSE, VALID_LOCATIONS, "location")
    quantity = positive_decimal(quantity, "quantity", maximum=MAX_QUANTITY)
    reason = require_text(reason, "reason", max_length=MAX_REASON_LENGTH)
    return location, quantity, reason


def _get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def _reload(model, row_id: int):
    """Re-read a row after taking a stock lock, discarding any cached state."""
    return db.session.query(model).filter(model.id == row_id).populate_existing().first()


def _check_order_item(order_item_id: int | None) -> None:
    if order_item_id is None:
        return
    if db.session.get(OrderItem, order_item_id) is None:
        raise ValidationError("order_item_id does not reference an existing order item")


# =============================================================================
# STOCK QUERIES
# =============================================================================

def total_entries(item_id: int) -> Decimal:
    q = db.session.query(
        func.coalesce(func.sum(InventoryEntry.quantity), 0)
    ).filter(InventoryEntry.inventory_item_id == item_id)
    return _as_decimal(q.scalar())


def total_outputs(item_id: int, location: str) -> Decimal:
    q = db.session.query(
        func.coalesce(func.sum(InventoryOutput.quantity), 0)
    ).filter(
        InventoryOutput.inventory_item_id == item_id,
        InventoryOutput.location == location,
    )
    return _as_decimal(q.scalar())


def compute_stock(item_id: int, location: str) -> Decimal:
    """
    Current stock of an item at a location, straight from the ledger.

    Unclamped: a negative result means the invariant was broken outside
    this service and is reported as-is.
    """
    return total_entries(item_id) - total_outputs(item_id, location)


# =============================================================================
# STOCK KEYS
# =============================================================================

def _lock_stock_key(item_id: int, location: str) -> None:
    """
    Take the write lock for (item, location) by bumping its InventoryStock row.

    Creates the row when missing. A concurrent creator wins the unique
    constraint; the loser rolls back its savepoint and bumps the winner's row instead.
    """
    stmt = (
        update(InventoryStock)
        .where(
            InventoryStock.inventory_item_id == item_id,
            InventoryStock.location == location,
        )
        .values(version=InventoryStock.version + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return

    # Only the savepoint rolls back; locks on earlier keys stay held
    try:
        with db.session.begin_nested():
            db.session.add(InventoryStock(
                inventory_item_id=item_id,
                location=location,
                available_qty=Decimal("0.00"),
                version=1,
            ))
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise


def _lock_stock_keys(keys) -> None:
    # Fixed order so two writers touching the same pairs cannot deadlock
    for item_id, location in sorted(set(keys)):
        _lock_stock_key(item_id, location)


def _sync_stock_row(item_id: int, location: str) -> Decimal:
    qty = compute_stock(item_id, location)
    result = db.session.execute(
        update(InventoryStock)
        .where(
            InventoryStock.inventory_item_id == item_id,
            InventoryStock.location == location,
        )
        .values(available_qty=qty, last_updated=utcnow())
    )
    if not result.rowcount:
        db.session.add(InventoryStock(
            inventory_item_id=item_id,
            location=location,
            available_qty=qty,
            version=0,
            last_updated=utcnow(),
        ))
        db.session.flush()
    return qty


def _reject_insufficient(item_id: int, location: str, available: Decimal, requested: Decimal):
    current_app.logger.info(
        "Rejected inventory output: item=%s location=%s requested=%s available=%s",
        item_id, location, requested, available,
    )
    raise InsufficientStockError(
        f"Insufficient stock at {location}: available {available}, requested {requested}",
        available=available,
        requested=requested,
    )


# =============================================================================
# OUTPUTS
# =============================================================================

def record_inventory_output(
    *,
    inventory_item_id: int,
    location: str,
    quantity,
    reason: str,
    order_item_id: int | None = None,
) -> InventoryOutput:
    """
    Withdraw quantity of an item from a location.

    Raises:
        ValidationError: bad quantity/location/reason or unknown order item
        NotFoundError: unknown inventory item
        InsufficientStockError: quantity exceeds the location's stock
    """
    location, quantity, reason = _validate_movement(location=location, quantity=quantity, reason=reason)

    def _op() -> InventoryOutput:
        _get_item(inventory_item_id)
        _check_order_item(order_item_id)

        # Cheap rejection before taking any lock
        available = compute_stock(inventory_item_id, location)
        if quantity > available:
            _reject_insufficient(inventory_item_id, location, available, quantity)

        _lock_stock_key(inventory_item_id, location)

        # Authoritative check, serialized against other writers of this pair
        available = compute_stock(inventory_item_id, location)
        if quantity > available:
            db.session.rollback()
            _reject_insufficient(inventory_item_id, location, available, quantity)

        output = InventoryOutput(
            inventory_item_id=inventory_item_id,
            order_item_id=order_item_id,
            location=location,
            quantity=quantity,
            reason=reason,
        )
        db.session.add(output)
        db.session.flush()

        _sync_stock_row(inventory_item_id, location)
        db.session.commit()
        return output

    output = run_with_retry(_op)
    current_app.logger.info(
        "Recorded inventory output %s: item=%s location=%s quantity=%s",
        output.id, inventory_item_id, location, quantity,
    )
    return output


def edit_inventory_output(
    output_id: int,
    *,
    inventory_item_id: int,
    location: str,
    quantity,
    reason: str,
    order_item_id: int | None = None,
) -> InventoryOutput:
    """
    Replace an output's item, location, quantity, reason and origin.

    The old quantity is credited back only when the (item, location) pair is
    unchanged, so re-saving an output as-is never rejects.
    """
    location, quantity, reason = _validate_movement(location=location, quantity=quantity, reason=reason)

    def _op() -> InventoryOutput:
        output = db.session.get(InventoryOutput, output_id)
        if output is None:
            raise NotFoundError("Inventory output not found")
        _get_item(inventory_item_id)
        _check_order_item(order_item_id)

        old_key = (output.inventory_item_id, output.location)
        new_key = (inventory_item_id, location)
        old_quantity = _as_decimal(output.quantity)

        _lock_stock_keys([old_key, new_key])

        # The lock may have waited on a concurrent edit or delete
        output = _reload(InventoryOutput, output_id)
        if output is None:
            db.session.rollback()
            raise NotFoundError("Inventory output not found")
        if (output.inventory_item_id, output.location) != old_key:
            # Moved to another pair while we waited; start over with fresh keys
            db.session.rollback()
            return _op()
        old_key = (output.inventory_item_id, output.location)
        old_quantity = _as_decimal(output.quantity)

        available = compute_stock(inventory_item_id, location)
        if old_key == new_key:
            available += old_quantity
        if quantity > available:
            db.session.rollback()
            _reject_insufficient(inventory_item_id, location, available, quantity)

        output.inventory_item_id = inventory_item_id
        output.location = location
        output.quantity = quantity
        output.reason = reason
        output.order_item_id = order_item_id
        db.session.flush()

        for key in sorted({old_key, new_key}):
            _sync_stock_row(*key)
        db.session.commit()
        return output

    output = run_with_retry(_op)
    current_app.logger.info(
        "Edited inventory output %s: item=%s location=%s quantity=%s",
        output_id, inventory_item_id, location, quantity,
    )
    return output


def delete_inventory_output(output_id: int) -> dict:
    """Delete an output, returning its last state. Deleting only ever adds stock."""
    def _op() -> dict:
        output = db.session.get(InventoryOutput, output_id)
        if output is None:
            raise NotFoundError("Inventory output not found")

        key = (output.inventory_item_id, output.location)
        _lock_stock_key(*key)
        output = _reload(InventoryOutput, output_id)
        if output is None:
            db.session.rollback()
            raise NotFoundError("Inventory output not found")
        keys = {key, (output.inventory_item_id, output.location)}
        _lock_stock_keys(keys - {key})

        snapshot = output.to_dict()
        db.session.delete(output)
        db.session.flush()

        for k in sorted(keys):
            _sync_stock_row(*k)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    current_app.logger.info("Deleted inventory output %s", output_id)
    return snapshot


def list_inventory_outputs(item_id: int, location: str | None = None) -> list[InventoryOutput]:
    q = db.session.query(InventoryOutput).filter(InventoryOutput.inventory_item_id == item_id)
    if location is not None:
        q = q.filter(InventoryOutput.location == location)
    return q.order_by(InventoryOutput.created_at.desc(), InventoryOutput.id.desc()).all()


# =============================================================================
# ENTRIES
# =============================================================================

def _item_keys(item_id: int) -> list[tuple[int, str]]:
    locations = set(VALID_LOCATIONS)
    rows = (
        db.session.query(InventoryOutput.location)
        .filter(InventoryOutput.inventory_item_id == item_id)
        .distinct()
        .all()
    )
    locations.update(location for (location,) in rows)
    return [(item_id, location) for location in sorted(locations)]


def _check_supplier(supplier_id: int | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise ValidationError("supplier_id does not reference an existing supplier")


def _check_entry_reduction(item_id: int, keys, delta: Decimal) -> None:
    """delta < 0 removes stock from every location of the item at once."""
    if delta >= 0:
        return
    for _, location in keys:
        remaining = compute_stock(item_id, location) + delta
        if remaining < 0:
            db.session.rollback()
            current_app.logger.info(
                "Blocked entry change on item %s: %s would drop to %s", item_id, location, remaining
            )
            raise ConflictError(
                f"Entry is already consumed by outputs at {location}; "
                f"stock would drop to {remaining}"
            )


def record_inventory_entry(*, inventory_item_id: int, quantity, supplier_id: int | None = None) -> InventoryEntry:
    quantity = positive_decimal(quantity, "quantity", maximum=MAX_QUANTITY)

    def _op() -> InventoryEntry:
        _get_item(inventory_item_id)
        _check_supplier(supplier_id)

        keys = _item_keys(inventory_item_id)
        _lock_stock_keys(keys)

        entry = InventoryEntry(
            inventory_item_id=inventory_item_id,
            supplier_id=supplier_id,
            quantity=quantity,
        )
        db.session.add(entry)
        db.session.flush()

        for key in keys:
            _sync_stock_row(*key)
        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    current_app.logger.info(
        "Recorded inventory entry %s: item=%s quantity=%s", entry.id, inventory_item_id, quantity
    )
    return entry


def update_inventory_entry(entry_id: int, *, quantity=None, supplier_id=None) -> InventoryEntry:
    """
    Change an entry's quantity and/or supplier.

    Lowering the quantity is refused with ConflictError when outputs at any
    location already consume the difference.
    """
    if quantity is None and supplier_id is None:
        raise ValidationError("Nothing to update")
    if quantity is not None:
        quantity = positive_decimal(quantity, "quantity", maximum=MAX_QUANTITY)

    def _op() -> InventoryEntry:
        entry = db.session.get(InventoryEntry, entry_id)
        if entry is None:
            raise NotFoundError("Inventory entry not found")
        _check_supplier(supplier_id)

        item_id = entry.inventory_item_id
        keys = _item_keys(item_id)
        _lock_stock_keys(keys)
        entry = _reload(InventoryEntry, entry_id)
        if entry is None:
            db.session.rollback()
            raise NotFoundError("Inventory entry not found")

        if quantity is not None:
            _check_entry_reduction(item_id, keys, quantity - _as_decimal(entry.quantity))
            entry.quantity = quantity
        if supplier_id is not None:
            entry.supplier_id = supplier_id
        db.session.flush()

        for key in keys:
            _sync_stock_row(*key)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def delete_inventory_entry(entry_id: int) -> dict:
    """Delete an entry unless outputs already consume its quantity (ConflictError)."""
    def _op() -> dict:
        entry = db.session.get(InventoryEntry, entry_id)
        if entry is None:
            raise NotFoundError("Inventory entry not found")

        item_id = entry.inventory_item_id
        keys = _item_keys(item_id)
        _lock_stock_keys(keys)
        entry = _reload(InventoryEntry, entry_id)
        if entry is None:
            db.session.rollback()
            raise NotFoundError("Inventory entry not found")

        _check_entry_reduction(item_id, keys, -_as_decimal(entry.quantity))

        snapshot = entry.to_dict()
        db.session.delete(entry)
        db.session.flush()

        for key in keys:
            _sync_stock_row(*key)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    current_app.logger.info("Deleted inventory entry %s", entry_id)
    return snapshot


# =============================================================================
# ITEMS
# =============================================================================

ITEM_FIELDS = {"name", "description", "unit", "min_stock", "supplier_id", "is_active"}


def create_inventory_item(patch: dict) -> InventoryItem:
    """Create an item with an empty stock row per location."""
    unknown = set(patch) - ITEM_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")
    name = require_text(patch.get("name"), "name", max_length=255)
    min_stock = _as_decimal(patch.get("min_stock"))
    if min_stock < 0:
        raise ValidationError("min_stock cannot be negative")
    _check_supplier(patch.get("supplier_id"))

    item = InventoryItem(
        name=name,
        description=patch.get("description"),
        unit=patch.get("unit"),
        min_stock=min_stock,
        supplier_id=patch.get("supplier_id"),
        is_active=patch.get("is_active", True),
    )
    db.session.add(item)
    db.session.flush()

    for location in VALID_LOCATIONS:
        db.session.add(InventoryStock(
            inventory_item_id=item.id,
            location=location,
            available_qty=Decimal("0.00"),
            version=0,
        ))
    db.session.commit()
    current_app.logger.info("Created inventory item %s (%s)", item.id, item.name)
    return item


def update_inventory_item(item_id: int, patch: dict) -> InventoryItem:
    """Descriptive fields only; quantities move exclusively through entries and outputs."""
    unknown = set(patch) - ITEM_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")
    if not patch:
        raise ValidationError("Nothing to update")

    item = _get_item(item_id)
    if "name" in patch:
        item.name = require_text(patch["name"], "name", max_length=255)
    if "min_stock" in patch:
        min_stock = _as_decimal(patch["min_stock"])
        if min_stock < 0:
            raise ValidationError("min_stock cannot be negative")
        item.min_stock = min_stock
    if "supplier_id" in patch:
        _check_supplier(patch["supplier_id"])
        item.supplier_id = patch["supplier_id"]
    for field in ("description", "unit", "is_active"):
        if field in patch:
            setattr(item, field, patch[field])

    db.session.commit()
    return item


def delete_inventory_item(item_id: int) -> bool:
    """Hard delete, refused once any entry or output references the item."""
    item = _get_item(item_id)

    has_entries = db.session.query(InventoryEntry.id).filter_by(inventory_item_id=item_id).first()
    has_outputs = db.session.query(InventoryOutput.id).filter_by(inventory_item_id=item_id).first()
    if has_entries or has_outputs:
        raise ConflictError("Inventory item has movements; deactivate it instead")

    db.session.query(InventoryStock).filter_by(inventory_item_id=item_id).delete()
    db.session.delete(item)
    db.session.commit()
    current_app.logger.info("Deleted inventory item %s", item_id)
    return True


# =============================================================================
# REPORTING
# =============================================================================

def sync_inventory_stock(item_id: int, location: str | None = None) -> dict[str, Decimal]:
    """Rebuild materialized InventoryStock rows for an item from the ledger."""
    _get_item(item_id)
    if location is not None:
        location = require_choice(location, VALID_LOCATIONS, "location")
        keys = [(item_id, location)]
    else:
        keys = _item_keys(item_id)

    def _op() -> dict[str, Decimal]:
        _lock_stock_keys(keys)
        synced = {loc: _sync_stock_row(item, loc) for item, loc in keys}
        db.session.commit()
        return synced

    return run_with_retry(_op)


def get_stock_summary(item_id: int) -> dict:
    item = _get_item(item_id)
    min_stock = _as_decimal(item.min_stock)
    by_location = {location: compute_stock(item_id, location) for location in VALID_LOCATIONS}
    return {
        "inventory_item_id": item_id,
        "name": item.name,
        "unit": item.unit,
        "min_stock": str(min_stock),
        "entries_total": str(total_entries(item_id)),
        "locations": {location: str(qty) for location, qty in by_location.items()},
        "below_min_stock": any(qty < min_stock for qty in by_location.values()),
    }


def list_low_stock_items() -> list[dict]:
    """Active items whose stock at any location is under min_stock."""
    items = (
        db.session.query(InventoryItem)
        .filter(InventoryItem.is_active.is_(True))
        .order_by(InventoryItem.name.asc(), InventoryItem.id.asc())
        .all()
    )
    summaries = [get_stock_summary(item.id) for item in items]
    return [summary for summary in summaries if summary["below_min_stock"]]
