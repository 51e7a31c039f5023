from __future__ import annotations

from ..extensions import db
from orderdesk.serialization import decimal_to_str
from orderdesk.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Raw material / supply tracked by the stock ledger.

    Quantity on hand is NOT a column here. It is derived from
    InventoryEntry and InventoryOutput rows (see inventory_service).
    Once movements reference an item only descriptive fields may change.
    """
    __tablename__ = "inventory_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    unit = db.Column(db.String(50), nullable=True)
    min_stock = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("inventory_items", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "min_stock": decimal_to_str(self.min_stock),
            "supplier_id": self.supplier_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryEntry(db.Model):
    """
    Replenishment event. Entries are not location-scoped: every entry feeds
    the single pool the per-location outputs draw from.
    """
    __tablename__ = "inventory_entries"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_entries_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    inventory_item = db.relationship("InventoryItem", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "supplier_id": self.supplier_id,
            "quantity": decimal_to_str(self.quantity),
            "created_at": to_utc_z(self.created_at),
        }


class InventoryOutput(db.Model):
    """
    Withdrawal event scoped to a location.

    Revisable: edits and deletes go through inventory_service so the stock
    check and the materialized InventoryStock row stay consistent.
    """
    __tablename__ = "inventory_outputs"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_outputs_quantity_positive"),
        db.Index("ix_inventory_outputs_item_location", "inventory_item_id", "location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True, index=True)
    location = db.Column(db.String(32), nullable=False, default="MAIN_WAREHOUSE")
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    inventory_item = db.relationship("InventoryItem", backref=db.backref("outputs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "order_item_id": self.order_item_id,
            "location": self.location,
            "quantity": decimal_to_str(self.quantity),
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryStock(db.Model):
    """
    Materialized stock per (item, location).

    NOT a source of truth: available_qty is overwritten from the ledger by
    sync_inventory_stock. The row doubles as the lock key that serializes
    stock check-then-write pairs for its (item, location); version is bumped
    on every guarded write.
    """
    __tablename__ = "inventory_stock"
    __table_args__ = (
        db.UniqueConstraint("inventory_item_id", "location", name="uq_inventory_stock_item_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    location = db.Column(db.String(32), nullable=False)
    available_qty = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    inventory_item = db.relationship("InventoryItem", backref=db.backref("stock_rows", lazy=True))

    def to_dict(self) -> dict:
        return {
            "inventory_item_id": self.inventory_item_id,
            "location": self.location,
            "available_qty": decimal_to_str(self.available_qty),
            "last_updated": to_utc_z(self.last_updated),
        }
