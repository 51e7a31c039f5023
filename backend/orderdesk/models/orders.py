from __future__ import annotations

from ..extensions import db
from orderdesk.serialization import decimal_to_str
from orderdesk.time_utils import to_utc_z


class Quotation(db.Model):
    """Customer quotation (COT10001, COT10002, ...)."""
    __tablename__ = "quotations"
    __table_args__ = (
        db.UniqueConstraint("quote_code", name="uq_quotations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_code = db.Column(db.String(20), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    currency = db.Column(db.String(5), nullable=False, default="COP")
    shipping_enabled = db.Column(db.Boolean, nullable=False, default=False)
    shipping_fee = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    prefactura_approved = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("QuotationItem", backref="quotation", lazy=True, order_by="QuotationItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_code": self.quote_code,
            "client_id": self.client_id,
            "currency": self.currency,
            "shipping_enabled": self.shipping_enabled,
            "shipping_fee": decimal_to_str(self.shipping_fee),
            "subtotal": decimal_to_str(self.subtotal),
            "total": decimal_to_str(self.total),
            "prefactura_approved": self.prefactura_approved,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quotation_id": self.quotation_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": decimal_to_str(self.unit_price),
            "discount_percent": decimal_to_str(self.discount_percent),
        }


class Order(db.Model):
    """
    Production order.

    STATUS DESIGN:
    status is a projection of payment progress maintained by
    reconciliation_service. Staff may move it manually
    (order_workflow_service.set_order_status), but every payment change
    recomputes it and may overwrite a manual value. Each transition appends
    an OrderStatusHistory row.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_code", name="uq_orders_code"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_code = db.Column(db.String(20), nullable=False)
    order_name = db.Column(db.String(255), nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    type = db.Column(db.String(4), nullable=False)  # VN, VI
    kind = db.Column(db.String(16), nullable=False, default="NEW")
    status = db.Column(db.String(32), nullable=False, default="PENDING", index=True)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(5), nullable=False, default="COP")
    shipping_fee = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    created_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")

    def __repr__(self) -> str:
        return f"<Order id={self.id} code={self.order_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_code": self.order_code,
            "order_name": self.order_name,
            "client_id": self.client_id,
            "type": self.type,
            "kind": self.kind,
            "status": self.status,
            "total": decimal_to_str(self.total),
            "discount": decimal_to_str(self.discount),
            "currency": self.currency,
            "shipping_fee": decimal_to_str(self.shipping_fee),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default="PENDING", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": decimal_to_str(self.unit_price),
            "total_price": decimal_to_str(self.total_price),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class OrderStatusHistory(db.Model):
    """Append-only: one row per order status transition. Never updated."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "changed_by": self.changed_by,
            "created_at": to_utc_z(self.created_at),
        }


class OrderItemStatusHistory(db.Model):
    """Append-only: one row per order item status transition."""
    __tablename__ = "order_item_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "status": self.status,
            "changed_by": self.changed_by,
            "created_at": to_utc_z(self.created_at),
        }


class OrderPayment(db.Model):
    """
    Payment toward an order.

    VOIDED payments stay in the table for history but are excluded from
    every paid total.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_order_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    method = db.Column(db.String(16), nullable=False)  # CASH, TRANSFER, CREDIT
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    proof_image_url = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    voided_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": decimal_to_str(self.amount),
            "method": self.method,
            "status": self.status,
            "proof_image_url": self.proof_image_url,
            "created_by": self.created_by,
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Prefactura(db.Model):
    """
    Pre-invoice between quotation and order.

    status mirrors the order's payment-driven status through a fixed mapping
    (reconciliation_service.derive_status). It has no history table.
    """
    __tablename__ = "prefacturas"
    __table_args__ = (
        db.UniqueConstraint("prefactura_code", name="uq_prefacturas_code"),
        db.UniqueConstraint("quotation_id", name="uq_prefacturas_quotation"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefactura_code = db.Column(db.String(20), nullable=False)
    quotation_id = db.Column(db.Integer, db.ForeignKey("quotations.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    status = db.Column(db.String(32), nullable=False, default="PENDING_ACCOUNTING", index=True)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    quotation = db.relationship("Quotation", backref=db.backref("prefactura", uselist=False, lazy=True))
    order = db.relationship("Order", backref=db.backref("prefactura", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefactura_code": self.prefactura_code,
            "quotation_id": self.quotation_id,
            "order_id": self.order_id,
            "status": self.status,
            "subtotal": decimal_to_str(self.subtotal),
            "total": decimal_to_str(self.total),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
