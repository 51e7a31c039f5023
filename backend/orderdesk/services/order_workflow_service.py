# Overview: Service-layer quotation -> pre-invoice -> order workflow and manual status transitions.

"""
Order Workflow

Lifecycle:
    Quotation (COT code)
      -> Prefactura (PRE code) + Order (VN-/VI- code), created together
      -> payments drive Order.status / Prefactura.status (reconciliation_service)
      -> staff move orders and order items through production by hand

Every order and order-item status change appends one history row. History
is append-only.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Client,
    InventoryOutput,
    Order,
    OrderItem,
    OrderItemStatusHistory,
    OrderPayment,
    OrderStatusHistory,
    Prefactura,
    Product,
    Quotation,
    QuotationItem,
)
from ..validation import (
    CENT,
    MAX_AMOUNT,
    ConflictError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_text,
    to_decimal,
)
from .concurrency import run_with_code_retry, run_with_retry
from .reconciliation_service import (
    ORDER_STATUS_PENDING,
    PREFACTURA_STATUS_PENDING_ACCOUNTING,
    VALID_ORDER_STATUSES,
    reconcile_order_payments,
)
from .sequence_service import KIND_ORDER_VI, KIND_ORDER_VN, KIND_PREFACTURA, KIND_QUOTATION, allocate_code


# =============================================================================
# CONSTANTS
# =============================================================================

CURRENCY_COP = "COP"
CURRENCY_USD = "USD"
VALID_CURRENCIES = [CURRENCY_COP, CURRENCY_USD]

ORDER_TYPE_VN = "VN"  # national, COP
ORDER_TYPE_VI = "VI"  # international, USD
VALID_ORDER_TYPES = [ORDER_TYPE_VN, ORDER_TYPE_VI]

ORDER_KIND_NEW = "NEW"
ORDER_KIND_COMPLETION = "COMPLETION"
ORDER_KIND_REFERENCE = "REFERENCE"

ORDER_ITEM_STATUSES = [
    "PENDING",
    "ADMIN_REVIEW",
    "INITIAL_APPROVAL",
    "PENDING_PRODUCTION",
    "MOUNTING",
    "PRINTING",
    "SUBLIMATION",
    "MANUAL_CUTTING",
    "LASER_CUTTING",
    "PENDING_SEWING",
    "SEWING",
    "IN_WAREHOUSE",
    "PACKING",
    "SHIPPED",
    "CHANGE_REVIEW",
    "CHANGE_APPROVED",
    "CHANGE_REJECTED",
    "COMPLETED",
    "CANCELLED",
]

ORDER_CODE_KIND = {
    ORDER_TYPE_VN: KIND_ORDER_VN,
    ORDER_TYPE_VI: KIND_ORDER_VI,
}


def line_total(quantity, unit_price, discount_percent=0) -> Decimal:
    """quantity * unit_price * (1 - discount%/100), rounded to cents."""
    gross = Decimal(quantity) * Decimal(str(unit_price))
    discount = Decimal(str(discount_percent or 0))
    return (gross * (Decimal("100") - discount) / Decimal("100")).quantize(CENT)


def _clean_quote_item(raw, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    quantity = raw.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be a positive integer")

    unit_price = to_decimal(raw.get("unit_price"), f"items[{index}].unit_price")
    if unit_price < 0 or unit_price > MAX_AMOUNT:
        raise ValidationError(f"items[{index}].unit_price out of range")

    discount = to_decimal(raw.get("discount_percent", 0), f"items[{index}].discount_percent")
    if discount < 0 or discount > 100:
        raise ValidationError(f"items[{index}].discount_percent must be between 0 and 100")

    product_id = raw.get("product_id")
    name = raw.get("name")
    if product_id is not None:
        product = db.session.get(Product, product_id)
        if product is None:
            raise ValidationError(f"items[{index}].product_id does not reference an existing product")
        name = name or product.name
    name = require_text(name, f"items[{index}].name", max_length=255)

    return {
        "product_id": product_id,
        "name": name,
        "quantity": quantity,
        "unit_price": unit_price,
        "discount_percent": discount,
    }


# =============================================================================
# QUOTATIONS
# =============================================================================

def create_quotation(
    *,
    client_id: int | None,
    currency: str,
    items: list,
    shipping_enabled: bool = False,
    shipping_fee=0,
    actor_id: int | None = None,
) -> Quotation:
    """
    Create a quotation with a fresh COT code.

    subtotal = SUM(line totals); total = subtotal + shipping_fee when shipping
    is enabled.
    """
    currency = require_choice(currency or CURRENCY_COP, VALID_CURRENCIES, "currency")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    shipping_fee = to_decimal(shipping_fee or 0, "shipping_fee")
    if shipping_fee < 0:
        raise ValidationError("shipping_fee cannot be negative")
    if client_id is not None and db.session.get(Client, client_id) is None:
        raise ValidationError("client_id does not reference an existing client")

    lines = [_clean_quote_item(raw, i) for i, raw in enumerate(items)]
    subtotal = sum(
        (line_total(l["quantity"], l["unit_price"], l["discount_percent"]) for l in lines),
        Decimal("0.00"),
    )
    total = subtotal + (shipping_fee if shipping_enabled else Decimal("0.00"))

    def _op() -> Quotation:
        quotation = Quotation(
            quote_code=allocate_code(KIND_QUOTATION),
            client_id=client_id,
            currency=currency,
            shipping_enabled=bool(shipping_enabled),
            shipping_fee=shipping_fee,
            subtotal=subtotal,
            total=total,
            created_by=actor_id,
        )
        db.session.add(quotation)
        db.session.flush()
        for line in lines:
            db.session.add(QuotationItem(quotation_id=quotation.id, **line))
        db.session.commit()
        return quotation

    quotation = run_with_code_retry(_op)
    current_app.logger.info("Created quotation %s (%s) total=%s", quotation.id, quotation.quote_code, total)
    return quotation


# =============================================================================
# PRE-INVOICES AND ORDERS
# =============================================================================

def _create_order_from_quotation(quotation: Quotation, *, order_type: str, order_name, actor_id) -> Order:
    order = Order(
        order_code=allocate_code(ORDER_CODE_KIND[order_type]),
        order_name=order_name,
        client_id=quotation.client_id,
        type=order_type,
        kind=ORDER_KIND_NEW,
        status=ORDER_STATUS_PENDING,
        total=quotation.total,
        currency=quotation.currency,
        shipping_fee=quotation.shipping_fee if quotation.shipping_enabled else Decimal("0.00"),
        created_by=actor_id,
    )
    db.session.add(order)
    db.session.flush()

    db.session.add(OrderStatusHistory(order_id=order.id, status=ORDER_STATUS_PENDING, changed_by=actor_id))
    for item in quotation.items:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=item.product_id,
            name=item.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=line_total(item.quantity, item.unit_price, item.discount_percent),
        ))
    return order


def create_prefactura_from_quotation(
    quotation_id: int,
    *,
    actor_id: int | None = None,
    order_name: str | None = None,
    order_type: str | None = None,
) -> Prefactura:
    """
    Approve a quotation: create its order and pre-invoice in one transaction.

    An existing pre-invoice for the quotation is reused: its amounts and the
    order total are refreshed from the quotation, its status goes back to
    PENDING_ACCOUNTING and the order is reconciled against its payments.
    """
    if order_type is not None:
        order_type = require_choice(order_type, VALID_ORDER_TYPES, "order_type")
    if order_name is not None:
        order_name = require_text(order_name, "order_name", max_length=255)

    def _op() -> Prefactura:
        quotation = db.session.get(Quotation, quotation_id)
        if quotation is None:
            raise NotFoundError("Quotation not found")
        if not quotation.is_active:
            raise ConflictError("Quotation is inactive")

        prefactura = db.session.query(Prefactura).filter(Prefactura.quotation_id == quotation_id).first()
        if prefactura is not None:
            prefactura.subtotal = quotation.subtotal
            prefactura.total = quotation.total
            prefactura.status = PREFACTURA_STATUS_PENDING_ACCOUNTING
            if prefactura.order is not None:
                prefactura.order.total = quotation.total
                if order_name is not None:
                    prefactura.order.order_name = order_name
            db.session.flush()
            if prefactura.order_id is not None:
                reconcile_order_payments(prefactura.order_id, actor_id=actor_id)
            db.session.commit()
            return prefactura

        resolved_type = order_type or (ORDER_TYPE_VI if quotation.currency == CURRENCY_USD else ORDER_TYPE_VN)
        order = _create_order_from_quotation(
            quotation, order_type=resolved_type, order_name=order_name, actor_id=actor_id
        )
        prefactura = Prefactura(
            prefactura_code=allocate_code(KIND_PREFACTURA),
            quotation_id=quotation.id,
            order_id=order.id,
            status=PREFACTURA_STATUS_PENDING_ACCOUNTING,
            subtotal=quotation.subtotal,
            total=quotation.total,
        )
        db.session.add(prefactura)
        quotation.prefactura_approved = True
        db.session.commit()
        return prefactura

    prefactura = run_with_code_retry(_op)
    current_app.logger.info(
        "Prefactura %s (%s) linked to order %s", prefactura.id, prefactura.prefactura_code, prefactura.order_id
    )
    return prefactura


# =============================================================================
# MANUAL TRANSITIONS
# =============================================================================

def set_order_status(order_id: int, status: str, *, actor_id: int | None = None) -> Order:
    """
    Move an order by hand (delays, delivery, cancellation...).

    The next payment change recomputes the status and may overwrite this.
    """
    status = require_choice(status, VALID_ORDER_STATUSES, "status")

    def _op() -> Order:
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != status:
            current_app.logger.info("Order %s status %s -> %s (manual)", order_id, order.status, status)
            order.status = status
            db.session.add(OrderStatusHistory(order_id=order_id, status=status, changed_by=actor_id))
        db.session.commit()
        return order

    return run_with_retry(_op)


def set_order_item_status(order_item_id: int, status: str, *, actor_id: int | None = None) -> OrderItem:
    status = require_choice(status, ORDER_ITEM_STATUSES, "status")

    def _op() -> OrderItem:
        item = db.session.get(OrderItem, order_item_id)
        if item is None:
            raise NotFoundError("Order item not found")
        if item.status != status:
            item.status = status
            db.session.add(OrderItemStatusHistory(order_item_id=order_item_id, status=status, changed_by=actor_id))
        db.session.commit()
        return item

    return run_with_retry(_op)


def list_order_status_history(order_id: int) -> list[OrderStatusHistory]:
    return (
        db.session.query(OrderStatusHistory)
        .filter(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.id.asc())
        .all()
    )


def delete_order(order_id: int) -> bool:
    """
    Delete an order that has no payment history.

    Items, status history and the pre-invoice link go with it; orders with
    payments (voided ones included) must be cancelled instead.
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    if db.session.query(OrderPayment.id).filter(OrderPayment.order_id == order_id).first():
        raise ConflictError("Order has payments; cancel it instead")

    item_ids = [item.id for item in order.items]
    if item_ids and db.session.query(InventoryOutput.id).filter(
        InventoryOutput.order_item_id.in_(item_ids)
    ).first():
        raise ConflictError("Order items have inventory outputs; cancel the order instead")

    if item_ids:
        db.session.query(OrderItemStatusHistory).filter(
            OrderItemStatusHistory.order_item_id.in_(item_ids)
        ).delete(synchronize_session=False)
    db.session.query(OrderStatusHistory).filter(
        OrderStatusHistory.order_id == order_id
    ).delete(synchronize_session=False)
    for prefactura in db.session.query(Prefactura).filter(Prefactura.order_id == order_id).all():
        prefactura.order_id = None
    for item in list(order.items):
        db.session.delete(item)
    db.session.delete(order)
    db.session.commit()
    current_app.logger.info("Deleted order %s", order_id)
    return True
