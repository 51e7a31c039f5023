# Overview: Service-layer payment reconciliation; derives order and pre-invoice status from payments.

"""
Payment Reconciliation

Order.status and Prefactura.status are projections of payment progress:

    paid % >= 50       -> order PRODUCTION,        prefactura SCHEDULING
    0 < paid % < 50    -> order INITIAL_APPROVAL,  prefactura INITIAL_APPROVAL
    paid % == 0        -> order PENDING,           prefactura PENDING_ACCOUNTING
    (order total <= 0 always maps to the last row)

paid % = SUM(amount of non-VOIDED payments) / order total * 100.

reconcile_order_payments is the only writer of these projections driven by
payments. It is idempotent: a second run with no payment change appends no
history row and leaves the order untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Order, OrderPayment, OrderStatusHistory, Prefactura
from ..validation import CENT
from .concurrency import lock_for_update


# =============================================================================
# STATUS (CONSTANTS)
# =============================================================================

ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_INITIAL_APPROVAL = "INITIAL_APPROVAL"
ORDER_STATUS_PRODUCTION = "PRODUCTION"
ORDER_STATUS_DELAYED = "DELAYED"
ORDER_STATUS_FINISHED = "FINISHED"
ORDER_STATUS_DELIVERED = "DELIVERED"
ORDER_STATUS_CANCELLED = "CANCELLED"
ORDER_STATUS_REVIEW = "REVIEW"

VALID_ORDER_STATUSES = [
    ORDER_STATUS_PENDING,
    ORDER_STATUS_INITIAL_APPROVAL,
    ORDER_STATUS_PRODUCTION,
    ORDER_STATUS_DELAYED,
    ORDER_STATUS_FINISHED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_REVIEW,
]

PREFACTURA_STATUS_PENDING_ACCOUNTING = "PENDING_ACCOUNTING"
PREFACTURA_STATUS_INITIAL_APPROVAL = "INITIAL_APPROVAL"
PREFACTURA_STATUS_SCHEDULING = "SCHEDULING"
PREFACTURA_STATUS_APPROVED = "APPROVED"

# Payments in this status are kept for history and count as zero
PAYMENT_STATUS_VOIDED = "VOIDED"

PRODUCTION_THRESHOLD_PERCENT = Decimal("50")


@dataclass(frozen=True)
class ReconcileResult:
    order_id: int
    previous_status: str
    order_status: str
    prefactura_status: str
    order_total: Decimal
    paid_total: Decimal
    paid_percent: Decimal
    changed: bool

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "previous_status": self.previous_status,
            "order_status": self.order_status,
            "prefactura_status": self.prefactura_status,
            "order_total": str(self.order_total),
            "paid_total": str(self.paid_total),
            "paid_percent": str(self.paid_percent),
            "changed": self.changed,
        }


def _as_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT)


# =============================================================================
# PURE DERIVATION
# =============================================================================

def paid_percentage(order_total, paid_total) -> Decimal:
    """Paid share of the order total, rounded to 0.01 for display. 0 when total <= 0."""
    total = _as_decimal(order_total)
    paid = _as_decimal(paid_total)
    if total <= 0:
        return Decimal("0.00")
    return (paid * 100 / total).quantize(CENT)


def derive_status(order_total, paid_total) -> tuple[str, str]:
    """
    Map payment progress to (order status, prefactura status).

    Compares paid * 100 against total * 50 without dividing, so 499.99 of
    1000 never rounds up into production.
    """
    total = _as_decimal(order_total)
    paid = _as_decimal(paid_total)

    if total <= 0 or paid <= 0:
        return ORDER_STATUS_PENDING, PREFACTURA_STATUS_PENDING_ACCOUNTING
    if paid * 100 >= total * PRODUCTION_THRESHOLD_PERCENT:
        return ORDER_STATUS_PRODUCTION, PREFACTURA_STATUS_SCHEDULING
    return ORDER_STATUS_INITIAL_APPROVAL, PREFACTURA_STATUS_INITIAL_APPROVAL


def sum_active_payments(order_id: int) -> Decimal:
    q = db.session.query(
        func.coalesce(func.sum(OrderPayment.amount), 0)
    ).filter(
        OrderPayment.order_id == order_id,
        OrderPayment.status != PAYMENT_STATUS_VOIDED,
    )
    return _as_decimal(q.scalar())


# =============================================================================
# RECONCILIATION
# =============================================================================

def _lock_order(order_id: int) -> Order | None:
    """
    Serialize reconciliations of one order.

    The no-op UPDATE takes the SQLite write lock (SQLite ignores FOR UPDATE);
    the FOR UPDATE read covers PostgreSQL. updated_at is pinned so the
    onupdate default does not fire.
    """
    result = db.session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(updated_at=Order.updated_at)
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        return None
    query = db.session.query(Order).filter(Order.id == order_id).populate_existing()
    return lock_for_update(query).first()


def reconcile_order_payments(order_id: int, *, actor_id: int | None = None, commit: bool = False) -> ReconcileResult | None:
    """
    Recompute order and pre-invoice status from the order's payments.

    Returns None, without writing anything, when the order does not exist.
    Changes are flushed into the caller's transaction; pass commit=True when
    reconciling on its own.
    """
    order = _lock_order(order_id)
    if order is None:
        current_app.logger.warning("Reconciliation skipped: order %s not found", order_id)
        return None

    order_total = _as_decimal(order.total)
    paid_total = sum_active_payments(order_id)
    order_status, prefactura_status = derive_status(order_total, paid_total)

    previous_status = order.status
    changed = order_status != previous_status
    if changed:
        order.status = order_status
        db.session.add(OrderStatusHistory(
            order_id=order_id,
            status=order_status,
            changed_by=actor_id,
        ))
        current_app.logger.info(
            "Order %s status %s -> %s (paid %s of %s)",
            order_id, previous_status, order_status, paid_total, order_total,
        )

    # Pre-invoice status is written every time; it keeps no history
    prefacturas = db.session.query(Prefactura).filter(Prefactura.order_id == order_id).all()
    for prefactura in prefacturas:
        prefactura.status = prefactura_status

    db.session.flush()
    if commit:
        db.session.commit()

    return ReconcileResult(
        order_id=order_id,
        previous_status=previous_status,
        order_status=order_status,
        prefactura_status=prefactura_status,
        order_total=order_total,
        paid_total=paid_total,
        paid_percent=paid_percentage(order_total, paid_total),
        changed=changed,
    )
