# Overview: Service-layer operations for order payments; every mutation reconciles order status.

"""
Order Payment Service

DESIGN PRINCIPLES:
- Payments are separate from orders (many-to-one relationship)
- Partial payments: deposits toward an order are the normal case
- Voided payments stay in the table and count as zero
- Every create/update/void/delete ends with reconcile_order_payments inside
  the same transaction, so a payment and the status it implies commit or
  roll back together
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Order, OrderPayment, Prefactura
from ..validation import ConflictError, NotFoundError, ValidationError, positive_decimal, require_choice
from orderdesk.time_utils import utcnow
from .concurrency import run_with_retry
from .reconciliation_service import (
    PAYMENT_STATUS_VOIDED,
    paid_percentage,
    reconcile_order_payments,
    sum_active_payments,
)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_TRANSFER = "TRANSFER"
METHOD_CREDIT = "CREDIT"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_TRANSFER,
    METHOD_CREDIT,
]


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"

# Statuses a caller may set directly; VOIDED only through void_payment
SETTABLE_STATUSES = [
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
]

UPDATABLE_FIELDS = {"amount", "method", "status", "proof_image_url"}


def _get_payment(payment_id: int, order_id: int | None = None) -> OrderPayment:
    payment = db.session.get(OrderPayment, payment_id)
    if payment is None or (order_id is not None and payment.order_id != order_id):
        raise NotFoundError("Payment not found")
    return payment


def _clean_proof_url(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# =============================================================================
# PAYMENT MUTATIONS
# =============================================================================

def create_payment(
    *,
    order_id: int,
    amount,
    method: str,
    status: str = PAYMENT_STATUS_PENDING,
    proof_image_url: str | None = None,
    actor_id: int | None = None,
) -> OrderPayment:
    """
    Register a payment toward an order and reconcile the order's status.

    Raises:
        ValidationError: non-positive amount, unknown method or status
        NotFoundError: the order does not exist
    """
    amount = positive_decimal(amount, "amount")
    method = require_choice(method, VALID_METHODS, "method")
    status = require_choice(status or PAYMENT_STATUS_PENDING, SETTABLE_STATUSES, "status")
    proof_image_url = _clean_proof_url(proof_image_url)

    def _op() -> OrderPayment:
        if db.session.get(Order, order_id) is None:
            raise NotFoundError("Order not found")

        payment = OrderPayment(
            order_id=order_id,
            amount=amount,
            method=method,
            status=status,
            proof_image_url=proof_image_url,
            created_by=actor_id,
        )
        db.session.add(payment)
        db.session.flush()

        reconcile_order_payments(order_id, actor_id=actor_id)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info(
        "Payment %s created for order %s: %s %s", payment.id, order_id, method, amount
    )
    return payment


def update_payment(payment_id: int, *, actor_id: int | None = None, order_id: int | None = None, **changes) -> OrderPayment:
    """
    Patch amount, method, status or proof_image_url of a live payment.

    Voided payments are frozen (ConflictError).
    """
    if not changes:
        raise ValidationError("Nothing to update")
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    patch = {}
    if "amount" in changes:
        patch["amount"] = positive_decimal(changes["amount"], "amount")
    if "method" in changes:
        patch["method"] = require_choice(changes["method"], VALID_METHODS, "method")
    if "status" in changes:
        patch["status"] = require_choice(changes["status"], SETTABLE_STATUSES, "status")
    if "proof_image_url" in changes:
        patch["proof_image_url"] = _clean_proof_url(changes["proof_image_url"])

    def _op() -> OrderPayment:
        payment = _get_payment(payment_id, order_id)
        if payment.status == PAYMENT_STATUS_VOIDED:
            raise ConflictError("Voided payments cannot be edited")

        for field, value in patch.items():
            setattr(payment, field, value)
        db.session.flush()

        reconcile_order_payments(payment.order_id, actor_id=actor_id)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info("Payment %s updated: %s", payment_id, sorted(patch))
    return payment


def void_payment(payment_id: int, *, actor_id: int | None = None, reason: str | None = None, order_id: int | None = None) -> OrderPayment:
    """
    Void a payment. It stays on record and stops counting toward the order.

    Raises:
        NotFoundError: payment not found
        ConflictError: payment already voided
    """
    reason = (str(reason).strip() or None) if reason is not None else None
    if reason is not None and len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    def _op() -> OrderPayment:
        payment = _get_payment(payment_id, order_id)
        if payment.status == PAYMENT_STATUS_VOIDED:
            raise ConflictError("Payment already voided")

        payment.status = PAYMENT_STATUS_VOIDED
        payment.voided_at = utcnow()
        payment.voided_by = actor_id
        payment.void_reason = reason
        db.session.flush()

        reconcile_order_payments(payment.order_id, actor_id=actor_id)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    current_app.logger.info("Payment %s voided (order %s)", payment_id, payment.order_id)
    return payment


def delete_payment(payment_id: int, *, actor_id: int | None = None, order_id: int | None = None) -> dict:
    """Remove a payment row entirely and reconcile. Returns its last state."""
    def _op() -> dict:
        payment = _get_payment(payment_id, order_id)
        owner_id = payment.order_id
        snapshot = payment.to_dict()

        db.session.delete(payment)
        db.session.flush()

        reconcile_order_payments(owner_id, actor_id=actor_id)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    current_app.logger.info("Payment %s deleted (order %s)", payment_id, snapshot["order_id"])
    return snapshot


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def list_order_payments(order_id: int, include_voided: bool = True) -> list[OrderPayment]:
    if db.session.get(Order, order_id) is None:
        raise NotFoundError("Order not found")
    q = db.session.query(OrderPayment).filter(OrderPayment.order_id == order_id)
    if not include_voided:
        q = q.filter(OrderPayment.status != PAYMENT_STATUS_VOIDED)
    return q.order_by(OrderPayment.created_at.asc(), OrderPayment.id.asc()).all()


def get_payment_summary(order_id: int) -> dict:
    """
    Totals for an order.

    Returns:
        dict with order_total, paid_total, remaining, paid_percent,
        order_status, prefactura_status, payment_count
    """
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    order_total = Decimal(str(order.total or 0)).quantize(Decimal("0.01"))
    paid_total = sum_active_payments(order_id)
    remaining = max(order_total - paid_total, Decimal("0.00"))
    prefactura = db.session.query(Prefactura).filter(Prefactura.order_id == order_id).first()
    payment_count = (
        db.session.query(OrderPayment)
        .filter(OrderPayment.order_id == order_id, OrderPayment.status != PAYMENT_STATUS_VOIDED)
        .count()
    )

    return {
        "order_id": order_id,
        "order_total": str(order_total),
        "paid_total": str(paid_total),
        "remaining": str(remaining),
        "paid_percent": str(paid_percentage(order_total, paid_total)),
        "order_status": order.status,
        "prefactura_status": prefactura.status if prefactura else None,
        "payment_count": payment_count,
    }
