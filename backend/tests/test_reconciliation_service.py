from decimal import Decimal

import pytest

from orderdesk.models import Order, OrderPayment, OrderStatusHistory, Prefactura
from orderdesk.services.reconciliation_service import (
    derive_status,
    paid_percentage,
    reconcile_order_payments,
    sum_active_payments,
)


def _pay(db_session, order, amount, status="PAID"):
    payment = OrderPayment(order_id=order.id, amount=Decimal(amount), method="CASH", status=status)
    db_session.add(payment)
    db_session.commit()
    return payment


def _history(db_session, order):
    return [
        h.status for h in db_session.query(OrderStatusHistory)
        .filter_by(order_id=order.id)
        .order_by(OrderStatusHistory.id)
        .all()
    ]


# =============================================================================
# derive_status / paid_percentage
# =============================================================================

@pytest.mark.parametrize("total,paid,expected", [
    ("1000", "0", ("PENDING", "PENDING_ACCOUNTING")),
    ("1000", "0.01", ("INITIAL_APPROVAL", "INITIAL_APPROVAL")),
    ("1000", "499", ("INITIAL_APPROVAL", "INITIAL_APPROVAL")),
    ("1000", "499.99", ("INITIAL_APPROVAL", "INITIAL_APPROVAL")),
    ("1000", "500", ("PRODUCTION", "SCHEDULING")),
    ("1000", "1500", ("PRODUCTION", "SCHEDULING")),
    ("0", "100", ("PENDING", "PENDING_ACCOUNTING")),
    ("-5", "100", ("PENDING", "PENDING_ACCOUNTING")),
])
def test_derive_status_thresholds(total, paid, expected):
    assert derive_status(Decimal(total), Decimal(paid)) == expected


def test_paid_percentage():
    assert paid_percentage(Decimal("1000"), Decimal("499")) == Decimal("49.90")
    assert paid_percentage(Decimal("3"), Decimal("1")) == Decimal("33.33")
    assert paid_percentage(Decimal("0"), Decimal("10")) == Decimal("0.00")


# =============================================================================
# reconcile_order_payments
# =============================================================================

def test_voided_payments_do_not_count(db_session, make_order):
    order = make_order("1000.00")
    _pay(db_session, order, "600", status="VOIDED")

    assert sum_active_payments(order.id) == Decimal("0.00")
    result = reconcile_order_payments(order.id, commit=True)

    assert result.order_status == "PENDING"
    assert result.prefactura_status == "PENDING_ACCOUNTING"
    assert result.changed is False
    assert _history(db_session, order) == []


def test_boundary_499_then_500(db_session, make_order):
    order = make_order("1000.00")
    _pay(db_session, order, "499")

    result = reconcile_order_payments(order.id, commit=True)
    assert result.order_status == "INITIAL_APPROVAL"

    _pay(db_session, order, "1")
    result = reconcile_order_payments(order.id, commit=True)
    assert result.order_status == "PRODUCTION"
    assert result.prefactura_status == "SCHEDULING"
    assert result.paid_percent == Decimal("50.00")

    assert _history(db_session, order) == ["INITIAL_APPROVAL", "PRODUCTION"]


def test_reconcile_is_idempotent(db_session, make_order):
    order = make_order("1000.00")
    _pay(db_session, order, "700")

    first = reconcile_order_payments(order.id, commit=True)
    second = reconcile_order_payments(order.id, commit=True)

    assert first.changed is True
    assert second.changed is False
    assert second.order_status == first.order_status == "PRODUCTION"
    assert _history(db_session, order) == ["PRODUCTION"]


def test_prefactura_status_written_even_without_order_change(db_session, make_order):
    order = make_order("1000.00")
    prefactura = db_session.query(Prefactura).filter_by(order_id=order.id).one()
    prefactura.status = "APPROVED"
    db_session.commit()

    result = reconcile_order_payments(order.id, commit=True)

    db_session.expire_all()
    assert result.changed is False
    assert db_session.get(Prefactura, prefactura.id).status == "PENDING_ACCOUNTING"


def test_order_without_prefactura_reconciles(db_session, make_order):
    order = make_order("200.00", with_prefactura=False)
    _pay(db_session, order, "50")

    result = reconcile_order_payments(order.id, commit=True)

    assert result.order_status == "INITIAL_APPROVAL"
    assert result.prefactura_status == "INITIAL_APPROVAL"


def test_missing_order_is_silent_noop(db_session):
    assert reconcile_order_payments(404404, commit=True) is None
    assert db_session.query(OrderStatusHistory).count() == 0


def test_zero_total_order_stays_pending(db_session, make_order):
    order = make_order("0.00")
    _pay(db_session, order, "100")

    result = reconcile_order_payments(order.id, commit=True)

    assert result.order_status == "PENDING"
    assert result.paid_percent == Decimal("0.00")


def test_manual_status_is_overwritten_by_reconciliation(db_session, make_order):
    order = make_order("1000.00", status="DELAYED")
    _pay(db_session, order, "100")

    result = reconcile_order_payments(order.id, actor_id=None, commit=True)

    assert result.previous_status == "DELAYED"
    assert result.order_status == "INITIAL_APPROVAL"
    db_session.expire_all()
    assert db_session.get(Order, order.id).status == "INITIAL_APPROVAL"


def test_uncommitted_reconcile_rolls_back_with_caller(db_session, make_order):
    order = make_order("1000.00")
    _pay(db_session, order, "900")

    reconcile_order_payments(order.id)
    db_session.rollback()

    db_session.expire_all()
    assert db_session.get(Order, order.id).status == "PENDING"
    assert _history(db_session, order) == []
