# Overview: Flask API routes for order payments and order status; parses input and returns JSON responses.

# backend/orderdesk/routes/payments.py
"""
Order Payment API Routes

DESIGN:
- Payments hang off an order: /api/orders/<order_id>/payments
- Every payment change answers with the order's refreshed payment summary,
  since the order and pre-invoice status follow the paid percentage
- Voids keep the payment on record; deletes remove it

SECURITY:
- MANAGE_PAYMENTS for payment mutations
- MANAGE_ORDERS for manual status changes and order deletion
- The acting employee (X-Employee-Id) is recorded on history rows
"""

from flask import Blueprint, request, g, current_app

from ..services import payment_service, reconciliation_service, order_workflow_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_permission


payments_bp = Blueprint("payments", __name__, url_prefix="/api/orders")


# =============================================================================
# PAYMENT MUTATIONS
# =============================================================================

@payments_bp.post("/<int:order_id>/payments")
@require_permission("MANAGE_PAYMENTS")
def create_payment_route(order_id: int):
    """
    Register a payment toward an order.

    Request body:
    {
        "amount": "250000.00",
        "method": "TRANSFER",
        "status": "PAID",  (optional, default PENDING)
        "proof_image_url": "https://..."  (optional)
    }

    Returns:
        201: Payment created, with the order's payment summary
        400: Invalid input
        404: Order not found
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.create_payment(
            order_id=order_id,
            amount=data.get("amount"),
            method=data.get("method"),
            status=data.get("status") or payment_service.PAYMENT_STATUS_PENDING,
            proof_image_url=data.get("proof_image_url"),
            actor_id=g.actor_id,
        )
        summary = payment_service.get_payment_summary(order_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to create payment")
        return {"error": "Internal server error"}, 500

    return {"payment": payment.to_dict(), "summary": summary}, 201


@payments_bp.patch("/<int:order_id>/payments/<int:payment_id>")
@require_permission("MANAGE_PAYMENTS")
def update_payment_route(order_id: int, payment_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return {"error": "Invalid JSON payload"}, 400
    for reserved in ("actor_id", "order_id"):
        if reserved in data:
            return {"error": f"Field not allowed: {reserved}"}, 400

    try:
        payment = payment_service.update_payment(
            payment_id, actor_id=g.actor_id, order_id=order_id, **data
        )
        summary = payment_service.get_payment_summary(order_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return {"error": "Internal server error"}, 500

    return {"payment": payment.to_dict(), "summary": summary}, 200


@payments_bp.post("/<int:order_id>/payments/<int:payment_id>/void")
@require_permission("MANAGE_PAYMENTS")
def void_payment_route(order_id: int, payment_id: int):
    """
    Void a payment.

    Request body:
    {
        "reason": "Duplicate transfer"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        payment = payment_service.void_payment(
            payment_id, actor_id=g.actor_id, reason=data.get("reason"), order_id=order_id
        )
        summary = payment_service.get_payment_summary(order_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to void payment")
        return {"error": "Internal server error"}, 500

    return {"payment": payment.to_dict(), "summary": summary}, 200


@payments_bp.delete("/<int:order_id>/payments/<int:payment_id>")
@require_permission("MANAGE_PAYMENTS")
def delete_payment_route(order_id: int, payment_id: int):
    try:
        deleted = payment_service.delete_payment(payment_id, actor_id=g.actor_id, order_id=order_id)
        summary = payment_service.get_payment_summary(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete payment")
        return {"error": "Internal server error"}, 500

    return {"deleted": deleted, "summary": summary}, 200


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/<int:order_id>/payments")
@require_permission("VIEW_PAYMENTS")
def list_payments_route(order_id: int):
    """
    Query params:
    - include_voided: true | false (default true)
    """
    include_voided = request.args.get("include_voided", "true").lower() != "false"

    try:
        payments = payment_service.list_order_payments(order_id, include_voided=include_voided)
        summary = payment_service.get_payment_summary(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"payments": [p.to_dict() for p in payments], "summary": summary}, 200


@payments_bp.post("/<int:order_id>/reconcile")
@require_permission("MANAGE_PAYMENTS")
def reconcile_route(order_id: int):
    """Recompute order and pre-invoice status from the recorded payments."""
    try:
        result = reconciliation_service.reconcile_order_payments(order_id, actor_id=g.actor_id, commit=True)
    except Exception:
        current_app.logger.exception("Failed to reconcile order payments")
        return {"error": "Internal server error"}, 500

    if result is None:
        return {"error": "Order not found"}, 404
    return result.to_dict(), 200


# =============================================================================
# ORDER STATUS
# =============================================================================

@payments_bp.post("/<int:order_id>/status")
@require_permission("MANAGE_ORDERS")
def set_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        order = order_workflow_service.set_order_status(order_id, data.get("status"), actor_id=g.actor_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    history = order_workflow_service.list_order_status_history(order_id)
    return {"order": order.to_dict(), "history": [h.to_dict() for h in history]}, 200


@payments_bp.post("/items/<int:order_item_id>/status")
@require_permission("MANAGE_ORDERS")
def set_order_item_status_route(order_item_id: int):
    data = request.get_json(silent=True) or {}

    try:
        item = order_workflow_service.set_order_item_status(order_item_id, data.get("status"), actor_id=g.actor_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"item": item.to_dict()}, 200


@payments_bp.delete("/<int:order_id>")
@require_permission("MANAGE_ORDERS")
def delete_order_route(order_id: int):
    try:
        order_workflow_service.delete_order(order_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200
