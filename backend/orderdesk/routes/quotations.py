# Overview: Flask API routes for quotations and their approval into pre-invoices and orders.

from flask import Blueprint, request, g, current_app

from ..services import order_workflow_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_permission


quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")


@quotations_bp.post("/")
@require_permission("MANAGE_QUOTATIONS")
def create_quotation_route():
    """
    Create a quotation.

    Request body:
    {
        "client_id": 3,
        "currency": "COP",
        "shipping_enabled": true,
        "shipping_fee": "15000",
        "items": [
            {"product_id": 9, "quantity": 20, "unit_price": "45000", "discount_percent": "10"},
            {"name": "Custom patch", "quantity": 20, "unit_price": "3000"}
        ]
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        quotation = order_workflow_service.create_quotation(
            client_id=data.get("client_id"),
            currency=data.get("currency"),
            items=data.get("items"),
            shipping_enabled=bool(data.get("shipping_enabled", False)),
            shipping_fee=data.get("shipping_fee", 0),
            actor_id=g.actor_id,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create quotation")
        return {"error": "Internal server error"}, 500

    return quotation.to_dict(), 201


@quotations_bp.post("/<int:quotation_id>/prefactura")
@require_permission("APPROVE_QUOTATIONS")
def create_prefactura_route(quotation_id: int):
    """
    Approve a quotation into a pre-invoice and its production order.

    Request body (all optional):
    {
        "order_name": "Uniformes Colegio 2026",
        "order_type": "VN"
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        prefactura = order_workflow_service.create_prefactura_from_quotation(
            quotation_id,
            actor_id=g.actor_id,
            order_name=data.get("order_name"),
            order_type=data.get("order_type"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create prefactura")
        return {"error": "Internal server error"}, 500

    return {
        "prefactura": prefactura.to_dict(),
        "order": prefactura.order.to_dict() if prefactura.order else None,
    }, 201
