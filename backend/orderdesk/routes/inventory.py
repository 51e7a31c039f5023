# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

# backend/orderdesk/routes/inventory.py
"""
Stock Ledger API Routes

DESIGN:
- Stock is never posted directly: entries add to an item, outputs take from
  an (item, location) pair, and stock is derived from both
- Outputs that would drive a location negative are rejected with 400
- Entries already consumed by outputs cannot be reduced or deleted (409)
"""

from flask import Blueprint, request, current_app

from ..extensions import db
from ..models import InventoryItem
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..services import inventory_service
from ..services.inventory_service import InsufficientStockError
from ..decorators import require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

INVENTORY_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "unit", "min_stock", "supplier_id", "is_active"},
    required_on_create={"name"},
)


def _movement_kwargs(payload: dict) -> dict:
    if "inventory_item_id" not in payload:
        raise ValidationError("inventory_item_id is required")
    return {
        "inventory_item_id": payload.get("inventory_item_id"),
        "location": payload.get("location"),
        "quantity": payload.get("quantity"),
        "reason": payload.get("reason"),
        "order_item_id": payload.get("order_item_id"),
    }


# =============================================================================
# ITEMS
# =============================================================================

@inventory_bp.post("/items")
@require_permission("MANAGE_INVENTORY")
def create_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_ITEM_POLICY, partial=False)
        item = inventory_service.create_inventory_item(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return item.to_dict(), 201


@inventory_bp.patch("/items/<int:item_id>")
@require_permission("MANAGE_INVENTORY")
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_ITEM_POLICY, partial=True)
        item = inventory_service.update_inventory_item(item_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return item.to_dict(), 200


@inventory_bp.delete("/items/<int:item_id>")
@require_permission("MANAGE_INVENTORY")
def delete_item_route(item_id: int):
    try:
        inventory_service.delete_inventory_item(item_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200


# =============================================================================
# STOCK QUERIES
# =============================================================================

@inventory_bp.get("/items/<int:item_id>/stock")
@require_permission("VIEW_INVENTORY")
def item_stock_route(item_id: int):
    """Per-location stock derived from the ledger, with a low-stock flag."""
    try:
        return inventory_service.get_stock_summary(item_id), 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@inventory_bp.get("/stock")
@require_permission("VIEW_INVENTORY")
def stock_route():
    """
    Query params:
    - inventory_item_id: int (required)
    - location: MAIN_WAREHOUSE | STORE (default MAIN_WAREHOUSE)
    """
    item_id = request.args.get("inventory_item_id", type=int)
    location = (request.args.get("location") or inventory_service.LOCATION_MAIN_WAREHOUSE).upper()
    if item_id is None:
        return {"error": "inventory_item_id is required"}, 400
    if location not in inventory_service.VALID_LOCATIONS:
        return {"error": f"location must be one of {inventory_service.VALID_LOCATIONS}"}, 400
    if db.session.get(InventoryItem, item_id) is None:
        return {"error": "Inventory item not found"}, 404

    stock = inventory_service.compute_stock(item_id, location)
    return {"inventory_item_id": item_id, "location": location, "stock": str(stock)}, 200


@inventory_bp.get("/low-stock")
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    return {"items": inventory_service.list_low_stock_items()}, 200


# =============================================================================
# ENTRIES
# =============================================================================

@inventory_bp.post("/entries")
@require_permission("MANAGE_INVENTORY")
def create_entry_route():
    payload = request.get_json(silent=True) or {}

    try:
        if "inventory_item_id" not in payload:
            raise ValidationError("inventory_item_id is required")
        entry = inventory_service.record_inventory_entry(
            inventory_item_id=payload.get("inventory_item_id"),
            quantity=payload.get("quantity"),
            supplier_id=payload.get("supplier_id"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to record inventory entry")
        return {"error": "Internal server error"}, 500

    summary = inventory_service.get_stock_summary(entry.inventory_item_id)
    return {"entry": entry.to_dict(), "summary": summary}, 201


@inventory_bp.patch("/entries/<int:entry_id>")
@require_permission("MANAGE_INVENTORY")
def update_entry_route(entry_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        entry = inventory_service.update_inventory_entry(
            entry_id,
            quantity=payload.get("quantity"),
            supplier_id=payload.get("supplier_id"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update inventory entry")
        return {"error": "Internal server error"}, 500

    return {"entry": entry.to_dict()}, 200


@inventory_bp.delete("/entries/<int:entry_id>")
@require_permission("MANAGE_INVENTORY")
def delete_entry_route(entry_id: int):
    try:
        deleted = inventory_service.delete_inventory_entry(entry_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete inventory entry")
        return {"error": "Internal server error"}, 500

    return {"deleted": deleted}, 200


# =============================================================================
# OUTPUTS
# =============================================================================

@inventory_bp.post("/outputs")
@require_permission("MANAGE_INVENTORY")
def create_output_route():
    """
    Withdraw stock from a location.

    Request body:
    {
        "inventory_item_id": 1,
        "location": "MAIN_WAREHOUSE",
        "quantity": "12.50",
        "reason": "Cutting for VN-000042",
        "order_item_id": 7  (optional)
    }

    Returns:
        201: Output recorded
        400: Invalid input or insufficient stock
        404: Inventory item not found
    """
    payload = request.get_json(silent=True) or {}

    try:
        output = inventory_service.record_inventory_output(**_movement_kwargs(payload))
    except InsufficientStockError as e:
        return {"error": str(e), "available": str(e.available)}, 400
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to record inventory output")
        return {"error": "Internal server error"}, 500

    return {"output": output.to_dict()}, 201


@inventory_bp.put("/outputs/<int:output_id>")
@require_permission("MANAGE_INVENTORY")
def edit_output_route(output_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        output = inventory_service.edit_inventory_output(output_id, **_movement_kwargs(payload))
    except InsufficientStockError as e:
        return {"error": str(e), "available": str(e.available)}, 400
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to edit inventory output")
        return {"error": "Internal server error"}, 500

    return {"output": output.to_dict()}, 200


@inventory_bp.delete("/outputs/<int:output_id>")
@require_permission("MANAGE_INVENTORY")
def delete_output_route(output_id: int):
    try:
        deleted = inventory_service.delete_inventory_output(output_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete inventory output")
        return {"error": "Internal server error"}, 500

    return {"deleted": deleted}, 200
