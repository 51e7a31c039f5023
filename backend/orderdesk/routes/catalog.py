# Overview: Flask API routes for categories, products, additions and packers; parses input and returns JSON responses.

# backend/orderdesk/routes/catalog.py
"""
Catalog routes.

Product and addition codes are minted server-side from the category name
(TEL01, TEL02, ...). Clients never send a code; a category change re-codes
the row. POST /codes/<kind> previews the next code without reserving it.
"""
from flask import Blueprint, request, current_app

from ..models import Product, Addition
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    NotFoundError,
)
from ..services import catalog_service, sequence_service
from ..services.sequence_service import CapacityExhaustedError
from ..decorators import require_permission

CODED_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category_id", "is_active"},
    required_on_create={"name"},
)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.post("/categories")
@require_permission("MANAGE_CATALOG")
def create_category_route():
    payload = request.get_json(silent=True) or {}

    try:
        category = catalog_service.create_category(payload.get("name"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return category.to_dict(), 201


@catalog_bp.delete("/categories/<int:category_id>")
@require_permission("MANAGE_CATALOG")
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200


def _create_coded(model, create):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=model, payload=payload, policy=CODED_POLICY, partial=False)
        created = create(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        # CapacityExhaustedError included: the category has used all 99 codes
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create %s", model.__name__.lower())
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


def _update_coded(model, update, row_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=model, payload=payload, policy=CODED_POLICY, partial=True)
        updated = update(row_id, patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update %s", model.__name__.lower())
        return {"error": "Internal server error"}, 500

    return updated.to_dict(), 200


@catalog_bp.post("/products")
@require_permission("MANAGE_CATALOG")
def create_product_route():
    return _create_coded(Product, catalog_service.create_product)


@catalog_bp.patch("/products/<int:product_id>")
@require_permission("MANAGE_CATALOG")
def update_product_route(product_id: int):
    return _update_coded(Product, catalog_service.update_product, product_id)


@catalog_bp.post("/additions")
@require_permission("MANAGE_CATALOG")
def create_addition_route():
    return _create_coded(Addition, catalog_service.create_addition)


@catalog_bp.patch("/additions/<int:addition_id>")
@require_permission("MANAGE_CATALOG")
def update_addition_route(addition_id: int):
    return _update_coded(Addition, catalog_service.update_addition, addition_id)


@catalog_bp.post("/packers")
@require_permission("MANAGE_CATALOG")
def create_packer_route():
    payload = request.get_json(silent=True) or {}

    try:
        packer = catalog_service.create_packer(
            name=payload.get("name"),
            identification=payload.get("identification"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409

    return packer.to_dict(), 201


@catalog_bp.post("/codes/<kind>")
@require_permission("MANAGE_CATALOG")
def preview_code_route(kind: str):
    """
    Preview the next code of a family.

    Request body (PRODUCT / ADDITION only):
    {
        "category_name": "Telas Especiales"
    }
    """
    payload = request.get_json(silent=True) or {}

    try:
        code = sequence_service.allocate_code(kind, payload.get("category_name"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except CapacityExhaustedError as e:
        return {"error": str(e), "capacity_exhausted": True}, 409

    return {"kind": kind.upper(), "code": code}, 200
