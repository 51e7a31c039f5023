# Overview: Service-layer operations for categories, products, additions and packers; mints their codes.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Category, Product, Addition, Packer
from ..validation import ConflictError, NotFoundError, ValidationError, require_text
from .concurrency import run_with_code_retry
from .sequence_service import (
    KIND_ADDITION,
    KIND_PACKER,
    KIND_PRODUCT,
    allocate_code,
    normalize_code_prefix,
)


CODED_FIELDS = {"name", "description", "category_id", "is_active"}


def _get_category(category_id: int | None) -> Category | None:
    if category_id is None:
        return None
    category = db.session.get(Category, category_id)
    if category is None:
        raise ValidationError("category_id does not reference an existing category")
    return category


def _check_fields(patch: dict) -> None:
    unknown = set(patch) - CODED_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")


# =============================================================================
# CATEGORIES
# =============================================================================

def create_category(name: str) -> Category:
    name = require_text(name, "name", max_length=150)
    if db.session.query(Category.id).filter(Category.name == name).first():
        raise ConflictError(f"Category '{name}' already exists")

    category = Category(name=name)
    db.session.add(category)
    db.session.commit()
    return category


def delete_category(category_id: int) -> bool:
    """Refused while products or additions still belong to the category."""
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")

    in_use = (
        db.session.query(Product.id).filter(Product.category_id == category_id).first()
        or db.session.query(Addition.id).filter(Addition.category_id == category_id).first()
    )
    if in_use:
        raise ConflictError("Category has products or additions")

    db.session.delete(category)
    db.session.commit()
    return True


# =============================================================================
# PRODUCTS / ADDITIONS
# =============================================================================

def _create_coded(model, code_field: str, kind: str, patch: dict):
    """
    Insert a product or addition with a freshly minted code.

    Items without a category carry no code until one is assigned.
    """
    _check_fields(patch)
    name = require_text(patch.get("name"), "name", max_length=255)

    def _op():
        category = _get_category(patch.get("category_id"))
        row = model(
            name=name,
            description=patch.get("description"),
            category_id=category.id if category else None,
            is_active=patch.get("is_active", True),
        )
        if category is not None:
            setattr(row, code_field, allocate_code(kind, category.name))
        db.session.add(row)
        db.session.commit()
        return row

    row = run_with_code_retry(_op)
    current_app.logger.info("Created %s %s with code %s", kind.lower(), row.id, getattr(row, code_field))
    return row


def _update_coded(model, code_field: str, kind: str, row_id: int, patch: dict):
    """
    Patch a product or addition.

    A code is only ever replaced by a newly allocated one: when the category
    change alters the prefix, or when the row had no code yet.
    """
    _check_fields(patch)
    if not patch:
        raise ValidationError("Nothing to update")

    def _op():
        row = db.session.get(model, row_id)
        if row is None:
            raise NotFoundError(f"{model.__name__} not found")

        if "name" in patch:
            row.name = require_text(patch["name"], "name", max_length=255)
        if "description" in patch:
            row.description = patch["description"]
        if "is_active" in patch:
            row.is_active = bool(patch["is_active"])

        if "category_id" in patch:
            category = _get_category(patch["category_id"])
            row.category_id = category.id if category else None
            current_code = getattr(row, code_field)
            if category is not None:
                new_prefix = normalize_code_prefix(category.name)
                if current_code is None or not current_code.startswith(new_prefix):
                    new_code = allocate_code(kind, category.name)
                    setattr(row, code_field, new_code)
                    current_app.logger.info(
                        "Re-coded %s %s: %s -> %s", kind.lower(), row_id, current_code, new_code
                    )

        db.session.commit()
        return row

    return run_with_code_retry(_op)


def create_product(patch: dict) -> Product:
    return _create_coded(Product, "product_code", KIND_PRODUCT, patch)


def update_product(product_id: int, patch: dict) -> Product:
    return _update_coded(Product, "product_code", KIND_PRODUCT, product_id, patch)


def create_addition(patch: dict) -> Addition:
    return _create_coded(Addition, "addition_code", KIND_ADDITION, patch)


def update_addition(addition_id: int, patch: dict) -> Addition:
    return _update_coded(Addition, "addition_code", KIND_ADDITION, addition_id, patch)


# =============================================================================
# PACKERS
# =============================================================================

def create_packer(*, name: str, identification: str) -> Packer:
    name = require_text(name, "name", max_length=255)
    identification = require_text(identification, "identification", max_length=20)

    def _op() -> Packer:
        if db.session.query(Packer.id).filter(Packer.identification == identification).first():
            raise ConflictError("A packer with this identification already exists")
        packer = Packer(
            packer_code=allocate_code(KIND_PACKER),
            name=name,
            identification=identification,
        )
        db.session.add(packer)
        db.session.commit()
        return packer

    packer = run_with_code_retry(_op)
    current_app.logger.info("Created packer %s with code %s", packer.id, packer.packer_code)
    return packer
