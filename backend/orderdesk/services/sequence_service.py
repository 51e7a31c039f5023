# Overview: Service-layer code allocation for products, additions, quotations, pre-invoices, orders and packers.

"""
Sequence Allocator

Every coded entity carries a human-readable code made of a prefix and a
zero-padded numeric suffix:

    PRODUCT / ADDITION  TEL01 .. TEL99   (prefix from the category name)
    QUOTATION           COT10001, COT10002, ...
    PREFACTURA          PRE10001, ...
    ORDER_VN            VN-000001, ...
    ORDER_VI            VI-0001, ...
    PACKER              EMPA1001, ...

The next code is derived by scanning the codes already stored under the
prefix: next = (max suffix, or the family base when none exist) + 1.
Order codes also count legacy dated codes (VN-20240101-000005) and match
the prefix case-insensitively.

allocate_code does NOT reserve anything. Two concurrent callers can receive
the same code; the unique constraint on the code column rejects the second
insert and concurrency.run_with_code_retry reruns the whole operation. Callers
must therefore allocate and insert inside one function passed to
run_with_code_retry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import Product, Addition, Quotation, Prefactura, Order, Packer
from ..validation import ConflictError, ValidationError


class CapacityExhaustedError(ConflictError):
    """Raised when a capped code family has no suffix left under a prefix."""
    pass


# =============================================================================
# CODE FAMILIES
# =============================================================================

KIND_PRODUCT = "PRODUCT"
KIND_ADDITION = "ADDITION"
KIND_QUOTATION = "QUOTATION"
KIND_PREFACTURA = "PREFACTURA"
KIND_ORDER_VN = "ORDER_VN"
KIND_ORDER_VI = "ORDER_VI"
KIND_PACKER = "PACKER"


@dataclass(frozen=True)
class CodeFamily:
    kind: str
    model: type
    column: str
    width: int
    base: int = 0
    cap: int | None = None
    prefix: str | None = None  # None: derived from the category name
    # Older codes that still count toward the sequence, e.g. dated VN-20240101-000005
    legacy_infix: str | None = None
    ignore_case: bool = False

    @property
    def code_column(self):
        return getattr(self.model, self.column)


CODE_FAMILIES: dict[str, CodeFamily] = {
    KIND_PRODUCT: CodeFamily(KIND_PRODUCT, Product, "product_code", width=2, cap=99),
    KIND_ADDITION: CodeFamily(KIND_ADDITION, Addition, "addition_code", width=2, cap=99),
    KIND_QUOTATION: CodeFamily(KIND_QUOTATION, Quotation, "quote_code", width=5, base=10000, prefix="COT"),
    KIND_PREFACTURA: CodeFamily(KIND_PREFACTURA, Prefactura, "prefactura_code", width=5, base=10000, prefix="PRE"),
    KIND_ORDER_VN: CodeFamily(
        KIND_ORDER_VN, Order, "order_code", width=6, prefix="VN-",
        legacy_infix=r"(?:\d{8}-)?", ignore_case=True,
    ),
    KIND_ORDER_VI: CodeFamily(
        KIND_ORDER_VI, Order, "order_code", width=4, prefix="VI-",
        legacy_infix=r"(?:\d{8}-)?", ignore_case=True,
    ),
    KIND_PACKER: CodeFamily(KIND_PACKER, Packer, "packer_code", width=4, base=1000, prefix="EMPA"),
}


def get_code_family(entity_kind: str) -> CodeFamily:
    kind = str(entity_kind or "").strip().upper()
    family = CODE_FAMILIES.get(kind)
    if family is None:
        raise ValidationError(f"entity_kind must be one of {sorted(CODE_FAMILIES)}")
    return family


# =============================================================================
# PREFIXES
# =============================================================================

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def normalize_code_prefix(category_name: str | None) -> str:
    """
    Three-character prefix from a category name.

    Uppercased, stripped to A-Z/0-9, truncated to 3, right-padded with X:
    "Telas Especiales" -> "TEL", "a-1" -> "A1X", "" -> "XXX".
    """
    cleaned = _NON_ALNUM.sub("", str(category_name or "").upper())
    return cleaned[:3].ljust(3, "X")


def resolve_prefix(family: CodeFamily, prefix_source: str | None = None) -> str:
    if family.prefix is not None:
        return family.prefix
    if prefix_source is None or not str(prefix_source).strip():
        raise ValidationError(f"A category name is required to code a {family.kind.lower()}")
    return normalize_code_prefix(prefix_source)


# =============================================================================
# ALLOCATION
# =============================================================================

def _suffix_pattern(family: CodeFamily, prefix: str) -> re.Pattern:
    # Capped families own exactly `width` digits; flat families may outgrow
    # their padding (VI-9999 -> VI-10000).
    digits = rf"\d{{{family.width}}}" if family.cap is not None else r"\d+"
    infix = family.legacy_infix or ""
    flags = re.IGNORECASE if family.ignore_case else 0
    return re.compile(rf"^{re.escape(prefix)}{infix}({digits})$", flags)


def max_existing_suffix(family: CodeFamily, prefix: str) -> int | None:
    """Largest numeric suffix stored under prefix, or None when none parse."""
    column = family.code_column
    if family.ignore_case:
        prefix_filter = func.upper(column).like(f"{prefix.upper()}%")
    else:
        prefix_filter = column.like(f"{prefix}%")
    rows = (
        db.session.query(column)
        .filter(column.isnot(None), prefix_filter)
        .all()
    )
    pattern = _suffix_pattern(family, prefix)
    best = None
    for (code,) in rows:
        match = pattern.match(code or "")
        if not match:
            continue
        value = int(match.group(1))
        if best is None or value > best:
            best = value
    return best


def allocate_code(entity_kind: str, prefix_source: str | None = None) -> str:
    """
    Return the next code for entity_kind.

    Raises:
        ValidationError: unknown kind, or missing category name for a
            category-prefixed family
        CapacityExhaustedError: a capped family already used its last suffix
    """
    family = get_code_family(entity_kind)
    prefix = resolve_prefix(family, prefix_source)

    current = max_existing_suffix(family, prefix)
    next_value = (current if current is not None else family.base) + 1

    if family.cap is not None and next_value > family.cap:
        raise CapacityExhaustedError(
            f"No {family.kind.lower()} codes left under prefix {prefix} "
            f"(limit {prefix}{family.cap:0{family.width}d})"
        )

    return f"{prefix}{next_value:0{family.width}d}"
