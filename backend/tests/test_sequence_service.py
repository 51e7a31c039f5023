import pytest
from sqlalchemy.exc import IntegrityError

from orderdesk.models import Product, Addition, Quotation, Order, Packer
from orderdesk.services import sequence_service
from orderdesk.services.concurrency import run_with_code_retry
from orderdesk.services.sequence_service import (
    CapacityExhaustedError,
    KIND_ADDITION,
    KIND_ORDER_VI,
    KIND_ORDER_VN,
    KIND_PACKER,
    KIND_PREFACTURA,
    KIND_PRODUCT,
    KIND_QUOTATION,
    allocate_code,
    normalize_code_prefix,
)
from orderdesk.validation import ConflictError, ValidationError


@pytest.mark.parametrize("name,expected", [
    ("Telas Especiales", "TEL"),
    ("telas", "TEL"),
    ("Ñandú bordados", "AND"),
    ("a-1", "A1X"),
    ("  ", "XXX"),
    ("", "XXX"),
    ("99 Botones", "99B"),
])
def test_normalize_code_prefix(name, expected):
    assert normalize_code_prefix(name) == expected


def test_first_product_code_under_new_prefix(db_session):
    assert allocate_code(KIND_PRODUCT, "Telas Especiales") == "TEL01"


def test_next_code_follows_max_suffix_not_count(db_session):
    db_session.add_all([
        Product(name="A", product_code="TEL01"),
        Product(name="B", product_code="TEL07"),
        Product(name="C", product_code="TEL03"),
        Product(name="Other prefix", product_code="BOT42"),
    ])
    db_session.commit()

    assert allocate_code(KIND_PRODUCT, "Telas") == "TEL08"


def test_unparseable_codes_are_ignored(db_session):
    db_session.add_all([
        Product(name="A", product_code="TELXX"),
        Product(name="B", product_code="TEL123"),  # not a 2-digit suffix
        Product(name="C", product_code="TEL02"),
    ])
    db_session.commit()

    assert allocate_code(KIND_PRODUCT, "Telas") == "TEL03"


def test_capacity_exhausted_on_hundredth_allocation(db_session):
    db_session.add_all(
        Product(name=f"Tela {n}", product_code=f"TEL{n:02d}") for n in range(1, 100)
    )
    db_session.commit()

    with pytest.raises(CapacityExhaustedError):
        allocate_code(KIND_PRODUCT, "Telas Especiales")

    # Other prefixes are unaffected
    assert allocate_code(KIND_PRODUCT, "Botones") == "BOT01"


def test_capacity_exhausted_is_a_conflict(db_session):
    db_session.add(Addition(name="Last", addition_code="BOR99"))
    db_session.commit()

    with pytest.raises(ConflictError):
        allocate_code(KIND_ADDITION, "Bordados")


def test_additions_and_products_have_independent_sequences(db_session):
    db_session.add(Product(name="P", product_code="BOR05"))
    db_session.commit()

    assert allocate_code(KIND_ADDITION, "Bordados") == "BOR01"
    assert allocate_code(KIND_PRODUCT, "Bordados") == "BOR06"


def test_fixed_prefix_families_start_after_base(db_session):
    assert allocate_code(KIND_QUOTATION) == "COT10001"
    assert allocate_code(KIND_PREFACTURA) == "PRE10001"
    assert allocate_code(KIND_ORDER_VN) == "VN-000001"
    assert allocate_code(KIND_ORDER_VI) == "VI-0001"
    assert allocate_code(KIND_PACKER) == "EMPA1001"


def test_fixed_prefix_families_continue_from_existing(db_session):
    db_session.add_all([
        Quotation(quote_code="COT10041"),
        Order(order_code="VN-000009", type="VN"),
        Order(order_code="VI-0012", type="VI"),
        Packer(packer_code="EMPA1003", name="Empaques del Sur", identification="900123"),
    ])
    db_session.commit()

    assert allocate_code(KIND_QUOTATION) == "COT10042"
    assert allocate_code(KIND_ORDER_VN) == "VN-000010"
    assert allocate_code(KIND_ORDER_VI) == "VI-0013"
    assert allocate_code(KIND_PACKER) == "EMPA1004"


def test_flat_family_outgrows_padding(db_session):
    db_session.add(Order(order_code="VI-9999", type="VI"))
    db_session.commit()

    assert allocate_code(KIND_ORDER_VI) == "VI-10000"


def test_order_families_do_not_mix(db_session):
    db_session.add(Order(order_code="VN-000050", type="VN"))
    db_session.commit()

    assert allocate_code(KIND_ORDER_VI) == "VI-0001"


def test_kind_is_case_insensitive(db_session):
    assert allocate_code("quotation") == "COT10001"


def test_unknown_kind_rejected(db_session):
    with pytest.raises(ValidationError):
        allocate_code("INVOICE")


def test_category_prefixed_kind_requires_name(db_session):
    with pytest.raises(ValidationError):
        allocate_code(KIND_PRODUCT)
    with pytest.raises(ValidationError):
        allocate_code(KIND_ADDITION, "   ")


def test_allocation_does_not_reserve(db_session):
    first = allocate_code(KIND_PRODUCT, "Telas")
    second = allocate_code(KIND_PRODUCT, "Telas")
    assert first == second == "TEL01"


def test_code_families_registry_matches_columns():
    for family in sequence_service.CODE_FAMILIES.values():
        assert family.code_column is not None
        assert family.width > 0


def test_order_codes_continue_after_legacy_dated_codes(db_session):
    db_session.add(Order(order_code="VN-20240101-000005", type="VN"))
    db_session.commit()

    assert allocate_code(KIND_ORDER_VN) == "VN-000006"


def test_order_codes_match_prefix_case_insensitively(db_session):
    db_session.add_all([
        Order(order_code="vn-000007", type="VN"),
        Order(order_code="vi-20231130-0042", type="VI"),
    ])
    db_session.commit()

    assert allocate_code(KIND_ORDER_VN) == "VN-000008"
    assert allocate_code(KIND_ORDER_VI) == "VI-0043"


def test_other_families_stay_case_sensitive(db_session):
    db_session.add(Quotation(quote_code="cot10050"))
    db_session.commit()

    assert allocate_code(KIND_QUOTATION) == "COT10001"


# =============================================================================
# RERUN ON CODE COLLISION
# =============================================================================

def _integrity_error(message):
    return IntegrityError("INSERT INTO products ...", {}, Exception(message))


def test_code_retry_reruns_until_code_is_free(db_session):
    db_session.add(Quotation(quote_code="COT10001"))
    db_session.commit()
    minted = []

    def create():
        # first attempt reuses a code read before the competing insert landed
        code = "COT10001" if not minted else allocate_code(KIND_QUOTATION)
        minted.append(code)
        db_session.add(Quotation(quote_code=code))
        db_session.commit()
        return code

    assert run_with_code_retry(create) == "COT10002"
    assert minted == ["COT10001", "COT10002"]
    assert db_session.query(Quotation).count() == 2


def test_code_retry_gives_up_with_conflict(db_session):
    calls = []

    def always_clash():
        calls.append(1)
        raise _integrity_error("UNIQUE constraint failed: products.product_code")

    with pytest.raises(ConflictError):
        run_with_code_retry(always_clash, attempts=3)
    assert len(calls) == 3


def test_code_retry_passes_other_integrity_errors_through(db_session):
    calls = []

    def not_null():
        calls.append(1)
        raise _integrity_error("NOT NULL constraint failed: products.name")

    with pytest.raises(IntegrityError):
        run_with_code_retry(not_null, attempts=3)
    assert len(calls) == 1
