"""
Pytest fixtures for OrderDesk backend tests.

Provides test database setup, seed rows for the stock ledger and orders,
and the test client.
"""

from decimal import Decimal

import pytest
from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import Employee, Client, Supplier, Order, OrderItem, Quotation, Prefactura
from orderdesk.services import inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def employee(db_session):
    emp = Employee(name="Laura Accounting")
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture(scope='function')
def customer(db_session):
    row = Client(name="Colegio San Jose")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def supplier(db_session):
    row = Supplier(name="Textiles Andinos")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def fabric(db_session):
    """Inventory item with no movements yet."""
    return inventory_service.create_inventory_item({
        "name": "Tela antifluido azul",
        "unit": "m",
        "min_stock": "5",
    })


@pytest.fixture(scope='function')
def stocked_fabric(fabric):
    """fabric with a single 10.00 entry."""
    inventory_service.record_inventory_entry(inventory_item_id=fabric.id, quantity="10")
    return fabric


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory: order with the given total, an item and an optional pre-invoice."""
    counter = {"n": 0}

    def _make(total="1000.00", *, with_prefactura=True, status="PENDING"):
        counter["n"] += 1
        n = counter["n"]
        order = Order(
            order_code=f"VN-{n:06d}",
            type="VN",
            status=status,
            total=Decimal(total),
        )
        db_session.add(order)
        db_session.flush()
        db_session.add(OrderItem(order_id=order.id, name="Camisa polo", quantity=10, unit_price=Decimal("100.00")))

        if with_prefactura:
            quotation = Quotation(quote_code=f"COT{10000 + n}", total=Decimal(total), subtotal=Decimal(total))
            db_session.add(quotation)
            db_session.flush()
            db_session.add(Prefactura(
                prefactura_code=f"PRE{10000 + n}",
                quotation_id=quotation.id,
                order_id=order.id,
                total=Decimal(total),
            ))
        db_session.commit()
        return order

    return _make
