"""
Pytest fixtures for back-office engine tests.

Provides test database setup, product/event factories, and test client.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Event, Product
from backoffice.models.events import EVENT_SCHEDULED
from backoffice.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ENGINE_RETRY_BACKOFF': 0.0,
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
def make_product(db_session):
    """Factory for products stored exactly as given (no alcohol auto-detection)."""
    def _make(name="T-Bone Steak", unit_price="120.00", cost_price="70.00", stock_level=100,
              is_six_pack=False, pack_quantity=6, minimum_stock_level=10, **extra):
        product = Product(
            name=name,
            description=extra.pop("description", ""),
            unit_price=Decimal(unit_price),
            cost_price=Decimal(cost_price),
            stock_level=stock_level,
            minimum_stock_level=minimum_stock_level,
            is_six_pack=is_six_pack,
            pack_quantity=pack_quantity,
            **extra,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def castle_lager(make_product):
    """Six-pack at R25.00 / R15.00 with 100 single items in stock."""
    return make_product(
        name="Castle Lager Beer",
        unit_price="25.00",
        cost_price="15.00",
        stock_level=100,
        is_six_pack=True,
        pack_quantity=6,
    )


@pytest.fixture(scope='function')
def t_bone(make_product):
    return make_product(name="T-Bone Steak", unit_price="120.00", cost_price="70.00", stock_level=50)


@pytest.fixture(scope='function')
def make_event(db_session):
    def _make(name="Braai Night", max_attendees=100, current_attendees=0,
              ticket_price="150.00", status=EVENT_SCHEDULED, days_ahead=7):
        event = Event(
            name=name,
            event_date=utcnow() + timedelta(days=days_ahead),
            max_attendees=max_attendees,
            current_attendees=current_attendees,
            ticket_price=Decimal(ticket_price),
            status=status,
        )
        db_session.add(event)
        db_session.commit()
        return event

    return _make


def staff_headers(user_id: int = 1) -> dict:
    """Headers the upstream auth layer sets for staff calls."""
    return {'X-User-Id': str(user_id)}


def customer_headers(customer_id: int = 42) -> dict:
    return {'X-Customer-Id': str(customer_id)}
