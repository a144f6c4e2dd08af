"""
Pytest fixtures for LATIDOS backend tests.

Provides test database setup, two tenants, users with PINs, and small
factories for customers, accounts and invoices.
"""

from datetime import datetime

import pytest
from latidos import create_app
from latidos.extensions import db
from latidos.models import Organization, User, Operator, Customer, Sale
from latidos.models.auth import USER_ROLE_ADMIN, USER_ROLE_OPERATOR
from latidos.services import account_service
from latidos.services.auth_service import hash_password, hash_pin
from latidos.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LATIDOS_RETRY_BACKOFF': 0,
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
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Latidos Centro", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def admin_a(db_session, org_a):
    """Admin user in Organization A with PIN 1234."""
    user = User(
        org_id=org_a.id,
        username="admin_a",
        email="admin_a@acme.com",
        name="Admin A",
        password_hash=hash_password("Password123"),
        pin_hash=hash_pin("1234"),
        role=USER_ROLE_ADMIN,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier_a(db_session, org_a):
    """Operator-role user in Organization A (no PIN)."""
    user = User(
        org_id=org_a.id,
        username="cashier_a",
        email="cashier_a@acme.com",
        password_hash=hash_password("Password123"),
        role=USER_ROLE_OPERATOR,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def operator_a(db_session, org_a):
    """PIN-only operator in Organization A with PIN 5678."""
    operator = Operator(org_id=org_a.id, name="Laura Caja", pin_hash=hash_pin("5678"))
    db_session.add(operator)
    db_session.commit()
    return operator


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(org, name="Cliente Uno", **kwargs):
        customer = Customer(org_id=org.id, name=name, **kwargs)
        db_session.add(customer)
        db_session.commit()
        return customer
    return _make


@pytest.fixture(scope='function')
def make_account(db_session):
    """
    Create a ledger account; an opening balance is posted as INCOME so
    the journal explains it.
    """
    def _make(org, name="Caja General", account_type="CASH", opening_cents=0, is_default=False):
        account = account_service.create_account(org.id, name, account_type, is_default=is_default)
        if opening_cents:
            account_service.create_transaction(
                org.id, account.id, opening_cents, "INCOME", "Opening balance"
            )
        return account
    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    def _make(org, customer, number, total_cents, date=None):
        sale = Sale(
            org_id=org.id,
            customer_id=customer.id,
            invoice_number=number,
            total_cents=total_cents,
            amount_paid_cents=0,
            date=date or datetime(2026, 1, 1, 12, 0, 0),
        )
        db_session.add(sale)
        db_session.commit()
        return sale
    return _make


@pytest.fixture(scope='function')
def cash_a(make_account, org_a):
    """Default cash drawer in Organization A."""
    return make_account(org_a, "Caja General", "CASH", is_default=True)


@pytest.fixture(scope='function')
def bank_a(make_account, org_a):
    return make_account(org_a, "Banco", "BANK")


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def token_for(user) -> str:
    """Session token for a user without going through the login route."""
    _, token = create_session(user.id)
    return token


@pytest.fixture(scope='function')
def admin_headers(admin_a):
    return auth_headers(token_for(admin_a))


@pytest.fixture(scope='function')
def cashier_headers(cashier_a):
    return auth_headers(token_for(cashier_a))
