"""
Pytest fixtures for cashdesk backend tests.

Provides test database setup, role/user fixtures, dining tables, and a test client.
"""

from decimal import Decimal

import pytest

from cashdesk import create_app
from cashdesk.extensions import db
from cashdesk.models import DiningTable, Product, Sale, SaleLine, Sector, TableState
from cashdesk.services import shift_service
from cashdesk.services.auth_service import create_default_roles, create_user
from cashdesk.time_utils import utcnow


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REPORT_DISPATCH_ASYNC': False,
        'DAILY_REPORT_DIR': None,
        'MAIL_SERVER': None,
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
    """Clear all data but keep schema, for each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()
    db.session.remove()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    create_default_roles()


def _make_user(username: str, role: str, first_name: str = ""):
    return create_user(
        username=username,
        email=f"{username}@cashdesk.test",
        password=PASSWORD,
        first_name=first_name or username.capitalize(),
        last_name="Test",
        role_name=role,
        bcrypt_rounds=4,
    )


@pytest.fixture(scope='function')
def cashier(setup_roles):
    return _make_user("cashier", "cashier")


@pytest.fixture(scope='function')
def other_cashier(setup_roles):
    return _make_user("cashier2", "cashier")


@pytest.fixture(scope='function')
def supervisor(setup_roles):
    return _make_user("supervisor", "supervisor")


@pytest.fixture(scope='function')
def admin(setup_roles):
    return _make_user("admin", "admin")


@pytest.fixture(scope='function')
def waiter(setup_roles):
    return _make_user("waiter", "waiter")


@pytest.fixture(scope='function')
def sector(db_session):
    sector = Sector(name="Salon", is_active=True)
    db_session.add(sector)
    db_session.commit()
    return sector


@pytest.fixture(scope='function')
def make_table(db_session, sector):
    """Factory: make_table(number, state=TableState.FREE)."""
    def _make(number: int, state: TableState = TableState.FREE, is_active: bool = True):
        table = DiningTable(number=number, sector_id=sector.id, state=state, is_active=is_active)
        db_session.add(table)
        db_session.commit()
        return table
    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    """Factory: pending sale with one line per (product, quantity) pair."""
    counter = {"n": 0}

    def _make(user, lines, table=None):
        counter["n"] += 1
        total = sum((product.price * quantity for product, quantity in lines), Decimal("0.00"))
        sale = Sale(
            sale_number=f"S-{counter['n']:05d}",
            table_id=table.id if table else None,
            user_id=user.id,
            status="PENDING",
            total=total,
            sold_at=utcnow(),
        )
        db_session.add(sale)
        db_session.flush()
        for product, quantity in lines:
            db_session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=product.price,
                subtotal=product.price * quantity,
            ))
        db_session.commit()
        return sale
    return _make


@pytest.fixture(scope='function')
def products(db_session):
    items = [
        Product(code="EMP", name="Empanada", price=Decimal("500.00")),
        Product(code="PIZ", name="Pizza", price=Decimal("3000.00")),
        Product(code="BEV", name="Soda", price=Decimal("800.00")),
    ]
    db_session.add_all(items)
    db_session.commit()
    return {p.code: p for p in items}


@pytest.fixture(scope='function')
def open_shift(db_session):
    """Factory: open_shift(user, name="Morning", till="PRINCIPAL", initial_fund="1000.00")."""
    def _open(user, name="Morning", till="PRINCIPAL", initial_fund="1000.00", start="08:00", end="14:00"):
        return shift_service.open_shift(till, name, start, end, Decimal(initial_fund), user.id)
    return _open


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.username))


@pytest.fixture(scope='function')
def other_cashier_headers(client, other_cashier):
    return auth_headers(get_auth_token(client, other_cashier.username))


@pytest.fixture(scope='function')
def supervisor_headers(client, supervisor):
    return auth_headers(get_auth_token(client, supervisor.username))


@pytest.fixture(scope='function')
def waiter_headers(client, waiter):
    return auth_headers(get_auth_token(client, waiter.username))
