import pytest
import os
import tempfile

# Test configuration: throwaway SQLite file, no Redis. Must be set before config is imported.
_db_fd, _db_path = tempfile.mkstemp(suffix='.sqlite')
os.close(_db_fd)
os.environ['DATABASE_URL'] = f'sqlite:///{_db_path}'
os.environ['CACHE_ENABLED'] = 'false'
os.environ['SQLALCHEMY_EXPIRE_ON_COMMIT'] = 'false'
os.environ.pop('SENTRY_DSN', None)

from sjfulfillment import create_app
from sjfulfillment.database import get_session, create_all, drop_all
from sjfulfillment.models import (
    Merchant, OnboardingStatus, AppUser, UserRole, WarehouseLocation, Product, merchant_warehouse
)
from sjfulfillment.services.access_scope import AccessScope
from sjfulfillment.services.api_key_service import create_api_key
from sjfulfillment.services.stock_item_service import create_stock_item


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False
    yield app
    os.unlink(_db_path)


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema for every test."""
    with app.app_context():
        create_all()
        yield
        get_session().remove()
        drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(database):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


def _merchant(session, name):
    merchant = Merchant(
        business_name=name,
        business_email=f"{name.lower().replace(' ', '-')}@test.com",
        is_active=True,
        onboarding_status=OnboardingStatus.APPROVED.value
    )
    session.add(merchant)
    session.commit()
    return merchant


@pytest.fixture(scope='function')
def merchant1(session):
    return _merchant(session, 'Merchant One')


@pytest.fixture(scope='function')
def merchant2(session):
    """Second merchant for isolation tests."""
    return _merchant(session, 'Merchant Two')


def _warehouse(session, code, merchants=()):
    warehouse = WarehouseLocation(
        name=f'Warehouse {code}',
        code=code,
        city='Lagos',
        state='Lagos',
        country='Nigeria',
        capacity=5000,
        is_active=True
    )
    session.add(warehouse)
    session.flush()
    for merchant in merchants:
        session.execute(merchant_warehouse.insert().values(merchant_id=merchant.id, warehouse_id=warehouse.id))
    session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_a(session, merchant1):
    return _warehouse(session, 'WH-A', [merchant1])


@pytest.fixture(scope='function')
def warehouse_b(session):
    return _warehouse(session, 'WH-B')


def _product(session, merchant, sku, name):
    product = Product(
        merchant_id=merchant.id,
        sku=sku,
        name=name,
        unit_price=25,
        is_active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product1(session, merchant1):
    return _product(session, merchant1, 'SKU-M1-001', 'Product M1')


@pytest.fixture(scope='function')
def product2(session, merchant2):
    return _product(session, merchant2, 'SKU-M2-001', 'Product M2')


@pytest.fixture(scope='function')
def make_stock_item(session):
    """Factory: stock item with the given on-hand and reserved quantities."""
    def factory(product, warehouse, quantity=100, reserved=0, batch_number=None, **kwargs):
        item = create_stock_item(
            session,
            product_id=product.id,
            warehouse_id=warehouse.id,
            initial_quantity=quantity,
            batch_number=batch_number,
            **kwargs
        )
        if reserved:
            item.reserved_quantity = reserved
            item.available_quantity = quantity - reserved
        session.commit()
        return item
    return factory


@pytest.fixture(scope='function')
def stock_item(make_stock_item, product1, warehouse_a):
    """Stock item starting at {quantity: 100, available: 100, reserved: 0}."""
    return make_stock_item(product1, warehouse_a, quantity=100)


def _user(session, email, role, merchant=None):
    user = AppUser(
        email=email,
        full_name=email.split('@')[0],
        role=role,
        merchant_id=merchant.id if merchant else None,
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(session):
    return _user(session, 'admin@test.com', UserRole.SJFS_ADMIN.value)


@pytest.fixture(scope='function')
def warehouse_user(session):
    return _user(session, 'warehouse@test.com', UserRole.WAREHOUSE_STAFF.value)


@pytest.fixture(scope='function')
def user1(session, merchant1):
    return _user(session, 'user1@test.com', UserRole.MERCHANT_ADMIN.value, merchant1)


@pytest.fixture(scope='function')
def user2(session, merchant2):
    return _user(session, 'user2@test.com', UserRole.MERCHANT_STAFF.value, merchant2)


@pytest.fixture(scope='function')
def scope1(user1):
    return AccessScope.for_user(user1)


@pytest.fixture(scope='function')
def system_scope():
    return AccessScope.system('TEST')


def login(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
    return client


@pytest.fixture(scope='function')
def authenticated_client(client, user1):
    """Client logged in as merchant1's admin."""
    return login(client, user1)


@pytest.fixture(scope='function')
def admin_client(client, admin_user):
    return login(client, admin_user)


@pytest.fixture(scope='function')
def login_as(client):
    """Log the test client in as the given user."""
    def _login(user):
        return login(client, user)
    return _login


@pytest.fixture(scope='function')
def api_key1(session, merchant1):
    """(api_key, secret) with inventory read/write for merchant1."""
    return create_api_key(session, merchant1.id, 'Test key', {'inventory': {'read': True, 'write': True}}, 1000)


@pytest.fixture(scope='function')
def api_headers(api_key1):
    api_key, _ = api_key1
    return {'Authorization': f'Bearer {api_key.public_key}'}
