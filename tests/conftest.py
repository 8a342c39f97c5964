import pytest
from decimal import Decimal
from datetime import date, timedelta
import uuid

from crm import create_app
from crm import database
from crm.database import get_session
from crm.models import (
    Tenant, AppUser, UserTenant, Product, Quote, QuoteLine, QuoteStatus
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite, no cache)."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(autouse=True)
def _database(app):
    """Fresh schema for every test."""
    database.create_all()
    yield
    get_session().remove()
    database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-{label}-{suffix}',
        name=f'Test {label} {suffix}',
        active=True
    )
    session.add(tenant)
    session.commit()
    return tenant


def _make_user(session, tenant, label, role='OWNER'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{label}-{suffix}@test.com',
        full_name=label.title(),
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.flush()

    session.add(UserTenant(
        user_id=user.id,
        tenant_id=tenant.id,
        role=role,
        active=True
    ))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    """Create first test tenant."""
    return _make_tenant(session, 'tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Create second test tenant for isolation tests."""
    return _make_tenant(session, 'tenant-2')


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """OWNER of tenant1."""
    return _make_user(session, tenant1, 'user-one')


@pytest.fixture(scope='function')
def user2(session, tenant2):
    """OWNER of tenant2."""
    return _make_user(session, tenant2, 'user-two')


@pytest.fixture(scope='function')
def staff_user(session, tenant1):
    """STAFF member of tenant1."""
    return _make_user(session, tenant1, 'staff', role='STAFF')


@pytest.fixture(scope='function')
def product_tenant1(session, tenant1):
    """Product priced 200.000 EUR with 20% VAT."""
    product = Product(
        tenant_id=tenant1.id,
        name='Widget',
        sku='SKU-T1-001',
        sales_category='Hardware',
        sales_uom='pcs',
        sales_unit_price=Decimal('200'),
        sales_unit_price_currency='EUR',
        vat_percent=Decimal('20'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_tenant2(session, tenant2):
    product = Product(
        tenant_id=tenant2.id,
        name='Gadget',
        sku='SKU-T2-001',
        sales_uom='pcs',
        sales_unit_price=Decimal('50'),
        sales_unit_price_currency='USD',
        vat_percent=Decimal('10'),
        active=True
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def quote_tenant1(session, tenant1, user1):
    """Empty DRAFT quote of tenant1, valid for 30 days."""
    quote = Quote(
        tenant_id=tenant1.id,
        name='Office fit-out',
        status=QuoteStatus.DRAFT.value,
        customer_name='ACME Corp',
        seller_name='User One',
        quote_expiration_date=date.today() + timedelta(days=30),
        net_grand_total=Decimal('0'),
        gross_grand_total=Decimal('0'),
        created_by=user1.id
    )
    session.add(quote)
    session.commit()
    return quote


@pytest.fixture(scope='function')
def quote_tenant2(session, tenant2, user2):
    quote = Quote(
        tenant_id=tenant2.id,
        name='Tenant 2 quote',
        status=QuoteStatus.DRAFT.value,
        created_by=user2.id
    )
    session.add(quote)
    session.commit()
    return quote


@pytest.fixture(scope='function')
def derived_line_values():
    """Engine output for 3 x 200.000 with 10% unit discount and 20% VAT."""
    return {
        'product_unit_price': '200.000',
        'quote_unit_price': '200.000',
        'unit_price_discount_percent': '10.000',
        'unit_price_discount_amount': '20.000',
        'final_unit_price': '180.000',
        'quoted_quantity': '3.000',
        'subtotal_before_row_discounts': '540.000',
        'final_subtotal': '540.000',
        'vat_percent': '20.000',
        'vat_unit_amount': '36.000',
        'vat_on_subtotal': '108.000',
        'gross_subtotal': '648.000',
    }


@pytest.fixture(scope='function')
def quote_line_tenant1(session, quote_tenant1, product_tenant1, derived_line_values):
    """Persisted line on quote_tenant1 holding derived_line_values."""
    line = QuoteLine(
        quote_id=quote_tenant1.id,
        product_id=product_tenant1.id,
        product_name=product_tenant1.name,
        unit_price_currency='EUR',
        sales_uom='pcs',
        **{field: Decimal(value) for field, value in derived_line_values.items()}
    )
    session.add(line)
    quote_tenant1.net_grand_total = Decimal('540')
    quote_tenant1.gross_grand_total = Decimal('648')
    session.commit()
    return line


@pytest.fixture(scope='function')
def authenticated_client(client, user1, tenant1):
    """Create authenticated client for tenant1."""
    with client.session_transaction() as sess:
        sess['user_id'] = user1.id
        sess['tenant_id'] = tenant1.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, staff_user, tenant1):
    """Authenticated STAFF client for tenant1."""
    with client.session_transaction() as sess:
        sess['user_id'] = staff_user.id
        sess['tenant_id'] = tenant1.id
    return client
