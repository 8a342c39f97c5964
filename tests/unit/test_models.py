"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from datetime import date, timedelta
from decimal import Decimal

from crm.models import Tenant, AppUser, UserTenant, Product, Quote, QuoteLine, QuoteStatus, CompanySetting


class TestTenantModel:
    """Tests for Tenant model."""

    def test_create_tenant(self, session):
        """Test creating a tenant."""
        suffix = str(uuid.uuid4())[:8]
        tenant = Tenant(slug=f'test-tenant-{suffix}', name=f'Test Tenant {suffix}', active=True)
        session.add(tenant)
        session.commit()

        assert tenant.id is not None
        assert tenant.active is True
        assert tenant.is_suspended is False

    def test_tenant_slug_unique(self, session, tenant1):
        """Test that tenant slug must be unique."""
        session.add(Tenant(slug=tenant1.slug, name='Duplicate Tenant'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_password_hashing(self):
        """Test password hashing and verification."""
        user = AppUser(email='user@test.com', active=True)
        user.set_password('mypassword')

        assert user.password_hash != 'mypassword'
        assert user.check_password('mypassword') is True
        assert user.check_password('wrongpassword') is False

    def test_user_without_password_cannot_log_in(self):
        assert AppUser(email='sso@test.com').check_password('') is False

    def test_user_email_unique(self, session, user1):
        """Test that user email must be unique."""
        session.add(AppUser(email=user1.email, full_name='Duplicate User'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestUserTenantModel:
    """Tests for UserTenant relationship model."""

    def test_create_user_tenant(self, session, user1, tenant1):
        user_tenant = session.query(UserTenant).filter_by(user_id=user1.id, tenant_id=tenant1.id).first()

        assert user_tenant is not None
        assert user_tenant.role == 'OWNER'
        assert user_tenant.active is True

    @pytest.mark.parametrize('role,min_role,expected', [
        ('OWNER', 'ADMIN', True),
        ('ADMIN', 'ADMIN', True),
        ('STAFF', 'ADMIN', False),
        ('STAFF', 'STAFF', True),
    ])
    def test_role_hierarchy(self, role, min_role, expected):
        assert UserTenant(role=role).has_role(min_role) is expected


class TestProductModel:
    """Tests for Product model."""

    def test_product_sku_unique_per_tenant(self, session, tenant1, tenant2):
        """SKU must be unique within a tenant, not across tenants."""
        sku = f'UNIQUE-SKU-{str(uuid.uuid4())[:8]}'
        session.add(Product(tenant_id=tenant1.id, name='Product 1', sku=sku, sales_unit_price=Decimal('100')))
        session.add(Product(tenant_id=tenant2.id, name='Product 2', sku=sku, sales_unit_price=Decimal('200')))
        session.commit()

        session.add(Product(tenant_id=tenant1.id, name='Product 3', sku=sku))
        with pytest.raises(Exception):  # IntegrityError
            session.commit()


class TestQuoteModel:
    """Tests for Quote and QuoteLine models."""

    def test_open_unexpired_quote_is_editable(self, quote_tenant1):
        assert quote_tenant1.is_expired is False
        assert quote_tenant1.is_editable is True

    def test_expired_quote(self, tenant1):
        quote = Quote(
            tenant_id=tenant1.id,
            status=QuoteStatus.SENT.value,
            quote_expiration_date=date.today() - timedelta(days=1),
        )
        assert quote.is_expired is True
        assert quote.is_editable is False

    def test_closed_quote_is_never_expired(self, tenant1):
        quote = Quote(
            tenant_id=tenant1.id,
            status=QuoteStatus.ACCEPTED.value,
            quote_expiration_date=date.today() - timedelta(days=1),
        )
        assert quote.is_expired is False
        assert quote.is_editable is False

    def test_deleting_quote_deletes_lines(self, session, quote_tenant1, quote_line_tenant1):
        quote = session.get(Quote, quote_tenant1.id)
        session.delete(quote)
        session.commit()

        assert session.query(QuoteLine).count() == 0

    def test_line_numbers_keep_their_scale(self, session, quote_line_tenant1):
        line = session.get(QuoteLine, quote_line_tenant1.id)
        assert line.gross_subtotal == Decimal('648')
        assert line.product_unit_price_override is None


class TestCompanySettingModel:

    def test_setting_unique_per_tenant(self, session, tenant1):
        session.add(CompanySetting(tenant_id=tenant1.id, setting_code='discount_setting_show_row_discount', setting_value='TRUE'))
        session.commit()
        session.add(CompanySetting(tenant_id=tenant1.id, setting_code='discount_setting_show_row_discount', setting_value='FALSE'))

        with pytest.raises(Exception):  # IntegrityError
            session.commit()
