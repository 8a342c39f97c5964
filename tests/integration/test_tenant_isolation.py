"""
Critical integration tests for tenant isolation.
These tests ensure that data is properly isolated between tenants.
"""

import pytest
from decimal import Decimal

from crm.exceptions import NotFoundError
from crm.models import Product, Quote, QuoteLine
from crm.models.company_setting import ALLOW_QUOTE_WITHOUT_PRODUCT
from crm.services import quote_service, quote_line_service, product_service
from crm.services.settings_service import update_setting


class TestServiceIsolation:
    """Service-level lookups are tenant-scoped."""

    def test_quotes_are_listed_per_tenant(self, session, tenant1, tenant2, quote_tenant1, quote_tenant2):
        tenant1_quotes = quote_service.list_quotes(session, tenant1.id)

        assert [q.id for q in tenant1_quotes] == [quote_tenant1.id]
        assert all(q.tenant_id == tenant1.id for q in tenant1_quotes)

    def test_cannot_fetch_other_tenant_quote(self, session, tenant1, quote_tenant2):
        with pytest.raises(NotFoundError):
            quote_service.get_quote(session, quote_tenant2.id, tenant1.id)

    def test_cannot_batch_save_on_other_tenant_quote(self, session, tenant2, quote_tenant1, derived_line_values):
        with pytest.raises(NotFoundError):
            quote_line_service.batch_save_lines(session, quote_tenant1.id, tenant2.id, [derived_line_values])

        assert session.query(QuoteLine).count() == 0

    def test_cannot_update_other_tenant_line(self, session, tenant2, quote_line_tenant1):
        with pytest.raises(NotFoundError):
            quote_line_service.update_line(session, quote_line_tenant1.id, tenant2.id, {'quotedQuantity': '100'})

        line = session.get(QuoteLine, quote_line_tenant1.id)
        assert line.quoted_quantity == Decimal('3')

    def test_products_with_same_sku_different_tenants(self, session, tenant1, tenant2):
        session.add_all([
            Product(tenant_id=tenant1.id, name='Product A', sku='SHARED-SKU', sales_unit_price=Decimal('100')),
            Product(tenant_id=tenant2.id, name='Product B', sku='SHARED-SKU', sales_unit_price=Decimal('200')),
        ])
        session.commit()

        products = product_service.list_products(session, tenant1.id, search='SHARED')
        assert [p.name for p in products] == ['Product A']

    def test_cannot_seed_from_other_tenant_product(self, session, tenant1, product_tenant2):
        with pytest.raises(NotFoundError):
            product_service.lookup_product(session, product_tenant2.id, tenant1.id)


class TestApiIsolation:
    """The tenant always comes from the session, never from the request."""

    def test_other_tenant_quote_is_not_found(self, authenticated_client, quote_tenant2):
        assert authenticated_client.get(f'/api/quotes/{quote_tenant2.id}').status_code == 404
        assert authenticated_client.get(f'/api/quotes/{quote_tenant2.id}/pdf').status_code == 404
        assert authenticated_client.get(f'/api/quotes/{quote_tenant2.id}/quote-lines').status_code == 404

    def test_other_tenant_quote_cannot_be_deleted(self, authenticated_client, session, quote_tenant2):
        quote_id = quote_tenant2.id
        response = authenticated_client.delete(f'/api/quotes/{quote_id}')

        assert response.status_code == 404
        assert session.get(Quote, quote_id) is not None

    def test_other_tenant_line_is_not_found(self, client, user2, tenant2, quote_line_tenant1):
        line_id = quote_line_tenant1.id
        with client.session_transaction() as sess:
            sess['user_id'] = user2.id
            sess['tenant_id'] = tenant2.id

        assert client.get(f'/api/quote-lines/{line_id}').status_code == 404
        assert client.delete(f'/api/quote-lines/{line_id}').status_code == 404

    def test_tenant_in_body_is_ignored(self, authenticated_client, session, tenant1, tenant2):
        response = authenticated_client.post('/api/quotes', json={'name': 'Mine', 'tenant_id': tenant2.id})

        quote = session.get(Quote, response.get_json()['id'])
        assert quote.tenant_id == tenant1.id

    def test_other_tenant_product_is_not_found(self, authenticated_client, product_tenant2):
        assert authenticated_client.get(f'/api/products/{product_tenant2.id}').status_code == 404
        assert authenticated_client.get(f'/api/products/{product_tenant2.id}/seed').status_code == 404

    def test_listing_is_scoped(self, authenticated_client, product_tenant1, product_tenant2):
        skus = [p['sku'] for p in authenticated_client.get('/api/products').get_json()]
        assert skus == ['SKU-T1-001']

    def test_settings_are_scoped(self, client, session, user2, tenant2, tenant1):
        update_setting(session, tenant1.id, ALLOW_QUOTE_WITHOUT_PRODUCT, True)
        with client.session_transaction() as sess:
            sess['user_id'] = user2.id
            sess['tenant_id'] = tenant2.id

        assert client.get('/api/settings').get_json()[ALLOW_QUOTE_WITHOUT_PRODUCT] == 'FALSE'
