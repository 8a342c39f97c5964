"""
Integration tests for the product catalog and company settings.
"""

import json
import pytest

from crm.models import AuditLog, AuditAction, Product
from crm.models.company_setting import ALLOW_QUOTE_WITHOUT_PRODUCT, SHOW_ROW_DISCOUNT
from crm.services import settings_service


class TestProductsApi:

    def test_list_and_search(self, authenticated_client, product_tenant1):
        data = authenticated_client.get('/api/products').get_json()
        assert [p['sku'] for p in data] == ['SKU-T1-001']

        assert authenticated_client.get('/api/products?q=widg').get_json()[0]['name'] == 'Widget'
        assert authenticated_client.get('/api/products?q=nothing').get_json() == []

    def test_active_filter(self, authenticated_client, session, product_tenant1, tenant1):
        session.add(Product(tenant_id=tenant1.id, name='Retired', sku='OLD-1', active=False))
        session.commit()

        assert len(authenticated_client.get('/api/products').get_json()) == 2
        assert len(authenticated_client.get('/api/products?active=1').get_json()) == 1

    def test_seed_values(self, authenticated_client, product_tenant1):
        response = authenticated_client.get(f'/api/products/{product_tenant1.id}/seed')

        assert response.status_code == 200
        assert response.get_json() == {
            'product_id': product_tenant1.id,
            'product_name': 'Widget',
            'product_unit_price': '200.000',
            'unit_price_currency': 'EUR',
            'vat_percent': '20.000',
            'sales_uom': 'pcs',
        }

    def test_create_product(self, authenticated_client, session):
        response = authenticated_client.post('/api/products', json={
            'name': 'Cable',
            'sku': 'CBL-1',
            'sales_unit_price': '1,250.5',
            'sales_unit_price_currency': 'usd',
            'vat_percent': '10',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['sales_unit_price'] == '1250.500'
        assert data['sales_unit_price_currency'] == 'USD'
        assert session.query(AuditLog).filter_by(action=AuditAction.PRODUCT_CREATED).count() == 1

    def test_create_product_validation(self, authenticated_client):
        response = authenticated_client.post('/api/products', json={
            'sales_unit_price': '-3',
            'sales_unit_price_currency': 'EURO',
        })

        assert response.status_code == 400
        fields = {error['field'] for error in response.get_json()['errors']}
        assert fields == {'name', 'sales_unit_price', 'sales_unit_price_currency'}

    def test_duplicate_sku(self, authenticated_client, product_tenant1):
        response = authenticated_client.post('/api/products', json={'name': 'Copy', 'sku': 'SKU-T1-001'})
        assert response.status_code == 400
        assert 'SKU-T1-001' in response.get_json()['message']

    def test_update_product(self, authenticated_client, product_tenant1):
        response = authenticated_client.patch(f'/api/products/{product_tenant1.id}', json={
            'sales_unit_price': '210',
            'tenant_id': 999,
        })

        assert response.status_code == 200
        assert response.get_json()['sales_unit_price'] == '210.000'

        seed = authenticated_client.get(f'/api/products/{product_tenant1.id}/seed').get_json()
        assert seed['product_unit_price'] == '210.000'

    def test_staff_cannot_create_products(self, staff_client):
        response = staff_client.post('/api/products', json={'name': 'Nope'})
        assert response.status_code == 403


class TestSettings:

    def test_defaults(self, authenticated_client):
        response = authenticated_client.get('/api/settings')

        assert response.status_code == 200
        data = response.get_json()
        assert data[SHOW_ROW_DISCOUNT] == 'TRUE'
        assert data[ALLOW_QUOTE_WITHOUT_PRODUCT] == 'FALSE'

    def test_update_setting(self, authenticated_client, session):
        response = authenticated_client.put(f'/api/settings/{ALLOW_QUOTE_WITHOUT_PRODUCT}', json={'value': True})

        assert response.status_code == 200
        assert response.get_json()[ALLOW_QUOTE_WITHOUT_PRODUCT] == 'TRUE'

        audit = session.query(AuditLog).filter_by(action=AuditAction.SETTINGS_CHANGED).one()
        assert json.loads(audit.details)['to'] == 'TRUE'

    def test_string_values_are_accepted(self, session, tenant1):
        settings = settings_service.update_setting(session, tenant1.id, SHOW_ROW_DISCOUNT, ' false ')
        assert settings[SHOW_ROW_DISCOUNT] == 'FALSE'
        assert settings_service.is_setting_enabled(session, tenant1.id, SHOW_ROW_DISCOUNT) is False

    @pytest.mark.parametrize('value', ['maybe', 1, None])
    def test_invalid_value(self, authenticated_client, value):
        response = authenticated_client.put(f'/api/settings/{SHOW_ROW_DISCOUNT}', json={'value': value})
        assert response.status_code == 400

    def test_unknown_setting(self, authenticated_client):
        response = authenticated_client.put('/api/settings/dark_mode', json={'value': True})
        assert response.status_code == 404

    def test_settings_are_per_tenant(self, session, tenant1, tenant2):
        settings_service.update_setting(session, tenant1.id, ALLOW_QUOTE_WITHOUT_PRODUCT, True)

        assert settings_service.is_setting_enabled(session, tenant1.id, ALLOW_QUOTE_WITHOUT_PRODUCT) is True
        assert settings_service.is_setting_enabled(session, tenant2.id, ALLOW_QUOTE_WITHOUT_PRODUCT) is False
