"""
Integration tests for the field metadata and Prometheus endpoints.
"""


class TestMetadataApi:

    def test_quote_line_fields(self, authenticated_client):
        response = authenticated_client.get('/api/metadata/quote_lines/fields')

        assert response.status_code == 200
        fields = {field['apiName']: field for field in response.get_json()}
        assert fields['product_unit_price']['decimalPlaces'] == 3
        assert fields['product_unit_price']['onlyPositive'] is True
        assert fields['product_name']['maxLength'] == 255

    def test_unknown_object(self, authenticated_client):
        response = authenticated_client.get('/api/metadata/accounts/fields')
        assert response.status_code == 404

    def test_requires_login(self, client):
        assert client.get('/api/metadata/quote_lines/fields').status_code == 401


class TestMetricsEndpoint:

    def test_exposes_quoting_metrics(self, authenticated_client):
        authenticated_client.post('/api/quote-lines/derive', json={'values': {'productUnitPrice': '10'}})

        response = authenticated_client.get('/metrics')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'http_requests_total' in body
        assert 'quote_line_derivations_total{rule_set="full",initial_load="false"}' in body
