"""
Unit tests for number parsing and document formatting.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from crm.utils.number_format import parse_decimal
from crm.utils.formatters import format_amount, format_money, format_quantity, format_date


class TestParseDecimal:
    """Tests for parse_decimal."""

    @pytest.mark.parametrize('raw,expected', [
        ('1234.5', Decimal('1234.5')),
        ('1,234.50', Decimal('1234.50')),
        ('  42 ', Decimal('42')),
        (7, Decimal('7')),
        (0.25, Decimal('0.25')),
        (Decimal('3.141'), Decimal('3.141')),
    ])
    def test_valid_numbers(self, raw, expected):
        assert parse_decimal(raw) == expected

    @pytest.mark.parametrize('raw', [None, '', '   '])
    def test_blank_is_none(self, raw):
        assert parse_decimal(raw) is None

    def test_blank_not_allowed(self):
        with pytest.raises(ValueError):
            parse_decimal('', allow_blank=False)

    @pytest.mark.parametrize('raw', ['abc', '1,23.4', '1.2.3', True, 'NaN', float('inf')])
    def test_invalid_numbers(self, raw):
        with pytest.raises(ValueError):
            parse_decimal(raw)

    def test_negative_numbers(self):
        with pytest.raises(ValueError):
            parse_decimal('-5')
        assert parse_decimal('-5', allow_negative=True) == Decimal('-5')


class TestFormatters:
    """Tests for PDF formatting helpers."""

    def test_format_amount(self):
        assert format_amount(1500) == '1,500.00'
        assert format_amount('648.000') == '648.00'
        assert format_amount(Decimal('0.005')) == '0.01'
        assert format_amount(None) == '-'
        assert format_amount('n/a') == '-'

    def test_format_amount_no_negative_zero(self):
        assert format_amount('-0.001') == '0.00'

    def test_format_money(self):
        assert format_money('648', 'EUR') == '648.00 EUR'
        assert format_money('648') == '648.00'
        assert format_money(None, 'EUR') == '-'

    def test_format_quantity(self):
        assert format_quantity(Decimal('3.000')) == '3'
        assert format_quantity('2.500') == '2.5'
        assert format_quantity(None) == '-'

    def test_format_date(self):
        assert format_date(date(2026, 10, 18)) == '2026-10-18'
        assert format_date(datetime(2026, 10, 18, 9, 30)) == '2026-10-18'
        assert format_date(None) == '-'
