"""
Integration tests for the Flask CLI commands.
"""

import pytest
from decimal import Decimal

from crm.models import AppUser, Tenant, UserTenant, QuoteLine


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestCreateUser:

    def test_creates_user_and_company(self, runner, session):
        result = runner.invoke(args=[
            'create-user', '--email', 'owner@acme.test', '--password', 'secret1',
            '--full-name', 'Ann Owner', '--company', 'Acme Inc.',
        ])

        assert result.exit_code == 0, result.output
        user = session.query(AppUser).filter_by(email='owner@acme.test').one()
        tenant = session.query(Tenant).filter_by(slug='acme-inc').one()
        link = session.query(UserTenant).filter_by(user_id=user.id, tenant_id=tenant.id).one()
        assert link.role == 'OWNER'
        assert user.check_password('secret1')

    def test_joins_existing_company(self, runner, session, tenant1):
        result = runner.invoke(args=[
            'create-user', '--email', 'staff@acme.test', '--password', 'secret1',
            '--company', tenant1.slug, '--role', 'STAFF',
        ])

        assert result.exit_code == 0, result.output
        assert session.query(Tenant).count() == 1

    def test_duplicate_email(self, runner, user1):
        result = runner.invoke(args=[
            'create-user', '--email', user1.email, '--password', 'secret1', '--company', 'Other',
        ])
        assert result.exit_code != 0
        assert 'already exists' in result.output

    def test_short_password(self, runner):
        result = runner.invoke(args=[
            'create-user', '--email', 'a@b.test', '--password', '123', '--company', 'Other',
        ])
        assert result.exit_code != 0


class TestRecalcQuote:

    def test_recalculates_lines(self, runner, session, tenant1, quote_tenant1, quote_line_tenant1):
        line = session.get(QuoteLine, quote_line_tenant1.id)
        line.vat_on_subtotal = Decimal('0')
        session.commit()

        result = runner.invoke(args=['recalc-quote', str(quote_tenant1.id), '--tenant-id', str(tenant1.id)])

        assert result.exit_code == 0, result.output
        assert '1 line(s) updated' in result.output
        session.expire_all()
        assert session.get(QuoteLine, quote_line_tenant1.id).vat_on_subtotal == Decimal('108')

    def test_unknown_quote(self, runner, tenant1):
        result = runner.invoke(args=['recalc-quote', '9999', '--tenant-id', str(tenant1.id)])
        assert result.exit_code != 0
        assert 'not found' in result.output


def test_init_db(runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert 'Database tables created' in result.output
