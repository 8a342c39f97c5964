"""
Flask CLI commands.

Commands:
- flask init-db: Create the database tables
- flask create-user: Create a user and attach it to a company
- flask recalc-quote: Re-derive every line of a quote and refresh its totals
"""

import click
import re
from crm import database
from crm.models import AppUser, Tenant, UserTenant, UserRole
from crm.exceptions import CrmError
from crm.services.quote_line_engine import RuleSet


def _slugify(name: str) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')
    return slug[:80] or 'company'


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        database.create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='User email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='User password')
    @click.option('--full-name', default=None, help='Display name')
    @click.option('--company', required=True, help='Company name (created when missing)')
    @click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.OWNER.value)
    def create_user(email, password, full_name, company, role):
        """Create a user and link it to a company with a role."""
        db_session = database.get_session()

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            raise click.BadParameter('Invalid email address', param_hint='--email')

        if len(password) < 6:
            raise click.BadParameter('Password must be at least 6 characters', param_hint='--password')

        if db_session.query(AppUser).filter_by(email=email).first():
            raise click.ClickException(f'A user with email {email} already exists')

        try:
            slug = _slugify(company)
            tenant = db_session.query(Tenant).filter_by(slug=slug).first()
            if not tenant:
                tenant = Tenant(slug=slug, name=company, active=True)
                db_session.add(tenant)
                db_session.flush()

            user = AppUser(email=email, full_name=full_name, active=True)
            user.set_password(password)
            db_session.add(user)
            db_session.flush()

            db_session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, active=True))
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

        click.echo(click.style(f'User {email} created (id {user.id})', fg='green', bold=True))
        click.echo(f'   Company: {tenant.name} (id {tenant.id})')
        click.echo(f'   Role: {role}')

    @app.cli.command('recalc-quote')
    @click.argument('quote_id', type=int)
    @click.option('--tenant-id', type=int, required=True, help='Company owning the quote')
    @click.option('--rule-set', type=click.Choice([r.value for r in RuleSet]), default=None,
                  help='Rule set (defaults to QUOTE_DEFAULT_RULE_SET)')
    def recalc_quote(quote_id, tenant_id, rule_set):
        """Re-derive every persisted line of a quote."""
        from crm.services.quote_line_service import recalculate_quote_lines

        rules = RuleSet.parse(rule_set or app.config.get('QUOTE_DEFAULT_RULE_SET'))
        try:
            changed = recalculate_quote_lines(database.get_session(), quote_id, tenant_id, rules)
        except CrmError as e:
            raise click.ClickException(e.message)

        click.echo(f'Quote {quote_id}: {changed} line(s) updated')
