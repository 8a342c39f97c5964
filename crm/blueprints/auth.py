"""
Authentication blueprint for the multi-tenant CRM API.
Handles login, logout and company (tenant) selection.
"""

from flask import Blueprint, request, session, g, jsonify
from typing import List, Dict, Any
import logging

from crm.database import get_session
from crm.models import AppUser, Tenant, UserTenant
from crm.exceptions import BusinessLogicError, UnauthorizedError
from crm.middleware import require_login

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _user_tenants(db_session, user_id: int) -> List[Dict[str, Any]]:
    """Active companies the user belongs to."""
    rows = db_session.query(UserTenant, Tenant).join(
        Tenant, Tenant.id == UserTenant.tenant_id
    ).filter(
        UserTenant.user_id == user_id,
        UserTenant.active.is_(True),
        Tenant.active.is_(True),
        Tenant.is_suspended.is_(False)
    ).order_by(Tenant.name).all()

    return [
        {'id': tenant.id, 'slug': tenant.slug, 'name': tenant.name, 'role': user_tenant.role}
        for user_tenant, tenant in rows
    ]


def _serialize_user(user: AppUser) -> Dict[str, Any]:
    return {'id': user.id, 'email': user.email, 'full_name': user.full_name}


@auth_bp.route('/login', methods=['POST'])
def login():
    """Validate email + password and open a session."""
    data = request.get_json(silent=True) or {}
    email = str(data.get('email') or '').strip()
    password = str(data.get('password') or '')

    if not email or not password:
        raise BusinessLogicError('Email and password are required.')

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(email=email).first()

    if not user or not user.active or not user.check_password(password):
        logger.info(f"Failed login attempt for {email}")
        return jsonify({'status': 'error', 'message': 'Invalid email or password.'}), 401

    tenants = _user_tenants(db_session, user.id)
    if not tenants:
        raise UnauthorizedError('Your account has no companies. Contact support.')

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    # Single company: select it right away
    tenant_id = None
    if len(tenants) == 1:
        tenant_id = tenants[0]['id']
        session['tenant_id'] = tenant_id

    return jsonify({
        'status': 'ok',
        'user': _serialize_user(user),
        'tenants': tenants,
        'tenant_id': tenant_id,
    })


@auth_bp.route('/select-tenant', methods=['POST'])
@require_login
def select_tenant():
    """Select the company to work in."""
    data = request.get_json(silent=True) or {}
    try:
        tenant_id = int(data.get('tenant_id'))
    except (TypeError, ValueError):
        raise BusinessLogicError('tenant_id is required.')

    tenants = _user_tenants(get_session(), g.user.id)
    if not any(t['id'] == tenant_id for t in tenants):
        raise UnauthorizedError('Invalid company.')

    session['tenant_id'] = tenant_id
    return jsonify({'status': 'ok', 'tenant_id': tenant_id})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Clear the session."""
    session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me', methods=['GET'])
@require_login
def me():
    """Current user, selected company and role."""
    return jsonify({
        'user': _serialize_user(g.user),
        'tenant_id': g.tenant_id,
        'role': g.user_role,
        'tenants': _user_tenants(get_session(), g.user.id),
    })
