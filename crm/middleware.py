"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from crm.database import get_session
from crm.models import AppUser, UserTenant, Tenant, ROLE_HIERARCHY


def _error(message, status_code):
    return jsonify({'status': 'error', 'message': message}), status_code


def load_user_and_tenant():
    """
    Load current user and tenant into g (Flask's per-request global).

    Called before each request to establish user and tenant context.
    Sets g.user, g.user_id, g.tenant_id and g.user_role if authenticated.
    """
    g.user = None
    g.user_id = None
    g.tenant_id = None
    g.user_role = None

    try:
        user_id = session.get('user_id')
        if not user_id:
            return

        db_session = get_session()
        if not db_session:
            return

        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            return

        g.user = user
        g.user_id = user.id

        tenant_id = session.get('tenant_id')
        if not tenant_id:
            return

        # Verify user has access to this tenant
        user_tenant = db_session.query(UserTenant).filter_by(
            user_id=user.id,
            tenant_id=tenant_id,
            active=True
        ).first()

        if not user_tenant:
            session.pop('tenant_id', None)
            return

        tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
        if not tenant or not tenant.active or tenant.is_suspended:
            # Suspended company: force re-login
            session.clear()
            g.user = None
            g.user_id = None
            return

        g.tenant_id = tenant_id
        g.user_role = user_tenant.role
    except Exception as e:
        current_app.logger.error(f"Error in load_user_and_tenant: {e}")


def require_login(f):
    """Decorator: Require user to be logged in (401 JSON otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return _error('Authentication required', 401)
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require tenant to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            return _error('Select a company first', 403)
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role='STAFF'):
    """
    Decorator: Require minimum role for tenant.

    Roles hierarchy: OWNER > ADMIN > STAFF

    Must be used AFTER require_login and require_tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('user') is None or g.get('tenant_id') is None:
                return _error('Access denied', 403)

            user_role_level = ROLE_HIERARCHY.get(g.user_role, 0)
            required_level = ROLE_HIERARCHY.get(min_role, 1)

            if user_role_level < required_level:
                return _error(f'{min_role} role or higher required', 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator
