"""Company settings blueprint - quoting flags per tenant."""
from flask import Blueprint, request, g, jsonify

from crm.database import get_session
from crm.middleware import require_login, require_tenant, require_role
from crm.services import settings_service

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


@settings_bp.route('', methods=['GET'])
@require_login
@require_tenant
def get_settings():
    return jsonify(settings_service.get_settings(get_session(), g.tenant_id))


@settings_bp.route('/<code>', methods=['PUT'])
@require_login
@require_tenant
@require_role('ADMIN')
def update_setting(code):
    data = request.get_json(silent=True) or {}
    settings = settings_service.update_setting(get_session(), g.tenant_id, code, data.get('value'), g.user_id)
    return jsonify(settings)
