"""Quotes blueprint - tenant-scoped quote API."""
from flask import Blueprint, request, g, jsonify, send_file, current_app

from crm.database import get_session
from crm.middleware import require_login, require_tenant, require_role
from crm.services import quote_service
from crm.services.quote_service import serialize_quote
from crm.services.audit_service import get_audit_logs, serialize_audit_log

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')


def _business_info():
    config = current_app.config
    return {
        'name': config.get('BUSINESS_NAME'),
        'address': config.get('BUSINESS_ADDRESS'),
        'phone': config.get('BUSINESS_PHONE'),
        'email': config.get('BUSINESS_EMAIL'),
        'currency': config.get('QUOTE_DEFAULT_CURRENCY'),
    }


@quotes_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_quotes():
    """List quotes with search, status filter and sorting."""
    quotes = quote_service.list_quotes(
        get_session(),
        g.tenant_id,
        search=request.args.get('q', '').strip() or None,
        status=request.args.get('status') or None,
        sort_by=request.args.get('sort_by'),
        sort_order=request.args.get('sort_order', 'desc'),
    )
    return jsonify([serialize_quote(quote) for quote in quotes])


@quotes_bp.route('', methods=['POST'])
@require_login
@require_tenant
def create_quote():
    quote = quote_service.create_quote(get_session(), g.tenant_id, request.get_json(silent=True) or {}, g.user_id)
    return jsonify(serialize_quote(quote, include_lines=True)), 201


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
@require_login
@require_tenant
def get_quote(quote_id):
    quote = quote_service.get_quote(get_session(), quote_id, g.tenant_id)
    return jsonify(serialize_quote(quote, include_lines=True))


@quotes_bp.route('/<int:quote_id>', methods=['PATCH'])
@require_login
@require_tenant
def update_quote(quote_id):
    quote = quote_service.update_quote(
        get_session(), quote_id, g.tenant_id, request.get_json(silent=True) or {}, g.user_id
    )
    return jsonify(serialize_quote(quote, include_lines=True))


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_role('ADMIN')
def delete_quote(quote_id):
    quote_service.delete_quote(get_session(), quote_id, g.tenant_id, g.user_id)
    return '', 204


@quotes_bp.route('/<int:quote_id>/status', methods=['POST'])
@require_login
@require_tenant
def change_status(quote_id):
    """Move the quote to another status (SENT, ACCEPTED, CANCELED)."""
    data = request.get_json(silent=True) or {}
    quote = quote_service.set_status(get_session(), quote_id, g.tenant_id, data.get('status'), g.user_id)
    current_app.logger.info(f"Quote {quote_id} of tenant {g.tenant_id} is now {quote.status}")
    return jsonify(serialize_quote(quote))


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
@require_login
@require_tenant
def download_pdf(quote_id):
    """Download the quote as PDF."""
    pdf_buffer = quote_service.generate_quote_pdf(get_session(), quote_id, g.tenant_id, _business_info())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'quote-{quote_id}.pdf'
    )


@quotes_bp.route('/<int:quote_id>/history', methods=['GET'])
@require_login
@require_tenant
def history(quote_id):
    """Audit entries of the quote, newest first."""
    session = get_session()
    quote_service.get_quote(session, quote_id, g.tenant_id)
    entries = get_audit_logs(
        session,
        g.tenant_id,
        limit=request.args.get('limit', 100, type=int),
        resource_type_filter='quote',
        resource_id_filter=quote_id,
    )
    return jsonify([serialize_audit_log(entry) for entry in entries])
