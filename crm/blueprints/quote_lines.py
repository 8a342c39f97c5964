"""Quote lines blueprint - line CRUD, batch save and live derivation."""
from flask import Blueprint, request, g, jsonify, current_app

from crm.database import get_session
from crm.exceptions import ValidationError
from crm.middleware import require_login, require_tenant
from crm.services import quote_line_service
from crm.services.quote_line_engine import RuleSet
from crm.services.quote_line_service import serialize_line
from crm.blueprints.metrics import (
    quote_line_derivations_total, quote_line_batch_saves_total, quote_lines_saved_total,
)

quote_lines_bp = Blueprint('quote_lines', __name__, url_prefix='/api')


def _rule_set(data=None):
    """Rule set from the body or query string, else the configured default."""
    value = None
    if data:
        value = data.get('ruleSet') or data.get('rule_set')
    value = value or request.args.get('rule_set') or current_app.config.get('QUOTE_DEFAULT_RULE_SET')
    try:
        return RuleSet.parse(value)
    except ValueError as e:
        raise ValidationError(str(e))


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Expected a JSON object')
    return data


def _flag(data, *keys):
    """JSON boolean (or 'true'/'false') under the first key present; False when missing."""
    for key in keys:
        if key in data:
            value = data[key]
            break
    else:
        return False
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValidationError(f"'{keys[0]}' must be true or false")


@quote_lines_bp.route('/quote-lines/derive', methods=['POST'])
@require_login
@require_tenant
def derive():
    """
    Run the derivation engine on the values of one line being edited.

    Body: {"values": {...}, "lastEdited": {"unitPriceDiscount": "percent"|"amount",
    "subtotalDiscount": ...}, "initialLoad": bool, "ruleSet": "full"|"basic"}
    """
    data = _json_body()
    values = data.get('values')
    if values is None:
        values = {}
    if not isinstance(values, dict):
        raise ValidationError("'values' must be an object")

    last_edited = data.get('lastEdited') or data.get('last_edited') or {}
    if not isinstance(last_edited, dict):
        raise ValidationError("'lastEdited' must be an object")

    initial_load = _flag(data, 'initialLoad', 'initial_load')
    rule_set = _rule_set(data)

    result = quote_line_service.derive_values(
        values,
        unit_price_discount=last_edited.get('unitPriceDiscount', last_edited.get('unit_price_discount')),
        subtotal_discount=last_edited.get('subtotalDiscount', last_edited.get('subtotal_discount')),
        initial_load=initial_load,
        rule_set=rule_set,
    )
    quote_line_derivations_total.labels(rule_set=rule_set.value, initial_load=str(initial_load).lower()).inc()
    return jsonify({'values': result.values, 'changed': result.changed})


@quote_lines_bp.route('/quotes/<int:quote_id>/quote-lines', methods=['GET'])
@require_login
@require_tenant
def list_lines(quote_id):
    lines = quote_line_service.get_lines(get_session(), quote_id, g.tenant_id)
    return jsonify([serialize_line(line) for line in lines])


@quote_lines_bp.route('/quotes/<int:quote_id>/quote-lines/edit', methods=['GET'])
@require_login
@require_tenant
def lines_for_editing(quote_id):
    """Persisted lines after their one-time initial-load reconciliation."""
    lines = quote_line_service.load_lines_for_editing(get_session(), quote_id, g.tenant_id, _rule_set())
    return jsonify(lines)


@quote_lines_bp.route('/quote-lines/<int:line_id>', methods=['GET'])
@require_login
@require_tenant
def get_line(line_id):
    return jsonify(serialize_line(quote_line_service.get_line(get_session(), line_id, g.tenant_id)))


@quote_lines_bp.route('/quote-lines', methods=['POST'])
@require_login
@require_tenant
def create_line():
    data = _json_body()
    line = quote_line_service.create_line(get_session(), g.tenant_id, data, g.user_id, _rule_set(data))
    return jsonify(serialize_line(line)), 201


@quote_lines_bp.route('/quote-lines/<int:line_id>', methods=['PATCH'])
@require_login
@require_tenant
def update_line(line_id):
    data = _json_body()
    line = quote_line_service.update_line(get_session(), line_id, g.tenant_id, data, g.user_id, _rule_set(data))
    return jsonify(serialize_line(line))


@quote_lines_bp.route('/quote-lines/<int:line_id>', methods=['DELETE'])
@require_login
@require_tenant
def delete_line(line_id):
    quote_line_service.delete_line(get_session(), line_id, g.tenant_id, g.user_id)
    return '', 204


@quote_lines_bp.route('/quotes/<int:quote_id>/quote-lines/batch', methods=['POST'])
@require_login
@require_tenant
def batch_save(quote_id):
    """Replace all lines of the quote with the submitted list."""
    data = request.get_json(silent=True) or {}
    lines = data.get('lines') if isinstance(data, dict) else None

    try:
        saved = quote_line_service.batch_save_lines(
            get_session(), quote_id, g.tenant_id, lines, g.user_id, _rule_set(data if isinstance(data, dict) else None)
        )
    except Exception:
        quote_line_batch_saves_total.labels(outcome='error').inc()
        raise

    quote_line_batch_saves_total.labels(outcome='ok').inc()
    quote_lines_saved_total.inc(len(saved))
    return jsonify([serialize_line(line) for line in saved])


@quote_lines_bp.route('/quotes/<int:quote_id>/quote-lines/batch', methods=['DELETE'])
@require_login
@require_tenant
def batch_delete(quote_id):
    data = request.get_json(silent=True) or {}
    ids = data.get('ids') if isinstance(data, dict) else None
    deleted = quote_line_service.batch_delete_lines(get_session(), quote_id, g.tenant_id, ids, g.user_id)
    return jsonify({'status': 'ok', 'deleted': deleted})
