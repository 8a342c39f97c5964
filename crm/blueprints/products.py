"""Products blueprint - tenant catalog used to seed quote lines."""
from flask import Blueprint, request, g, jsonify

from crm.database import get_session
from crm.middleware import require_login, require_tenant, require_role
from crm.services import product_service
from crm.services.product_service import serialize_product

products_bp = Blueprint('products', __name__, url_prefix='/api/products')


@products_bp.route('', methods=['GET'])
@require_login
@require_tenant
def list_products():
    products = product_service.list_products(
        get_session(),
        g.tenant_id,
        search=request.args.get('q', '').strip() or None,
        active_only=request.args.get('active') in ('1', 'true'),
    )
    return jsonify([serialize_product(p) for p in products])


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_login
@require_tenant
def get_product(product_id):
    return jsonify(serialize_product(product_service.get_product(get_session(), product_id, g.tenant_id)))


@products_bp.route('/<int:product_id>/seed', methods=['GET'])
@require_login
@require_tenant
def seed(product_id):
    """Initial quote line values for a picked product."""
    return jsonify(product_service.lookup_product(get_session(), product_id, g.tenant_id))


@products_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_role('ADMIN')
def create_product():
    product = product_service.create_product(get_session(), g.tenant_id, request.get_json(silent=True) or {}, g.user_id)
    return jsonify(serialize_product(product)), 201


@products_bp.route('/<int:product_id>', methods=['PATCH'])
@require_login
@require_tenant
@require_role('ADMIN')
def update_product(product_id):
    product = product_service.update_product(
        get_session(), product_id, g.tenant_id, request.get_json(silent=True) or {}, g.user_id
    )
    return jsonify(serialize_product(product))
