"""Product catalog service - tenant-scoped products and quote line seeding."""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from crm.models import Product, AuditAction
from crm.exceptions import BusinessLogicError, NotFoundError, ValidationError
from crm.services.audit_service import log_action
from crm.services.cache_service import get_cache
from crm.services.quote_line_engine import format_fixed
from crm.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

CACHE_MODULE = 'products'

EDITABLE_FIELDS = (
    'name', 'sku', 'sales_category', 'sales_uom',
    'sales_unit_price', 'sales_unit_price_currency', 'vat_percent', 'active',
)
DECIMAL_FIELDS = ('sales_unit_price', 'vat_percent')


def _fixed_or_none(value) -> Optional[str]:
    return None if value is None else format_fixed(value)


def serialize_product(product: Product) -> Dict[str, Any]:
    """JSON-ready representation of a product."""
    return {
        'id': product.id,
        'name': product.name,
        'sku': product.sku,
        'sales_category': product.sales_category,
        'sales_uom': product.sales_uom,
        'sales_unit_price': _fixed_or_none(product.sales_unit_price),
        'sales_unit_price_currency': product.sales_unit_price_currency,
        'vat_percent': _fixed_or_none(product.vat_percent),
        'active': product.active,
    }


def seed_from_product(product: Product) -> Dict[str, Any]:
    """
    Initial quote line values for a picked product.

    Only seeds the line; ongoing computation is done by the derivation engine.
    """
    return {
        'product_id': product.id,
        'product_name': product.name,
        'product_unit_price': _fixed_or_none(product.sales_unit_price),
        'unit_price_currency': product.sales_unit_price_currency,
        'vat_percent': _fixed_or_none(product.vat_percent),
        'sales_uom': product.sales_uom,
    }


def _clean_product_data(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    errors = []
    cleaned = {}

    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in DECIMAL_FIELDS:
            try:
                value = parse_decimal(value)
            except ValueError as e:
                errors.append({'field': field, 'message': str(e)})
                continue
        elif field == 'active':
            value = bool(value)
        elif field == 'sales_unit_price_currency' and value:
            value = str(value).strip().upper()
            if len(value) != 3:
                errors.append({'field': field, 'message': 'Expected a 3-letter ISO code'})
                continue
        elif isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value

    if not partial and not cleaned.get('name'):
        errors.append({'field': 'name', 'message': 'Product name is required'})
    if partial and 'name' in cleaned and not cleaned['name']:
        errors.append({'field': 'name', 'message': 'Product name is required'})

    if errors:
        raise ValidationError('Invalid product data', errors=errors)
    return cleaned


def list_products(session, tenant_id: int, search: str = None, active_only: bool = False) -> List[Product]:
    """List products for a tenant, optionally filtered by name/SKU."""
    query = session.query(Product).filter(Product.tenant_id == tenant_id)
    if active_only:
        query = query.filter(Product.active.is_(True))
    if search:
        query = query.filter(
            or_(
                Product.name.ilike(f'%{search}%'),
                Product.sku.ilike(f'%{search}%'),
            )
        )
    return query.order_by(Product.name).all()


def get_product(session, product_id: int, tenant_id: int) -> Product:
    """Fetch one product of the tenant or raise NotFoundError."""
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.tenant_id == tenant_id
    ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def lookup_product(session, product_id: int, tenant_id: int) -> Dict[str, Any]:
    """Seed values for a product (cache-aside)."""
    def load():
        return seed_from_product(get_product(session, product_id, tenant_id))

    return get_cache().memoize(tenant_id, CACHE_MODULE, str(product_id), load)


def create_product(session, tenant_id: int, data: Dict[str, Any], user_id: int = None) -> Product:
    """Create a product for the tenant."""
    cleaned = _clean_product_data(data, partial=False)
    try:
        product = Product(tenant_id=tenant_id, **cleaned)
        session.add(product)
        session.flush()
        log_action(
            session, AuditAction.PRODUCT_CREATED, tenant_id, user_id,
            resource_type='product', resource_id=product.id,
            details={'name': product.name}
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"SKU {cleaned.get('sku')} already exists.")
    except Exception:
        session.rollback()
        raise

    logger.info(f"Product {product.id} created for tenant {tenant_id}")
    return product


def update_product(session, product_id: int, tenant_id: int, data: Dict[str, Any], user_id: int = None) -> Product:
    """Update a product; tenant ownership cannot change."""
    cleaned = _clean_product_data(data, partial=True)
    product = get_product(session, product_id, tenant_id)
    try:
        for field, value in cleaned.items():
            setattr(product, field, value)
        log_action(
            session, AuditAction.PRODUCT_UPDATED, tenant_id, user_id,
            resource_type='product', resource_id=product.id,
            details={'fields': sorted(cleaned.keys())}
        )
        session.commit()
    except IntegrityError:
        session.rollback()
        raise BusinessLogicError(f"SKU {cleaned.get('sku')} already exists.")
    except Exception:
        session.rollback()
        raise

    get_cache().delete(tenant_id, CACHE_MODULE, str(product_id))
    return product
