"""
Quote line service - tenant-scoped line persistence around the derivation engine.

Every value written to the database has been through derive_quote_line and
is stored with 3 decimals. Saving the lines of a quote as a batch is
all-or-nothing.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from crm.models import Quote, QuoteLine, NUMERIC_FIELDS, TEXT_FIELDS, AuditAction
from crm.models.company_setting import ALLOW_QUOTE_WITHOUT_PRODUCT
from crm.exceptions import BusinessLogicError, NotFoundError, ValidationError
from crm.services.audit_service import log_action
from crm.services.quote_line_engine import (
    EditSignal, RuleSet, NO_EDIT,
    derive_quote_line, reconcile_initial_load, format_fixed, is_absent, safe_number,
)
from crm.services.quote_service import get_quote, refresh_totals
from crm.services.settings_service import is_setting_enabled
from crm.utils.number_format import parse_decimal

logger = logging.getLogger(__name__)

LINE_FIELDS = ('product_id',) + TEXT_FIELDS + NUMERIC_FIELDS

# Numeric(17, 5) leaves 12 integer digits
MAX_STORED_VALUE = Decimal('1000000000000')

# JSON clients send camelCase field names
CAMEL_CASE_ALIASES = {
    'productId': 'product_id',
    'productName': 'product_name',
    'unitPriceCurrency': 'unit_price_currency',
    'salesUom': 'sales_uom',
    'productUnitPrice': 'product_unit_price',
    'productUnitPriceOverride': 'product_unit_price_override',
    'quoteUnitPrice': 'quote_unit_price',
    'unitPriceDiscountPercent': 'unit_price_discount_percent',
    'unitPriceDiscountAmount': 'unit_price_discount_amount',
    'finalUnitPrice': 'final_unit_price',
    'quotedQuantity': 'quoted_quantity',
    'subtotalBeforeRowDiscounts': 'subtotal_before_row_discounts',
    'discountPercentOnSubtotal': 'discount_percent_on_subtotal',
    'discountAmountOnSubtotal': 'discount_amount_on_subtotal',
    'finalSubtotal': 'final_subtotal',
    'vatPercent': 'vat_percent',
    'vatUnitAmount': 'vat_unit_amount',
    'vatOnSubtotal': 'vat_on_subtotal',
    'grossSubtotal': 'gross_subtotal',
}


def normalize_line_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known line fields only, translating camelCase names."""
    values = {}
    for key, value in data.items():
        field = CAMEL_CASE_ALIASES.get(key, key)
        if field in LINE_FIELDS:
            values[field] = value
    return values


def line_to_values(line: QuoteLine) -> Dict[str, Any]:
    """Engine input for a persisted line; numbers as 3-decimal strings."""
    values = {'product_id': line.product_id}
    for field in TEXT_FIELDS:
        values[field] = getattr(line, field)
    for field in NUMERIC_FIELDS:
        value = getattr(line, field)
        values[field] = None if value is None else format_fixed(value)
    return values


def serialize_line(line: QuoteLine) -> Dict[str, Any]:
    """JSON-ready representation of a persisted line."""
    data = {'id': line.id, 'quote_id': line.quote_id}
    data.update(line_to_values(line))
    return data


def _normalize_product_id(value) -> Optional[int]:
    if is_absent(value):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f'Invalid product reference: {value}')


def _validate_values(values: Dict[str, Any], index: Optional[int] = None) -> List[Dict[str, Any]]:
    """Field errors for a line payload (numbers must parse, product id must be an int)."""
    errors = []
    prefix = f'lines[{index}].' if index is not None else ''

    if 'product_id' in values:
        try:
            values['product_id'] = _normalize_product_id(values['product_id'])
        except ValueError as e:
            errors.append({'field': f'{prefix}product_id', 'message': str(e)})

    for field in NUMERIC_FIELDS:
        if field not in values:
            continue
        try:
            values[field] = parse_decimal(values[field], allow_negative=True)
        except ValueError as e:
            errors.append({'field': f'{prefix}{field}', 'message': str(e)})

    errors.extend(_range_errors(values, prefix))
    return errors


def _range_errors(values: Dict[str, Any], prefix: str = '') -> List[Dict[str, Any]]:
    """Numeric values that do not fit the Numeric(17, 5) columns."""
    errors = []
    for field in NUMERIC_FIELDS:
        value = values.get(field)
        if is_absent(value):
            continue
        number = value if isinstance(value, Decimal) and value.is_finite() else safe_number(value)
        if abs(number) >= MAX_STORED_VALUE:
            errors.append({'field': f'{prefix}{field}', 'message': f'The value must be below {MAX_STORED_VALUE:,}'})
    return errors


def _to_storage(value) -> Optional[Decimal]:
    if is_absent(value):
        return None
    return Decimal(format_fixed(value))


def _apply_values(line: QuoteLine, values: Dict[str, Any]) -> None:
    if 'product_id' in values:
        line.product_id = values['product_id']
    for field in TEXT_FIELDS:
        if field in values:
            value = values[field]
            if isinstance(value, str):
                value = value.strip() or None
            setattr(line, field, value)
    for field in NUMERIC_FIELDS:
        if field in values:
            setattr(line, field, _to_storage(values[field]))


def _check_editable(quote: Quote) -> None:
    if not quote.is_editable:
        raise BusinessLogicError(f'Quote {quote.id} is {quote.status.lower()} or expired and cannot be edited.')


def _product_required(session, tenant_id: int) -> bool:
    return not is_setting_enabled(session, tenant_id, ALLOW_QUOTE_WITHOUT_PRODUCT)


def derive_values(
    values: Dict[str, Any],
    unit_price_discount=None,
    subtotal_discount=None,
    initial_load: bool = False,
    rule_set=None,
):
    """
    Form-binding entry point: run the engine for one edit.

    Raises ValidationError for an unknown discriminator or rule set; field
    values themselves are never rejected here.
    """
    try:
        signal = EditSignal(unit_price_discount, subtotal_discount, initial_load)
        rules = RuleSet.parse(rule_set)
    except ValueError as e:
        raise ValidationError(str(e))
    return derive_quote_line(normalize_line_keys(values), signal, rules)


def get_lines(session, quote_id: int, tenant_id: int) -> List[QuoteLine]:
    """All lines of a tenant's quote."""
    return list(get_quote(session, quote_id, tenant_id).lines)


def get_line(session, line_id: int, tenant_id: int) -> QuoteLine:
    """One line, only if its quote belongs to the tenant."""
    line = session.query(QuoteLine).join(Quote).filter(
        QuoteLine.id == line_id,
        Quote.tenant_id == tenant_id
    ).first()
    if not line:
        raise NotFoundError(f'Quote line {line_id} not found')
    return line


def load_lines_for_editing(session, quote_id: int, tenant_id: int, rule_set=RuleSet.FULL) -> List[Dict[str, Any]]:
    """
    Line values ready for an editing session.

    Each persisted line gets its one-time initial-load reconciliation here;
    later edits go through derive_values without initial_load.
    """
    result = []
    for line in get_lines(session, quote_id, tenant_id):
        values = reconcile_initial_load(line_to_values(line), rule_set).values
        values['id'] = line.id
        result.append(values)
    return result


def _prepare(values: Dict[str, Any], rule_set, prefix: str = '') -> Dict[str, Any]:
    # Consistency pass: a no-op on values the engine already produced
    derived = derive_quote_line(values, NO_EDIT, rule_set).values
    errors = _range_errors(derived, prefix)
    if errors:
        raise ValidationError('Invalid data', errors=errors)
    return derived


def create_line(session, tenant_id: int, data: Dict[str, Any], user_id: int = None, rule_set=RuleSet.FULL) -> QuoteLine:
    """Create a single line on a tenant's quote."""
    quote_id = data.get('quote_id') or data.get('quoteId')
    if is_absent(quote_id):
        raise ValidationError('Invalid data', errors=[{'field': 'quote_id', 'message': 'Required'}])

    try:
        quote_id = int(quote_id)
    except (TypeError, ValueError):
        raise ValidationError('Invalid data', errors=[{'field': 'quote_id', 'message': f'Invalid quote id {quote_id}'}])

    quote = get_quote(session, quote_id, tenant_id)
    _check_editable(quote)

    values = normalize_line_keys(data)
    errors = _validate_values(values)
    if not errors and values.get('product_id') is None and _product_required(session, tenant_id):
        errors.append({'field': 'product_id', 'message': 'Product is required'})
    if errors:
        raise ValidationError('Invalid data', errors=errors)
    values = _prepare(values, rule_set)

    try:
        line = QuoteLine(quote=quote)
        _apply_values(line, values)
        session.add(line)
        session.flush()
        refresh_totals(quote)
        log_action(
            session, AuditAction.QUOTE_LINES_SAVED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id, details={'created': line.id}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return line


def update_line(session, line_id: int, tenant_id: int, data: Dict[str, Any], user_id: int = None, rule_set=RuleSet.FULL) -> QuoteLine:
    """Partial update of one line; the owning quote cannot change."""
    line = get_line(session, line_id, tenant_id)
    _check_editable(line.quote)

    changes = normalize_line_keys(data)
    errors = _validate_values(changes)
    if errors:
        raise ValidationError('Invalid data', errors=errors)

    values = line_to_values(line)
    values.update(changes)
    values = _prepare(values, rule_set)

    try:
        _apply_values(line, values)
        refresh_totals(line.quote)
        log_action(
            session, AuditAction.QUOTE_LINES_SAVED, tenant_id, user_id,
            resource_type='quote', resource_id=line.quote_id, details={'updated': line.id}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return line


def delete_line(session, line_id: int, tenant_id: int, user_id: int = None) -> None:
    """Delete one line and refresh the quote totals."""
    line = get_line(session, line_id, tenant_id)
    quote = line.quote
    _check_editable(quote)

    try:
        quote.lines.remove(line)
        session.flush()
        refresh_totals(quote)
        log_action(
            session, AuditAction.QUOTE_LINES_DELETED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id, details={'ids': [line_id]}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise


def batch_save_lines(
    session,
    quote_id: int,
    tenant_id: int,
    lines: Iterable[Dict[str, Any]],
    user_id: int = None,
    rule_set=RuleSet.FULL,
) -> List[QuoteLine]:
    """
    Save the full line list of a quote in one transaction.

    Lines carrying an id update that line, lines without one are created, and
    persisted lines missing from the batch are deleted. Validation runs for
    every line before anything is written; any failure leaves the database
    untouched.
    """
    if not isinstance(lines, list):
        raise ValidationError("Request body must contain 'lines' array")

    quote = get_quote(session, quote_id, tenant_id)
    _check_editable(quote)

    existing = {line.id: line for line in quote.lines}
    product_required = _product_required(session, tenant_id)

    errors = []
    prepared = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            errors.append({'field': f'lines[{index}]', 'message': 'Expected an object'})
            continue

        line_id = raw.get('id')
        values = normalize_line_keys(raw)
        line_errors = _validate_values(values, index)

        target = None
        if not is_absent(line_id):
            try:
                target = existing.get(int(line_id))
            except (TypeError, ValueError):
                target = None
            if target is None:
                line_errors.append({'field': f'lines[{index}].id', 'message': f'Line {line_id} does not belong to quote {quote_id}'})

        if target is not None and not line_errors:
            merged = line_to_values(target)
            merged.update(values)
            values = merged

        if not line_errors and product_required and values.get('product_id') is None:
            line_errors.append({'field': f'lines[{index}].product_id', 'message': 'Product is required'})

        if not line_errors:
            try:
                values = _prepare(values, rule_set, f'lines[{index}].')
            except ValidationError as e:
                line_errors.extend(e.errors)

        errors.extend(line_errors)
        prepared.append((target, values))

    if errors:
        raise ValidationError('Invalid data in quote lines', errors=errors)

    try:
        kept_ids = set()
        for target, values in prepared:
            if target is None:
                target = QuoteLine()
                quote.lines.append(target)
            else:
                kept_ids.add(target.id)
            _apply_values(target, values)

        removed = [line for line_id, line in existing.items() if line_id not in kept_ids]
        for line in removed:
            quote.lines.remove(line)

        session.flush()
        refresh_totals(quote)
        log_action(
            session, AuditAction.QUOTE_LINES_SAVED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id,
            details={
                'saved': len(prepared),
                'deleted': [line.id for line in removed],
                'net_grand_total': quote.net_grand_total,
                'gross_grand_total': quote.gross_grand_total,
            }
        )
        session.commit()
    except Exception:
        session.rollback()
        logger.error(f"Batch save of quote {quote_id} lines failed for tenant {tenant_id}")
        raise

    logger.info(f"Saved {len(prepared)} lines on quote {quote_id} (tenant {tenant_id}), removed {len(removed)}")
    return list(quote.lines)


def batch_delete_lines(session, quote_id: int, tenant_id: int, ids, user_id: int = None) -> int:
    """Delete the given lines of a quote; returns how many were deleted."""
    if not isinstance(ids, list):
        raise ValidationError("Request body must contain 'ids' array")

    quote = get_quote(session, quote_id, tenant_id)
    _check_editable(quote)

    wanted = set()
    for line_id in ids:
        try:
            wanted.add(int(line_id))
        except (TypeError, ValueError):
            raise ValidationError('Invalid data', errors=[{'field': 'ids', 'message': f'Invalid id {line_id}'}])

    to_delete = [line for line in quote.lines if line.id in wanted]
    if ids and not to_delete:
        raise NotFoundError('Quote lines not found or do not belong to your company')

    try:
        for line in to_delete:
            quote.lines.remove(line)
        session.flush()
        refresh_totals(quote)
        log_action(
            session, AuditAction.QUOTE_LINES_DELETED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id,
            details={'ids': sorted(line.id for line in to_delete)}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return len(to_delete)


def recalculate_quote_lines(session, quote_id: int, tenant_id: int, rule_set=RuleSet.FULL) -> int:
    """
    Re-derive every persisted line of a quote (reconciliation, then a
    consistency pass) and refresh the totals. Returns the number of lines
    whose stored values changed.
    """
    quote = get_quote(session, quote_id, tenant_id)
    changed = 0

    try:
        for line in quote.lines:
            before = line_to_values(line)
            reconciled = reconcile_initial_load(before, rule_set)
            result = derive_quote_line(reconciled.values, NO_EDIT, rule_set)
            if reconciled.changed or result.changed:
                _apply_values(line, result.values)
                changed += 1
        refresh_totals(quote)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"Recalculated quote {quote_id}: {changed} line(s) updated")
    return changed
