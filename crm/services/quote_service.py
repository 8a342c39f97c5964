"""Quote service for managing sales quotes and rendering them as PDF."""

from datetime import datetime, date
from decimal import Decimal
from io import BytesIO
from typing import Dict, Any, List, Iterable, Optional

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy import or_
from sqlalchemy.orm import Session

from crm.models import Quote, QuoteStatus, AuditAction
from crm.exceptions import BusinessLogicError, NotFoundError, ValidationError
from crm.services.audit_service import log_action
from crm.services.quote_line_engine import safe_number, format_fixed
from crm.utils.formatters import format_amount, format_quantity, format_date

SORTABLE_COLUMNS = {
    'name': Quote.name,
    'customer_name': Quote.customer_name,
    'status': Quote.status,
    'quote_expiration_date': Quote.quote_expiration_date,
    'net_grand_total': Quote.net_grand_total,
    'gross_grand_total': Quote.gross_grand_total,
    'created_at': Quote.created_at,
}

EDITABLE_FIELDS = (
    'name', 'customer_name', 'customer_address',
    'seller_name', 'seller_email', 'quote_expiration_date',
)

# Allowed status transitions (from -> to)
STATUS_TRANSITIONS = {
    QuoteStatus.DRAFT.value: (QuoteStatus.SENT.value, QuoteStatus.CANCELED.value),
    QuoteStatus.SENT.value: (QuoteStatus.ACCEPTED.value, QuoteStatus.CANCELED.value),
}


def serialize_quote(quote: Quote, include_lines: bool = False) -> Dict[str, Any]:
    """JSON-ready representation of a quote."""
    data = {
        'id': quote.id,
        'name': quote.name,
        'status': quote.status,
        'customer_name': quote.customer_name,
        'customer_address': quote.customer_address,
        'seller_name': quote.seller_name,
        'seller_email': quote.seller_email,
        'quote_expiration_date': quote.quote_expiration_date.isoformat() if quote.quote_expiration_date else None,
        'is_expired': quote.is_expired,
        'net_grand_total': format_fixed(quote.net_grand_total) if quote.net_grand_total is not None else None,
        'gross_grand_total': format_fixed(quote.gross_grand_total) if quote.gross_grand_total is not None else None,
        'created_by': quote.created_by,
        'created_at': quote.created_at.isoformat() if quote.created_at else None,
    }
    if include_lines:
        from crm.services.quote_line_service import serialize_line
        data['lines'] = [serialize_line(line) for line in quote.lines]
    return data


def compute_totals(lines: Iterable[Any]) -> Dict[str, Decimal]:
    """
    Grand totals of a quote.

    Accepts QuoteLine objects or line value dicts; absent subtotals count as 0.
    """
    net = Decimal('0')
    gross = Decimal('0')
    for line in lines:
        if isinstance(line, dict):
            final_subtotal = line.get('final_subtotal')
            gross_subtotal = line.get('gross_subtotal')
        else:
            final_subtotal = line.final_subtotal
            gross_subtotal = line.gross_subtotal
        net += safe_number(final_subtotal)
        gross += safe_number(gross_subtotal)
    return {'net_grand_total': net, 'gross_grand_total': gross}


def refresh_totals(quote: Quote) -> None:
    """Store the grand totals computed from the quote's current lines."""
    totals = compute_totals(quote.lines)
    quote.net_grand_total = totals['net_grand_total']
    quote.gross_grand_total = totals['gross_grand_total']


def _parse_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError('Invalid data', errors=[
            {'field': 'quote_expiration_date', 'message': 'Expected YYYY-MM-DD'}
        ])


def _clean_quote_data(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'quote_expiration_date':
            value = _parse_date(value)
        elif isinstance(value, str):
            value = value.strip() or None
        cleaned[field] = value
    return cleaned


def list_quotes(
    session: Session,
    tenant_id: int,
    search: str = None,
    status: str = None,
    sort_by: str = None,
    sort_order: str = 'desc',
) -> List[Quote]:
    """List quotes of a tenant; unknown sort columns fall back to created_at."""
    query = session.query(Quote).filter(Quote.tenant_id == tenant_id)

    if status:
        status = status.upper()
        if status not in [s.value for s in QuoteStatus]:
            raise ValidationError(f'Unknown status {status}')
        query = query.filter(Quote.status == status)

    if search:
        query = query.filter(
            or_(
                Quote.name.ilike(f'%{search}%'),
                Quote.customer_name.ilike(f'%{search}%'),
                Quote.seller_name.ilike(f'%{search}%'),
            )
        )

    column = SORTABLE_COLUMNS.get(sort_by or '', Quote.created_at)
    if (sort_order or '').lower() == 'asc':
        query = query.order_by(column.asc(), Quote.id.asc())
    else:
        query = query.order_by(column.desc(), Quote.id.desc())

    return query.all()


def get_quote(session: Session, quote_id: int, tenant_id: int) -> Quote:
    """Fetch one quote of the tenant or raise NotFoundError."""
    quote = session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.tenant_id == tenant_id
    ).first()
    if not quote:
        raise NotFoundError(f'Quote {quote_id} not found')
    return quote


def create_quote(session: Session, tenant_id: int, data: Dict[str, Any], user_id: int = None) -> Quote:
    """Create an empty DRAFT quote for the tenant."""
    cleaned = _clean_quote_data(data)
    if not cleaned.get('name'):
        raise ValidationError('Invalid data', errors=[{'field': 'name', 'message': 'Quote name is required'}])

    try:
        quote = Quote(
            tenant_id=tenant_id,
            status=QuoteStatus.DRAFT.value,
            created_by=user_id,
            net_grand_total=Decimal('0'),
            gross_grand_total=Decimal('0'),
            **cleaned
        )
        session.add(quote)
        session.flush()
        log_action(
            session, AuditAction.QUOTE_CREATED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id,
            details={'name': quote.name}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return quote


def update_quote(session: Session, quote_id: int, tenant_id: int, data: Dict[str, Any], user_id: int = None) -> Quote:
    """Update quote header fields; tenant and totals are never taken from input."""
    quote = get_quote(session, quote_id, tenant_id)
    if not quote.is_editable:
        raise BusinessLogicError(f'Quote {quote_id} cannot be edited.')

    cleaned = _clean_quote_data(data)
    if 'name' in cleaned and not cleaned['name']:
        raise ValidationError('Invalid data', errors=[{'field': 'name', 'message': 'Quote name is required'}])

    try:
        for field, value in cleaned.items():
            setattr(quote, field, value)
        log_action(
            session, AuditAction.QUOTE_UPDATED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id,
            details={'fields': sorted(cleaned.keys())}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return quote


def delete_quote(session: Session, quote_id: int, tenant_id: int, user_id: int = None) -> None:
    """Delete a quote together with its lines."""
    quote = get_quote(session, quote_id, tenant_id)
    try:
        session.delete(quote)
        log_action(
            session, AuditAction.QUOTE_DELETED, tenant_id, user_id,
            resource_type='quote', resource_id=quote_id,
            details={'name': quote.name}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise


def set_status(session: Session, quote_id: int, tenant_id: int, new_status: str, user_id: int = None) -> Quote:
    """Move a quote along DRAFT -> SENT -> ACCEPTED, or cancel an open one."""
    quote = get_quote(session, quote_id, tenant_id)
    new_status = (new_status or '').upper()

    if new_status not in [s.value for s in QuoteStatus]:
        raise ValidationError(f'Unknown status {new_status}')

    if new_status not in STATUS_TRANSITIONS.get(quote.status, ()):
        raise BusinessLogicError(f'Cannot change quote status from {quote.status} to {new_status}.')

    if quote.is_expired and new_status != QuoteStatus.CANCELED.value:
        raise BusinessLogicError(f'Quote {quote_id} is expired.')

    try:
        previous = quote.status
        quote.status = new_status
        log_action(
            session, AuditAction.QUOTE_STATUS_CHANGED, tenant_id, user_id,
            resource_type='quote', resource_id=quote.id,
            details={'from': previous, 'to': new_status}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    return quote


def _render_quote_pdf(quote: Quote, business_info: Dict[str, Any]) -> BytesIO:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=0.5*inch,
        leftMargin=0.5*inch,
        topMargin=0.5*inch,
        bottomMargin=0.5*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'CustomHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and business header
    elements.append(Paragraph("QUOTE", title_style))

    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{business_info['name']}</b>", header_style))

    if business_info.get('address'):
        elements.append(Paragraph(business_info['address'], header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tel: {business_info['phone']}")
    if business_info.get('email'):
        contact_parts.append(f"Email: {business_info['email']}")

    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.25*inch))

    # 2. Quote metadata
    info_data = [
        ['Quote:', quote.name or f'#{quote.id}'],
        ['Status:', quote.status],
        ['Issued:', format_date(quote.created_at) if quote.created_at else format_date(datetime.now())],
    ]
    if quote.quote_expiration_date:
        info_data.append(['Valid until:', format_date(quote.quote_expiration_date)])
    if quote.customer_name:
        info_data.append(['Customer:', quote.customer_name])
    if quote.customer_address:
        info_data.append(['Address:', quote.customer_address])
    if quote.seller_name:
        info_data.append(['Seller:', quote.seller_name])

    info_table = Table(info_data, colWidths=[1.5*inch, 4*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))

    elements.append(info_table)
    elements.append(Spacer(1, 0.25*inch))

    # 3. Lines, showing the derived values as stored
    table_data = [['Product', 'Unit', 'Qty', 'Unit price', 'Discount', 'Final unit', 'Subtotal', 'VAT %', 'VAT', 'Gross']]
    for line in quote.lines:
        unit_price = line.quote_unit_price if line.quote_unit_price is not None else line.product_unit_price
        table_data.append([
            line.product_name or '-',
            line.sales_uom or '-',
            format_quantity(line.quoted_quantity),
            format_amount(unit_price),
            format_amount(line.unit_price_discount_amount),
            format_amount(line.final_unit_price),
            format_amount(line.final_subtotal),
            format_amount(line.vat_percent),
            format_amount(line.vat_on_subtotal),
            format_amount(line.gross_subtotal),
        ])

    items_table = Table(table_data, repeatRows=1, colWidths=[
        2.6*inch, 0.6*inch, 0.6*inch, 0.9*inch, 0.8*inch, 0.9*inch, 0.9*inch, 0.6*inch, 0.8*inch, 0.9*inch
    ])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 10),
        ('ALIGN', (1, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))

    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals and footer
    currency = business_info.get('currency', '')
    totals_table = Table([
        ['NET TOTAL:', f"{format_amount(quote.net_grand_total)} {currency}".strip()],
        ['GROSS TOTAL:', f"{format_amount(quote.gross_grand_total)} {currency}".strip()],
    ], colWidths=[8.2*inch, 1.8*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 12),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))

    elements.append(totals_table)
    elements.append(Spacer(1, 0.3*inch))

    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    elements.append(Paragraph("<i>Prices subject to change. This quote is not an invoice.</i>", footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_quote_pdf(session: Session, quote_id: int, tenant_id: int, business_info: dict) -> BytesIO:
    """Generate the PDF of a persisted quote."""
    quote = get_quote(session, quote_id, tenant_id)
    return _render_quote_pdf(quote, business_info)
