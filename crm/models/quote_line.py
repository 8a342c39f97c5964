"""QuoteLine model for quote line items."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base, BigId

# Every numeric column of a line, in derivation order
NUMERIC_FIELDS = (
    'product_unit_price',
    'product_unit_price_override',
    'quote_unit_price',
    'unit_price_discount_percent',
    'unit_price_discount_amount',
    'final_unit_price',
    'quoted_quantity',
    'subtotal_before_row_discounts',
    'discount_percent_on_subtotal',
    'discount_amount_on_subtotal',
    'final_subtotal',
    'vat_percent',
    'vat_unit_amount',
    'vat_on_subtotal',
    'gross_subtotal',
)

TEXT_FIELDS = ('product_name', 'unit_price_currency', 'sales_uom')


class QuoteLine(Base):
    """
    Quote Line.

    Stores a snapshot of the product (name, base price, VAT) at the time the
    product was picked, plus every derived value exactly as the derivation
    engine produced it.
    """

    __tablename__ = 'quote_line'

    id = Column(BigId, primary_key=True, autoincrement=True)
    quote_id = Column(BigId, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigId, ForeignKey('product.id'), nullable=True)
    product_name = Column(String(255), nullable=True)
    unit_price_currency = Column(String(3), nullable=True)
    sales_uom = Column(String(32), nullable=True)

    product_unit_price = Column(Numeric(17, 5), nullable=True)
    product_unit_price_override = Column(Numeric(17, 5), nullable=True)
    quote_unit_price = Column(Numeric(17, 5), nullable=True)
    unit_price_discount_percent = Column(Numeric(17, 5), nullable=True)
    unit_price_discount_amount = Column(Numeric(17, 5), nullable=True)
    final_unit_price = Column(Numeric(17, 5), nullable=True)
    quoted_quantity = Column(Numeric(17, 5), nullable=True)
    subtotal_before_row_discounts = Column(Numeric(17, 5), nullable=True)
    discount_percent_on_subtotal = Column(Numeric(17, 5), nullable=True)
    discount_amount_on_subtotal = Column(Numeric(17, 5), nullable=True)
    final_subtotal = Column(Numeric(17, 5), nullable=True)
    vat_percent = Column(Numeric(17, 5), nullable=True)
    vat_unit_amount = Column(Numeric(17, 5), nullable=True)
    vat_on_subtotal = Column(Numeric(17, 5), nullable=True)
    gross_subtotal = Column(Numeric(17, 5), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    quote = relationship('Quote', back_populates='lines')
    product = relationship('Product', foreign_keys=[product_id])

    def __repr__(self):
        return f"<QuoteLine(id={self.id}, quote_id={self.quote_id}, product='{self.product_name}', gross={self.gross_subtotal})>"
