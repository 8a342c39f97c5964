"""Quote model for sales quotes."""
import enum
from datetime import date
from sqlalchemy import Column, String, Numeric, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base, BigId


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    CANCELED = "CANCELED"


OPEN_STATUSES = (QuoteStatus.DRAFT.value, QuoteStatus.SENT.value)


class Quote(Base):
    """
    Quote.

    Grand totals are the sums of the derived line values and are refreshed
    every time the lines are saved as a batch.
    """

    __tablename__ = 'quote'

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigId, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    customer_name = Column(String(255), nullable=True)
    customer_address = Column(Text, nullable=True)
    seller_name = Column(String(255), nullable=True)
    seller_email = Column(String(255), nullable=True)
    quote_expiration_date = Column(Date, nullable=True)
    net_grand_total = Column(Numeric(17, 5), nullable=True)
    gross_grand_total = Column(Numeric(17, 5), nullable=True)
    created_by = Column(BigId, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    lines = relationship(
        'QuoteLine',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteLine.id',
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, name='{self.name}', status='{self.status}', gross={self.gross_grand_total})>"

    @property
    def is_expired(self):
        """Check if quote is expired (calculated, not stored)."""
        if self.status in OPEN_STATUSES and self.quote_expiration_date:
            return date.today() > self.quote_expiration_date
        return False

    @property
    def is_editable(self):
        """Only open, unexpired quotes accept line changes."""
        return self.status in OPEN_STATUSES and not self.is_expired
