"""Product model - catalog entries used to seed quote lines."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base, BigId


class Product(Base):
    """Product model."""

    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'sku', name='uq_product_tenant_sku'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigId, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=True)
    sales_category = Column(String(100), nullable=True)
    sales_uom = Column(String(32), nullable=True)
    sales_unit_price = Column(Numeric(17, 5), nullable=True)
    sales_unit_price_currency = Column(String(3), nullable=True)
    vat_percent = Column(Numeric(17, 5), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.sales_unit_price})>"
