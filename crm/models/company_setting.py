"""CompanySetting model - per-tenant feature flags for quoting."""
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from crm.database import Base, BigId

SHOW_UNIT_PRICE_DISCOUNT = 'discount_setting_show_unit_price_discount'
SHOW_ROW_DISCOUNT = 'discount_setting_show_row_discount'
ALLOW_QUOTE_WITHOUT_PRODUCT = 'general_quote_setting_allow_quote_creation_without_product'

# Known setting codes and the value used when a tenant has not stored one
SETTING_DEFAULTS = {
    SHOW_UNIT_PRICE_DISCOUNT: 'TRUE',
    SHOW_ROW_DISCOUNT: 'TRUE',
    ALLOW_QUOTE_WITHOUT_PRODUCT: 'FALSE',
}


class CompanySetting(Base):
    """One TRUE/FALSE setting value for a tenant."""

    __tablename__ = 'company_setting'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'setting_code', name='uq_company_setting_tenant_code'),
    )

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigId, ForeignKey('tenant.id'), nullable=False, index=True)
    setting_code = Column(String(120), nullable=False)
    setting_value = Column(String(20), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<CompanySetting(tenant_id={self.tenant_id}, code='{self.setting_code}', value='{self.setting_value}')>"
