"""
Audit Log model for tracking quote and settings changes.
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from crm.database import Base, BigId


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Quotes
    QUOTE_CREATED = "QUOTE_CREATED"
    QUOTE_UPDATED = "QUOTE_UPDATED"
    QUOTE_DELETED = "QUOTE_DELETED"
    QUOTE_STATUS_CHANGED = "QUOTE_STATUS_CHANGED"

    # Quote lines
    QUOTE_LINES_SAVED = "QUOTE_LINES_SAVED"
    QUOTE_LINES_DELETED = "QUOTE_LINES_DELETED"

    # Catalog
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"

    # Settings
    SETTINGS_CHANGED = "SETTINGS_CHANGED"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id.
    """
    __tablename__ = 'audit_log'

    id = Column(BigId, primary_key=True, autoincrement=True)
    tenant_id = Column(BigId, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'quote', 'quote_line', 'setting'
    resource_id = Column(BigId)
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    tenant = relationship('Tenant')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"
