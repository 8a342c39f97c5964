"""UserTenant model - many-to-many relationship between users and tenants with roles."""
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from crm.database import Base, BigId


class UserRole(enum.Enum):
    """User roles within a tenant."""
    OWNER = 'OWNER'
    ADMIN = 'ADMIN'
    STAFF = 'STAFF'


ROLE_HIERARCHY = {'OWNER': 3, 'ADMIN': 2, 'STAFF': 1}


class UserTenant(Base):
    """UserTenant model - links users to tenants with roles."""

    __tablename__ = 'user_tenant'

    id = Column(BigId, primary_key=True, autoincrement=True)
    user_id = Column(BigId, ForeignKey('app_user.id'), nullable=False)
    tenant_id = Column(BigId, ForeignKey('tenant.id'), nullable=False)
    role = Column(String(20), nullable=False, default='STAFF')  # OWNER, ADMIN, STAFF
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='user_tenants')
    tenant = relationship('Tenant', back_populates='user_tenants')

    def __repr__(self):
        return f"<UserTenant(user_id={self.user_id}, tenant_id={self.tenant_id}, role='{self.role}')>"

    def has_role(self, min_role):
        """Check role hierarchy: OWNER > ADMIN > STAFF."""
        return ROLE_HIERARCHY.get(self.role, 0) >= ROLE_HIERARCHY.get(min_role, 1)
