"""Models package - exports all SQLAlchemy models."""
# Core Models
from crm.models.app_user import AppUser
from crm.models.tenant import Tenant
from crm.models.user_tenant import UserTenant, UserRole, ROLE_HIERARCHY

# Business Models
from crm.models.product import Product
from crm.models.quote import Quote, QuoteStatus, OPEN_STATUSES
from crm.models.quote_line import QuoteLine, NUMERIC_FIELDS, TEXT_FIELDS
from crm.models.company_setting import CompanySetting, SETTING_DEFAULTS
from crm.models.audit_log import AuditLog, AuditAction

__all__ = [
    # Core
    'Tenant', 'AppUser', 'UserTenant', 'UserRole', 'ROLE_HIERARCHY',
    # Business
    'Product',
    'Quote', 'QuoteStatus', 'OPEN_STATUSES',
    'QuoteLine', 'NUMERIC_FIELDS', 'TEXT_FIELDS',
    'CompanySetting', 'SETTING_DEFAULTS',
    'AuditLog', 'AuditAction',
]
