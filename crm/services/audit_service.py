"""
Audit logging service for tracking quote, catalog and settings changes.
"""
from crm.models.audit_log import AuditLog, AuditAction
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    tenant_id: int,
    user_id: int = None,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None,
    ip_address: str = None
):
    """
    Add an audit entry to the session.

    Args:
        session: Database session
        action: AuditAction enum value
        tenant_id: Tenant the action belongs to
        user_id: Acting user (None for CLI/system actions)
        resource_type: Type of resource affected (e.g., 'quote', 'quote_line')
        resource_id: ID of the affected resource
        details: Dict with additional details (will be JSON encoded)
        ip_address: Client address when the action came from a request

    Note: Caller is responsible for committing the session. Audit failures
    are logged and never interrupt the business operation.
    """
    if not tenant_id:
        logger.warning(f"Cannot log action {action}: missing tenant_id")
        return

    try:
        details_json = None
        if details:
            try:
                details_json = json.dumps(details, default=str)
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to serialize audit details: {e}")
                details_json = str(details)

        session.add(AuditLog(
            tenant_id=tenant_id,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details_json,
            ip_address=ip_address,
            created_at=datetime.utcnow()
        ))

        logger.info(f"Audit log created: {action.value} by user {user_id} on {resource_type} {resource_id}")

    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")


def get_audit_logs(
    session,
    tenant_id: int,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    resource_type_filter: str = None,
    resource_id_filter: int = None
):
    """
    Retrieve audit logs for a tenant with optional filters, newest first.
    """
    query = session.query(AuditLog).filter(
        AuditLog.tenant_id == tenant_id
    )

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    if resource_id_filter:
        query = query.filter(AuditLog.resource_id == resource_id_filter)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return query.limit(limit).offset(offset).all()


def serialize_audit_log(entry: AuditLog) -> dict:
    """JSON-ready audit entry; details decoded when they hold JSON."""
    details = entry.details
    if details:
        try:
            details = json.loads(details)
        except ValueError:
            pass

    return {
        'id': entry.id,
        'action': entry.action.value,
        'user_id': entry.user_id,
        'resource_type': entry.resource_type,
        'resource_id': entry.resource_id,
        'details': details,
        'created_at': entry.created_at.isoformat() if entry.created_at else None,
    }
