"""Company settings service - per-tenant quoting flags (cached)."""
import logging
from typing import Dict

from crm.models import CompanySetting, SETTING_DEFAULTS, AuditAction
from crm.exceptions import NotFoundError, ValidationError
from crm.services.audit_service import log_action
from crm.services.cache_service import get_cache

logger = logging.getLogger(__name__)

CACHE_MODULE = 'settings'


def _normalize_value(value) -> str:
    """Settings are stored as the strings TRUE / FALSE."""
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, str) and value.strip().upper() in ('TRUE', 'FALSE'):
        return value.strip().upper()
    raise ValidationError('Invalid setting value', errors=[
        {'field': 'value', 'message': 'Expected TRUE or FALSE'}
    ])


def get_settings(session, tenant_id: int) -> Dict[str, str]:
    """All known settings for a tenant, defaults filled in."""
    def load():
        stored = session.query(CompanySetting).filter(
            CompanySetting.tenant_id == tenant_id
        ).all()
        settings = dict(SETTING_DEFAULTS)
        for setting in stored:
            if setting.setting_code in settings:
                settings[setting.setting_code] = setting.setting_value
        return settings

    return get_cache().memoize(tenant_id, CACHE_MODULE, 'all', load)


def is_setting_enabled(session, tenant_id: int, code: str) -> bool:
    """True when the tenant's value (or the default) is TRUE."""
    if code not in SETTING_DEFAULTS:
        raise NotFoundError(f'Unknown setting {code}')
    return get_settings(session, tenant_id).get(code) == 'TRUE'


def update_setting(session, tenant_id: int, code: str, value, user_id: int = None) -> Dict[str, str]:
    """Create or update one setting and return the refreshed settings."""
    if code not in SETTING_DEFAULTS:
        raise NotFoundError(f'Unknown setting {code}')

    normalized = _normalize_value(value)

    try:
        setting = session.query(CompanySetting).filter(
            CompanySetting.tenant_id == tenant_id,
            CompanySetting.setting_code == code
        ).first()

        if setting:
            previous = setting.setting_value
            setting.setting_value = normalized
        else:
            previous = SETTING_DEFAULTS[code]
            setting = CompanySetting(tenant_id=tenant_id, setting_code=code, setting_value=normalized)
            session.add(setting)

        session.flush()
        log_action(
            session, AuditAction.SETTINGS_CHANGED, tenant_id, user_id,
            resource_type='setting', resource_id=setting.id,
            details={'code': code, 'from': previous, 'to': normalized}
        )
        session.commit()
    except Exception:
        session.rollback()
        raise

    get_cache().invalidate_module(tenant_id, CACHE_MODULE)
    logger.info(f"Setting {code} for tenant {tenant_id} set to {normalized}")
    return get_settings(session, tenant_id)
