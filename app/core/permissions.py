from enum import Enum
from typing import Iterable, List


class PermissionCode(str, Enum):
    # Core / org
    SYSTEM_ADMIN = "system.admin"
    AUDIT_LOG_VIEW = "audit_log.view"

    # Facilities
    FACILITY_VIEW = "facility.view"
    FACILITY_VIEW_ALL = "facility.view_all"
    FACILITY_MANAGE = "facility.manage"

    # Covenants
    COVENANT_VIEW = "covenant.view"
    COVENANT_MANAGE = "covenant.manage"
    COVENANT_CHECK = "covenant.check"
    COVENANT_CHECK_DUE = "covenant.check_due"

    # Notifications
    NOTIFICATION_VIEW = "notification.view"

    @classmethod
    def list_all(cls) -> List[str]:
        return [code.value for code in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> List[str]:
        """Return unique permission codes that are valid members."""
        seen = set()
        normalized: list[str] = []
        for value in values:
            try:
                code = cls(value)
            except ValueError:
                continue
            if code.value not in seen:
                seen.add(code.value)
                normalized.append(code.value)
        return normalized


# Default permission buckets for the platform's built-in roles. Role rows created
# for a tenant start from these and may be edited per org.
DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "operations": [
        PermissionCode.FACILITY_VIEW.value,
        PermissionCode.FACILITY_VIEW_ALL.value,
        PermissionCode.FACILITY_MANAGE.value,
        PermissionCode.COVENANT_VIEW.value,
        PermissionCode.COVENANT_MANAGE.value,
        PermissionCode.COVENANT_CHECK.value,
        PermissionCode.COVENANT_CHECK_DUE.value,
        PermissionCode.NOTIFICATION_VIEW.value,
        PermissionCode.AUDIT_LOG_VIEW.value,
    ],
    "lender": [
        PermissionCode.FACILITY_VIEW.value,
        PermissionCode.FACILITY_VIEW_ALL.value,
        PermissionCode.COVENANT_VIEW.value,
        PermissionCode.COVENANT_CHECK.value,
        PermissionCode.NOTIFICATION_VIEW.value,
    ],
    "gp": [
        PermissionCode.FACILITY_VIEW.value,
        PermissionCode.COVENANT_VIEW.value,
        PermissionCode.NOTIFICATION_VIEW.value,
    ],
}
