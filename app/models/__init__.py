from app.models.audit_log import AuditLog
from app.models.covenant import Covenant
from app.models.facility import Facility
from app.models.notification import Notification
from app.models.org import Org
from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole

__all__ = [
    "AuditLog",
    "Covenant",
    "Facility",
    "Notification",
    "Org",
    "Role",
    "User",
    "UserRole",
]
