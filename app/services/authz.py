from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Set
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AccessDenied
from app.core.permissions import PermissionCode
from app.models.role import Role
from app.models.user import User
from app.models.user_role import UserRole


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Capabilities of the caller for one request or job run.

    Built once at the edge and passed explicitly into every service call; services
    never look at request state to decide what the caller may do.
    """

    org_id: str
    user_id: UUID | None
    permissions: frozenset[str] = field(default_factory=frozenset)
    is_superuser: bool = False
    is_system: bool = False

    @classmethod
    def system(cls, org_id: str) -> "AuthContext":
        """Context for scheduled jobs acting on behalf of the platform."""
        return cls(
            org_id=org_id,
            user_id=None,
            permissions=frozenset(PermissionCode.list_all()),
            is_superuser=True,
            is_system=True,
        )

    def can(self, permission_code: PermissionCode | str) -> bool:
        if self.is_superuser:
            return True
        code = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
        return code in self.permissions

    def require(self, permission_code: PermissionCode | str) -> None:
        if not self.can(permission_code):
            target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
            raise AccessDenied(f"Missing permission: {target}")

    def can_access_facility(self, facility) -> bool:
        """Lenders and operations see every facility in the org; GPs only their own."""
        if facility is None or facility.org_id != self.org_id:
            return False
        if self.can(PermissionCode.FACILITY_VIEW_ALL):
            return True
        if not self.can(PermissionCode.FACILITY_VIEW):
            return False
        return self.user_id is not None and facility.gp_user_id == self.user_id


def _coerce_permissions(raw: Iterable | None) -> Set[str]:
    permissions: set[str] = set()
    for value in raw or []:
        try:
            code = PermissionCode(value)
        except ValueError:
            continue
        permissions.add(code.value)
    return permissions


async def _load_permissions(db: AsyncSession, user_id, org_id: str) -> Set[str]:
    stmt = (
        select(Role.permissions)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id, UserRole.org_id == org_id, Role.org_id == org_id)
    )
    result = await db.execute(stmt)
    permissions: set[str] = set()
    for row in result.all():
        permissions |= _coerce_permissions(row[0])
    return permissions


async def build_auth_context(db: AsyncSession, user: User, org_id: str) -> AuthContext:
    """Compute effective permissions from the user's role buckets in ``org_id``."""
    if user.org_id != org_id:
        return AuthContext(org_id=org_id, user_id=user.id)
    if user.is_superuser:
        return AuthContext(
            org_id=org_id,
            user_id=user.id,
            permissions=frozenset(PermissionCode.list_all()),
            is_superuser=True,
        )
    permissions = await _load_permissions(db, user.id, org_id)
    return AuthContext(org_id=org_id, user_id=user.id, permissions=frozenset(permissions))
