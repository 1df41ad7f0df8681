from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_tenant_id
from app.core.permissions import PermissionCode
from app.core.security import decode_token
from app.core.settings import settings
from app.db.session import get_db
from app.models import User
from app.services import authz
from app.services.authz import AuthContext


@dataclass(slots=True)
class TenantContext:
    org_id: str


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=True)


def _resolve_subdomain(request: Request) -> str | None:
    host = request.headers.get("host", "").split(":")[0]
    if settings.allowed_tenant_hosts and host not in settings.allowed_tenant_hosts:
        return None
    parts = host.split(".")
    # ignore localhost/invalid hosts
    if len(parts) >= 3:
        return parts[0]
    return None


async def get_tenant_context(
    request: Request,
    tenant_id: str | None = Header(default=None, alias="X-Tenant-ID"),
) -> TenantContext:
    if settings.tenancy_mode == "multi":
        candidate = tenant_id or _resolve_subdomain(request)
        if not candidate:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Tenant resolution failed: provide X-Tenant-ID header or subdomain",
            )
        set_tenant_id(candidate)
        return TenantContext(org_id=candidate)

    set_tenant_id(settings.default_org_id)
    return TenantContext(org_id=settings.default_org_id)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> User:
    try:
        payload = decode_token(token, expected_type="access")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    token_org = payload.get("org")
    if token_org and token_org != ctx.org_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant does not match token")

    result = await db.execute(select(User).where(User.id == user_id, User.org_id == ctx.org_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    token_version = payload.get("tv")
    if token_version is not None and user.token_version != token_version:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token revoked")

    user.last_active_at = datetime.now(timezone.utc)
    return user


async def get_auth_context(
    current_user: User = Depends(get_current_user),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    return await authz.build_auth_context(db, current_user, ctx.org_id)


def require_permission(permission_code: PermissionCode | str):
    """Dependency factory: resolve the caller's AuthContext and insist on one capability."""

    async def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if not auth.can(permission_code):
            target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {target}",
            )
        return auth

    return dependency
