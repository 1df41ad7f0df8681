from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.settings import settings


def tenant_scoped_key(request: Request) -> str:
    """Rate-limit per tenant and client address so one noisy org cannot starve another."""
    tenant = request.headers.get("x-tenant-id") or settings.default_org_id
    return f"{tenant}:{get_remote_address(request)}"


limiter = Limiter(
    key_func=tenant_scoped_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
)

__all__ = ["limiter", "tenant_scoped_key"]
