from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.permissions import PermissionCode
from app.models.facility import Facility
from app.models.user import User
from app.schemas.facilities import FacilityCreate
from app.services.audit import model_snapshot, record_audit_log
from app.services.authz import AuthContext

logger = logging.getLogger(__name__)

_SNAPSHOT_FIELDS = (
    "fund_name",
    "lender_name",
    "principal_amount",
    "outstanding_balance",
    "status",
    "gp_user_id",
)


async def get_facility(db: AsyncSession, auth: AuthContext, facility_id: UUID) -> Facility:
    """Load a facility the caller may see; invisible facilities look missing."""
    facility = await db.get(Facility, facility_id)
    if facility is None or not auth.can_access_facility(facility):
        raise NotFoundError("Facility not found")
    return facility


async def list_facilities(
    db: AsyncSession,
    auth: AuthContext,
    *,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Facility], int]:
    auth.require(PermissionCode.FACILITY_VIEW)
    filters = [Facility.org_id == auth.org_id]
    if not auth.can(PermissionCode.FACILITY_VIEW_ALL):
        filters.append(Facility.gp_user_id == auth.user_id)
    base_stmt = select(Facility).where(*filters)
    count_stmt = select(func.count()).select_from(base_stmt.subquery())
    total = int((await db.execute(count_stmt)).scalar_one())
    result = await db.execute(
        base_stmt.order_by(Facility.created_at.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total


async def _ensure_owner_candidate(db: AsyncSession, org_id: str, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None or user.org_id != org_id:
        raise ValueError("Owner must be a user in this organization")
    if not user.is_active:
        raise ValueError("Owner must be an active user")
    return user


async def create_facility(db: AsyncSession, auth: AuthContext, payload: FacilityCreate) -> Facility:
    auth.require(PermissionCode.FACILITY_MANAGE)
    if payload.gp_user_id is not None:
        await _ensure_owner_candidate(db, auth.org_id, payload.gp_user_id)
    facility = Facility(
        org_id=auth.org_id,
        fund_name=payload.fund_name,
        lender_name=payload.lender_name,
        principal_amount=payload.principal_amount,
        outstanding_balance=payload.outstanding_balance,
        status=payload.status,
        gp_user_id=payload.gp_user_id,
        origination_date=payload.origination_date,
        maturity_date=payload.maturity_date,
    )
    db.add(facility)
    await db.flush()
    record_audit_log(
        db,
        auth,
        action="facility.created",
        resource_type="facility",
        resource_id=str(facility.id),
        new_value=model_snapshot(facility, include=_SNAPSHOT_FIELDS),
    )
    await db.commit()
    await db.refresh(facility)
    return facility


async def assign_owner(
    db: AsyncSession,
    auth: AuthContext,
    facility_id: UUID,
    gp_user_id: UUID | None,
) -> Facility:
    """Set (or clear) the GP who receives covenant alerts for this facility."""
    auth.require(PermissionCode.FACILITY_MANAGE)
    facility = await get_facility(db, auth, facility_id)
    if gp_user_id is not None:
        await _ensure_owner_candidate(db, auth.org_id, gp_user_id)
    old_owner = facility.gp_user_id
    if old_owner == gp_user_id:
        return facility
    facility.gp_user_id = gp_user_id
    db.add(facility)
    record_audit_log(
        db,
        auth,
        action="facility.owner_assigned",
        resource_type="facility",
        resource_id=str(facility.id),
        old_value={"gp_user_id": old_owner},
        new_value={"gp_user_id": gp_user_id},
    )
    await db.commit()
    await db.refresh(facility)
    if gp_user_id is None:
        logger.warning("Facility %s no longer has an owner; covenant alerts will not be routed", facility.id)
    return facility
