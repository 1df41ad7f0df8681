from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.permissions import PermissionCode
from app.models.covenant import Covenant
from app.models.facility import Facility
from app.schemas.covenants import CovenantCreate, CovenantUpdate
from app.services import facilities
from app.services.audit import model_snapshot, record_audit_log
from app.services.authz import AuthContext

TERM_FIELDS = ("covenant_type", "threshold_operator", "threshold_value", "check_frequency", "next_check_date")


async def get_covenant(db: AsyncSession, auth: AuthContext, covenant_id: UUID) -> tuple[Covenant, Facility]:
    auth.require(PermissionCode.COVENANT_VIEW)
    covenant = await db.get(Covenant, covenant_id)
    if covenant is None or covenant.org_id != auth.org_id:
        raise NotFoundError("Covenant not found")
    facility = await db.get(Facility, covenant.facility_id)
    if facility is None or not auth.can_access_facility(facility):
        raise NotFoundError("Covenant not found")
    return covenant, facility


async def list_covenants(db: AsyncSession, auth: AuthContext, facility_id: UUID) -> list[Covenant]:
    auth.require(PermissionCode.COVENANT_VIEW)
    facility = await facilities.get_facility(db, auth, facility_id)
    return await load_facility_covenants(db, facility)


async def load_facility_covenants(db: AsyncSession, facility: Facility) -> list[Covenant]:
    stmt = (
        select(Covenant)
        .where(Covenant.org_id == facility.org_id, Covenant.facility_id == facility.id)
        .order_by(Covenant.created_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_covenant(
    db: AsyncSession,
    auth: AuthContext,
    facility_id: UUID,
    payload: CovenantCreate,
) -> Covenant:
    """Attach a covenant at underwriting/amendment time. It starts unchecked."""
    auth.require(PermissionCode.COVENANT_MANAGE)
    facility = await facilities.get_facility(db, auth, facility_id)
    covenant = Covenant(
        org_id=auth.org_id,
        facility_id=facility.id,
        covenant_type=payload.covenant_type,
        threshold_operator=payload.threshold_operator.value,
        threshold_value=payload.threshold_value,
        current_value=payload.current_value,
        status=None,
        check_frequency=payload.check_frequency.value,
        next_check_date=payload.next_check_date,
        breach_notified=False,
    )
    db.add(covenant)
    await db.flush()
    record_audit_log(
        db,
        auth,
        action="covenant.created",
        resource_type="covenant",
        resource_id=str(covenant.id),
        new_value=model_snapshot(covenant, include=TERM_FIELDS + ("facility_id", "current_value")),
    )
    await db.commit()
    await db.refresh(covenant)
    return covenant


async def update_covenant_terms(
    db: AsyncSession,
    auth: AuthContext,
    covenant_id: UUID,
    payload: CovenantUpdate,
) -> Covenant:
    """Edit threshold terms. Status, last_checked and breach_notified are left to the next check."""
    auth.require(PermissionCode.COVENANT_MANAGE)
    covenant, _ = await get_covenant(db, auth, covenant_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        return covenant
    before = model_snapshot(covenant, include=TERM_FIELDS)
    if data.get("covenant_type"):
        covenant.covenant_type = data["covenant_type"]
    if data.get("threshold_operator") is not None:
        covenant.threshold_operator = data["threshold_operator"].value
    if data.get("threshold_value") is not None:
        covenant.threshold_value = data["threshold_value"]
    if data.get("check_frequency") is not None:
        covenant.check_frequency = data["check_frequency"].value
    if "next_check_date" in data:
        covenant.next_check_date = data["next_check_date"]
    after = model_snapshot(covenant, include=TERM_FIELDS)
    if before == after:
        return covenant
    db.add(covenant)
    record_audit_log(
        db,
        auth,
        action="covenant.terms_updated",
        resource_type="covenant",
        resource_id=str(covenant.id),
        old_value=before,
        new_value=after,
    )
    await db.commit()
    await db.refresh(covenant)
    return covenant
