from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.covenants import (
    BreachSummary,
    CovenantCheckResponse,
    CovenantCreate,
    CovenantListResponse,
    CovenantOut,
    FacilityCheckRequest,
)
from app.schemas.facilities import (
    FacilityCreate,
    FacilityListResponse,
    FacilityOut,
    FacilityOwnerUpdate,
)
from app.services import covenant_monitoring, covenants, facilities
from app.services.authz import AuthContext

router = APIRouter(prefix="/facilities", tags=["facilities"])


@router.get("", response_model=FacilityListResponse, summary="List facilities visible to the caller")
async def list_facilities(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.FACILITY_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> FacilityListResponse:
    items, total = await facilities.list_facilities(
        db, auth, offset=(page - 1) * page_size, limit=page_size
    )
    return FacilityListResponse(items=items, total=total)


@router.post(
    "",
    response_model=FacilityOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a facility",
)
async def create_facility(
    payload: FacilityCreate,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.FACILITY_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> FacilityOut:
    try:
        facility = await facilities.create_facility(db, auth, payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return FacilityOut.model_validate(facility)


@router.get("/{facility_id}", response_model=FacilityOut, summary="Get a facility")
async def get_facility(
    facility_id: UUID,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.FACILITY_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> FacilityOut:
    return FacilityOut.model_validate(await facilities.get_facility(db, auth, facility_id))


@router.put("/{facility_id}/owner", response_model=FacilityOut, summary="Assign the facility owner")
async def assign_owner(
    facility_id: UUID,
    payload: FacilityOwnerUpdate,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.FACILITY_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> FacilityOut:
    try:
        facility = await facilities.assign_owner(db, auth, facility_id, payload.gp_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return FacilityOut.model_validate(facility)


@router.get(
    "/{facility_id}/covenants",
    response_model=CovenantListResponse,
    summary="List a facility's covenants",
)
async def list_covenants(
    facility_id: UUID,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> CovenantListResponse:
    items = await covenants.list_covenants(db, auth, facility_id)
    return CovenantListResponse(items=items, total=len(items))


@router.post(
    "/{facility_id}/covenants",
    response_model=CovenantOut,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a covenant to a facility",
)
async def create_covenant(
    facility_id: UUID,
    payload: CovenantCreate,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> CovenantOut:
    covenant = await covenants.create_covenant(db, auth, facility_id, payload)
    return CovenantOut.model_validate(covenant)


@router.get(
    "/{facility_id}/covenants/summary",
    response_model=BreachSummary,
    summary="Covenant status counts and current breaches",
)
async def breach_summary(
    facility_id: UUID,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> BreachSummary:
    return await covenant_monitoring.get_breach_summary(db, auth, facility_id)


@router.post(
    "/{facility_id}/covenants/check",
    response_model=CovenantCheckResponse,
    summary="Check every covenant on a facility",
)
async def check_facility(
    facility_id: UUID,
    payload: FacilityCheckRequest | None = None,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_CHECK)),
    db: AsyncSession = Depends(get_db),
) -> CovenantCheckResponse:
    values = payload.values if payload else None
    try:
        return await covenant_monitoring.check_facility_covenants(db, auth, facility_id, values)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
