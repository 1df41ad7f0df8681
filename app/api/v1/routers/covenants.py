import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.covenants import (
    CovenantCheckRequest,
    CovenantCheckResponse,
    CovenantOut,
    CovenantUpdate,
    DueCheckRequest,
)
from app.services import covenant_monitoring, covenants
from app.services.authz import AuthContext

router = APIRouter(prefix="/covenants", tags=["covenants"])
logger = logging.getLogger(__name__)


@router.post(
    "/check-due",
    response_model=CovenantCheckResponse,
    summary="Run the due-covenant sweep for this organization now",
)
async def check_due(
    payload: DueCheckRequest | None = None,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_CHECK_DUE)),
    db: AsyncSession = Depends(get_db),
) -> CovenantCheckResponse:
    as_of = payload.as_of if payload else None
    logger.info("Manual due-covenant sweep requested by %s", auth.user_id)
    return await covenant_monitoring.check_all_due_covenants(db, auth, as_of=as_of)


@router.get("/{covenant_id}", response_model=CovenantOut, summary="Get a covenant")
async def get_covenant(
    covenant_id: UUID,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_VIEW)),
    db: AsyncSession = Depends(get_db),
) -> CovenantOut:
    covenant, _ = await covenants.get_covenant(db, auth, covenant_id)
    return CovenantOut.model_validate(covenant)


@router.patch("/{covenant_id}", response_model=CovenantOut, summary="Edit covenant terms")
async def update_covenant(
    covenant_id: UUID,
    payload: CovenantUpdate,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_MANAGE)),
    db: AsyncSession = Depends(get_db),
) -> CovenantOut:
    covenant = await covenants.update_covenant_terms(db, auth, covenant_id, payload)
    return CovenantOut.model_validate(covenant)


@router.post(
    "/{covenant_id}/check",
    response_model=CovenantCheckResponse,
    summary="Check one covenant against a supplied value",
)
async def check_covenant(
    covenant_id: UUID,
    payload: CovenantCheckRequest,
    auth: AuthContext = Depends(deps.require_permission(PermissionCode.COVENANT_CHECK)),
    db: AsyncSession = Depends(get_db),
) -> CovenantCheckResponse:
    return await covenant_monitoring.check_covenant(db, auth, covenant_id, payload.current_value)
