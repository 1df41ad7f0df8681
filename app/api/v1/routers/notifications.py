from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.notifications import NotificationListResponse, NotificationOut, UnreadCount
from app.services import notifications
from app.services.authz import AuthContext

router = APIRouter(prefix="/notifications", tags=["notifications"])

_view = deps.require_permission(PermissionCode.NOTIFICATION_VIEW)


@router.get("", response_model=NotificationListResponse, summary="List my notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(_view),
    db: AsyncSession = Depends(get_db),
) -> NotificationListResponse:
    items, total = await notifications.list_for_user(
        db,
        auth.org_id,
        auth.user_id,
        unread_only=unread_only,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    unread = await notifications.unread_count(db, auth.org_id, auth.user_id)
    return NotificationListResponse(items=items, total=total, unread=unread)


@router.get("/unread-count", response_model=UnreadCount, summary="Count my unread notifications")
async def unread_count(
    auth: AuthContext = Depends(_view),
    db: AsyncSession = Depends(get_db),
) -> UnreadCount:
    return UnreadCount(unread=await notifications.unread_count(db, auth.org_id, auth.user_id))


@router.patch("/read-all", status_code=status.HTTP_204_NO_CONTENT, summary="Mark all my notifications read")
async def mark_all_read(
    auth: AuthContext = Depends(_view),
    db: AsyncSession = Depends(get_db),
) -> None:
    await notifications.mark_all_read(db, auth.org_id, auth.user_id)


@router.patch("/{notification_id}/read", response_model=NotificationOut, summary="Mark a notification read")
async def mark_read(
    notification_id: UUID,
    auth: AuthContext = Depends(_view),
    db: AsyncSession = Depends(get_db),
) -> NotificationOut:
    notification = await notifications.mark_read(db, auth.org_id, auth.user_id, notification_id)
    return NotificationOut.model_validate(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a notification")
async def delete_notification(
    notification_id: UUID,
    auth: AuthContext = Depends(_view),
    db: AsyncSession = Depends(get_db),
) -> None:
    await notifications.delete_notification(db, auth.org_id, auth.user_id, notification_id)
