from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.notification import Notification
from app.schemas.notifications import NotificationPayload

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    org_id: str,
    payload: NotificationPayload,
) -> Notification:
    """Persist a notification for ``payload.recipient_user_id``.

    Flushes so the id is available, but leaves the commit to the caller; fan-out
    to email/SMS channels happens downstream of this table.
    """
    notification = Notification(
        org_id=org_id,
        user_id=payload.recipient_user_id,
        type=payload.type.value,
        title=payload.title,
        message=payload.message,
        related_entity_type=payload.related_entity_type,
        related_entity_id=payload.related_entity_id,
        action_url=payload.action_url,
        priority=payload.priority.value,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    logger.info(
        "Created %s notification for user %s",
        notification.type,
        payload.recipient_user_id,
        extra={"notification_id": str(notification.id), "priority": notification.priority},
    )
    return notification


async def list_for_user(
    db: AsyncSession,
    org_id: str,
    user_id: UUID,
    *,
    unread_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Notification], int]:
    filters = [Notification.org_id == org_id, Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))
    base_stmt = select(Notification).where(*filters)
    count_stmt = select(func.count()).select_from(base_stmt.subquery())
    total = int((await db.execute(count_stmt)).scalar_one())
    result = await db.execute(
        base_stmt.order_by(Notification.created_at.desc()).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total


async def unread_count(db: AsyncSession, org_id: str, user_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.org_id == org_id,
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    )
    return int((await db.execute(stmt)).scalar_one())


async def _get_owned(db: AsyncSession, org_id: str, user_id: UUID, notification_id: UUID) -> Notification:
    stmt = select(Notification).where(
        Notification.id == notification_id,
        Notification.org_id == org_id,
        Notification.user_id == user_id,
    )
    notification = (await db.execute(stmt)).scalar_one_or_none()
    if notification is None:
        raise NotFoundError("Notification not found")
    return notification


async def mark_read(db: AsyncSession, org_id: str, user_id: UUID, notification_id: UUID) -> Notification:
    notification = await _get_owned(db, org_id, user_id, notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        db.add(notification)
        await db.commit()
        await db.refresh(notification)
    return notification


async def mark_all_read(db: AsyncSession, org_id: str, user_id: UUID) -> None:
    stmt = (
        update(Notification)
        .where(
            Notification.org_id == org_id,
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    await db.execute(stmt)
    await db.commit()


async def delete_notification(db: AsyncSession, org_id: str, user_id: UUID, notification_id: UUID) -> None:
    notification = await _get_owned(db, org_id, user_id, notification_id)
    await db.delete(notification)
    await db.commit()
