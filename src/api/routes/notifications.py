"""
Notification endpoints
======================

GET   /api/v1/notifications                 -- newest notifications first
PATCH /api/v1/notifications/{id}/read       -- mark one as read
POST  /api/v1/notifications/read-all        -- mark every unread one as read

``read`` only ever goes from false to true.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.broadcast import notification_payload, publish_notification
from src.api.dependencies import get_change_feed, get_current_user, get_db
from src.api.middleware import limiter
from src.api.schemas import NotificationResponse
from src.domain.enums import ChangeType
from src.infrastructure.models import UserModel
from src.infrastructure.realtime import ChangeFeed
from src.infrastructure.repositories import NotificationRepository

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationResponse], summary="Latest notifications")
@limiter.limit("100/minute")
async def list_notifications(
    request: Request,
    limit: int = Query(10, ge=1, le=50),
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationRepository(db).latest_for_user(user.id, limit)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
)
@limiter.limit("100/minute")
async def mark_read(
    request: Request,
    notification_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    note = await NotificationRepository(db).get_owned(notification_id, user.id)
    if note is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    if note.read:
        return note

    old = notification_payload(note)
    note.read = True
    await db.commit()
    await publish_notification(feed, note, ChangeType.UPDATE, old)
    return note


@router.post(
    "/read-all",
    response_model=list[NotificationResponse],
    summary="Mark all notifications as read",
)
@limiter.limit("100/minute")
async def mark_all_read(
    request: Request,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    unread = await NotificationRepository(db).list_unread(user.id)
    olds = [notification_payload(n) for n in unread]
    for note in unread:
        note.read = True
    await db.commit()
    for note, old in zip(unread, olds):
        await publish_notification(feed, note, ChangeType.UPDATE, old)
    return unread
