"""
Realtime endpoint
=================

GET /api/v1/realtime/{table} -- Server-Sent Events stream of the caller's
                                row changes for ``rides`` or ``notifications``

Once the subscription is attached the stream sends ``event: ready``; each
change after that is sent as::

    event: change
    data: {"table": ..., "type": "UPDATE", "record": {...}, ...}
"""

from __future__ import annotations

import logging
from contextlib import aclosing

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_change_feed, get_current_user, get_db
from src.infrastructure.models import UserModel
from src.infrastructure.realtime import REALTIME_TABLES, ChangeFeed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/realtime", tags=["realtime"])


@router.get("/{table}", summary="Stream row changes (text/event-stream)")
async def stream_changes(
    request: Request,
    table: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    if table not in REALTIME_TABLES:
        raise HTTPException(status_code=404, detail=f"Unknown table {table}")
    user_id = user.id
    # Release the DB connection; the stream can stay open for hours
    await db.commit()

    async def event_source():
        yield ": connected\n\n"
        async with feed.subscribe(table, user_id) as subscription:
            # Changes committed from here on are delivered
            yield "event: ready\ndata: {}\n\n"
            async with aclosing(subscription) as changes:
                async for change in changes:
                    if await request.is_disconnected():
                        break
                    yield f"event: change\ndata: {change.to_json()}\n\n"

    logger.info("Realtime stream opened: %s for %s", table, user_id)
    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
