"""Notification dropdown state, kept current from the change stream."""

from __future__ import annotations

import logging
from typing import AsyncIterable, Optional

from src.client.realtime import ChangeStream, load_then_follow
from src.domain.entities import Notification
from src.domain.enums import ChangeType
from src.domain.errors import CabBookingError
from src.domain.events import RowChange

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class NotificationFeed:
    def __init__(
        self,
        api,
        *,
        limit: int = DEFAULT_LIMIT,
        stream: Optional[AsyncIterable[RowChange]] = None,
    ):
        self.api = api
        self.limit = limit
        self.stream = (
            stream if stream is not None else ChangeStream(api, "notifications")
        )
        self.items: list[Notification] = []
        self.error_message: Optional[str] = None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.items if not n.read)

    def _find(self, notification_id: str) -> Optional[Notification]:
        for item in self.items:
            if item.id == notification_id:
                return item
        return None

    async def load(self) -> None:
        try:
            self.items = await self.api.list_notifications(self.limit)
        except CabBookingError as e:
            logger.error("Error fetching notifications: %s", e)
            self.error_message = e.user_message
        else:
            self.error_message = None

    def apply(self, change: RowChange) -> None:
        if change.type is ChangeType.DELETE:
            self.items = [n for n in self.items if n.id != change.row_id]
            return
        incoming = Notification.from_dict(change.record)
        existing = self._find(incoming.id)
        if existing is not None:
            existing.merge(incoming)
        elif change.type is ChangeType.INSERT:
            self.items = [incoming, *self.items][: self.limit]

    async def follow(self) -> None:
        async for change in self.stream:
            self.apply(change)

    async def run(self) -> None:
        await load_then_follow(self.stream, self.load, self.apply)

    async def mark_read(self, notification_id: str) -> None:
        try:
            updated = await self.api.mark_notification_read(notification_id)
        except CabBookingError as e:
            logger.error("Marking notification %s read failed: %s", notification_id, e)
            self.error_message = e.user_message
            return
        existing = self._find(notification_id)
        if existing is not None:
            existing.merge(updated)

    async def mark_all_read(self) -> None:
        try:
            await self.api.mark_all_notifications_read()
        except CabBookingError as e:
            logger.error("Marking all notifications read failed: %s", e)
            self.error_message = e.user_message
            return
        for item in self.items:
            item.mark_read()
