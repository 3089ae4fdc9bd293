"""
Realtime row-change feed over Redis pub/sub.

Every write to ``rides`` or ``notifications`` is published on the owner's
channel ``realtime:{table}:{user_id}``.  Subscribers only ever see their own
rows, and Redis delivers the messages of one channel in publish order, which
for a single API process matches commit order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator

import redis.asyncio as aioredis

from src.domain.events import RowChange

logger = logging.getLogger(__name__)

REALTIME_TABLES = frozenset({"rides", "notifications"})


def channel_name(table: str, user_id: str) -> str:
    return f"realtime:{table}:{user_id}"


class ChangeFeed(ABC):
    @abstractmethod
    async def publish(self, user_id: str, change: RowChange) -> None: ...

    @abstractmethod
    def subscribe(
        self, table: str, user_id: str
    ) -> AsyncContextManager[AsyncIterator[RowChange]]:
        """Attach to the owner's channel; the subscription is live on enter."""


class RedisChangeFeed(ChangeFeed):
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish(self, user_id: str, change: RowChange) -> None:
        """Publish a change; a Redis outage must not fail the write that caused it."""
        try:
            await self.redis.publish(
                channel_name(change.table, user_id), change.to_json()
            )
        except aioredis.RedisError:
            logger.exception(
                "Failed to publish %s change for %s", change.table, change.row_id
            )

    @asynccontextmanager
    async def subscribe(
        self, table: str, user_id: str
    ) -> AsyncIterator[AsyncIterator[RowChange]]:
        pubsub = self.redis.pubsub()
        channel = channel_name(table, user_id)
        await pubsub.subscribe(channel)
        logger.info("Realtime subscriber attached to %s", channel)
        try:
            yield self._changes(pubsub)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.info("Realtime subscriber detached from %s", channel)

    @staticmethod
    async def _changes(pubsub) -> AsyncIterator[RowChange]:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            yield RowChange.from_json(message["data"])
