"""
Realtime change stream
======================

``ChangeStream`` is a lazy, restartable async iterable of ``RowChange``
events for one table. Iterating it opens the SSE connection; when the
connection drops it reconnects after a short pause. Leaving the ``async
for`` (or closing the iterator) tears the subscription down.

``load_then_follow`` starts the stream before the initial fetch and holds
back the changes that arrive meanwhile, so a write committed between the
fetch and the subscription still reaches the view.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

from src.domain.errors import CabBookingError, Unauthenticated, Unauthorized
from src.domain.events import RowChange

logger = logging.getLogger(__name__)


class ChangeStream:
    def __init__(
        self,
        api,
        table: str,
        *,
        reconnect_delay: float = 2.0,
        max_reconnects: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.table = table
        self.reconnect_delay = reconnect_delay
        self.max_reconnects = max_reconnects
        self._sleep = sleep
        # Set while the server has a live subscription for this stream
        self.connected = asyncio.Event()

    def __aiter__(self) -> AsyncIterator[RowChange]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RowChange]:
        reconnects = 0
        try:
            while True:
                try:
                    async for change in self.api.stream_changes(
                        self.table, on_ready=self.connected.set
                    ):
                        reconnects = 0
                        yield change
                    logger.info("Realtime stream for %s closed by server", self.table)
                except (Unauthenticated, Unauthorized):
                    raise
                except CabBookingError as e:
                    logger.warning("Realtime stream for %s dropped: %s", self.table, e)
                self.connected.clear()

                exhausted = (
                    self.max_reconnects is not None
                    and reconnects >= self.max_reconnects
                )
                if exhausted:
                    return
                reconnects += 1
                await self._sleep(self.reconnect_delay)
        finally:
            self.connected.clear()


async def _wait_connected(stream: AsyncIterable[RowChange], pump: asyncio.Task) -> None:
    if not isinstance(stream, ChangeStream):
        # Let the pump take its first step; there is no readiness signal
        await asyncio.sleep(0)
        return
    waiter = asyncio.create_task(stream.connected.wait())
    try:
        await asyncio.wait({waiter, pump}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if pump.done():
        pump.result()


async def load_then_follow(
    stream: AsyncIterable[RowChange],
    load: Callable[[], Awaitable[None]],
    apply: Callable[[RowChange], None],
) -> None:
    """Subscribe, fetch once, replay what arrived meanwhile, then follow."""
    held: list[RowChange] = []
    live = False

    async def pump() -> None:
        async for change in stream:
            if live:
                apply(change)
            else:
                held.append(change)

    task = asyncio.create_task(pump())
    try:
        await _wait_connected(stream, task)
        await load()
        for change in held:
            apply(change)
        held.clear()
        live = True
        await task
    finally:
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
