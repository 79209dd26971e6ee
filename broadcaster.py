# broadcaster.py
"""
Broadcast Module - fan-out of auction events to viewers
The auction manager calls emit() after every committed change. Delivery is
fire-and-forget: emit() never blocks and never raises into the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger("AuctionBot.Broadcast")

# Event names
EVENT_AUCTION_DATA = "auction_data"
EVENT_PLAYERS_UPDATED = "players_updated"
EVENT_TEAMS_UPDATED = "teams_updated"
EVENT_STATS_UPDATED = "stats_updated"
EVENT_CURRENT_BID_UPDATED = "current_bid_updated"
EVENT_AUCTION_STATUS_CHANGED = "auction_status_changed"
EVENT_PLAYER_SOLD = "player_sold"
EVENT_PLAYER_UNSOLD = "player_unsold"
EVENT_BIDDING_CANCELLED = "bidding_cancelled"
EVENT_BID_UNDONE = "bid_undone"
EVENT_SALE_UNDONE = "sale_undone"
EVENT_FAST_TRACK_STARTED = "fast_track_started"
EVENT_FAST_TRACK_ENDED = "fast_track_ended"
EVENT_AUCTION_CLEARED = "auction_cleared"
EVENT_AUCTION_RESET = "auction_reset"
EVENT_AUCTION_FINISHED = "auction_finished"
EVENT_FILE_UPLOADED = "file_uploaded"
EVENT_SETTINGS_UPDATED = "settings_updated"
EVENT_PLAYER_RETAINED = "player_retained"
EVENT_PLAYER_RETENTION_REMOVED = "player_retention_removed"

Sink = Callable[[str, Any], Awaitable[None]]


class Broadcaster:
    """Base broadcaster: drops every event."""

    def emit(self, event: str, payload: Any = None) -> None:
        pass


class LogBroadcaster(Broadcaster):
    """Logs events only. Used when no viewer channel is configured."""

    def emit(self, event: str, payload: Any = None) -> None:
        logger.info(f"Broadcasting event: {event}")


class QueuedBroadcaster(Broadcaster):
    """
    Queues events and delivers them to async sinks from one background task,
    so viewers see events in the order they were emitted.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()
        self._sinks: List[Sink] = []
        self._worker: Optional[asyncio.Task] = None

    def add_sink(self, sink: Sink):
        self._sinks.append(sink)

    def emit(self, event: str, payload: Any = None) -> None:
        logger.debug(f"Queueing event: {event}")
        self._queue.put_nowait((event, payload))

    def start(self) -> asyncio.Task:
        """Start the delivery task on the running loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run())
        return self._worker

    async def stop(self):
        if self._worker and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None

    async def drain(self):
        """Deliver everything queued so far without the background task."""
        while not self._queue.empty():
            event, payload = self._queue.get_nowait()
            await self._deliver(event, payload)
            self._queue.task_done()

    async def _run(self):
        while True:
            event, payload = await self._queue.get()
            try:
                await self._deliver(event, payload)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: str, payload: Any):
        for sink in list(self._sinks):
            try:
                await sink(event, payload)
            except Exception as e:
                logger.error(f"Error delivering {event} to sink: {e}", exc_info=True)
