"""Server side of live snapshot delivery.

There is no pub/sub in either backend, so push is simulated: one loop per open
connection re-reads the room's snapshot from the store and forwards changes as
server-sent events.
"""
import asyncio
import enum
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from backend import SnapshotStore, now_ms
from constants import (
    STREAM_FAST_INTERVAL_MS, STREAM_SLOW_INTERVAL_MS, STREAM_RECENT_ACTIVITY_MS,
    STREAM_HEARTBEAT_MS, STREAM_MAX_LIFETIME_MS, STREAM_RETRY_MS,
)
from schemas.views import Snapshot
from logging_config import get_logger

logger = get_logger(__name__)


class DeliveryState(str, enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DEGRADED = "degraded"
    POLLING = "polling"
    CLOSED = "closed"


@dataclass
class StreamOptions:
    fast_interval_ms: int = STREAM_FAST_INTERVAL_MS
    slow_interval_ms: int = STREAM_SLOW_INTERVAL_MS
    recent_activity_ms: int = STREAM_RECENT_ACTIVITY_MS
    heartbeat_ms: int = STREAM_HEARTBEAT_MS
    max_lifetime_ms: int = STREAM_MAX_LIFETIME_MS
    retry_ms: int = STREAM_RETRY_MS
    clock: Callable[[], int] = now_ms
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep


def get_stream_options() -> StreamOptions:
    return StreamOptions()


def format_sse_event(event: str, snapshot: Snapshot) -> str:
    frame = f"id: {snapshot.updated_at}\n" if snapshot.updated_at is not None else ""
    return f"{frame}event: {event}\ndata: {snapshot.to_json()}\n\n"


class SnapshotChannel:
    """Delivers one room's snapshots to exactly one open connection."""

    def __init__(self, store: SnapshotStore, code: str, options: Optional[StreamOptions] = None, force_fast: bool = False):
        self.store = store
        self.code = code
        self.options = options or StreamOptions()
        self.force_fast = force_fast
        self.state = DeliveryState.CONNECTING
        self.closed = False
        self.reads = 0

    def close(self) -> None:
        if not self.closed:
            logger.debug(f"Closing snapshot channel for room {self.code}")
        self.closed = True
        self.state = DeliveryState.CLOSED

    def poll_interval_ms(self, last_updated_at: Optional[int]) -> int:
        if self.force_fast:
            return self.options.fast_interval_ms
        if last_updated_at is not None and self.options.clock() - last_updated_at < self.options.recent_activity_ms:
            return self.options.fast_interval_ms
        return self.options.slow_interval_ms

    async def _load(self) -> Snapshot:
        self.reads += 1
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.store.load, self.code)

    async def frames(self) -> AsyncIterator[str]:
        options = self.options
        started_at = options.clock()
        logger.info(f"Snapshot stream opened for room {self.code} (fast={self.force_fast})")
        try:
            yield f"retry: {options.retry_ms}\n\n"
            if self.closed:
                return

            snapshot = await self._load()
            last_updated_at = snapshot.updated_at
            last_ping_at = started_at
            self.state = DeliveryState.STREAMING
            yield format_sse_event("snapshot", snapshot)

            while not self.closed and options.clock() - started_at < options.max_lifetime_ms:
                await options.sleep(self.poll_interval_ms(last_updated_at) / 1000)
                if self.closed:
                    break

                snapshot = await self._load()
                if snapshot.updated_at != last_updated_at:
                    last_updated_at = snapshot.updated_at
                    yield format_sse_event("snapshot", snapshot)

                now = options.clock()
                if now - last_ping_at >= options.heartbeat_ms:
                    last_ping_at = now
                    yield f": ping {now}\n\n"
        except Exception as e:
            logger.error(f"Snapshot stream for room {self.code} failed: {e}", exc_info=True)
        finally:
            self.close()
            logger.info(f"Snapshot stream closed for room {self.code} after {self.reads} reads")
