"""Viewer side of live snapshot delivery.

`LiveViewer` opens the room's event stream and, when the stream never produces
a snapshot within the grace period or breaks, switches to plain polling of
`GET /api/view/{code}`. Consumers see the same `Snapshot` objects either way.
"""
import asyncio
import time
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from live import DeliveryState
from room_codes import normalize_room_code
from schemas.views import Snapshot
from logging_config import get_logger

logger = get_logger(__name__)

STREAM_GRACE_PERIOD_S = 2.0
POLL_INTERVAL_S = 0.5
IDLE_TIMEOUT_S = 60 * 10
DEFAULT_RETRY_S = 2.0


class InvalidRoomCode(ValueError):
    pass


class StreamUnavailable(Exception):
    """The event stream could not be used; polling takes over."""


class RoomRejected(Exception):
    """The server refused the room with a client error."""


def parse_snapshot(data) -> Optional[Snapshot]:
    try:
        if isinstance(data, (str, bytes)):
            return Snapshot.model_validate_json(data)
        return Snapshot.model_validate(data)
    except (ValidationError, ValueError) as e:
        logger.warning(f"Ignoring unreadable snapshot payload: {e}")
        return None


class LiveViewer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        code: str,
        grace_period: float = STREAM_GRACE_PERIOD_S,
        poll_interval: float = POLL_INTERVAL_S,
        idle_timeout: float = IDLE_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        normalized = normalize_room_code(code)
        if not normalized:
            raise InvalidRoomCode(f"Invalid room code: {code!r}")
        self.client = client
        self.code = normalized
        self.grace_period = grace_period
        self.poll_interval = poll_interval
        self.idle_timeout = idle_timeout
        self.clock = clock
        self.sleep = sleep
        self.state = DeliveryState.CONNECTING
        self.closed = False
        self.retry_s = DEFAULT_RETRY_S
        self._last_updated_at: Optional[int] = None
        self._delivered = False
        self._last_change_at = clock()

    @property
    def snapshot_url(self) -> str:
        return f"/api/view/{self.code}"

    def close(self) -> None:
        self.closed = True
        self.state = DeliveryState.CLOSED

    def _idle(self) -> bool:
        return self.clock() - self._last_change_at >= self.idle_timeout

    def _accept(self, snapshot: Snapshot) -> bool:
        """Record a snapshot; True when it should be handed to the consumer."""
        if self._delivered and snapshot.updated_at == self._last_updated_at:
            return False
        self._delivered = True
        self._last_updated_at = snapshot.updated_at
        self._last_change_at = self.clock()
        return True

    async def snapshots(self) -> AsyncIterator[Snapshot]:
        try:
            while not self.closed:
                self.state = DeliveryState.CONNECTING
                try:
                    async with aclosing(self._stream_with_grace()) as stream:
                        async for snapshot in stream:
                            if self._accept(snapshot):
                                yield snapshot
                            if self.closed:
                                return
                            if self._idle():
                                logger.info(f"Room {self.code} idle for {self.idle_timeout}s, closing viewer")
                                return
                except StreamUnavailable as e:
                    logger.warning(f"Live stream for room {self.code} unavailable ({e}); falling back to polling")
                    self.state = DeliveryState.DEGRADED
                    break
                if self.closed or self._idle():
                    return
                # Server ended the stream (session cap); reconnect after its retry delay
                logger.debug(f"Stream for room {self.code} ended, reconnecting in {self.retry_s}s")
                await self.sleep(self.retry_s)

            if self.closed:
                return
            self.state = DeliveryState.POLLING
            async with aclosing(self._poll()) as polled:
                async for snapshot in polled:
                    yield snapshot
        except RoomRejected as e:
            logger.error(f"Viewer for room {self.code} stopped: {e}")
        finally:
            self.close()

    async def _stream_with_grace(self) -> AsyncIterator[Snapshot]:
        events = self._stream_events()
        try:
            try:
                async with asyncio.timeout(self.grace_period):
                    first = await anext(events)
            except TimeoutError:
                raise StreamUnavailable(f"no snapshot within {self.grace_period}s")
            except StopAsyncIteration:
                raise StreamUnavailable("stream closed before the first snapshot")
            self.state = DeliveryState.STREAMING
            yield first
            async for snapshot in events:
                yield snapshot
        finally:
            await events.aclose()

    async def _stream_events(self) -> AsyncIterator[Snapshot]:
        try:
            async with self.client.stream("GET", f"{self.snapshot_url}/stream", params={"fast": "1"}) as response:
                if 400 <= response.status_code < 500 and response.status_code not in (404, 405):
                    raise RoomRejected(f"server answered {response.status_code}")
                if response.status_code != 200:
                    raise StreamUnavailable(f"server answered {response.status_code}")

                content_type = response.headers.get("content-type", "")
                if not content_type.startswith("text/event-stream"):
                    # Streaming disabled server side: a single JSON snapshot
                    snapshot = parse_snapshot(await response.aread())
                    if snapshot is not None:
                        yield snapshot
                    raise StreamUnavailable("server does not stream")

                event, data = "message", []
                async for line in response.aiter_lines():
                    if self.closed:
                        return
                    if line == "":
                        if data and event == "snapshot":
                            snapshot = parse_snapshot("\n".join(data))
                            if snapshot is not None:
                                yield snapshot
                        event, data = "message", []
                    elif line.startswith(":"):
                        continue
                    else:
                        name, _, value = line.partition(":")
                        value = value[1:] if value.startswith(" ") else value
                        if name == "event":
                            event = value
                        elif name == "data":
                            data.append(value)
                        elif name == "retry" and value.isdigit():
                            self.retry_s = int(value) / 1000
        except httpx.HTTPError as e:
            raise StreamUnavailable(str(e)) from e

    async def _poll(self) -> AsyncIterator[Snapshot]:
        logger.info(f"Polling room {self.code} every {self.poll_interval}s")
        while not self.closed:
            try:
                response = await self.client.get(self.snapshot_url)
                if 400 <= response.status_code < 500:
                    raise RoomRejected(f"server answered {response.status_code}")
                response.raise_for_status()
                snapshot = parse_snapshot(response.content)
            except httpx.HTTPError as e:
                logger.warning(f"Polling room {self.code} failed: {e}")
                snapshot = None

            if self.closed:
                return
            if snapshot is not None and self._accept(snapshot):
                yield snapshot
            if self._idle():
                logger.info(f"Room {self.code} idle for {self.idle_timeout}s, closing viewer")
                return
            await self.sleep(self.poll_interval)
