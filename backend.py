import json
import time
from abc import ABC, abstractmethod
from functools import lru_cache
from itertools import islice
from typing import Callable, Optional

import redis

from constants import (
    REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB, VIEW_BACKEND,
    ROOM_TTL_SECONDS, MAX_ROOMS,
)
from edge_cache import EdgeCache, default_cache
from redis_keys import (
    REDIS_ROOM_KEY, REDIS_ROOM_KEY_PREFIX, REDIS_ROOM_INDEX_KEY,
    CACHE_ROOM_URL, CACHE_ROOM_INDEX_URL,
)
from room_codes import normalize_room_code
from room_index import coerce_image, coerce_timestamp, dump_index, filter_active, parse_index, update_index
from schemas.views import ActiveRoom, RoomIndexEntry, Snapshot
from logging_config import get_logger

logger = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class StorageWriteError(Exception):
    """The backend rejected a write."""


def snapshot_from_payload(payload, code: str) -> Snapshot:
    """Decode a stored snapshot. Unreadable data is an empty snapshot."""
    if payload is None:
        return Snapshot()
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Stored snapshot for room {code} is not valid JSON, treating as empty: {e}")
            return Snapshot()
    if not isinstance(payload, dict):
        logger.warning(f"Stored snapshot for room {code} has unexpected type {type(payload).__name__}")
        return Snapshot()
    return Snapshot(
        image=coerce_image(payload.get("image")),
        updated_at=coerce_timestamp(payload.get("updatedAt")),
    )


class SnapshotStore(ABC):
    """Latest image + timestamp per room code, plus the room index.

    Codes passed in must already be normalized.
    """

    name = "abstract"

    def __init__(self, clock: Callable[[], int] = now_ms):
        self.clock = clock

    @abstractmethod
    def load(self, code: str) -> Snapshot:
        ...

    @abstractmethod
    def save(self, code: str, image: Optional[str], updated_at: int) -> int:
        """Store the snapshot and return the `updatedAt` actually written."""
        ...

    @abstractmethod
    def load_index(self) -> list[RoomIndexEntry]:
        ...

    @abstractmethod
    def list_active(self) -> list[ActiveRoom]:
        ...

    def touch(self, code: str, updated_at: int) -> int:
        """Re-stamp a room without changing its image."""
        current = self.load(code)
        return self.save(code, current.image, updated_at)

    def next_timestamp(self, code: str, updated_at: int) -> int:
        # updatedAt only moves forward per room, even if the clock stalls or steps back
        previous = self.load(code).updated_at
        if previous is not None and updated_at <= previous:
            logger.debug(f"Clock at {updated_at} is not past {previous} for room {code}; stamping {previous + 1}")
            return previous + 1
        return updated_at


class RedisSnapshotStore(SnapshotStore):
    name = "redis"

    def __init__(self, redis_client: redis.Redis, clock: Callable[[], int] = now_ms, ttl: int = ROOM_TTL_SECONDS):
        super().__init__(clock)
        self.redis_client = redis_client
        self.ttl = ttl
        logger.info(f"Initializing RedisSnapshotStore with TTL {ttl} seconds")

    def _get(self, key: str):
        # Read errors degrade to "no data" like decode errors do
        try:
            return self.redis_client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Failed to read {key} from Redis: {e}")
            return None

    def load(self, code: str) -> Snapshot:
        logger.debug(f"Loading snapshot for room {code}")
        return snapshot_from_payload(self._get(REDIS_ROOM_KEY.format(code=code)), code)

    def save(self, code: str, image: Optional[str], updated_at: int) -> int:
        key = REDIS_ROOM_KEY.format(code=code)
        updated_at = self.next_timestamp(code, updated_at)
        payload = Snapshot(image=image, updated_at=updated_at).to_json()
        try:
            self.redis_client.set(key, payload, ex=self.ttl)
        except redis.RedisError as e:
            logger.error(f"Failed to store snapshot for room {code}: {e}", exc_info=True)
            raise StorageWriteError(f"Failed to store snapshot for room {code}") from e
        logger.info(f"Stored snapshot for room {code} at {updated_at} ({len(image or '')} chars)")
        self._update_index(code, updated_at)
        return updated_at

    def _update_index(self, code: str, updated_at: int) -> None:
        entries = update_index(self.load_index(), code, updated_at, self.clock())
        try:
            self.redis_client.set(REDIS_ROOM_INDEX_KEY, dump_index(entries), ex=self.ttl)
        except redis.RedisError as e:
            logger.error(f"Failed to update room index for room {code}: {e}", exc_info=True)
            raise StorageWriteError("Failed to update room index") from e
        logger.debug(f"Room index updated with {code}, {len(entries)} entries")

    def load_index(self) -> list[RoomIndexEntry]:
        return parse_index(self._get(REDIS_ROOM_INDEX_KEY))

    def list_active(self) -> list[ActiveRoom]:
        now = self.clock()
        indexed = self.load_index()
        if not indexed:
            logger.warning("Room index unavailable; falling back to Redis key scan")
            return filter_active(self._scan_rooms(), now)

        # The index only carries timestamps, so re-read each active room
        rooms = []
        for room in filter_active(indexed, now):
            snapshot = self.load(room.code)
            rooms.append(ActiveRoom(code=room.code, updated_at=snapshot.updated_at, image=snapshot.image))
        return filter_active(rooms, now)

    def _scan_rooms(self) -> list[ActiveRoom]:
        rooms = []
        keys = self.redis_client.scan_iter(match=REDIS_ROOM_KEY_PREFIX + "*", count=MAX_ROOMS)
        for key in islice(keys, MAX_ROOMS):
            code = normalize_room_code(key[len(REDIS_ROOM_KEY_PREFIX):])
            if not code:
                continue
            snapshot = snapshot_from_payload(self._get(key), code)
            rooms.append(ActiveRoom(code=code, updated_at=snapshot.updated_at, image=snapshot.image))
        logger.debug(f"Scan found {len(rooms)} rooms")
        return rooms


class EdgeCacheSnapshotStore(SnapshotStore):
    """Snapshots kept in an edge response cache under synthetic URLs.

    The cache has no secondary lookup, so index entries embed the image.
    """

    name = "cache"

    def __init__(self, cache: EdgeCache, clock: Callable[[], int] = now_ms, ttl: int = ROOM_TTL_SECONDS):
        super().__init__(clock)
        self.cache = cache
        self.ttl = ttl

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Cache-Control": f"public, max-age={self.ttl}",
        }

    def load(self, code: str) -> Snapshot:
        cached = self.cache.match(CACHE_ROOM_URL.format(code=code))
        if cached is None:
            return Snapshot()
        return snapshot_from_payload(cached.body, code)

    def save(self, code: str, image: Optional[str], updated_at: int) -> int:
        updated_at = self.next_timestamp(code, updated_at)
        payload = Snapshot(image=image, updated_at=updated_at).to_json()
        self.cache.put(CACHE_ROOM_URL.format(code=code), payload, self._headers())
        entries = update_index(self.load_index(), code, updated_at, self.clock(), image=image)
        self.cache.put(CACHE_ROOM_INDEX_URL, dump_index(entries, with_images=True), self._headers())
        logger.info(f"Cached snapshot for room {code} at {updated_at} ({len(image or '')} chars, {len(self.cache)} cache entries)")
        return updated_at

    def load_index(self) -> list[RoomIndexEntry]:
        cached = self.cache.match(CACHE_ROOM_INDEX_URL)
        if cached is None:
            return []
        return parse_index(cached.body, with_images=True)

    def list_active(self) -> list[ActiveRoom]:
        return filter_active(self.load_index(), self.clock())


def create_redis_client() -> redis.Redis:
    return redis.Redis(
        host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True,
    )


def build_store(backend: Optional[str] = None, cache: EdgeCache = default_cache) -> SnapshotStore:
    """Pick the storage backend once, based on configuration and what is reachable."""
    backend = backend or VIEW_BACKEND
    if backend in ("redis", "auto"):
        client = create_redis_client()
        try:
            client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            return RedisSnapshotStore(client)
        except redis.RedisError as e:
            if backend == "redis":
                logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
                raise
            logger.warning(f"Redis at {REDIS_HOST}:{REDIS_PORT} unavailable ({e}); using edge cache backend")
    elif backend != "cache":
        raise ValueError(f"Unknown VIEW_BACKEND {backend!r}")
    return EdgeCacheSnapshotStore(cache)


@lru_cache(maxsize=1)
def get_store() -> SnapshotStore:
    return build_store()
