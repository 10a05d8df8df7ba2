"""Bounded, time-windowed directory of recently written rooms.

The index is a cache of room activity kept up to date as a side effect of
every snapshot write. It is never authoritative: the snapshot store owns each
room's current content. Updates are a read-modify-write without locking, so
two rooms written at the same moment can drop each other's entry; the dropped
room reappears on its next write.
"""
import json
from typing import Optional

from constants import ACTIVE_ROOM_WINDOW_SECONDS, MAX_ROOMS, ROOM_INDEX_WINDOW_SECONDS
from logging_config import get_logger
from room_codes import normalize_room_code
from schemas.views import ActiveRoom, RoomIndexEntry

logger = get_logger(__name__)

INDEX_WINDOW_MS = ROOM_INDEX_WINDOW_SECONDS * 1000
ACTIVE_WINDOW_MS = ACTIVE_ROOM_WINDOW_SECONDS * 1000


def coerce_timestamp(value) -> Optional[int]:
    # bool is an int subclass but never a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def coerce_image(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_index(raw, with_images: bool = False) -> list[RoomIndexEntry]:
    """Turn a stored index payload (JSON text or decoded list) into entries.

    Anything unreadable yields an empty index. Entries with an invalid code are
    dropped individually.
    """
    if raw is None:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Room index is not valid JSON, treating as empty: {e}")
            return []
    if not isinstance(raw, list):
        logger.warning(f"Room index has unexpected type {type(raw).__name__}, treating as empty")
        return []

    entries = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        code = normalize_room_code(item.get("code"))
        if not code:
            continue
        entries.append(RoomIndexEntry(
            code=code,
            updated_at=coerce_timestamp(item.get("updatedAt")),
            image=coerce_image(item.get("image")) if with_images else None,
        ))
    return entries


def dump_index(entries: list[RoomIndexEntry], with_images: bool = False) -> str:
    exclude = None if with_images else {"image"}
    return json.dumps([entry.model_dump(by_alias=True, exclude=exclude) for entry in entries])


def update_index(
    entries: list[RoomIndexEntry],
    code: str,
    updated_at: int,
    now: int,
    image: Optional[str] = None,
    window_ms: int = INDEX_WINDOW_MS,
    max_rooms: int = MAX_ROOMS,
) -> list[RoomIndexEntry]:
    """Prune stale entries, move `code` to the front and cap the size."""
    fresh = [
        entry for entry in entries
        if now - (entry.updated_at or 0) < window_ms and entry.code != code
    ]
    head = RoomIndexEntry(code=code, updated_at=updated_at, image=image)
    return [head, *fresh][:max_rooms]


def is_active(updated_at: Optional[int], now: int, window_ms: int = ACTIVE_WINDOW_MS) -> bool:
    if not updated_at:
        return False
    return now - updated_at < window_ms


def filter_active(entries, now: int, window_ms: int = ACTIVE_WINDOW_MS) -> list[ActiveRoom]:
    """Keep entries inside the active window, most recently updated first."""
    rooms = [
        ActiveRoom(code=entry.code, updated_at=entry.updated_at, image=entry.image)
        for entry in entries
        if is_active(entry.updated_at, now, window_ms)
    ]
    rooms.sort(key=lambda room: room.updated_at or 0, reverse=True)
    return rooms
