"""In-process response cache used when no redis is available.

Mirrors the shape of a platform edge cache: entries are keyed by request URL,
carry response headers, expire according to `Cache-Control: max-age` and can
be evicted at any time by the replacement policy (least recently used here).
Nothing in it survives a restart.
"""
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional

from constants import EDGE_CACHE_MAX_ENTRIES
from logging_config import get_logger

logger = get_logger(__name__)

MAX_AGE_RE = re.compile(r"max-age=(\d+)")


def parse_max_age(headers: dict) -> Optional[int]:
    cache_control = ""
    for key, value in headers.items():
        if key.lower() == "cache-control":
            cache_control = value
            break
    if "no-store" in cache_control:
        return 0
    match = MAX_AGE_RE.search(cache_control)
    return int(match.group(1)) if match else None


@dataclass
class CachedResponse:
    body: str
    headers: dict = field(default_factory=dict)
    stored_at: float = 0.0


class EdgeCache:
    def __init__(self, max_entries: int = EDGE_CACHE_MAX_ENTRIES, clock: Callable[[], float] = time.monotonic):
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, CachedResponse]" = OrderedDict()
        self._lock = threading.Lock()

    def match(self, key: str) -> Optional[CachedResponse]:
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                return None
            max_age = parse_max_age(cached.headers)
            if max_age is not None and self.clock() - cached.stored_at >= max_age:
                del self._entries[key]
                logger.debug(f"Cache entry {key} expired")
                return None
            self._entries.move_to_end(key)
            return cached

    def put(self, key: str, body: str, headers: Optional[dict] = None) -> None:
        headers = dict(headers or {})
        if parse_max_age(headers) == 0:
            # An uncacheable response is simply not stored
            logger.debug(f"Not caching {key}: response is not storable")
            return
        with self._lock:
            self._entries[key] = CachedResponse(body=body, headers=headers, stored_at=self.clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


default_cache = EdgeCache()
