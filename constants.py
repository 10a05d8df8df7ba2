import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

# "redis", "cache" or "auto" (redis when reachable, otherwise the edge cache)
VIEW_BACKEND = os.getenv("VIEW_BACKEND", "auto").lower()

EDGE_CACHE_ORIGIN = os.getenv("EDGE_CACHE_ORIGIN", "https://ephemeral-canvas").rstrip("/")
EDGE_CACHE_MAX_ENTRIES = int(os.getenv("EDGE_CACHE_MAX_ENTRIES", 1024))

ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 60 * 60 * 12))
ROOM_INDEX_WINDOW_SECONDS = int(os.getenv("ROOM_INDEX_WINDOW_SECONDS", 60 * 60 * 12))
ACTIVE_ROOM_WINDOW_SECONDS = int(os.getenv("ACTIVE_ROOM_WINDOW_SECONDS", 60 * 10))
MAX_ROOMS = int(os.getenv("MAX_ROOMS", 100))

MAX_IMAGE_CHARS = int(os.getenv("MAX_IMAGE_CHARS", 2_500_000))

STREAM_FAST_INTERVAL_MS = int(os.getenv("STREAM_FAST_INTERVAL_MS", 250))
STREAM_SLOW_INTERVAL_MS = int(os.getenv("STREAM_SLOW_INTERVAL_MS", 1000))
STREAM_RECENT_ACTIVITY_MS = int(os.getenv("STREAM_RECENT_ACTIVITY_MS", 5000))
STREAM_HEARTBEAT_MS = int(os.getenv("STREAM_HEARTBEAT_MS", 15000))
STREAM_MAX_LIFETIME_MS = int(os.getenv("STREAM_MAX_LIFETIME_MS", 1000 * 60 * 10))
STREAM_RETRY_MS = int(os.getenv("STREAM_RETRY_MS", 2000))
STREAMING_ENABLED = os.getenv("STREAMING_ENABLED", "true").lower() not in ("0", "false", "no")

NO_CACHE_HEADERS = {"Cache-Control": "no-cache, no-store"}
