from constants import EDGE_CACHE_ORIGIN

REDIS_ROOM_KEY_PREFIX = "room:"
REDIS_ROOM_KEY = REDIS_ROOM_KEY_PREFIX + "{code}" # room code - JSON snapshot {image, updatedAt}
REDIS_ROOM_INDEX_KEY = "rooms:index" # JSON list of {code, updatedAt}, most recent first

# Synthetic request URLs used as keys in the edge cache backend
CACHE_ROOM_URL = EDGE_CACHE_ORIGIN + "/view/{code}"
CACHE_ROOM_INDEX_URL = EDGE_CACHE_ORIGIN + "/view/_rooms"

# **Example `room:{code}` value**
# {"image": "data:image/webp;base64,...", "updatedAt": 1767225600000}
#
# **TTL**
# - Every write to `room:{code}` and `rooms:index` resets the key TTL to ROOM_TTL_SECONDS.
# - Index entries older than ROOM_INDEX_WINDOW_SECONDS are pruned on the next write.
