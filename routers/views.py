from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from backend import SnapshotStore, StorageWriteError, get_store
from constants import MAX_IMAGE_CHARS, NO_CACHE_HEADERS, STREAMING_ENABLED
from live import SnapshotChannel, StreamOptions, get_stream_options
from room_codes import normalize_room_code
from schemas.views import RoomListResponse, SnapshotWriteRequest
from logging_config import get_logger

logger = get_logger(__name__)

views_router = APIRouter(prefix="/api/view", tags=["view"])

EVENT_STREAM_HEADERS = {**NO_CACHE_HEADERS, "X-Accel-Buffering": "no"}


def get_streaming_enabled() -> bool:
    return STREAMING_ENABLED


def require_room_code(code: str) -> str:
    normalized = normalize_room_code(code)
    if not normalized:
        logger.warning(f"Rejected invalid room code {code!r}")
        raise HTTPException(status_code=400, detail="Room code required")
    return normalized


def get_listing_store() -> Optional[SnapshotStore]:
    # The room list answers even when no backend can be built
    try:
        return get_store()
    except Exception as e:
        logger.error(f"Storage backend unavailable for room list: {e}", exc_info=True)
        return None


@views_router.get("")
async def list_rooms(store: Optional[SnapshotStore] = Depends(get_listing_store)):
    try:
        rooms = store.list_active() if store is not None else []
    except Exception as e:
        logger.error(f"Failed to load rooms: {e}", exc_info=True)
        rooms = []
    logger.debug(f"Listing {len(rooms)} active rooms")
    body = RoomListResponse(rooms=rooms).model_dump(by_alias=True)
    return JSONResponse(body, headers=NO_CACHE_HEADERS)


@views_router.get("/{code}")
async def get_snapshot(code: str, store: SnapshotStore = Depends(get_store)):
    code = require_room_code(code)
    snapshot = store.load(code)
    return JSONResponse(snapshot.model_dump(by_alias=True), headers=NO_CACHE_HEADERS)


@views_router.post("/{code}", status_code=204)
async def post_snapshot(code: str, request: Request, store: SnapshotStore = Depends(get_store)):
    # Body: { "image": "data:image/webp;base64,..." }
    code = require_room_code(code)
    body = await request.body()
    try:
        payload = SnapshotWriteRequest.model_validate_json(body)
    except ValidationError:
        logger.warning(f"Rejected snapshot for room {code}: unreadable payload")
        raise HTTPException(status_code=400, detail="Image required")

    image = payload.image
    if not image:
        raise HTTPException(status_code=400, detail="Image required")
    if not image.startswith("data:image/"):
        logger.warning(f"Rejected snapshot for room {code}: unsupported type {image[:32]!r}")
        raise HTTPException(status_code=415, detail="Unsupported image type")
    if len(image) > MAX_IMAGE_CHARS:
        logger.warning(f"Rejected snapshot for room {code}: {len(image)} chars exceeds {MAX_IMAGE_CHARS}")
        raise HTTPException(status_code=413, detail="Image too large")

    try:
        store.save(code, image, store.clock())
    except StorageWriteError as e:
        logger.error(f"Failed to store snapshot for room {code}: {e}")
        raise HTTPException(status_code=500, detail="Failed to store snapshot")
    return Response(status_code=204, headers=NO_CACHE_HEADERS)


@views_router.post("/{code}/touch", status_code=204)
async def touch_snapshot(code: str, store: SnapshotStore = Depends(get_store)):
    """Liveness ping: keep the room in the active window without a new image."""
    code = require_room_code(code)
    try:
        store.touch(code, store.clock())
    except StorageWriteError as e:
        logger.error(f"Failed to touch room {code}: {e}")
        raise HTTPException(status_code=500, detail="Failed to store snapshot")
    return Response(status_code=204, headers=NO_CACHE_HEADERS)


@views_router.api_route("/{code}/stream", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def stream_snapshots(
    code: str,
    request: Request,
    store: SnapshotStore = Depends(get_store),
    options: StreamOptions = Depends(get_stream_options),
    streaming_enabled: bool = Depends(get_streaming_enabled),
):
    """
    Server-sent events for one room.

    Emits `retry: 2000`, then an `event: snapshot` frame with the current
    snapshot (SSE id = updatedAt), then a frame for every change and a
    `: ping` comment at least every 15 seconds. Closes after 10 minutes;
    clients reconnect. `?fast=1` or `?mode=live` polls at the fast rate.
    A bad room code is a 400 whatever the method; other methods are 405.
    """
    code = require_room_code(code)
    if request.method != "GET":
        raise HTTPException(status_code=405, detail="Method Not Allowed", headers={"Allow": "GET"})
    if not streaming_enabled:
        snapshot = store.load(code)
        return JSONResponse(snapshot.model_dump(by_alias=True), headers=NO_CACHE_HEADERS)

    params = request.query_params
    force_fast = params.get("fast") == "1" or params.get("mode") == "live"
    channel = SnapshotChannel(store, code, options, force_fast=force_fast)
    return StreamingResponse(
        channel.frames(),
        media_type="text/event-stream; charset=utf-8",
        headers=EVENT_STREAM_HEADERS,
    )
