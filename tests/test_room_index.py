"""Tests for room index maintenance helpers."""

import json

from room_index import (
    ACTIVE_WINDOW_MS, INDEX_WINDOW_MS, dump_index, filter_active, parse_index, update_index,
)
from schemas.views import RoomIndexEntry

NOW = 1_767_225_600_000


def test_parse_index_drops_invalid_entries():
    raw = json.dumps([
        {"code": "ABC123", "updatedAt": NOW},
        {"code": "bad code!", "updatedAt": NOW},
        {"code": "xyz", "updatedAt": "yesterday"},
        "not-an-entry",
    ])
    entries = parse_index(raw)
    assert [(e.code, e.updated_at) for e in entries] == [("ABC123", NOW), ("XYZ", None)]


def test_parse_index_treats_garbage_as_empty():
    assert parse_index("{not json") == []
    assert parse_index(json.dumps({"code": "ABC"})) == []
    assert parse_index(None) == []


def test_parse_index_keeps_images_only_when_asked():
    raw = json.dumps([{"code": "ABC", "updatedAt": NOW, "image": "data:image/png;base64,AA=="}])
    assert parse_index(raw)[0].image is None
    assert parse_index(raw, with_images=True)[0].image == "data:image/png;base64,AA=="


def test_dump_index_omits_images_by_default():
    entries = [RoomIndexEntry(code="ABC", updated_at=NOW, image="data:image/png;base64,AA==")]
    assert json.loads(dump_index(entries)) == [{"code": "ABC", "updatedAt": NOW}]
    assert json.loads(dump_index(entries, with_images=True))[0]["image"] == "data:image/png;base64,AA=="


def test_update_index_moves_code_to_front_without_duplicates():
    entries = [
        RoomIndexEntry(code="AAA", updated_at=NOW - 2000),
        RoomIndexEntry(code="BBB", updated_at=NOW - 1000),
    ]
    updated = update_index(entries, "BBB", NOW, NOW)
    assert [e.code for e in updated] == ["BBB", "AAA"]
    assert updated[0].updated_at == NOW


def test_update_index_prunes_entries_past_the_window():
    entries = [
        RoomIndexEntry(code="OLD", updated_at=NOW - INDEX_WINDOW_MS),
        RoomIndexEntry(code="NEW", updated_at=NOW - 1000),
        RoomIndexEntry(code="NUL", updated_at=None),
    ]
    updated = update_index(entries, "ABC", NOW, NOW)
    assert [e.code for e in updated] == ["ABC", "NEW"]


def test_update_index_caps_size():
    entries = [RoomIndexEntry(code=f"R{i:03d}", updated_at=NOW - i) for i in range(10)]
    updated = update_index(entries, "ABC", NOW, NOW, max_rooms=5)
    assert len(updated) == 5
    assert updated[0].code == "ABC"


def test_filter_active_sorts_and_applies_window():
    entries = [
        RoomIndexEntry(code="MID", updated_at=NOW - 2000),
        RoomIndexEntry(code="NEW", updated_at=NOW - 1000),
        RoomIndexEntry(code="OLD", updated_at=NOW - ACTIVE_WINDOW_MS),
        RoomIndexEntry(code="NUL", updated_at=None),
    ]
    assert [r.code for r in filter_active(entries, NOW)] == ["NEW", "MID"]
    assert [r.code for r in filter_active(entries, NOW, window_ms=1500)] == ["NEW"]
