"""Tests for room code normalization."""

import pytest

from room_codes import normalize_room_code


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("ABC123", "ABC123"),
        ("  abc123 ", "ABC123"),
        ("xyz", "XYZ"),
        ("12345678", "12345678"),
    ],
)
def test_normalize_accepts_valid_codes(raw, expected):
    assert normalize_room_code(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "AB", "ABCDEFGHI", "ab-c!", "ABC 12", "ÄBC", None, 123])
def test_normalize_rejects_invalid_codes(raw):
    assert normalize_room_code(raw) is None


@pytest.mark.parametrize("raw", ["abc", "Room42", " 9z9z9z9z "])
def test_normalize_is_idempotent(raw):
    once = normalize_room_code(raw)
    assert once is not None
    assert normalize_room_code(once) == once
