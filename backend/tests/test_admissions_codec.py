"""Unit tests for the access-number codec (pure functions)."""

from __future__ import annotations

import pytest

from admissions.codec import (
    AccessNumberParts,
    admission_id,
    decode,
    encode,
    is_placeholder,
    placeholder_access_number,
)
from admissions.errors import FormatError


def test_encode_zero_pads_to_width():
    assert encode("A", "A", 3, 2) == "AA03"
    assert encode("B", "C", 7, 4) == "BC0007"


def test_encode_keeps_sequences_wider_than_width():
    assert encode("A", "A", 123, 2) == "AA123"


@pytest.mark.parametrize(
    "args",
    [
        ("a", "A", 1, 2),
        ("AB", "A", 1, 2),
        ("A", "", 1, 2),
        ("A", "A", 0, 2),
        ("A", "A", -4, 2),
        ("A", "A", True, 2),
        ("A", "A", 1, 0),
    ],
)
def test_encode_rejects_invalid_inputs(args):
    with pytest.raises(FormatError):
        encode(*args)


def test_decode_splits_codes_and_sequence():
    assert decode("AA03") == AccessNumberParts(class_code="A", stream_code="A", sequence=3)
    assert decode(" ds12 ") == AccessNumberParts(class_code="D", stream_code="S", sequence=12)


def test_decode_accepts_legacy_widths():
    assert decode("AA0003").sequence == decode("AA03").sequence == 3


@pytest.mark.parametrize("value", ["", "AA", "A1", "AAx1", "AA00", "1A01", "None-1700000000000-abc", 42])
def test_decode_rejects_malformed_numbers(value):
    with pytest.raises(FormatError):
        decode(value)  # type: ignore[arg-type]


def test_admission_id_pairs_codes_year_and_sequence():
    assert admission_id("A", "A", 3, 2025) == "A25A03"
    assert admission_id("E", "S", 11, 2031, width=3) == "E31S011"


@pytest.mark.parametrize("year", [99, 10000, True])
def test_admission_id_rejects_invalid_year(year):
    with pytest.raises(FormatError) as exc:
        admission_id("A", "A", 1, year)
    assert exc.value.code == "invalid_year"


def test_admission_id_shares_encode_validation():
    with pytest.raises(FormatError):
        admission_id("A", "A", 0, 2025)


def test_placeholders_are_detected_and_distinct():
    first = placeholder_access_number()
    second = placeholder_access_number()
    assert is_placeholder(first) and is_placeholder(second)
    assert first != second
    assert not is_placeholder("AA01")
    assert not is_placeholder(None)
