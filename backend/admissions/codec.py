"""
Access-number codec: ``<classCode><streamCode><zero-padded sequence>``.

Pure functions only. Admission IDs are derived from the same triple plus the
admission year (``<classCode><yy><streamCode><sequence>``), so they are paired
1:1 with the access number at mint time and never allocated on their own.

Placeholder numbers (``None-<millis>-<random>``) mark pupils admitted by an
external overseer. They are not real access numbers and are never decoded.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
import secrets
import time

from .errors import FormatError

DEFAULT_WIDTH = 2
PLACEHOLDER_PREFIX = "None-"

_CODE_RE = re.compile(r"^[A-Z]$")
_ACCESS_NUMBER_RE = re.compile(r"^(?P<class_code>[A-Z])(?P<stream_code>[A-Z])(?P<digits>[0-9]+)$")


@dataclass(frozen=True)
class AccessNumberParts:
    class_code: str
    stream_code: str
    sequence: int


def _check_code(value: object) -> str:
    if not isinstance(value, str) or not _CODE_RE.match(value):
        raise FormatError("invalid_code")
    return value


def _check_sequence(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise FormatError("invalid_sequence")
    return value


def encode(class_code: str, stream_code: str, sequence: int, width: int = DEFAULT_WIDTH) -> str:
    """Concatenate the codes and the sequence zero-padded to ``width`` digits.

    ``width`` is a minimum; sequences wider than it are kept whole.
    """
    if isinstance(width, bool) or not isinstance(width, int) or width < 1:
        raise FormatError("invalid_width")
    cc = _check_code(class_code)
    sc = _check_code(stream_code)
    seq = _check_sequence(sequence)
    return f"{cc}{sc}{seq:0{width}d}"


def decode(access_number: str) -> AccessNumberParts:
    """Split an access number into class code, stream code and sequence.

    Any digit count is accepted so legacy widths (``AA0003``) decode to the
    same sequence as ``AA03``.
    """
    if not isinstance(access_number, str):
        raise FormatError("invalid_access_number")
    value = access_number.strip().upper()
    if len(value) < 3:
        raise FormatError("invalid_access_number", access_number=access_number)
    m = _ACCESS_NUMBER_RE.match(value)
    if not m:
        raise FormatError("invalid_access_number", access_number=access_number)
    sequence = int(m.group("digits"))
    if sequence < 1:
        raise FormatError("invalid_access_number", access_number=access_number)
    return AccessNumberParts(
        class_code=m.group("class_code"),
        stream_code=m.group("stream_code"),
        sequence=sequence,
    )


def admission_id(class_code: str, stream_code: str, sequence: int, year: int, width: int = DEFAULT_WIDTH) -> str:
    """Derive the admission ID paired with an access number, e.g. ``A25A03``."""
    cc = _check_code(class_code)
    sc = _check_code(stream_code)
    seq = _check_sequence(sequence)
    if isinstance(year, bool) or not isinstance(year, int) or not 1900 <= year <= 9999:
        raise FormatError("invalid_year")
    if isinstance(width, bool) or not isinstance(width, int) or width < 1:
        raise FormatError("invalid_width")
    return f"{cc}{year % 100:02d}{sc}{seq:0{width}d}"


def is_placeholder(access_number: str | None) -> bool:
    return bool(access_number) and str(access_number).startswith(PLACEHOLDER_PREFIX)


def placeholder_access_number() -> str:
    """Mint a non-unique-checked placeholder for overseer-admitted pupils."""
    return f"{PLACEHOLDER_PREFIX}{int(time.time() * 1000)}-{secrets.token_hex(5)}"


__all__ = [
    "AccessNumberParts",
    "DEFAULT_WIDTH",
    "PLACEHOLDER_PREFIX",
    "encode",
    "decode",
    "admission_id",
    "is_placeholder",
    "placeholder_access_number",
]
