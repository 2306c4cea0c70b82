"""Order-preserving numeric encoding.

Stored values and range bounds are compared as raw byte strings, so numbers
are serialised such that unsigned lexicographic order of the encodings is
numeric order of the values.

The IEEE-754 big-endian representation of a double already sorts correctly
for non-negative values once the sign bit is set; negative values have all
their bits inverted so larger magnitudes sort first. Trailing zero bytes are
dropped, which keeps small integers short and does not disturb ordering.
All integer and float widths share this one encoding so values written with
``encode_int`` compare correctly against bounds built from doubles.
"""

from __future__ import annotations

import math
import struct

from fts_bridge.errors import InvalidArgumentError, RangeError, SerialisationError


_SIGN_BIT = 0x8000000000000000
_ALL_BITS = 0xFFFFFFFFFFFFFFFF

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _as_number(value: object, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"{what} must be a number, not {type(value).__name__}")
    try:
        number = float(value)
    except OverflowError as exc:
        raise RangeError(f"{what} {value} is outside the range of a double") from exc
    if math.isnan(number):
        raise InvalidArgumentError(f"{what} must not be NaN")
    return number


def sortable_serialise(value: float | int) -> bytes:
    """Encode a number so byte order matches numeric order."""
    number = _as_number(value, "value")
    if number == 0.0:
        number = 0.0  # fold -0.0 onto 0.0
    (bits,) = struct.unpack(">Q", struct.pack(">d", number))
    if bits & _SIGN_BIT:
        bits ^= _ALL_BITS
    else:
        bits |= _SIGN_BIT
    return bits.to_bytes(8, "big").rstrip(b"\x00")


def sortable_unserialise(data: bytes | bytearray | memoryview) -> float:
    """Decode a value produced by ``sortable_serialise``."""
    raw = bytes(data)
    if len(raw) > 8:
        raise SerialisationError(f"Encoded number is {len(raw)} bytes long; at most 8 expected")
    bits = int.from_bytes(raw.ljust(8, b"\x00"), "big")
    if bits & _SIGN_BIT:
        bits ^= _SIGN_BIT
    else:
        bits ^= _ALL_BITS
    (number,) = struct.unpack(">d", bits.to_bytes(8, "big"))
    if math.isnan(number):
        raise SerialisationError("Encoded bytes do not represent a number")
    return number


def encode_int(value: int) -> bytes:
    """Encode a signed 32-bit integer."""
    _check_integer(value, INT32_MIN, INT32_MAX, "int32")
    return sortable_serialise(value)


def decode_int(data: bytes) -> int:
    return _decode_integer(data, INT32_MIN, INT32_MAX, "int32")


def encode_long(value: int) -> bytes:
    """Encode a signed 64-bit integer.

    Only integers a double holds exactly are accepted (every value with
    magnitude up to 2**53, and larger ones with enough trailing zero bits),
    so decoding always returns the original.
    """
    _check_integer(value, INT64_MIN, INT64_MAX, "int64")
    if int(float(value)) != value:
        raise RangeError(f"int64 value {value} cannot be encoded without losing precision")
    return sortable_serialise(value)


def decode_long(data: bytes) -> int:
    return _decode_integer(data, INT64_MIN, INT64_MAX, "int64")


def encode_float(value: float) -> bytes:
    """Encode a value after rounding it to IEEE single precision."""
    number = _as_number(value, "float")
    try:
        (single,) = struct.unpack(">f", struct.pack(">f", number))
    except (OverflowError, struct.error) as exc:
        raise RangeError(f"{value} is outside the range of a 32-bit float") from exc
    return sortable_serialise(single)


def decode_float(data: bytes) -> float:
    number = sortable_unserialise(data)
    try:
        (single,) = struct.unpack(">f", struct.pack(">f", number))
    except (OverflowError, struct.error) as exc:
        raise SerialisationError("Encoded value is outside the range of a 32-bit float") from exc
    return single


def encode_double(value: float) -> bytes:
    return sortable_serialise(value)


def decode_double(data: bytes) -> float:
    return sortable_unserialise(data)


def _check_integer(value: object, low: int, high: int, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{what} value must be an int, not {type(value).__name__}")
    if not low <= value <= high:
        raise RangeError(f"{value} is outside the {what} range [{low}, {high}]")


def _decode_integer(data: bytes, low: int, high: int, what: str) -> int:
    number = sortable_unserialise(data)
    if not number.is_integer() or not low <= number <= high:
        raise SerialisationError(f"Encoded value {number!r} is not a valid {what}")
    return int(number)
