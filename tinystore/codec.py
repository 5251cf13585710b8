"""Variable-length integer encoding used for every on-disk field.

Unsigned integers below 251 take a single byte.  Larger values are written
as a marker byte followed by a little-endian fixed-width integer:
251 -> 16 bit, 252 -> 32 bit, 253 -> 64 bit, 254 -> 128 bit.
Signed integers are zigzag-mapped onto unsigned ones first.
"""

from __future__ import annotations

_SINGLE_BYTE_MAX = 250

# marker byte -> width in bytes of the integer that follows
_MARKERS: dict[int, int] = {251: 2, 252: 4, 253: 8, 254: 16}

_U128_MAX = (1 << 128) - 1


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer (up to 128 bits)."""
    if value < 0:
        raise ValueError(f"cannot encode negative value {value} as unsigned varint")
    if value > _U128_MAX:
        raise ValueError(f"value {value} does not fit in 128 bits")
    if value <= _SINGLE_BYTE_MAX:
        return bytes([value])
    for marker, width in _MARKERS.items():
        if value < 1 << (8 * width):
            return bytes([marker]) + value.to_bytes(width, "little")
    raise ValueError(f"value {value} does not fit in 128 bits")  # pragma: no cover


def decode_varint(data: bytes | bytearray | memoryview, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint at ``offset``; return ``(value, next_offset)``."""
    if offset < 0 or offset >= len(data):
        raise ValueError(f"no varint at offset {offset}: data is {len(data)} bytes long")
    first = data[offset]
    if first <= _SINGLE_BYTE_MAX:
        return first, offset + 1
    width = _MARKERS.get(first)
    if width is None:
        raise ValueError(f"invalid varint marker byte {first}")
    start = offset + 1
    end = start + width
    if end > len(data):
        raise ValueError(
            f"truncated varint at offset {offset}: needs {width + 1} bytes, "
            f"{len(data) - offset} available"
        )
    return int.from_bytes(bytes(data[start:end]), "little"), end


def encode_zigzag(value: int) -> bytes:
    """Encode a signed integer with zigzag mapping followed by a varint."""
    mapped = value * 2 if value >= 0 else -value * 2 - 1
    return encode_varint(mapped)


def decode_zigzag(data: bytes | bytearray | memoryview, offset: int = 0) -> tuple[int, int]:
    """Decode a zigzag-mapped signed varint; return ``(value, next_offset)``."""
    mapped, end = decode_varint(data, offset)
    value = mapped >> 1 if mapped % 2 == 0 else -((mapped + 1) >> 1)
    return value, end