"""Records stored in tree nodes and their on-page layout.

Every entry starts with two 4-byte fields holding varints: the key length,
then either the value length (leaf) or the child page id (internal).  The
key follows, and for leaf entries the value after it.
"""

from __future__ import annotations

from dataclasses import dataclass

from .codec import decode_varint, encode_varint

# Node kinds as stored in a node header: the variant index of the node type.
INTERNAL_NODE = 0
LEAF_NODE = 1

_FIELD_WIDTH = 4
_PREFIX_SIZE = 2 * _FIELD_WIDTH
_U32_MAX = 0xFFFFFFFF


def _encode_field(value: int) -> bytes:
    if value > _U32_MAX:
        raise ValueError(f"value {value} does not fit in 32 bits")
    encoded = encode_varint(value)
    if len(encoded) > _FIELD_WIDTH:
        raise ValueError(f"value {value} needs more than {_FIELD_WIDTH} bytes")
    return encoded.ljust(_FIELD_WIDTH, b"\x00")


def _decode_field(page_buffer: bytes | bytearray | memoryview, offset: int) -> int:
    value, _ = decode_varint(bytes(page_buffer[offset:offset + _FIELD_WIDTH]), 0)
    return value


@dataclass(frozen=True)
class LeafEntry:
    """A key and the value stored for it."""

    key: bytes
    value: bytes

    @property
    def size(self) -> int:
        return _PREFIX_SIZE + len(self.key) + len(self.value)

    def encode(self) -> bytes:
        """Serialise to exactly ``size`` bytes."""
        return (
            _encode_field(len(self.key))
            + _encode_field(len(self.value))
            + bytes(self.key)
            + bytes(self.value)
        )


@dataclass(frozen=True)
class InternalEntry:
    """A separator key and the page id of the child it points to."""

    key: bytes
    child: int

    @property
    def size(self) -> int:
        return _PREFIX_SIZE + len(self.key)

    def encode(self) -> bytes:
        """Serialise to exactly ``size`` bytes."""
        if self.child < 0:
            raise ValueError(f"child page id {self.child} is negative")
        return _encode_field(len(self.key)) + _encode_field(self.child) + bytes(self.key)


DataEntry = LeafEntry | InternalEntry


def decode_entry(
    page_buffer: bytes | bytearray | memoryview, offset: int, node_type: int
) -> DataEntry:
    """Decode the entry stored at ``offset`` in a node of the given kind."""
    kind = int(node_type)
    if kind not in (INTERNAL_NODE, LEAF_NODE):
        raise ValueError(f"unknown node type {node_type!r}")
    if offset < 0 or offset + _PREFIX_SIZE > len(page_buffer):
        raise ValueError(f"entry offset {offset} out of range")

    key_len = _decode_field(page_buffer, offset)
    second = _decode_field(page_buffer, offset + _FIELD_WIDTH)
    key_start = offset + _PREFIX_SIZE
    key_end = key_start + key_len

    if kind == INTERNAL_NODE:
        if key_end > len(page_buffer):
            raise ValueError(f"entry at offset {offset} runs past the page")
        return InternalEntry(bytes(page_buffer[key_start:key_end]), second)

    value_end = key_end + second
    if value_end > len(page_buffer):
        raise ValueError(f"entry at offset {offset} runs past the page")
    return LeafEntry(
        bytes(page_buffer[key_start:key_end]), bytes(page_buffer[key_end:value_end])
    )