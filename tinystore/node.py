"""Tree nodes: one node per page, with a sorted offsets array and a free-block chain.

Layout of a node page (shifted by ``DB_HEADER_SIZE`` on page 0)::

    [node header | offsets array -> ... free space ... <- entries]

The offsets array holds one 4-byte field per entry, kept sorted by key.
Entries grow downwards from the end of the page.  Removed entries become
free blocks linked through their first four bytes and are reused by later
insertions.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from .codec import decode_varint, decode_zigzag, encode_varint, encode_zigzag
from .constants import DB_HEADER_SIZE, PAGE_SIZE
from .entry import INTERNAL_NODE, LEAF_NODE, DataEntry, decode_entry
from .pager import Pager

logger = logging.getLogger(__name__)

NODE_HEADER_SIZE = 30
M = 5

NODE_MAGIC = b"PAGE"

_OFFSET_WIDTH = 4
_FREE_BLOCK_SIZE = 4
_U16_MAX = 0xFFFF
_U32_MAX = 0xFFFFFFFF
_I32_MIN = -(1 << 31)
_I32_MAX = (1 << 31) - 1


class NodeType(enum.IntEnum):
    """Kind of a tree node."""

    INTERNAL = INTERNAL_NODE
    LEAF = LEAF_NODE


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} {value} out of range [{low}, {high}]")


def _encode_offset(value: int) -> bytes:
    _check_range("offset", value, 0, _U32_MAX)
    encoded = encode_varint(value)
    if len(encoded) > _OFFSET_WIDTH:
        raise ValueError(f"offset {value} needs more than {_OFFSET_WIDTH} bytes")
    return encoded.ljust(_OFFSET_WIDTH, b"\x00")


def _decode_offset(buffer: bytes | bytearray, position: int) -> int:
    value, _ = decode_varint(bytes(buffer[position:position + _OFFSET_WIDTH]), 0)
    return value


@dataclass
class NodeHeader:
    """Per-node bookkeeping stored at the start of the node's page area."""

    node_type: NodeType
    free_space_start: int = NODE_HEADER_SIZE
    free_space_end: int = PAGE_SIZE
    items_stored: int = 0
    first_free_block_offset: int = 0
    rightmost_child: int = 0
    parent: int = -1
    magic_numbers: bytes = NODE_MAGIC

    def encode(self) -> bytes:
        """Serialise to exactly ``NODE_HEADER_SIZE`` bytes."""
        if len(self.magic_numbers) != len(NODE_MAGIC):
            raise ValueError(f"magic numbers must be {len(NODE_MAGIC)} bytes")
        _check_range("free_space_start", self.free_space_start, 0, _U32_MAX)
        _check_range("free_space_end", self.free_space_end, 0, _U32_MAX)
        _check_range("items_stored", self.items_stored, 0, _U32_MAX)
        _check_range("first_free_block_offset", self.first_free_block_offset, 0, _U16_MAX)
        _check_range("rightmost_child", self.rightmost_child, 0, _U32_MAX)
        _check_range("parent", self.parent, _I32_MIN, _I32_MAX)
        encoded = b"".join(
            (
                bytes(self.magic_numbers),
                encode_varint(int(self.node_type)),
                encode_varint(self.free_space_start),
                encode_varint(self.free_space_end),
                encode_varint(self.items_stored),
                encode_varint(self.first_free_block_offset),
                encode_varint(self.rightmost_child),
                encode_zigzag(self.parent),
            )
        )
        if len(encoded) > NODE_HEADER_SIZE:
            raise ValueError(
                f"encoded node header needs {len(encoded)} bytes, "
                f"only {NODE_HEADER_SIZE} reserved"
            )
        return encoded.ljust(NODE_HEADER_SIZE, b"\x00")

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> NodeHeader:
        """Read a header from the first ``NODE_HEADER_SIZE`` bytes of ``data``."""
        region = bytes(data[:NODE_HEADER_SIZE])
        magic_len = len(NODE_MAGIC)
        if len(region) <= magic_len:
            raise ValueError("data too short to hold a node header")
        kind, pos = decode_varint(region, magic_len)
        try:
            node_type = NodeType(kind)
        except ValueError:
            raise ValueError(f"unknown node type {kind}") from None

        limits = (_U32_MAX, _U32_MAX, _U32_MAX, _U16_MAX, _U32_MAX)
        names = (
            "free_space_start",
            "free_space_end",
            "items_stored",
            "first_free_block_offset",
            "rightmost_child",
        )
        values = []
        for name, limit in zip(names, limits):
            value, pos = decode_varint(region, pos)
            _check_range(name, value, 0, limit)
            values.append(value)
        parent, _ = decode_zigzag(region, pos)
        _check_range("parent", parent, _I32_MIN, _I32_MAX)

        return cls(node_type, *values, parent=parent, magic_numbers=region[:magic_len])


@dataclass(frozen=True)
class FreeBlock:
    """A released entry slot: pointer to the next free block and its size."""

    next_ptr: int
    total_size: int

    def encode(self) -> bytes:
        """Serialise to exactly four bytes."""
        _check_range("next_ptr", self.next_ptr, 0, _U16_MAX)
        _check_range("total_size", self.total_size, 0, _U16_MAX)
        encoded = encode_varint(self.next_ptr) + encode_varint(self.total_size)
        if len(encoded) > _FREE_BLOCK_SIZE:
            raise ValueError(
                f"free block {self} needs {len(encoded)} bytes, only {_FREE_BLOCK_SIZE} available"
            )
        return encoded.ljust(_FREE_BLOCK_SIZE, b"\x00")

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> FreeBlock:
        """Read a free block from the first four bytes of ``data``."""
        region = bytes(data[:_FREE_BLOCK_SIZE])
        next_ptr, pos = decode_varint(region, 0)
        total_size, _ = decode_varint(region, pos)
        _check_range("next_ptr", next_ptr, 0, _U16_MAX)
        _check_range("total_size", total_size, 0, _U16_MAX)
        return cls(next_ptr, total_size)


@dataclass
class Node:
    """A tree node held in memory together with its page buffer."""

    page_id: int
    page_buffer: bytearray
    header: NodeHeader
    offsets_array: list[int] = field(default_factory=list)

    @classmethod
    def create(cls, node_type: NodeType, pager: Pager) -> Node:
        """Make an empty node for the page that will next be appended to the file."""
        page_id = pager.next_page_id()
        header = NodeHeader(NodeType(node_type))
        header.free_space_start = _header_start(page_id) + NODE_HEADER_SIZE
        return cls(page_id, Pager.allocate_page_buffer(), header, [])

    @classmethod
    def load(cls, page_id: int, pager: Pager) -> Node:
        """Read the node stored on ``page_id``."""
        page_buffer, _ = pager.get_page(page_id)
        start = _header_start(page_id)
        header = NodeHeader.decode(page_buffer[start:start + NODE_HEADER_SIZE])
        offsets = _read_offsets(header, page_id, page_buffer)
        return cls(page_id, page_buffer, header, offsets)

    @property
    def _header_start(self) -> int:
        return _header_start(self.page_id)

    @property
    def _array_start(self) -> int:
        return self._header_start + NODE_HEADER_SIZE

    def encode_header(self) -> None:
        """Write the in-memory header into the page buffer."""
        start = self._header_start
        self.page_buffer[start:start + NODE_HEADER_SIZE] = self.header.encode()

    def first_free_block(self) -> FreeBlock | None:
        """The head of the free-block chain, or None when there is none."""
        offset = self.header.first_free_block_offset
        if offset == 0:
            logger.debug("No free blocks")
            return None
        logger.debug("Root free block at: %d", offset)
        return self._read_free_block(offset)

    def free_blocks(self) -> Iterator[FreeBlock]:
        """Iterate over the free-block chain from its head."""
        for _, block in self._free_chain():
            yield block

    def _free_chain(self) -> Iterator[tuple[int, FreeBlock]]:
        offset = self.header.first_free_block_offset
        seen: set[int] = set()
        while offset != 0:
            if offset in seen:
                raise ValueError(f"free block chain loops at offset {offset}")
            seen.add(offset)
            block = self._read_free_block(offset)
            yield offset, block
            offset = block.next_ptr

    def _read_free_block(self, offset: int) -> FreeBlock:
        if offset + _FREE_BLOCK_SIZE > len(self.page_buffer):
            raise ValueError(f"free block offset {offset} out of range")
        return FreeBlock.decode(self.page_buffer[offset:offset + _FREE_BLOCK_SIZE])

    def _write_free_block(self, offset: int, encoded: bytes) -> None:
        self.page_buffer[offset:offset + _FREE_BLOCK_SIZE] = encoded

    def decode_data_entry(self, entry_id: int) -> DataEntry:
        """Decode the entry at position ``entry_id`` in key order."""
        logger.debug("Decoding entry: %d out of %d", entry_id, len(self.offsets_array))
        if not 0 <= entry_id < len(self.offsets_array):
            raise IndexError(f"entry {entry_id} out of range ({len(self.offsets_array)} stored)")
        return decode_entry(self.page_buffer, self.offsets_array[entry_id], self.header.node_type)

    def insert_data_entry(self, entry: DataEntry) -> None:
        """Store ``entry``, reusing a free block that is large enough if there is one."""
        size = entry.size
        if self.header.free_space_start + _OFFSET_WIDTH > self.header.free_space_end:
            raise ValueError(f"node at page {self.page_id} has no room for another offset")

        previous: int | None = None
        for offset, block in list(self._free_chain()):
            if block.total_size >= size:
                logger.info("Found available free block at offset: %d", offset)
                self._unlink_free_block(previous, block)
                self.page_buffer[offset:offset + size] = entry.encode()
                self._insert_offset(entry, offset)
                self.encode_header()
                return
            previous = offset

        logger.debug("Appending entry to free space")
        record_offset = self.header.free_space_end - size
        if record_offset < self.header.free_space_start + _OFFSET_WIDTH:
            raise ValueError(
                f"node at page {self.page_id} overflowed: entry of {size} bytes does not fit"
            )
        self.page_buffer[record_offset:self.header.free_space_end] = entry.encode()
        self._insert_offset(entry, record_offset)
        self.header.free_space_end = record_offset
        self.encode_header()

    def _unlink_free_block(self, previous: int | None, block: FreeBlock) -> None:
        if previous is None:
            self.header.first_free_block_offset = block.next_ptr
            return
        prev_block = self._read_free_block(previous)
        self._write_free_block(
            previous, FreeBlock(block.next_ptr, prev_block.total_size).encode()
        )

    def _insert_offset(self, entry: DataEntry, entry_offset: int) -> None:
        index = next(
            (
                i
                for i in range(len(self.offsets_array))
                if self.decode_data_entry(i).key > entry.key
            ),
            len(self.offsets_array),
        )
        logger.debug("Offset index %d for new entry at offset %d", index, entry_offset)
        self.offsets_array.insert(index, entry_offset)
        self._write_offsets(vacated=0)
        self.header.items_stored += 1
        self.header.free_space_start += _OFFSET_WIDTH

    def _write_offsets(self, vacated: int) -> None:
        start = self._array_start
        encoded = b"".join(_encode_offset(o) for o in self.offsets_array)
        encoded += b"\x00" * (vacated * _OFFSET_WIDTH)
        self.page_buffer[start:start + len(encoded)] = encoded

    def remove_data_entry(self, entry_id: int) -> None:
        """Remove the entry at position ``entry_id`` and turn its slot into a free block."""
        entry = self.decode_data_entry(entry_id)
        entry_offset = self.offsets_array[entry_id]

        chain = list(self._free_chain())
        updated_left: tuple[int, bytes] | None = None
        if chain:
            index = next(
                (i for i, (_, block) in enumerate(chain) if block.next_ptr > entry_offset),
                len(chain) - 1,
            )
            left_ptr, left_block = chain[index]
            next_ptr = left_block.next_ptr
            updated_left = (left_ptr, FreeBlock(entry_offset, left_block.total_size).encode())
        else:
            next_ptr = 0
        new_block = FreeBlock(next_ptr, entry.size).encode()
        logger.debug("New free block at offset %d: next %d, size %d", entry_offset, next_ptr, entry.size)

        if updated_left is None:
            self.header.first_free_block_offset = entry_offset
        else:
            self._write_free_block(*updated_left)
        self._write_free_block(entry_offset, new_block)

        del self.offsets_array[entry_id]
        self._write_offsets(vacated=1)
        self.header.free_space_start -= _OFFSET_WIDTH
        self.header.items_stored -= 1
        self.encode_header()


def _header_start(page_id: int) -> int:
    return DB_HEADER_SIZE if page_id == 0 else 0


def _read_offsets(header: NodeHeader, page_id: int, page_buffer: bytearray) -> list[int]:
    array_start = _header_start(page_id) + NODE_HEADER_SIZE
    array_end = array_start + header.items_stored * _OFFSET_WIDTH
    if array_end > header.free_space_start or header.free_space_start > len(page_buffer):
        raise ValueError(
            f"node at page {page_id} claims {header.items_stored} items "
            f"but its offsets array ends at {header.free_space_start}"
        )
    return [
        _decode_offset(page_buffer, position)
        for position in range(array_start, array_end, _OFFSET_WIDTH)
    ]