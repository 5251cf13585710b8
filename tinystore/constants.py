"""Database-wide constants and the header stored at the start of page 0."""

from __future__ import annotations

from dataclasses import dataclass

from .codec import decode_varint, encode_varint

DB_HEADER_SIZE = 12
PAGE_SIZE = 4096

MAGIC_NUMBERS = b"Tiny Store"

_U16_MAX = 0xFFFF


@dataclass
class DBHeader:
    """Database header: magic bytes followed by the root node's page id."""

    root_node: int = 0
    magic_numbers: bytes = MAGIC_NUMBERS

    def encode(self) -> bytes:
        """Serialise the header, zero-padded to ``DB_HEADER_SIZE`` bytes."""
        if len(self.magic_numbers) != len(MAGIC_NUMBERS):
            raise ValueError(f"magic numbers must be {len(MAGIC_NUMBERS)} bytes")
        if not 0 <= self.root_node <= _U16_MAX:
            raise ValueError(f"root node id {self.root_node} does not fit in 16 bits")
        encoded = bytes(self.magic_numbers) + encode_varint(self.root_node)
        if len(encoded) > DB_HEADER_SIZE:
            raise ValueError(
                f"encoded header needs {len(encoded)} bytes, only {DB_HEADER_SIZE} reserved"
            )
        return encoded.ljust(DB_HEADER_SIZE, b"\x00")

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> DBHeader:
        """Read a header from the first ``DB_HEADER_SIZE`` bytes of ``data``."""
        region = bytes(data[:DB_HEADER_SIZE])
        magic_len = len(MAGIC_NUMBERS)
        if len(region) <= magic_len:
            raise ValueError("data too short to hold a database header")
        root_node, _ = decode_varint(region, magic_len)
        if root_node > _U16_MAX:
            raise ValueError(f"root node id {root_node} does not fit in 16 bits")
        return cls(root_node=root_node, magic_numbers=region[:magic_len])