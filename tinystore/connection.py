"""Public key-value interface to a database file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from types import TracebackType

from .constants import DB_HEADER_SIZE, DBHeader
from .ops import get_record, initialize_tree, insert_record
from .pager import Pager


@dataclass
class Config:
    """Connection options."""


class Connection:
    """An open database: ``put`` stores or replaces a value, ``get`` reads it back."""

    def __init__(self, pager: Pager) -> None:
        self._pager = pager

    @classmethod
    def open(cls, db_path: str | os.PathLike[str], config: Config | None = None) -> Connection:
        """Open the database at ``db_path``, creating and initialising it if needed."""
        pager = Pager(db_path)
        try:
            connection = cls(pager)
            connection._initialize()
        except BaseException:
            pager.close()
            raise
        return connection

    def _initialize(self) -> None:
        _, bytes_read = self._pager.get_page(0)
        if bytes_read:
            return
        payload = Pager.allocate_page_buffer()
        payload[:DB_HEADER_SIZE] = DBHeader().encode()
        initialize_tree(payload)
        self._pager.save_page(payload, None)

    def put(self, key: bytes, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any existing value."""
        insert_record(key, value, self._pager)

    def get(self, key: bytes) -> bytes:
        """Return the value stored under ``key``."""
        return get_record(key, self._pager)

    def close(self) -> None:
        """Close the database file."""
        self._pager.close()

    def __enter__(self) -> Connection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()