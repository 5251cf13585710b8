"""Page-granular access to the database file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from types import TracebackType

from .constants import PAGE_SIZE

logger = logging.getLogger(__name__)


class Pager:
    """Reads and writes fixed-size pages of a single database file."""

    def __init__(self, db_path: str | os.PathLike[str]) -> None:
        flags = os.O_RDWR | os.O_CREAT | getattr(os, "O_BINARY", 0)
        fd = os.open(Path(db_path), flags, 0o644)
        self._file = os.fdopen(fd, "r+b")

    @staticmethod
    def allocate_page_buffer() -> bytearray:
        """Return a zero-filled buffer the size of one page."""
        return bytearray(PAGE_SIZE)

    def next_page_id(self) -> int:
        """Id the next page appended to the file will receive."""
        return self._file.seek(0, os.SEEK_END) // PAGE_SIZE

    def get_page(self, page_id: int) -> tuple[bytearray, int]:
        """Read a page; return the buffer and the number of bytes actually read."""
        buffer = self.allocate_page_buffer()
        self._file.seek(page_id * PAGE_SIZE)
        data = self._file.read(PAGE_SIZE)
        buffer[: len(data)] = data
        return buffer, len(data)

    def save_page(self, page_buffer: bytes | bytearray, page_id: int | None = None) -> int:
        """Write a page, appending a new one when ``page_id`` is None; return its id."""
        if page_id is None:
            if len(page_buffer) != PAGE_SIZE:
                raise ValueError(
                    f"new page must be {PAGE_SIZE} bytes, got {len(page_buffer)}"
                )
            pos = self._file.seek(0, os.SEEK_END)
            if pos % PAGE_SIZE:
                raise ValueError(f"database file size {pos} is not a multiple of the page size")
            new_page_id = pos // PAGE_SIZE
            logger.info("Creating new page at id: %d", new_page_id)
            self._file.write(page_buffer)
            self._file.flush()
            return new_page_id

        logger.info("Writing %d bytes to page at id: %d", len(page_buffer), page_id)
        self._file.seek(page_id * PAGE_SIZE)
        self._file.write(page_buffer)
        self._file.flush()
        return page_id

    def close(self) -> None:
        """Close the underlying file."""
        self._file.close()

    def __enter__(self) -> Pager:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()