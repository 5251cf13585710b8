"""Command that fills a database with random records and reads them back."""

from __future__ import annotations

import argparse
import logging
import random
import string
import sys
from collections.abc import Sequence

from .connection import Config, Connection

_ALPHANUMERIC = string.ascii_letters + string.digits


def random_string(n: int) -> str:
    """Return ``n`` random ASCII letters and digits."""
    return "".join(random.choices(_ALPHANUMERIC, k=n))


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tinystore",
        description="Store random records in a database and verify them.",
    )
    parser.add_argument("--db", default="db", help="database file (default: db)")
    parser.add_argument("--count", type=int, default=50, help="records to write (default: 50)")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command; return the exit status."""
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level)

    entries = {random_string(10): random_string(5) for _ in range(args.count)}

    with Connection.open(args.db, Config()) as connection:
        for key, value in entries.items():
            connection.put(key.encode(), value.encode())
        for key, value in entries.items():
            returned = connection.get(key.encode())
            if returned != value.encode():
                print(
                    f"value mismatch for key {key!r}: expected {value!r}, got {returned!r}",
                    file=sys.stderr,
                )
                return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())