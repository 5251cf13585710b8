# tinystore

tinystore is a small embedded key-value store. Keys and values are byte
strings. Records are kept in a single file as fixed-size pages of 4096
bytes, and those pages form a B+tree. The first page holds a short
database header and the tree's first root node. The package uses only the
standard library.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Usage

```python
from tinystore.connection import Config, Connection

with Connection.open("db", Config()) as conn:
    conn.put(b"alpha", b"one")
    conn.put(b"beta", b"two")
    conn.put(b"alpha", b"uno")   # replaces the earlier value
    print(conn.get(b"alpha"))    # b'uno'
```

- `Connection.open(db_path, config=None)` opens the file at `db_path`. If
  the file is empty, it is created and given an empty tree. `Config` has no
  options yet.
- `put(key, value)` stores `value` under `key`. If the key is already
  stored, the new value takes its place.
- `get(key)` returns the stored value. If the key is missing, it raises
  `tinystore.ops.RecordNotFoundError`, a subclass of both
  `tinystore.ops.StoreError` and `LookupError`.
- `close()` closes the file. A `Connection` can also be used as a context
  manager.

A record must fit in half a page. Its size is 8 bytes plus the key and
value lengths, and it may not exceed `tinystore.ops.MAX_ENTRY_SIZE`
(2023 bytes). `put` raises `StoreError` for a larger record. When a node
fills up it is split, and the tree grows a new root as needed.

## Command line

```
tinystore [--db PATH] [--count N] [--log-level {DEBUG,INFO,WARNING,ERROR}]
```

This opens or creates the database file (default `db` in the current
directory). It writes `N` random alphanumeric records (default 50), each
with a 10-character key and a 5-character value. It then reads every key
back. It exits with status 0 when every value matches. Otherwise it
reports the mismatch on standard error and exits with status 1.

## File layout

- Page 0 starts with a 12-byte database header: the 10-byte magic string
  `Tiny Store`, followed by the page id of the root node.
- Each node has a 30-byte node header. After it comes an array of record
  offsets, sorted by key, which grows forward. The records themselves grow
  backward from the end of the page.
- Space freed inside a page is kept in a linked list of free blocks and is
  reused by later inserts.
- Integers are stored as variable-length values (`tinystore.codec`). Page
  ids in the database header and free-block pointers are limited to
  16 bits.

## What it does not do

- There is no way to delete a key.
- Keys cannot be listed or iterated, and range queries are not supported.
- Nodes that become underfull are never merged.
- Writes go straight to the file. There are no transactions, no journal
  and no locking, so only one connection should use a file at a time.