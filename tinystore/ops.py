"""B+tree operations over the pages of a database file."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from .constants import DB_HEADER_SIZE, MAGIC_NUMBERS, PAGE_SIZE, DBHeader
from .entry import DataEntry, InternalEntry, LeafEntry
from .node import NODE_HEADER_SIZE, Node, NodeHeader, NodeType
from .pager import Pager

logger = logging.getLogger(__name__)

_OFFSET_WIDTH = 4
# A leaf must always be able to hold two records, or splitting could not make room.
MAX_ENTRY_SIZE = (PAGE_SIZE - DB_HEADER_SIZE - NODE_HEADER_SIZE) // 2 - _OFFSET_WIDTH


class StoreError(Exception):
    """Raised when the store cannot complete an operation."""


class RecordNotFoundError(StoreError, LookupError):
    """Raised when a key is not present in the store."""


def _array_start(page_id: int) -> int:
    return (DB_HEADER_SIZE if page_id == 0 else 0) + NODE_HEADER_SIZE


def _entries(node: Node) -> Iterator[DataEntry]:
    for index in range(len(node.offsets_array)):
        yield node.decode_data_entry(index)


def _fits(node: Node, entry: DataEntry) -> bool:
    free = node.header.free_space_end - node.header.free_space_start
    if free < _OFFSET_WIDTH:
        return False
    if free >= entry.size + _OFFSET_WIDTH:
        return True
    return any(block.total_size >= entry.size for block in node.free_blocks())


def _required(entries: Sequence[DataEntry]) -> int:
    return sum(entry.size + _OFFSET_WIDTH for entry in entries)


def _capacity(page_id: int) -> int:
    return PAGE_SIZE - _array_start(page_id)


def _rebuild(node: Node, entries: Sequence[DataEntry]) -> None:
    """Rewrite the node's page so that it holds exactly ``entries``, compacted."""
    start = _array_start(node.page_id)
    old = node.header
    node.page_buffer[start:] = bytes(len(node.page_buffer) - start)
    node.header = NodeHeader(
        old.node_type,
        free_space_start=start,
        free_space_end=PAGE_SIZE,
        rightmost_child=old.rightmost_child,
        parent=old.parent,
    )
    node.offsets_array = []
    node.encode_header()
    for entry in sorted(entries, key=lambda e: e.key):
        node.insert_data_entry(entry)


def _reload(node: Node, pager: Pager) -> None:
    fresh = Node.load(node.page_id, pager)
    node.page_buffer = fresh.page_buffer
    node.header = fresh.header
    node.offsets_array = fresh.offsets_array


def _set_root(pager: Pager, page_id: int) -> None:
    buffer, _ = pager.get_page(0)
    header = DBHeader.decode(buffer)
    header.root_node = page_id
    buffer[:DB_HEADER_SIZE] = header.encode()
    pager.save_page(buffer, 0)
    logger.info("New root node at page id: %d", page_id)


def _set_parent(pager: Pager, page_id: int, parent_id: int) -> None:
    child = Node.load(page_id, pager)
    child.header.parent = parent_id
    child.encode_header()
    pager.save_page(child.page_buffer, page_id)


def initialize_tree(page_buffer: bytearray) -> None:
    """Write an empty root leaf after the database header of the first page."""
    header = NodeHeader(
        NodeType.LEAF,
        free_space_start=DB_HEADER_SIZE + NODE_HEADER_SIZE,
        free_space_end=PAGE_SIZE,
    )
    page_buffer[DB_HEADER_SIZE:DB_HEADER_SIZE + NODE_HEADER_SIZE] = header.encode()


def get_db_header(pager: Pager) -> DBHeader:
    """Read the database header from the first page."""
    buffer, _ = pager.get_page(0)
    header = DBHeader.decode(buffer)
    if header.magic_numbers != MAGIC_NUMBERS:
        raise StoreError("file is not an initialised database")
    return header


def search(key: bytes, pager: Pager) -> Node:
    """Descend from the root to the leaf that holds, or would hold, ``key``."""
    key = bytes(key)
    page_id = get_db_header(pager).root_node
    logger.debug("Starting b+tree search at root id: %d", page_id)
    visited: set[int] = set()
    while True:
        if page_id in visited:
            raise StoreError(f"tree contains a cycle through page {page_id}")
        visited.add(page_id)
        logger.debug("Searching node at page id: %d", page_id)
        node = Node.load(page_id, pager)
        if node.header.node_type == NodeType.LEAF:
            return node
        page_id = next(
            (entry.child for entry in _entries(node) if entry.key > key),
            node.header.rightmost_child,
        )


def get_record(key: bytes, pager: Pager) -> bytes:
    """Return the value stored for ``key``."""
    key = bytes(key)
    node = search(key, pager)
    for entry in _entries(node):
        if not isinstance(entry, LeafEntry):
            raise StoreError("Got internal entry")
        if entry.key == key:
            return entry.value
    raise RecordNotFoundError(key)


def insert_record(key: bytes, value: bytes, pager: Pager) -> None:
    """Store ``value`` under ``key``, replacing any value already stored there."""
    entry = LeafEntry(bytes(key), bytes(value))
    if entry.size > MAX_ENTRY_SIZE:
        raise StoreError(
            f"record of {entry.size} bytes exceeds the limit of {MAX_ENTRY_SIZE} bytes"
        )

    while True:
        node = search(entry.key, pager)
        entries = list(_entries(node))
        existing = next((i for i, e in enumerate(entries) if e.key == entry.key), None)
        if existing is None:
            if _fits(node, entry):
                node.insert_data_entry(entry)
                pager.save_page(node.page_buffer, node.page_id)
                return
        else:
            entries[existing] = entry
            if _required(entries) <= _capacity(node.page_id):
                _rebuild(node, entries)
                pager.save_page(node.page_buffer, node.page_id)
                return
        logger.info("Node at id: %d overflowed", node.page_id)
        split_node(node, pager)


def split_node(node: Node, pager: Pager) -> None:
    """Move the upper half of ``node`` to a new right sibling and link it into the parent."""
    count = len(node.offsets_array)
    if count == 0:
        raise StoreError(f"cannot split empty node at page {node.page_id}")

    is_leaf = node.header.node_type == NodeType.LEAF
    cut = count - (count + 1) // 2 if is_leaf else count // 2
    separator_entry = InternalEntry(node.decode_data_entry(cut).key, node.page_id)

    while node.header.parent >= 0:
        parent = Node.load(node.header.parent, pager)
        if _fits(parent, separator_entry):
            break
        split_node(parent, pager)
        _reload(node, pager)

    entries = list(_entries(node))
    if is_leaf:
        left_entries, right_entries = entries[:cut], entries[cut:]
        left_rightmost = node.header.rightmost_child
        right_rightmost = 0
        moved_children: list[int] = []
    else:
        left_entries, right_entries = entries[:cut], entries[cut + 1:]
        left_rightmost = entries[cut].child
        right_rightmost = node.header.rightmost_child
        moved_children = [e.child for e in right_entries] + [right_rightmost]

    right = Node.create(node.header.node_type, pager)
    right.header.rightmost_child = right_rightmost
    _rebuild(right, right_entries)
    pager.save_page(right.page_buffer, None)

    new_root: int | None = None
    if node.header.parent < 0:
        parent = Node.create(NodeType.INTERNAL, pager)
        parent.header.rightmost_child = right.page_id
        parent.insert_data_entry(separator_entry)
        pager.save_page(parent.page_buffer, None)
        new_root = parent.page_id
    else:
        parent = Node.load(node.header.parent, pager)
        parent_entries = list(_entries(parent))
        index = next(
            (i for i, e in enumerate(parent_entries) if e.child == node.page_id), None
        )
        if index is not None:
            parent_entries[index] = InternalEntry(parent_entries[index].key, right.page_id)
        elif parent.header.rightmost_child == node.page_id:
            parent.header.rightmost_child = right.page_id
        else:
            raise StoreError(
                f"page {parent.page_id} is not the parent of page {node.page_id}"
            )
        parent_entries.append(separator_entry)
        _rebuild(parent, parent_entries)
        pager.save_page(parent.page_buffer, parent.page_id)
    logger.info("Split node %d into right node %d under parent %d",
                node.page_id, right.page_id, parent.page_id)

    right.header.parent = parent.page_id
    right.encode_header()
    pager.save_page(right.page_buffer, right.page_id)

    node.header.parent = parent.page_id
    node.header.rightmost_child = left_rightmost
    _rebuild(node, left_entries)
    pager.save_page(node.page_buffer, node.page_id)

    for child_id in moved_children:
        _set_parent(pager, child_id, right.page_id)

    if new_root is not None:
        _set_root(pager, new_root)