import pytest

from tinystore.constants import DB_HEADER_SIZE, PAGE_SIZE
from tinystore.entry import InternalEntry, LeafEntry
from tinystore.node import NODE_HEADER_SIZE, FreeBlock, Node, NodeHeader, NodeType
from tinystore.pager import Pager


@pytest.fixture
def pager(tmp_path):
    p = Pager(tmp_path / "db")
    yield p
    p.close()


def _leaf_on_page_one(pager):
    pager.save_page(Pager.allocate_page_buffer())
    return Node.create(NodeType.LEAF, pager)


def _keys(node):
    return [node.decode_data_entry(i).key for i in range(len(node.offsets_array))]


def test_header_default_bytes():
    encoded = NodeHeader(NodeType.LEAF).encode()
    assert len(encoded) == NODE_HEADER_SIZE
    assert encoded == (b"PAGE\x01\x1e\xfb\x00\x10\x00\x00\x00\x01").ljust(NODE_HEADER_SIZE, b"\x00")


def test_header_round_trip():
    header = NodeHeader(
        NodeType.INTERNAL,
        free_space_start=42,
        free_space_end=3000,
        items_stored=3,
        first_free_block_offset=1234,
        rightmost_child=7,
        parent=5,
    )
    assert NodeHeader.decode(header.encode()) == header


def test_header_defaults_follow_page_layout():
    header = NodeHeader(NodeType.LEAF)
    assert header.free_space_start == NODE_HEADER_SIZE
    assert header.free_space_end == PAGE_SIZE
    assert header.parent == -1
    assert header.magic_numbers == b"PAGE"


def test_header_unknown_node_type():
    data = b"PAGE\x07" + bytes(NODE_HEADER_SIZE - 5)
    with pytest.raises(ValueError):
        NodeHeader.decode(data)


def test_header_parent_out_of_range():
    with pytest.raises(ValueError):
        NodeHeader(NodeType.LEAF, parent=1 << 40).encode()


def test_free_block_round_trip_and_bytes():
    block = FreeBlock(0, 23)
    assert block.encode() == b"\x00\x17\x00\x00"
    assert FreeBlock.decode(FreeBlock(4000, 20).encode()) == FreeBlock(4000, 20)


def test_free_block_too_wide():
    with pytest.raises(ValueError):
        FreeBlock(4000, 4000).encode()


def test_create_uses_next_page(pager):
    node = _leaf_on_page_one(pager)
    assert node.page_id == 1
    assert node.header.node_type is NodeType.LEAF
    assert node.header.free_space_start == NODE_HEADER_SIZE
    assert node.offsets_array == []
    assert node.first_free_block() is None


def test_insert_keeps_keys_sorted(pager):
    node = _leaf_on_page_one(pager)
    entries = [LeafEntry(k, b"v" + k) for k in (b"m", b"c", b"x", b"a", b"k")]
    for e in entries:
        node.insert_data_entry(e)
    assert _keys(node) == sorted(e.key for e in entries)
    assert node.header.items_stored == len(entries)
    assert node.header.free_space_start == NODE_HEADER_SIZE + 4 * len(entries)
    assert node.header.free_space_end == PAGE_SIZE - sum(e.size for e in entries)
    assert node.decode_data_entry(0) == LeafEntry(b"a", b"va")


def test_save_and_load_round_trip(pager):
    node = _leaf_on_page_one(pager)
    for k in (b"delta", b"alpha", b"charlie"):
        node.insert_data_entry(LeafEntry(k, k.upper()))
    page_id = pager.save_page(node.page_buffer)
    loaded = Node.load(page_id, pager)
    assert loaded.header == node.header
    assert loaded.offsets_array == node.offsets_array
    assert _keys(loaded) == [b"alpha", b"charlie", b"delta"]
    assert loaded.decode_data_entry(1) == LeafEntry(b"charlie", b"CHARLIE")


def test_page_zero_leaves_db_header_space(pager):
    node = Node.create(NodeType.LEAF, pager)
    assert node.page_id == 0
    assert node.header.free_space_start == DB_HEADER_SIZE + NODE_HEADER_SIZE
    node.encode_header()
    node.insert_data_entry(LeafEntry(b"key", b"value"))
    pager.save_page(node.page_buffer)
    loaded = Node.load(0, pager)
    assert loaded.page_buffer[:DB_HEADER_SIZE] == bytes(DB_HEADER_SIZE)
    assert loaded.decode_data_entry(0) == LeafEntry(b"key", b"value")


def test_internal_entries(pager):
    pager.save_page(Pager.allocate_page_buffer())
    node = Node.create(NodeType.INTERNAL, pager)
    node.insert_data_entry(InternalEntry(b"q", 9))
    node.insert_data_entry(InternalEntry(b"b", 4))
    assert node.decode_data_entry(0) == InternalEntry(b"b", 4)
    assert node.decode_data_entry(1) == InternalEntry(b"q", 9)


def test_remove_creates_free_block(pager):
    node = _leaf_on_page_one(pager)
    for k in (b"a", b"b", b"c"):
        node.insert_data_entry(LeafEntry(k, b"1"))
    removed_offset = node.offsets_array[1]
    size = LeafEntry(b"b", b"1").size
    node.remove_data_entry(1)
    assert _keys(node) == [b"a", b"c"]
    assert node.header.items_stored == 2
    assert node.header.free_space_start == NODE_HEADER_SIZE + 8
    assert node.header.first_free_block_offset == removed_offset
    assert list(node.free_blocks()) == [FreeBlock(0, size)]


def test_remove_survives_reload(pager):
    node = _leaf_on_page_one(pager)
    for k in (b"a", b"b", b"c", b"d"):
        node.insert_data_entry(LeafEntry(k, k * 2))
    node.remove_data_entry(3)
    node.remove_data_entry(0)
    page_id = pager.save_page(node.page_buffer)
    loaded = Node.load(page_id, pager)
    assert _keys(loaded) == [b"b", b"c"]
    assert loaded.decode_data_entry(1) == LeafEntry(b"c", b"cc")
    blocks = list(loaded.free_blocks())
    assert len(blocks) == 2
    assert sum(b.total_size for b in blocks) == 2 * LeafEntry(b"a", b"aa").size


def test_insert_reuses_free_block(pager):
    node = _leaf_on_page_one(pager)
    for k in (b"a", b"b", b"c"):
        node.insert_data_entry(LeafEntry(k, b"1"))
    end_before = node.header.free_space_end
    removed_offset = node.offsets_array[1]
    node.remove_data_entry(1)
    node.insert_data_entry(LeafEntry(b"d", b"2"))
    assert node.header.free_space_end == end_before
    assert node.offsets_array[-1] == removed_offset
    assert node.header.first_free_block_offset == 0
    assert list(node.free_blocks()) == []
    assert _keys(node) == [b"a", b"c", b"d"]


def test_reuse_unlinks_middle_of_chain(pager):
    node = _leaf_on_page_one(pager)
    for k in (b"a", b"b", b"c", b"d"):
        node.insert_data_entry(LeafEntry(k, b"x"))
    node.remove_data_entry(0)
    node.remove_data_entry(0)
    assert len(list(node.free_blocks())) == 2
    node.insert_data_entry(LeafEntry(b"e", b"y"))
    assert len(list(node.free_blocks())) == 1
    assert _keys(node) == [b"c", b"d", b"e"]
    assert node.decode_data_entry(2) == LeafEntry(b"e", b"y")


def test_overflow_raises(pager):
    node = _leaf_on_page_one(pager)
    with pytest.raises(ValueError):
        node.insert_data_entry(LeafEntry(b"k", b"v" * PAGE_SIZE))
    assert node.header.items_stored == 0


def test_decode_out_of_range(pager):
    node = _leaf_on_page_one(pager)
    node.insert_data_entry(LeafEntry(b"a", b"b"))
    with pytest.raises(IndexError):
        node.decode_data_entry(1)
    with pytest.raises(IndexError):
        node.remove_data_entry(5)