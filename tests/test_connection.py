import pytest

from tinystore.connection import Config, Connection
from tinystore.constants import MAGIC_NUMBERS, PAGE_SIZE
from tinystore.ops import RecordNotFoundError


def test_open_creates_initialised_file(tmp_path):
    path = tmp_path / "db"
    with Connection.open(path, Config()):
        pass
    data = path.read_bytes()
    assert len(data) == PAGE_SIZE
    assert data[: len(MAGIC_NUMBERS)] == MAGIC_NUMBERS


def test_put_and_get(tmp_path):
    with Connection.open(tmp_path / "db", Config()) as conn:
        conn.put(b"hello", b"world")
        assert conn.get(b"hello") == b"world"


def test_missing_key(tmp_path):
    with Connection.open(tmp_path / "db") as conn:
        with pytest.raises(RecordNotFoundError):
            conn.get(b"absent")


def test_put_updates_existing(tmp_path):
    with Connection.open(tmp_path / "db") as conn:
        conn.put(b"k", b"first")
        conn.put(b"k", b"second")
        assert conn.get(b"k") == b"second"


def test_data_persists_across_reopen(tmp_path):
    path = tmp_path / "db"
    records = {f"k{i:04d}".encode(): f"v{i}".encode() for i in range(300)}
    with Connection.open(path) as conn:
        for key, value in records.items():
            conn.put(key, value)
    size_after_write = path.stat().st_size
    assert size_after_write > PAGE_SIZE

    with Connection.open(path) as conn:
        for key, value in records.items():
            assert conn.get(key) == value
    assert path.stat().st_size == size_after_write


def test_reopen_does_not_reinitialise(tmp_path):
    path = tmp_path / "db"
    with Connection.open(path) as conn:
        conn.put(b"a", b"b")
    with Connection.open(path) as conn:
        assert conn.get(b"a") == b"b"
    assert path.stat().st_size == PAGE_SIZE


def test_close_closes_file(tmp_path):
    conn = Connection.open(tmp_path / "db")
    conn.close()
    with pytest.raises(ValueError):
        conn.get(b"a")