"""
Unit tests for offset stores.
"""

import pytest

from provenance_relay.errors import StorageError
from provenance_relay.offsets import FileOffsetStore, MemoryOffsetStore


def test_load_missing_file_returns_none(offset_store):
    """No previous run means no stored position."""
    assert offset_store.load() is None


def test_save_then_load(offset_store, state_file):
    """Saved offset is stored as a decimal string and read back."""
    offset_store.save(13)
    assert state_file.read_text() == "13"
    assert FileOffsetStore(state_file).load() == 13


def test_save_creates_parent_directories(tmp_path):
    path = tmp_path / "a" / "b" / "relay.state"
    FileOffsetStore(path).save(1)
    assert path.exists()


def test_load_tolerates_whitespace(state_file):
    state_file.parent.mkdir(parents=True)
    state_file.write_text(" 42\n")
    assert FileOffsetStore(state_file).load() == 42


@pytest.mark.parametrize("content", ["abc", "", "-5", "12.5", "1 2"])
def test_load_corrupt_raises_storage_error(state_file, content):
    """Non-numeric state is a StorageError, not a silent reset."""
    state_file.parent.mkdir(parents=True)
    state_file.write_text(content)
    with pytest.raises(StorageError, match="Corrupt offset"):
        FileOffsetStore(state_file).load()


def test_load_non_utf8_raises_storage_error(state_file):
    """Binary garbage left by a torn write is reported as corruption."""
    state_file.parent.mkdir(parents=True)
    state_file.write_bytes(b"\xff\xfe12")
    with pytest.raises(StorageError, match="Corrupt offset"):
        FileOffsetStore(state_file).load()


def test_offset_never_moves_backwards(offset_store):
    offset_store.save(10)
    with pytest.raises(StorageError, match="backwards"):
        offset_store.save(9)
    offset_store.save(10)  # same value is fine


def test_backwards_check_uses_loaded_value(state_file):
    FileOffsetStore(state_file).save(20)
    store = FileOffsetStore(state_file)
    assert store.load() == 20
    with pytest.raises(StorageError):
        store.save(5)


def test_negative_offset_rejected(offset_store):
    with pytest.raises(StorageError):
        offset_store.save(-1)


def test_save_io_failure_is_storage_error(tmp_path):
    """A directory in place of the state file makes the write fail."""
    path = tmp_path / "relay.state"
    path.mkdir()
    with pytest.raises(StorageError, match="Failed to update state file"):
        FileOffsetStore(path).save(3)


def test_atomic_mode_replaces_file(state_file):
    """atomic=True leaves no temp file behind and the value is readable."""
    store = FileOffsetStore(state_file, atomic=True)
    store.save(7)
    store.save(8)
    assert state_file.read_text() == "8"
    assert not state_file.with_name(state_file.name + ".tmp").exists()


def test_clear_removes_state(offset_store, state_file):
    offset_store.save(5)
    offset_store.clear()
    assert not state_file.exists()
    assert offset_store.load() is None
    offset_store.clear()  # idempotent
    offset_store.save(1)  # backwards check was reset


def test_memory_store_records_saves():
    store = MemoryOffsetStore()
    assert store.load() is None
    store.save(3)
    store.save(6)
    assert store.load() == 6
    assert store.saves == [3, 6]
    with pytest.raises(StorageError):
        store.save(2)
