from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from memo_assistant.errors import StorageError, StorageUnavailableError
from memo_assistant.memory import DEFAULT_MEMORY, MemoryStore, create_from_config


def test_load_missing_returns_default(tmp_data_dir: Path):
    store = MemoryStore(tmp_data_dir / "memory.json")
    assert store.load() == DEFAULT_MEMORY == "{}"
    assert not store.exists()


@pytest.mark.parametrize(
    "blob",
    [
        '{"name":"Felix"}',
        "{name: 'Felix'}",
        "line one\r\nline two\n",
        '  {"emoji": "Ã©âº"}  \n',
    ],
)
def test_save_then_load_is_bit_exact(tmp_data_dir: Path, blob: str):
    path = tmp_data_dir / "memory.json"
    MemoryStore(path).save(blob)
    # A fresh instance stands in for a new process.
    assert MemoryStore(path).load() == blob
    assert path.read_bytes() == blob.encode("utf-8")


def test_save_creates_parent_dirs(tmp_path: Path):
    path = tmp_path / "nested" / "deeper" / "memory.json"
    MemoryStore(path).save("{}")
    assert path.read_text(encoding="utf-8") == "{}"


def test_save_leaves_no_temp_files(tmp_data_dir: Path):
    store = MemoryStore(tmp_data_dir / "memory.json")
    store.save("{a}")
    store.save("{b}")
    assert [p.name for p in tmp_data_dir.iterdir()] == ["memory.json"]


def test_corrupt_bytes_fall_back_to_default(tmp_data_dir: Path):
    path = tmp_data_dir / "memory.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    assert MemoryStore(path).load() == DEFAULT_MEMORY
    # The broken file is not touched by a load.
    assert path.read_bytes() == b"\xff\xfe\x00garbage"


def test_blank_file_falls_back_to_default(tmp_data_dir: Path):
    path = tmp_data_dir / "memory.json"
    path.write_text("  \n", encoding="utf-8")
    assert MemoryStore(path).load() == DEFAULT_MEMORY


def test_unreadable_location_raises(tmp_data_dir: Path):
    # A directory where the file should be cannot be read as a blob.
    path = tmp_data_dir / "memory.json"
    path.mkdir()
    store = MemoryStore(path)
    with pytest.raises(StorageUnavailableError):
        store.load()
    with pytest.raises(StorageUnavailableError):
        store.save("{}")


def test_save_rejects_non_text(tmp_data_dir: Path):
    with pytest.raises(TypeError):
        MemoryStore(tmp_data_dir / "m.json").save({"a": 1})  # type: ignore[arg-type]


def test_clear(tmp_data_dir: Path):
    store = MemoryStore(tmp_data_dir / "memory.json")
    store.save('{"x":1}')
    assert store.exists()
    store.clear()
    assert not store.exists()
    assert store.load() == DEFAULT_MEMORY
    store.clear()  # clearing twice is fine


def test_custom_default(tmp_data_dir: Path):
    store = MemoryStore(tmp_data_dir / "m.json", default="{history:[]}")
    assert store.load() == "{history:[]}"


def test_create_from_config(tmp_data_dir: Path):
    path = tmp_data_dir / "cfg.json"
    store = create_from_config({"memory": {"path": str(path)}})
    assert store.path == path
    assert store.load() == DEFAULT_MEMORY


def test_create_from_config_with_empty_section():
    for cfg in ({"memory": None}, {"memory": {"path": None, "default": None}}, {}):
        store = create_from_config(cfg)
        assert store.path == Path("memory.json")
        assert store.default == DEFAULT_MEMORY


def test_lone_surrogate_is_a_storage_error(tmp_data_dir: Path):
    path = tmp_data_dir / "memory.json"
    store = MemoryStore(path)
    store.save('{"mood":"😀"}')
    before = path.read_bytes()

    with pytest.raises(StorageError):
        store.save('{"mood":"\ud83d"}')
    assert path.read_bytes() == before
    assert list(tmp_data_dir.iterdir()) == [path]


def test_overlapping_updates_are_not_lost(tmp_data_dir: Path):
    path = tmp_data_dir / "memory.json"
    MemoryStore(path).save("start")

    def add(tag: str) -> None:
        # Separate instances, same file: they must still serialize.
        store = MemoryStore(path)

        def mutate(current: str) -> str:
            time.sleep(0.05)  # widen the window between load and save
            return f"{current}+{tag}"

        store.update(mutate)

    threads = [threading.Thread(target=add, args=(t,)) for t in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    final = MemoryStore(path).load()
    assert final in ("start+a+b", "start+b+a")


def test_locked_is_reentrant(tmp_data_dir: Path):
    store = MemoryStore(tmp_data_dir / "memory.json")
    with store.locked():
        with store.locked():
            store.save("nested")
        assert store.update(lambda cur: cur + "!") == "nested!"
