"""Disk-backed memory blob (atomic writes, serialized per file)."""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

from .errors import StorageCorruptError, StorageError, StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MEMORY = "{}"
DEFAULT_PATH = "memory.json"


# -----------------------------
# Helpers
# -----------------------------
_locks: Dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    # Every store pointing at the same file shares one lock.
    with _locks_guard:
        lock = _locks.get(path)
        if lock is None:
            lock = _locks[path] = threading.RLock()
        return lock


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("wb", delete=False, dir=str(path.parent), prefix=f".{path.name}.") as tmp:
        tmp_name = tmp.name
        try:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        except BaseException:
            tmp.close()
            os.unlink(tmp_name)
            raise
    try:
        os.replace(tmp_name, path)
    except BaseException:
        os.unlink(tmp_name)
        raise


# -----------------------------
# MemoryStore
# -----------------------------
class MemoryStore:
    """Single-file store for the distilled memory blob.

    The blob is opaque text. Whatever the provider distilled is written back
    byte for byte, and :meth:`load` returns it unchanged. A missing file is the
    normal first-run state and yields :data:`DEFAULT_MEMORY`.

    Layout:
        <path>                 # current blob, replaced atomically
        .<name>.<random>       # short-lived temp file during save()
    """

    def __init__(self, path: str | os.PathLike[str] = DEFAULT_PATH, *, default: str = DEFAULT_MEMORY) -> None:
        self.path = Path(path)
        self.default = default
        self._lock = _lock_for(self.path.resolve())

    # --------- core API ----------
    def load(self) -> str:
        """Return the persisted blob, or the default when there is none."""
        try:
            return self._read()
        except FileNotFoundError:
            logger.debug("No memory at %s; starting from default.", self.path)
            return self.default
        except StorageCorruptError as e:
            logger.warning("Ignoring unusable memory at %s: %s", self.path, e)
            return self.default
        except OSError as e:
            raise StorageUnavailableError(f"cannot read memory at {self.path}: {e}") from e

    def save(self, memory: str) -> None:
        """Persist ``memory`` atomically; readers see the old or the new blob."""
        if not isinstance(memory, str):
            raise TypeError("memory must be a str")
        try:
            data = memory.encode("utf-8")
        except UnicodeEncodeError as e:
            raise StorageError(f"memory cannot be stored as UTF-8: {e}") from e
        try:
            with self._lock:
                _atomic_write_bytes(self.path, data)
        except OSError as e:
            raise StorageUnavailableError(f"cannot write memory to {self.path}: {e}") from e
        logger.debug("Saved %d chars of memory to %s", len(memory), self.path)

    # --------- serialization ----------
    @contextmanager
    def locked(self) -> Iterator["MemoryStore"]:
        """Hold the per-file lock for a whole load -> mutate -> save cycle."""
        with self._lock:
            yield self

    def update(self, fn: Callable[[str], str]) -> str:
        """Apply ``fn`` to the current blob and save the result as one step."""
        with self.locked():
            new = fn(self.load())
            self.save(new)
            return new

    # --------- convenience ----------
    def exists(self) -> bool:
        return self.path.is_file()

    def clear(self) -> None:
        """Delete the persisted blob so the next load returns the default."""
        try:
            with self._lock:
                self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"cannot delete memory at {self.path}: {e}") from e

    # --------- internals ----------
    def _read(self) -> str:
        raw = self.path.read_bytes()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StorageCorruptError(f"not valid UTF-8: {e}") from e
        if not text.strip():
            raise StorageCorruptError("memory file is empty")
        return text

    def __repr__(self) -> str:
        return f"MemoryStore(path={str(self.path)!r})"


def create_from_config(cfg: Dict[str, Any]) -> MemoryStore:
    """Create a MemoryStore from the ``memory`` section of a config dict."""
    mem_cfg = ((cfg or {}).get("memory") if isinstance(cfg, dict) else None) or {}
    return MemoryStore(
        mem_cfg.get("path") or DEFAULT_PATH,
        default=str(mem_cfg.get("default") or DEFAULT_MEMORY),
    )
