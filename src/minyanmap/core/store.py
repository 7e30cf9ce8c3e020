from __future__ import annotations

from hashlib import sha256
from pathlib import Path

"""
Small key-value stores for device-local state.

The proximity ledger only needs `get(key) -> str | None` and `set(key, str)`:
- `FileKeyValueStore` keeps one file per key under `.cache/minyanmap/` by default.
  Keys are hashed (SHA-256) to avoid filesystem path issues.
- `MemoryKeyValueStore` keeps values in a dict (tests, ephemeral sessions).

Both raise on I/O failure; callers decide whether that is fatal.
"""


class FileKeyValueStore:
    """A filesystem-backed string store keyed by `key`."""

    def __init__(self, base_dir: Path, namespace: str = "kv"):
        self._base_dir = base_dir
        self._namespace = namespace

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _key_path(self, key: str) -> Path:
        """Return the file path for a key (hash-based)."""
        digest = sha256(f"{self._namespace}:{key}".encode("utf-8")).hexdigest()
        return self._base_dir / self._namespace / f"{digest}.txt"

    def get(self, key: str) -> str | None:
        """Return the stored string, or None if the key was never written.

        Raises:
            OSError: If the file exists but cannot be read.
        """
        path = self._key_path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        """Store `value` under `key`.

        Notes:
        - Writes via a temporary file + atomic replace to avoid partial/corrupt files.
        """
        path = self._key_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)


class MemoryKeyValueStore:
    """A dict-backed store with the same interface as `FileKeyValueStore`."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
