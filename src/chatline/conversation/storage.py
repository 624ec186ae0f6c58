"""Key-value storage backends for persisted conversations."""

from __future__ import annotations

import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

STORAGE_FILE_SUFFIX = ".json"


class KeyValueStorage(Protocol):
    """Durable string storage addressed by key."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, raw: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage that lives as long as the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileStorage:
    """One file per key, replaced atomically on every write."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}{STORAGE_FILE_SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        with self._lock:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

    def set(self, key: str, raw: str) -> None:
        path = self.path_for(key)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(raw)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def delete(self, key: str) -> None:
        with self._lock:
            self.path_for(key).unlink(missing_ok=True)
