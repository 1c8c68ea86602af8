"""File-backed key-value store for workflow snapshots."""

import os
import re
from dataclasses import dataclass
from pathlib import Path

from sketchy_client.errors import PersistenceCorrupt
from sketchy_client.services.persistence import KeyValueStore

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class FileStateStore(KeyValueStore):
    """Stores each key as a JSON file inside a directory."""

    directory: Path

    def read(self, key: str) -> str | None:
        """Return the stored value, if present."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise PersistenceCorrupt(f"{path.name} is not valid UTF-8") from exc

    def write(self, key: str, value: str) -> None:
        """Overwrite the value atomically."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"
