"""
Shared key-value store read by widget and shield extensions.
A single JSON document on disk; every write replaces the file atomically,
so readers see either the old or the new document and the last writer wins.
"""
import os
import json
import logging
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from morningproof.constants import DEFAULT_SHARED_DIRECTORY, SHARED_STORE_FILENAME

logger = logging.getLogger("morningproof.shared_store")

_write_lock = threading.Lock()


def get_shared_directory() -> str:
    return os.getenv("MORNINGPROOF_SHARED_DIR", DEFAULT_SHARED_DIRECTORY)


class SharedStore:
    """JSON-file backed key-value store"""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else Path(get_shared_directory()) / SHARED_STORE_FILENAME

    def load(self) -> dict:
        """Read the whole document; a missing or corrupt file reads as empty"""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Unreadable shared store {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def set_many(self, values: dict) -> None:
        with _write_lock:
            data = self.load()
            data.update(values)
            self._write(data)

    def remove(self, *keys: str) -> None:
        with _write_lock:
            data = self.load()
            for key in keys:
                data.pop(key, None)
            self._write(data)

    def clear(self) -> None:
        with _write_lock:
            self._write({})

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".shared-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, default=str)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
