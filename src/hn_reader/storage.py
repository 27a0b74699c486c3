from __future__ import annotations

import logging
import os
import re
from typing import Dict, Optional, Protocol

logger = logging.getLogger("hn_reader")

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStore(Protocol):
    """String-valued persistence with ``get``/``set``/``clear``."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self, key: Optional[str] = None) -> None: ...


class JsonFileStore:
    """One file per key under ``state_dir``. Values are stored verbatim."""

    def __init__(self, state_dir: str):
        self.state_dir = state_dir
        os.makedirs(self.state_dir, exist_ok=True)

    def _get_path(self, key: str) -> str:
        return os.path.join(self.state_dir, f"{_SAFE_KEY.sub('_', key)}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r") as f:
                return f.read()
        except (IOError, UnicodeDecodeError) as e:
            logger.warning("Failed to read state file %s: %s", path, e)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._get_path(key)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w") as f:
            f.write(value)
        os.replace(tmp_path, path)
        logger.debug("State written for key: %s", key)

    def clear(self, key: Optional[str] = None) -> None:
        """Remove one key, or every key when ``key`` is None."""
        if key is not None:
            path = self._get_path(key)
            if os.path.exists(path):
                os.unlink(path)
            return
        for filename in os.listdir(self.state_dir):
            file_path = os.path.join(self.state_dir, filename)
            try:
                if os.path.isfile(file_path):
                    os.unlink(file_path)
            except OSError as e:
                logger.error("Failed to delete state file %s: %s", file_path, e)
        logger.info("State cleared.")


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self.data.clear()
        else:
            self.data.pop(key, None)
