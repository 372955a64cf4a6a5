import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

import devserver.settings as default_settings

log = logging.getLogger(__name__)


class JsonFileStore:
    """
    A tiny persistent key/value store backed by a JSON file.

    Values are strings. Writes are atomic (temporary file + replace).
    """

    def __init__(self, path: Path = default_settings.MODE_STORE_PATH) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.warning(f"Ignoring unreadable store file '{self.path}': {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        """
        Returns the stored value.

        :raises KeyError: If the key has never been set.
        """
        with self._lock:
            data = self._read()
        if key not in data:
            raise KeyError(key)
        return data[key]

    def set(self, key: str, value: str) -> None:
        """
        Atomically persists a single value.

        :raises OSError: If the store file cannot be written.
        """
        with self._lock:
            data = self._read()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(".tmp")
            try:
                with temp_path.open("w", encoding="utf-8") as f:
                    json.dump(data, f, indent=4)
                temp_path.replace(self.path)
            finally:
                temp_path.unlink(missing_ok=True)
