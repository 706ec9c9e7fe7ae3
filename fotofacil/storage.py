"""
storage.py — Durable Client-Side Key-Value Storage

The cart survives restarts by writing its serialized form under a fixed key.
Two backends share the same small interface (get_item / set_item /
remove_item, values are strings):

    - JsonFileStorage: one JSON object on disk, written atomically.
    - MemoryStorage: a dict, for tests and ephemeral sessions.

Both raise OSError / ValueError on failure. Callers that must never fail
(the cart) are responsible for catching and degrading.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

log = logging.getLogger(__name__)


class MemoryStorage:
    """In-process storage with the same interface as JsonFileStorage."""

    def __init__(self, initial=None):
        self._data = dict(initial or {})

    def get_item(self, key):
        return self._data.get(key)

    def set_item(self, key, value):
        self._data[key] = value

    def remove_item(self, key):
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Key-value storage persisted as a single JSON object in a file.

    Each write rewrites the whole file through a temporary file and
    os.replace, so a crash never leaves a half-written document behind.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self):
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not contain a JSON object")
        return data

    def _write_all(self, data):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            # The temporary file is ours; the target is left untouched.
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def get_item(self, key):
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key, value):
        with self._lock:
            try:
                data = self._read_all()
            except ValueError:
                log.warning(f"Storage file {self.path} is corrupt, starting a new one.")
                data = {}
            data[key] = value
            self._write_all(data)

    def remove_item(self, key):
        with self._lock:
            data = self._read_all()
            if data.pop(key, None) is not None:
                self._write_all(data)
