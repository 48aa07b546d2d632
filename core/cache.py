"""Key-value stores for the research cache and the insight knowledge base."""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from config.defaults import DEFAULTS

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Minimal store contract. Values must be JSON-serializable."""

    @abstractmethod
    def get(self, key):
        """Return the stored value or None."""

    @abstractmethod
    def put(self, key, value):
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def items(self):
        """Return a list of (key, value) pairs."""


class MemoryCacheStore(CacheStore):
    def __init__(self, initial=None):
        self._data = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def put(self, key, value):
        with self._lock:
            self._data[key] = value

    def items(self):
        with self._lock:
            return list(self._data.items())


def _read_json(path, expected_type):
    """Load a JSON document; missing or corrupt files read as an empty value."""
    if not os.path.exists(path):
        return expected_type()
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable document %s: %s", path, e)
        return expected_type()
    if not isinstance(data, expected_type):
        logger.warning("Ignoring %s: expected a JSON %s", path, expected_type.__name__)
        return expected_type()
    return data


def _write_json(path, data):
    """Write via a temp file and os.replace so readers never see a partial file."""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class JsonFileCacheStore(CacheStore):
    """File-backed store: one JSON object mapping key -> value.

    Writers inside one process are serialized by a lock; across processes the
    last writer wins.
    """

    def __init__(self, path=None):
        self.path = path or DEFAULTS["research_cache_path"]
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            return _read_json(self.path, dict).get(key)

    def put(self, key, value):
        with self._lock:
            data = _read_json(self.path, dict)
            data[key] = value
            _write_json(self.path, data)

    def items(self):
        with self._lock:
            return list(_read_json(self.path, dict).items())


class KnowledgeBase:
    """Append-only list of {insights, timestamp} entries, capped to the newest N."""

    def __init__(self, path=None, limit=None):
        self.path = path or DEFAULTS["knowledge_base_path"]
        self.limit = limit or DEFAULTS["knowledge_base_limit"]
        self._lock = threading.Lock()

    def entries(self):
        with self._lock:
            return _read_json(self.path, list)

    def append(self, insights):
        entry = {
            "insights": list(insights),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            data = _read_json(self.path, list)
            data.append(entry)
            data = data[-self.limit:]
            _write_json(self.path, data)
        return entry
