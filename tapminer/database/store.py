# tapminer/database/store.py
import copy
import json
import os
import tempfile
import threading
import logging

from tapminer.exceptions import StoreError

logger = logging.getLogger(__name__)


def empty_state():
    return {
        "currentSession": None,
        "previousSession": None,
        "closedSessions": [],
        "miners": {},  # sessionId -> { wallet -> { points, joinedAt } }
        "distributions": []
    }


def normalize_state(data):
    """Fill in any keys missing from an older or partial document"""
    if not isinstance(data, dict):
        return empty_state()
    for key, default in empty_state().items():
        if key not in data or (data[key] is None and default is not None):
            data[key] = default
    return data


class KeyValueStore:
    """
    Read-modify-write document store.

    Each update() call runs under a process-local lock, so two mutations in
    the same process never interleave. Nothing is serialized across processes.
    """

    def __init__(self):
        self._lock = threading.RLock()

    def _read(self):
        raise NotImplementedError

    def _write(self, data):
        raise NotImplementedError

    def get(self):
        with self._lock:
            return normalize_state(self._read())

    def set(self, data):
        with self._lock:
            self._write(data)

    def update(self, callback):
        """Apply callback to the current document and persist what it returns"""
        with self._lock:
            data = normalize_state(self._read())
            new_data = callback(data)
            if new_data is None:
                new_data = data
            self._write(new_data)
            return new_data


class MemoryStore(KeyValueStore):
    def __init__(self, initial=None):
        super().__init__()
        self._data = normalize_state(copy.deepcopy(initial)) if initial else empty_state()

    def _read(self):
        return copy.deepcopy(self._data)

    def _write(self, data):
        self._data = copy.deepcopy(data)


class JsonFileStore(KeyValueStore):
    def __init__(self, path):
        super().__init__()
        self.path = os.path.abspath(path)

        # Ensure DB directory exists
        os.makedirs(os.path.dirname(self.path), exist_ok=True)

        # Initialize DB if not exists
        if not os.path.exists(self.path):
            self._write(empty_state())
            logger.info(f"Initialized state file at {self.path}")

    def _read(self):
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"State read error ({self.path}): {e}")
            return empty_state()

    def _write(self, data):
        directory = os.path.dirname(self.path)
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.db-', suffix='.json')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"State write error ({self.path}): {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StoreError(f"Failed to write state: {e}") from e


def create_store(config):
    """Build the persistence backend selected by STORE_BACKEND"""
    backend = config.STORE_BACKEND
    if backend == 'mongo':
        from .mongo import MongoStore
        return MongoStore(config.MONGO_URI, config.MONGO_DB_NAME)
    if backend == 'memory':
        return MemoryStore()
    if backend != 'json':
        logger.warning(f"Unknown STORE_BACKEND '{backend}', falling back to json")
    return JsonFileStore(config.DATA_FILE)
