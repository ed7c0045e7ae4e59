import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .errors import PersistenceError

logger = logging.getLogger(__name__)

HISTORY_KEY = "history"
HISTORY_CAPACITY = 20

KIND_SUCCESS = "success"
KIND_ERROR = "error"


def utcnow():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OperationRecord:
    kind: str
    message: str
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def success(cls, message):
        return cls(KIND_SUCCESS, message)

    @classmethod
    def error(cls, message):
        return cls(KIND_ERROR, message)

    def to_dict(self):
        return {"type": self.kind, "message": self.message, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValueError("history entry must be an object")
        kind = str(data.get("type", "")).strip().lower()
        if kind not in {KIND_SUCCESS, KIND_ERROR}:
            raise ValueError(f"unknown history entry type: {kind!r}")
        raw_ts = str(data.get("timestamp", "")).strip()
        # browsers serialize Date with a trailing Z
        if raw_ts.endswith("Z"):
            raw_ts = raw_ts[:-1] + "+00:00"
        timestamp = datetime.fromisoformat(raw_ts)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(kind, str(data.get("message", "")), timestamp)


class JsonFileStore:
    """Key/value persistence where each key is one JSON file in ``directory``."""

    def __init__(self, directory):
        self.directory = Path(directory)

    def path_for(self, key):
        return self.directory / f"{key}.json"

    def load(self, key):
        path = self.path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(f"failed to read {path}: {exc}") from exc
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(f"corrupt data in {path}: {exc}") from exc

    def store(self, key, data):
        path = self.path_for(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"failed to write {path}: {exc}") from exc

    def delete(self, key):
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistenceError(f"failed to delete {path}: {exc}") from exc


class HistoryStore:
    def __init__(self, backend, capacity=HISTORY_CAPACITY):
        self.backend = backend
        self.capacity = capacity
        self._lock = threading.Lock()

    def read(self):
        data = self.backend.load(HISTORY_KEY)
        if data is None:
            return []
        if not isinstance(data, list):
            raise PersistenceError("stored history is not a list")
        try:
            return [OperationRecord.from_dict(item) for item in data]
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"corrupt history entry: {exc}") from exc

    def write(self, records):
        """Replace the stored log with ``records`` (newest first)."""
        records = list(records)[: self.capacity]
        self.backend.store(HISTORY_KEY, [record.to_dict() for record in records])

    def append(self, record):
        with self._lock:
            records = [record] + self.read()
            self.write(records)
        logger.info("[HISTORY] recorded %s: %s", record.kind, record.message)
        return records[: self.capacity]

    def clear(self):
        self.backend.delete(HISTORY_KEY)
        logger.info("[HISTORY] cleared")


def parse_history_payload(payload):
    """Validate a client-supplied JSON array of history entries."""
    if not isinstance(payload, list):
        raise ValueError("history must be a JSON array")
    return [OperationRecord.from_dict(item) for item in payload]
