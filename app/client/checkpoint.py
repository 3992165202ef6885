"""
Durable client-local storage for the running-session checkpoint.

A store keeps JSON records under fixed keys. Saving a key overwrites the
previous record; a missing key means there is nothing to recover.
"""
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class CheckpointStore:
    def load(self, key: str) -> dict | None:
        raise NotImplementedError

    def save(self, key: str, record: dict) -> None:
        raise NotImplementedError

    def clear(self, key: str) -> None:
        raise NotImplementedError


class MemoryCheckpointStore(CheckpointStore):
    """Process-local store, lost on exit"""

    def __init__(self):
        self._records: dict[str, dict] = {}

    def load(self, key: str) -> dict | None:
        record = self._records.get(key)
        return dict(record) if record is not None else None

    def save(self, key: str, record: dict) -> None:
        self._records[key] = dict(record)

    def clear(self, key: str) -> None:
        self._records.pop(key, None)


class FileCheckpointStore(CheckpointStore):
    """All keys live in one JSON file, rewritten atomically on every change"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self, key: str) -> dict | None:
        record = self._read_all().get(key)
        return record if isinstance(record, dict) else None

    def save(self, key: str, record: dict) -> None:
        records = self._read_all()
        records[key] = record
        self._write_all(records)

    def clear(self, key: str) -> None:
        records = self._read_all()
        if key in records:
            del records[key]
            self._write_all(records)

    def _read_all(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable checkpoint file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, records: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f)
        os.replace(tmp_path, self.path)
