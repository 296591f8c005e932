"""
Local JSON Storage Implementation

The local persisted store: one JSON document on disk, keyed by collection
name, holding a list of records per collection. The whole document is
rewritten on every mutation (write to a temp file, then rename).

Suitable for a single user on a single machine, which is the app's use.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from buddy.models.ledger import Collection
from buddy.services.storage.interface import (
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


class LocalJSONStorage(LedgerStorageInterface):
    """
    File-backed implementation of ledger storage.

    The file is created on first write. A missing file reads as an empty
    ledger.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, list[dict]]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read local store {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Local store {self._path} is not a JSON object")
        return data

    def _save(self, data: dict[str, list[dict]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write local store {self._path}: {e}")

    async def add_record(self, collection: Collection, record: dict) -> dict:
        async with self._lock:
            data = self._load()
            data.setdefault(collection.value, []).append(record)
            self._save(data)
        return record

    async def get_record(self, collection: Collection, record_id: UUID) -> Optional[dict]:
        data = self._load()
        for record in data.get(collection.value, []):
            if record.get("id") == str(record_id):
                return record
        return None

    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict,
    ) -> dict:
        async with self._lock:
            data = self._load()
            for record in data.get(collection.value, []):
                if record.get("id") == str(record_id):
                    record.update(changes)
                    self._save(data)
                    return record
        raise NotFoundError(f"{collection.value} record not found: {record_id}")

    async def delete_record(self, collection: Collection, record_id: UUID) -> bool:
        async with self._lock:
            data = self._load()
            records = data.get(collection.value, [])
            remaining = [r for r in records if r.get("id") != str(record_id)]
            if len(remaining) == len(records):
                return False
            data[collection.value] = remaining
            self._save(data)
        return True

    async def list_records(self, collection: Collection) -> list[dict]:
        return list(self._load().get(collection.value, []))

    async def replace_records(self, collection: Collection, records: list[dict]) -> None:
        async with self._lock:
            data = self._load()
            data[collection.value] = list(records)
            self._save(data)
