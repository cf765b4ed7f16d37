from __future__ import annotations
import json
import os
import tempfile
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from app.schemas import StoredReading
from models.records import TelemetryReading
from settings import get_settings


class ReadingsTable:
    """In-process stand-in for the DynamoDB table keyed by device and timestamp.

    With ``max_rows`` set, the oldest readings are evicted once the table grows
    past it.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        max_rows: Optional[int] = None,
    ) -> None:
        self.name = name
        self.max_rows = max_rows
        self._items: Dict[str, StoredReading] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_reading(self, device_id: str, reading: TelemetryReading) -> StoredReading:
        item = StoredReading.from_reading(device_id, reading)
        with self._lock:
            self._items[item.key] = item
            self._evict()
            self._persist()
        return item.model_copy()

    def get_reading(self, device_id: str, timestamp: int) -> Optional[StoredReading]:
        with self._lock:
            item = self._items.get(f"{device_id}#{timestamp}")
            if item is None:
                return None
            return item.model_copy()

    def query(
        self,
        device_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[StoredReading]:
        """Return readings newest first, optionally for one device only."""

        with self._lock:
            items = [
                item.model_copy()
                for item in self._items.values()
                if device_id is None or item.device_id == device_id
            ]
        items.sort(key=lambda item: (item.timestamp, item.device_id), reverse=True)
        if limit is not None:
            return items[:limit]
        return items

    def scan(self) -> list[StoredReading]:
        with self._lock:
            return [item.model_copy() for item in self._items.values()]

    def reload(self) -> None:
        """Pick up rows written to the persistence file by another process."""

        if not self.persistence_path:
            return
        with self._lock:
            self._load_from_disk()

    def _evict(self) -> None:
        if self.max_rows is None or len(self._items) <= self.max_rows:
            return
        oldest = sorted(self._items.values(), key=lambda item: (item.timestamp, item.device_id))
        for item in oldest[: len(self._items) - self.max_rows]:
            del self._items[item.key]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        data = json.dumps(payload, sort_keys=True)
        # Readers in other processes must only ever see a complete document.
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.persistence_path.name}.", dir=self.persistence_path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(data)
            os.replace(tmp, self.persistence_path)
        finally:
            if os.path.exists(tmp):
                os.remove(tmp)

    def _load_from_disk(self) -> None:
        """Replace the rows with the file's contents; an unreadable file keeps them."""
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            return

        items: Dict[str, StoredReading] = {}
        for payload in data.values():
            item = StoredReading.model_validate(payload)
            items[item.key] = item
        self._items = items


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingsTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return ReadingsTable(
        name=table_name,
        persistence_path=persistence,
        max_rows=settings.table_max_rows,
    )
