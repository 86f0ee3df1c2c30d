"""Bounded generation history kept as one list value in the settings store."""
from __future__ import annotations

import logging
from typing import List

from pydantic import ValidationError

from ..config import settings
from ..models.schemas import HistoryRecord
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "videoHistory"


class HistoryLog:
    """Append-only list capped at ``limit`` entries; the oldest entry is evicted first."""

    def __init__(self, store: KeyValueStore, *, key: str = HISTORY_KEY, limit: int | None = None) -> None:
        self._store = store
        self._key = key
        self._limit = limit or settings.history_limit

    @property
    def limit(self) -> int:
        return self._limit

    def _read_raw(self) -> list:
        value = self._store.get(self._key)
        return list(value) if isinstance(value, list) else []

    def entries(self) -> List[HistoryRecord]:
        records: List[HistoryRecord] = []
        for item in self._read_raw():
            try:
                records.append(HistoryRecord.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed history entry: %r", item)
        return records

    def append(self, record: HistoryRecord) -> None:
        # Re-read right before writing and never await in between, so two
        # runs finishing together cannot overwrite each other's entry.
        current = self._read_raw()
        current.append(record.model_dump(mode="json"))
        self._store.set(self._key, current[-self._limit:])
        logger.info("History: recorded %s (%d/%d)", record.id, min(len(current), self._limit), self._limit)
