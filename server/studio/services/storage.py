"""Key-value stores backing credentials and generation history."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

from supabase import Client, create_client

from ..config import Settings, settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Whole-value get/set. Implementations are synchronous so callers can
    read-modify-write within one turn of the event loop."""

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """Single JSON document on disk; every ``set`` rewrites the whole file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Settings file %s is not valid JSON; starting empty", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, default=str, indent=2), encoding="utf-8")
        tmp.replace(self._path)


class SupabaseStore:
    """Rows of ``(key, value jsonb)`` in a Supabase table."""

    def __init__(self, client: Client, *, table: str = "studio_settings") -> None:
        self._client = client
        self._table = table

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "SupabaseStore":
        if not (config.supabase_url and config.supabase_service_role_key):
            raise RuntimeError("Supabase credentials missing; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
        return cls(create_client(config.supabase_url, config.supabase_service_role_key))

    def get(self, key: str) -> Any:
        result = self._client.table(self._table).select("value").eq("key", key).limit(1).execute()
        rows = getattr(result, "data", None)
        if isinstance(rows, list) and rows:
            first = rows[0]
            if isinstance(first, dict):
                return first.get("value")
        return None

    def set(self, key: str, value: Any) -> None:
        payload = json.loads(json.dumps(value, default=str))
        self._client.table(self._table).upsert({"key": key, "value": payload}).execute()


def build_store(config: Settings = settings) -> KeyValueStore:
    """Pick the backing store: Supabase when configured, then a JSON file, then memory."""

    if config.supabase_url and config.supabase_service_role_key:
        logger.info("Using Supabase settings store")
        return SupabaseStore.from_settings(config)
    if config.settings_store_path:
        logger.info("Using JSON settings store at %s", config.settings_store_path)
        return JsonFileStore(config.settings_store_path)
    logger.info("Using in-memory settings store")
    return MemoryStore()

