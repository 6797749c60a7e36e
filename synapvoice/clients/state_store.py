"""Key/value stores backing the credential and profile registry."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from supabase import create_client, Client
from postgrest.exceptions import APIError

from ..config import settings, Settings

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when durable state cannot be read or written."""
    pass


class KeyValueStore:
    """Interface for process-wide string records."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Volatile store, used for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Store persisted as a single JSON object on local disk."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read state file {self.path}: {e}")
            raise StateStoreError(f"Failed to read state file: {e}")
        if not isinstance(data, dict):
            raise StateStoreError(f"State file {self.path} does not hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file and rename so a crash never leaves a torn file
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write state file {self.path}: {e}")
            raise StateStoreError(f"Failed to write state file: {e}")

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._write()


class SupabaseStore(KeyValueStore):
    """Store backed by a two-column (key, value) Supabase table."""

    def __init__(self, url: str, key: str, table: str = "voice_gate_state"):
        """Initialize Supabase client with configuration."""
        self._client: Optional[Client] = None
        self._url = url
        self._key = key
        self.table = table

    @property
    def client(self) -> Client:
        """Get or create Supabase client instance."""
        if self._client is None:
            self._client = create_client(self._url, self._key)
        return self._client

    def get(self, key: str) -> Optional[str]:
        try:
            result = self.client.table(self.table).select("value").eq("key", key).execute()
        except APIError as e:
            logger.error(f"Database error reading state key {key}: {e}")
            raise StateStoreError(f"Failed to read {key}: {e}")
        if not result.data:
            return None
        return result.data[0]["value"]

    def set(self, key: str, value: str) -> None:
        try:
            result = self.client.table(self.table).upsert(
                {"key": key, "value": value},
                on_conflict="key"
            ).execute()
        except APIError as e:
            logger.error(f"Database error writing state key {key}: {e}")
            raise StateStoreError(f"Failed to write {key}: {e}")
        if not result.data:
            raise StateStoreError(f"Failed to write {key}: no rows returned")

    def delete(self, key: str) -> None:
        try:
            self.client.table(self.table).delete().eq("key", key).execute()
        except APIError as e:
            logger.error(f"Database error deleting state key {key}: {e}")
            raise StateStoreError(f"Failed to delete {key}: {e}")


def create_state_store(config: Optional[Settings] = None) -> KeyValueStore:
    """Build the store selected by ``state_backend``."""
    config = config or settings
    if config.state_backend == "memory":
        return MemoryStore()
    if config.state_backend == "supabase":
        logger.info(f"Using Supabase state store (table {config.supabase_state_table})")
        return SupabaseStore(config.supabase_url, config.supabase_anon_key, config.supabase_state_table)
    logger.info(f"Using JSON file state store at {config.state_file}")
    return JsonFileStore(config.state_file)
