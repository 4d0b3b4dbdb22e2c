"""
Storage Backends

JSON document storage for context graphs and GAP snapshots.

- FileStorage: local filesystem, optional gzip compression
- MemoryStorage: process-local dict, used by tests and dry runs
"""

import copy
import gzip
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.utils.config import get_settings

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    async def save_json(self, key: str, data: Dict) -> str:
        """Save JSON data. Returns the storage key/path."""
        pass

    @abstractmethod
    async def load_json(self, key: str) -> Optional[Dict]:
        """Load JSON data by key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete data by key."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys with given prefix."""
        pass


class FileStorage(StorageBackend):
    """
    File system storage backend.

    Each key maps to `<base_path>/<key>.json` (or `.json.gz` when
    compressed). Keys may contain dots; suffixes are appended, not swapped.
    """

    def __init__(
        self,
        base_path: Optional[str] = None,
        compress: bool = False
    ):
        """
        Initialize file storage.

        Args:
            base_path: Root directory for storage.
                      Defaults to STORAGE_PATH or ~/.gap_engine/storage/
            compress: Whether to gzip JSON data
        """
        if base_path is None:
            base_path = get_settings().STORAGE_PATH or str(
                Path.home() / ".gap_engine" / "storage"
            )

        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.compress = compress

        logger.info(f"FileStorage initialized at {self.base_path}")

    def _get_path(self, key: str) -> Path:
        """Get full path for a key (without suffix)."""
        safe_key = key.replace("..", "").lstrip("/")
        return self.base_path / safe_key

    def _candidates(self, key: str) -> List[Path]:
        path = self._get_path(key)
        return [
            path.with_name(path.name + ".json.gz"),
            path.with_name(path.name + ".json"),
        ]

    async def save_json(self, key: str, data: Dict) -> str:
        """Save JSON data with optional compression."""
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        json_str = json.dumps(data, indent=2, default=str)

        if self.compress:
            path = path.with_name(path.name + ".json.gz")
            with gzip.open(path, "wt", encoding="utf-8") as f:
                f.write(json_str)
        else:
            path = path.with_name(path.name + ".json")
            with open(path, "w", encoding="utf-8") as f:
                f.write(json_str)

        logger.debug(f"Saved JSON to {path}")
        return str(path.relative_to(self.base_path))

    async def load_json(self, key: str) -> Optional[Dict]:
        """Load JSON data. Compressed copies win over plain ones."""
        gz_path, plain_path = self._candidates(key)

        if gz_path.exists():
            with gzip.open(gz_path, "rt", encoding="utf-8") as f:
                return json.load(f)

        if plain_path.exists():
            with open(plain_path, "r", encoding="utf-8") as f:
                return json.load(f)

        return None

    async def delete(self, key: str) -> bool:
        """Delete data by key."""
        deleted = False
        for path in self._candidates(key):
            if path.exists():
                path.unlink()
                logger.debug(f"Deleted {path}")
                deleted = True
        return deleted

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        return any(path.exists() for path in self._candidates(key))

    async def list_keys(self, prefix: str = "") -> List[str]:
        """List keys (suffix stripped) under a directory prefix."""
        search_path = self._get_path(prefix) if prefix else self.base_path

        if not search_path.exists() or not search_path.is_dir():
            return []

        keys = []
        for path in search_path.rglob("*"):
            if not path.is_file():
                continue
            rel_path = str(path.relative_to(self.base_path))
            for suffix in (".json.gz", ".json"):
                if rel_path.endswith(suffix):
                    keys.append(rel_path[: -len(suffix)])
                    break

        return sorted(set(keys))


class MemoryStorage(StorageBackend):
    """In-process storage. Stores deep copies so callers cannot alias state."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    async def save_json(self, key: str, data: Dict) -> str:
        # Round-trip through JSON to match FileStorage serialization
        self._data[key] = json.loads(json.dumps(data, default=str))
        return key

    async def load_json(self, key: str) -> Optional[Dict]:
        data = self._data.get(key)
        return copy.deepcopy(data) if data is not None else None

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        return key in self._data

    async def list_keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


def get_storage_backend() -> StorageBackend:
    """
    Get the configured storage backend.

    FileStorage at STORAGE_PATH; in the test environment MemoryStorage.
    """
    if get_settings().ENVIRONMENT == "test":
        return MemoryStorage()
    return FileStorage()
