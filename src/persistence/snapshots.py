"""
GAP Snapshot Archive

Immutable per-run snapshots (before/after context, findings, insights)
kept for historical and QBR reporting. Snapshots are written once and
never updated.
"""

import logging
from typing import Any, Dict, List, Optional

from .storage import StorageBackend

logger = logging.getLogger(__name__)


class SnapshotExistsError(Exception):
    """Raised when a snapshot id is written twice."""
    pass


class SnapshotStore:
    """Stores snapshots as `<prefix>/<company_id>/<snapshot_id>` JSON documents."""

    def __init__(self, storage: StorageBackend, prefix: str = "gap_snapshots"):
        self.storage = storage
        self.prefix = prefix.rstrip("/")

    def _key(self, company_id: str, snapshot_id: str) -> str:
        return f"{self.prefix}/{company_id}/{snapshot_id}"

    async def save(self, snapshot: Any) -> str:
        """
        Archive a snapshot.

        Args:
            snapshot: Object exposing `id`, `company_id` and `to_dict()`

        Returns:
            Storage key of the archived snapshot
        """
        key = self._key(snapshot.company_id, snapshot.id)
        if await self.storage.exists(key):
            raise SnapshotExistsError(f"Snapshot {snapshot.id} already archived")

        path = await self.storage.save_json(key, snapshot.to_dict())
        logger.info(f"Archived GAP snapshot {snapshot.id} for {snapshot.company_id}")
        return path

    async def load(self, company_id: str, snapshot_id: str) -> Optional[Dict[str, Any]]:
        return await self.storage.load_json(self._key(company_id, snapshot_id))

    async def list_for_company(self, company_id: str) -> List[Dict[str, Any]]:
        """All archived snapshots for a company, newest first."""
        keys = await self.storage.list_keys(f"{self.prefix}/{company_id}/")
        snapshots = []
        for key in keys:
            data = await self.storage.load_json(key)
            if data:
                snapshots.append(data)

        snapshots.sort(key=lambda s: s.get("timestamp") or "", reverse=True)
        return snapshots
