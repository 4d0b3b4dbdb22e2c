"""
Context Graph Store

Async load/save of company context graphs.

Saves are whole-graph and last-write-wins. A caller that needs protection
against concurrent writers passes `expected_version`; the save then fails
with StaleGraphError if another writer got there first.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from src.persistence.storage import StorageBackend

from .models import CompanyContextGraph, create_empty_graph, utc_now

logger = logging.getLogger(__name__)


class StaleGraphError(Exception):
    """Raised when a compare-and-swap save finds a newer stored version."""

    def __init__(self, company_id: str, expected_version: int, stored_version: int):
        self.company_id = company_id
        self.expected_version = expected_version
        self.stored_version = stored_version
        super().__init__(
            f"Context graph for {company_id} is at version {stored_version}, "
            f"expected {expected_version}"
        )


@dataclass
class GraphWrite:
    """Audit record of one save."""
    company_id: str
    writer_id: str
    version: int
    written_at: str


class ContextGraphStore(ABC):
    """
    Base class for context graph stores.

    Subclasses implement raw document access; versioning, stamping and the
    audit trail live here.
    """

    def __init__(self):
        self.audit_log: List[GraphWrite] = []

    @abstractmethod
    async def _read(self, company_id: str) -> Optional[Dict]:
        pass

    @abstractmethod
    async def _write(self, company_id: str, data: Dict) -> None:
        pass

    async def load(self, company_id: str) -> Optional[CompanyContextGraph]:
        """Load a graph, or None when the company has none yet."""
        data = await self._read(company_id)
        if data is None:
            return None
        return CompanyContextGraph.from_dict(data)

    async def save(
        self,
        graph: CompanyContextGraph,
        writer_id: str,
        expected_version: Optional[int] = None,
    ) -> CompanyContextGraph:
        """
        Persist a whole graph.

        Args:
            graph: Graph to save (not mutated)
            writer_id: Identifier of the component writing
            expected_version: If set, the stored version must match

        Returns:
            The saved graph with bumped version and stamped metadata

        Raises:
            StaleGraphError: expected_version does not match the stored one
        """
        stored = await self._read(graph.company_id)
        stored_version = int(((stored or {}).get("meta") or {}).get("version") or 0)

        if expected_version is not None and expected_version != stored_version:
            raise StaleGraphError(graph.company_id, expected_version, stored_version)

        saved = graph.clone()
        now = utc_now().isoformat()
        saved.meta.version = stored_version + 1
        saved.meta.updated_at = now
        saved.meta.last_writer = writer_id
        if not saved.meta.created_at:
            saved.meta.created_at = now

        await self._write(graph.company_id, saved.to_dict())
        self.audit_log.append(GraphWrite(
            company_id=graph.company_id,
            writer_id=writer_id,
            version=saved.meta.version,
            written_at=now,
        ))

        logger.info(f"Saved context graph {graph.company_id} v{saved.meta.version} (writer: {writer_id})")
        return saved

    async def get_or_create(self, company_id: str, company_name: str = "") -> CompanyContextGraph:
        """Load a graph, bootstrapping an empty one on first access."""
        graph = await self.load(company_id)
        if graph is not None:
            return graph

        graph = create_empty_graph(company_id, company_name)
        await self._write(company_id, graph.to_dict())
        logger.info(f"Created empty context graph for {company_id}")
        return graph

    def writes_for(self, company_id: str) -> List[GraphWrite]:
        return [w for w in self.audit_log if w.company_id == company_id]


class InMemoryContextGraphStore(ContextGraphStore):
    """Dict-backed store for tests and dry runs."""

    def __init__(self):
        super().__init__()
        self._graphs: Dict[str, Dict] = {}

    async def _read(self, company_id: str) -> Optional[Dict]:
        data = self._graphs.get(company_id)
        # Re-hydrate from a fresh copy so callers never alias stored state
        return CompanyContextGraph.from_dict(data).to_dict() if data is not None else None

    async def _write(self, company_id: str, data: Dict) -> None:
        self._graphs[company_id] = data

    def seed(self, graph: CompanyContextGraph) -> None:
        """Insert a graph as-is, without bumping its version."""
        self._graphs[graph.company_id] = graph.to_dict()


class StorageContextGraphStore(ContextGraphStore):
    """Store on top of a StorageBackend, one JSON document per company."""

    def __init__(self, storage: StorageBackend, prefix: str = "context_graphs"):
        super().__init__()
        self.storage = storage
        self.prefix = prefix.rstrip("/")

    def _key(self, company_id: str) -> str:
        return f"{self.prefix}/{company_id}"

    async def _read(self, company_id: str) -> Optional[Dict]:
        return await self.storage.load_json(self._key(company_id))

    async def _write(self, company_id: str, data: Dict) -> None:
        await self.storage.save_json(self._key(company_id), data)
