"""
Context Graph Data Models

A company context graph maps domain -> field -> WithMeta cell. Each cell
holds a value plus a provenance history ordered newest-first: the first
entry always describes the current value.

Serialized layout (what stores persist):

    {
        "companyId": "rec123",
        "companyName": "Acme",
        "meta": {"version": 3, "createdAt": ..., "updatedAt": ..., "lastWriter": ...},
        "brand": {
            "positioning": {
                "value": "...",
                "provenance": [{"source": "brand_lab", "updatedAt": ..., "confidence": 0.8}]
            }
        }
    }
"""

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .schema import DOMAIN_FIELDS, DOMAIN_NAMES, RESERVED_KEYS, split_path

logger = logging.getLogger(__name__)


# =============================================================================
# TIME HELPERS
# =============================================================================


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts datetimes, "Z" suffixes and naive strings (assumed UTC).
    Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_populated_value(value: Any) -> bool:
    """
    Whether a cell value counts as populated.

    None, blank strings and empty collections are empty. Numbers and
    booleans (including 0 and False) are populated.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


# =============================================================================
# PROVENANCE
# =============================================================================


@dataclass(frozen=True)
class ProvenanceEntry:
    """Who or what set a field's value, when, and with what confidence."""
    source: str
    updated_at: str
    confidence: float = 1.0
    notes: Optional[str] = None
    valid_for_days: Optional[int] = None

    @property
    def updated_datetime(self) -> Optional[datetime]:
        return parse_timestamp(self.updated_at)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "source": self.source,
            "updatedAt": self.updated_at,
            "confidence": self.confidence,
        }
        if self.notes is not None:
            data["notes"] = self.notes
        if self.valid_for_days is not None:
            data["validForDays"] = self.valid_for_days
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvenanceEntry":
        confidence = data.get("confidence", 1.0)
        return cls(
            source=str(data.get("source", "unknown")),
            updated_at=str(data.get("updatedAt") or data.get("updated_at") or ""),
            confidence=float(confidence) if confidence is not None else 1.0,
            notes=data.get("notes"),
            valid_for_days=data.get("validForDays", data.get("valid_for_days")),
        )


@dataclass
class WithMeta:
    """A context graph cell: value plus newest-first provenance."""
    value: Any = None
    provenance: List[ProvenanceEntry] = field(default_factory=list)

    @property
    def is_populated(self) -> bool:
        return is_populated_value(self.value)

    @property
    def current(self) -> Optional[ProvenanceEntry]:
        """The provenance entry describing the current value."""
        return self.provenance[0] if self.provenance else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": copy.deepcopy(self.value),
            "provenance": [p.to_dict() for p in self.provenance],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WithMeta":
        return cls(
            value=copy.deepcopy(data.get("value")),
            provenance=[
                ProvenanceEntry.from_dict(p)
                for p in (data.get("provenance") or [])
                if isinstance(p, dict)
            ],
        )


def is_with_meta_dict(obj: Any) -> bool:
    """Whether a raw dict is shaped like a serialized WithMeta cell."""
    return isinstance(obj, dict) and "value" in obj and "provenance" in obj


# =============================================================================
# GRAPH
# =============================================================================


@dataclass
class GraphMeta:
    """Store-managed metadata. `version` increments on every save."""
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    last_writer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "lastWriter": self.last_writer,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GraphMeta":
        data = data or {}
        return cls(
            version=int(data.get("version") or 0),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            last_writer=data.get("lastWriter"),
        )


@dataclass
class CompanyContextGraph:
    """Per-company knowledge base organised by domain and field."""
    company_id: str
    company_name: str = ""
    domains: Dict[str, Dict[str, WithMeta]] = field(default_factory=dict)
    meta: GraphMeta = field(default_factory=GraphMeta)

    def has_domain(self, domain: str) -> bool:
        return domain in self.domains

    def get_domain(self, domain: str) -> Optional[Dict[str, WithMeta]]:
        return self.domains.get(domain)

    def get_field(self, path: str) -> Optional[WithMeta]:
        """Look up a cell by dotted "domain.field" path."""
        domain, field_name = split_path(path)
        fields = self.domains.get(domain)
        if not fields:
            return None
        return fields.get(field_name)

    def get_value(self, path: str, default: Any = None) -> Any:
        cell = self.get_field(path)
        if cell is None or cell.value is None:
            return default
        return cell.value

    def iter_fields(self) -> Iterator[Tuple[str, str, WithMeta]]:
        """Yield (domain, field, cell) for every cell in the graph."""
        for domain, fields in self.domains.items():
            for field_name, cell in fields.items():
                yield domain, field_name, cell

    def clone(self) -> "CompanyContextGraph":
        """Full deep copy; the clone shares no mutable state with self."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "companyId": self.company_id,
            "companyName": self.company_name,
            "meta": self.meta.to_dict(),
        }
        for domain, fields in self.domains.items():
            data[domain] = {name: cell.to_dict() for name, cell in fields.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompanyContextGraph":
        domains: Dict[str, Dict[str, WithMeta]] = {}
        ignored = 0

        for key, raw_domain in data.items():
            if key in RESERVED_KEYS or not isinstance(raw_domain, dict):
                continue
            fields: Dict[str, WithMeta] = {}
            for field_name, raw_cell in raw_domain.items():
                if is_with_meta_dict(raw_cell):
                    fields[field_name] = WithMeta.from_dict(raw_cell)
                else:
                    ignored += 1
            domains[key] = fields

        if ignored:
            logger.debug(f"Ignored {ignored} non-cell entries while loading graph {data.get('companyId')}")

        return cls(
            company_id=str(data.get("companyId", "")),
            company_name=str(data.get("companyName") or ""),
            domains=domains,
            meta=GraphMeta.from_dict(data.get("meta")),
        )


def create_empty_graph(
    company_id: str,
    company_name: str = "",
    now: Optional[datetime] = None,
) -> CompanyContextGraph:
    """Bootstrap a graph with every registered field as an empty cell."""
    created = (now or utc_now()).isoformat()
    return CompanyContextGraph(
        company_id=company_id,
        company_name=company_name,
        domains={
            domain: {name: WithMeta() for name in DOMAIN_FIELDS.get(domain, [])}
            for domain in DOMAIN_NAMES
        },
        meta=GraphMeta(version=0, created_at=created, updated_at=created),
    )
