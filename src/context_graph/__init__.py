"""
Company Context Graph

Per-company knowledge base of domain fields with provenance.
"""

from .schema import (
    CRITICAL_FIELDS,
    DOMAIN_FIELDS,
    DOMAIN_NAMES,
    all_field_paths,
    split_path,
)
from .models import (
    CompanyContextGraph,
    GraphMeta,
    ProvenanceEntry,
    WithMeta,
    create_empty_graph,
    is_populated_value,
    parse_timestamp,
    utc_now,
)
from .store import (
    ContextGraphStore,
    GraphWrite,
    InMemoryContextGraphStore,
    StaleGraphError,
    StorageContextGraphStore,
)

__all__ = [
    # Schema
    "CRITICAL_FIELDS",
    "DOMAIN_FIELDS",
    "DOMAIN_NAMES",
    "all_field_paths",
    "split_path",
    # Models
    "CompanyContextGraph",
    "GraphMeta",
    "ProvenanceEntry",
    "WithMeta",
    "create_empty_graph",
    "is_populated_value",
    "parse_timestamp",
    "utc_now",
    # Store
    "ContextGraphStore",
    "GraphWrite",
    "InMemoryContextGraphStore",
    "StaleGraphError",
    "StorageContextGraphStore",
]
