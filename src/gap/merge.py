"""
Context Merge Engine

Applies Lab refined context to a graph with append-only provenance.

The merge is copy-on-write: the input graph is never mutated. The result is
a fresh graph object whose touched domains are new dicts; untouched domains
are shared with the input and must be treated as read-only.
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from src.context_graph.models import CompanyContextGraph, ProvenanceEntry, WithMeta, utc_now

from .competition_gap import is_competition_gap_exclusive
from .types import LabIdLike, LabRefinedContext, coerce_lab_id

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    graph: CompanyContextGraph
    applied: List[str] = field(default_factory=list)
    skipped_unknown_domain: List[str] = field(default_factory=list)
    blocked_exclusive: List[str] = field(default_factory=list)


def merge_refined_context(
    graph: CompanyContextGraph,
    refined: List[LabRefinedContext],
    source_lab_id: LabIdLike,
    now: Optional[datetime] = None,
) -> MergeResult:
    """
    Merge one Lab's refined context into a graph.

    Each write prepends a provenance entry (source "<lab>_lab") ahead of the
    field's existing history. Writes into domains the graph does not carry
    are skipped. Competition Gap fields are never written here, whatever the
    source Lab; only the Competition Lab import path owns them.

    Returns:
        MergeResult with the new graph and per-path outcome lists
    """
    lab_id = coerce_lab_id(source_lab_id)
    lab_key = lab_id.value if lab_id else str(source_lab_id)
    timestamp = (now or utc_now()).isoformat()

    domains: Dict[str, Dict[str, WithMeta]] = dict(graph.domains)
    copied = set()
    result = MergeResult(graph=graph)

    for item in refined:
        path = item.path

        if item.domain not in domains:
            result.skipped_unknown_domain.append(path)
            continue

        if is_competition_gap_exclusive(path):
            result.blocked_exclusive.append(path)
            continue

        if item.domain not in copied:
            domains[item.domain] = dict(domains[item.domain])
            copied.add(item.domain)

        fields = domains[item.domain]
        previous = fields.get(item.field)
        entry = ProvenanceEntry(
            source=f"{lab_key}_lab",
            updated_at=timestamp,
            confidence=item.confidence,
            notes=f"Auto-populated by {lab_key} lab during GAP orchestration",
        )
        fields[item.field] = WithMeta(
            value=item.value,
            provenance=[entry] + (list(previous.provenance) if previous else []),
        )
        result.applied.append(path)

    if result.skipped_unknown_domain:
        logger.info(
            f"Skipped {len(result.skipped_unknown_domain)} {lab_key} writes to unknown domains: "
            f"{', '.join(result.skipped_unknown_domain)}"
        )
    if result.blocked_exclusive:
        logger.warning(
            f"Blocked {len(result.blocked_exclusive)} {lab_key} writes to Competition Lab fields: "
            f"{', '.join(result.blocked_exclusive)}"
        )

    result.graph = CompanyContextGraph(
        company_id=graph.company_id,
        company_name=graph.company_name,
        domains=domains,
        meta=dataclasses.replace(graph.meta),
    )
    return result
