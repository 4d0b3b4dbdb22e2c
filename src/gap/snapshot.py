"""
GAP Snapshots

Structural before/after diff of a context graph, and the immutable snapshot
record archived for QBR reporting.
"""

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from src.context_graph.models import CompanyContextGraph, WithMeta, utc_now

from .health import round_half_up
from .types import (
    ClientInsight,
    ContextHealthAssessment,
    GAPSnapshot,
    GAPStructuredOutput,
    SnapshotChanges,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphDiff:
    fields_updated: int = 0
    fields_added: int = 0
    provenance_entries_added: int = 0


def _cell(graph: Optional[CompanyContextGraph], domain: str, field_name: str) -> Optional[WithMeta]:
    if graph is None:
        return None
    return (graph.get_domain(domain) or {}).get(field_name)


def diff_graphs(
    before: Optional[CompanyContextGraph],
    after: Optional[CompanyContextGraph],
) -> GraphDiff:
    """
    Compare two graphs cell by cell.

    - added: populated after, empty or absent before
    - updated: populated on both sides, and the value changed or the cell
      gained provenance (a re-confirmation counts as an update)
    - provenance entries added: total growth of provenance lists
    """
    if after is None:
        return GraphDiff()

    updated = 0
    added = 0
    provenance_added = 0

    for domain, field_name, after_cell in after.iter_fields():
        before_cell = _cell(before, domain, field_name)
        before_count = len(before_cell.provenance) if before_cell else 0
        grown = max(0, len(after_cell.provenance) - before_count)
        provenance_added += grown

        if not after_cell.is_populated:
            continue
        if before_cell is None or not before_cell.is_populated:
            added += 1
        elif before_cell.value != after_cell.value or grown:
            updated += 1

    return GraphDiff(
        fields_updated=updated,
        fields_added=added,
        provenance_entries_added=provenance_added,
    )


def _signed_round(delta: float) -> int:
    magnitude = round_half_up(abs(delta))
    return magnitude if delta >= 0 else -magnitude


def build_snapshot(
    company_id: str,
    context_before: Optional[CompanyContextGraph],
    context_after: Optional[CompanyContextGraph],
    gap_structured: GAPStructuredOutput,
    insights: List[ClientInsight],
    labs_run: List[str],
    health_before: ContextHealthAssessment,
    now: Optional[datetime] = None,
) -> GAPSnapshot:
    """
    Freeze one run into a GAPSnapshot.

    Everything is copied at construction, so the snapshot never changes when
    the live graphs or outputs do.
    """
    diff = diff_graphs(context_before, context_after)
    changes = SnapshotChanges(
        fields_updated=diff.fields_updated,
        fields_added=diff.fields_added,
        insights_created=len(insights),
        score_change=_signed_round(gap_structured.scores.overall - health_before.completeness),
        provenance_entries_added=diff.provenance_entries_added,
    )

    snapshot = GAPSnapshot(
        id=str(uuid.uuid4()),
        company_id=company_id,
        timestamp=(now or utc_now()).isoformat(),
        context_before=copy.deepcopy(context_before.to_dict()) if context_before else {},
        context_after=copy.deepcopy(context_after.to_dict()) if context_after else {},
        gap_findings=copy.deepcopy(gap_structured.to_dict()),
        insights=tuple(copy.deepcopy(i.to_dict()) for i in insights),
        labs_run=tuple(labs_run),
        changes=changes,
    )

    logger.info(
        f"Snapshot {snapshot.id} for {company_id}: {changes.fields_added} added, "
        f"{changes.fields_updated} updated, score change {changes.score_change:+d}"
    )
    return snapshot
