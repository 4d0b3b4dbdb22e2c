"""
Competition Lab Run Importer

Projects a completed Competition Lab run into the graph's competitive
domain. Competitor lists pass through the category guardrail first, so a
stored run produced before the guardrail existed cannot reintroduce
agencies or platforms as competitors.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.context_graph.models import (
    CompanyContextGraph,
    ProvenanceEntry,
    WithMeta,
    is_populated_value,
    utc_now,
)
from src.context_graph.schema import DOMAIN_FIELDS
from src.persistence.diagnostic_runs import DiagnosticRun
from src.utils.config import get_settings

from .category_guardrails import filter_competitors_by_category, fingerprint_from_graph

logger = logging.getLogger(__name__)

COMPETITION_LAB_SOURCE = "competition_lab"
COMPETITION_IMPORT_CONFIDENCE = 0.85

# Competitive fields other than the competitor list itself
POSITIONING_FIELDS = [f for f in DOMAIN_FIELDS["competitive"] if f != "competitors"]


@dataclass
class ImportResult:
    graph: CompanyContextGraph
    fields_updated: List[str] = field(default_factory=list)
    competitors_imported: int = 0
    rejected: List[Dict[str, Any]] = field(default_factory=list)


def _positioning_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Positioning values may sit at the top level or under "positioning"."""
    nested = data.get("positioning")
    merged = dict(nested) if isinstance(nested, dict) else {}
    for name in POSITIONING_FIELDS:
        if name in data:
            merged[name] = data[name]
    return merged


class CompetitionRunImporter:
    """
    Writes Competition Lab output into the competitive domain.

    Usage:
        importer = CompetitionRunImporter()
        result = importer.import_run(graph, run)
        await store.save(result.graph, "competition_lab")
    """

    def __init__(self, valid_for_days: Optional[int] = None):
        self.valid_for_days = (
            valid_for_days if valid_for_days is not None else get_settings().COMPETITION_CACHE_DAYS
        )

    def import_run(self, graph: CompanyContextGraph, run: DiagnosticRun) -> ImportResult:
        """Import a stored diagnostic run (its raw_json payload)."""
        return self.import_data(graph, run.raw_json or {}, run_id=run.run_id)

    def import_data(
        self,
        graph: CompanyContextGraph,
        data: Dict[str, Any],
        run_id: Optional[str] = None,
    ) -> ImportResult:
        """
        Import a Competition Lab payload. The input graph is never mutated.

        Returns:
            ImportResult with the updated copy and the dotted paths written
        """
        updated = graph.clone()
        competitive = updated.domains.setdefault("competitive", {})
        now = utc_now().isoformat()
        notes = f"Imported from Competition Lab run {run_id}" if run_id else "Imported from Competition Lab"

        def write(name: str, value: Any) -> None:
            previous = competitive.get(name)
            entry = ProvenanceEntry(
                source=COMPETITION_LAB_SOURCE,
                updated_at=now,
                confidence=COMPETITION_IMPORT_CONFIDENCE,
                notes=notes,
                valid_for_days=self.valid_for_days,
            )
            competitive[name] = WithMeta(
                value=value,
                provenance=[entry] + (list(previous.provenance) if previous else []),
            )

        result = ImportResult(graph=updated)

        filtered = filter_competitors_by_category(
            fingerprint_from_graph(graph), list(data.get("competitors") or [])
        )
        result.rejected = filtered.rejected
        if filtered.valid:
            write("competitors", filtered.valid)
            result.fields_updated.append("competitive.competitors")
            result.competitors_imported = len(filtered.valid)

        for name, value in _positioning_data(data).items():
            if name not in POSITIONING_FIELDS or not is_populated_value(value):
                continue
            write(name, value)
            result.fields_updated.append(f"competitive.{name}")

        logger.info(
            f"Imported Competition Lab data for {graph.company_id}: "
            f"{result.competitors_imported} competitors, {len(result.fields_updated)} fields "
            f"({len(result.rejected)} competitors rejected)"
        )
        return result
