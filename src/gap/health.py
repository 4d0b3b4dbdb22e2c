"""
Context Health Assessor

Measures how complete and how fresh a company context graph is.

- completeness: share of known fields that hold a value
- freshness: share of populated fields updated within the threshold
- missing critical fields, stale fields and stale sections
- human-readable recommendations pointing at the Lab that closes each gap

Pure functions: the same graph and `now` always give the same assessment.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from src.context_graph.models import CompanyContextGraph, utc_now
from src.context_graph.schema import CRITICAL_FIELDS, split_path
from src.utils.config import get_settings

from .competition_gap import is_competition_gap_exclusive
from .lab_plan import FIELD_TO_LAB, get_lab_name
from .types import ContextHealthAssessment

logger = logging.getLogger(__name__)

STALE_REFRESH_THRESHOLD = 5
BOOTSTRAP_COMPLETENESS_THRESHOLD = 30

BOOTSTRAP_RECOMMENDATION = (
    "No context graph found. Run a full GAP orchestration to bootstrap company context."
)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def assess_context_health(
    graph: Optional[CompanyContextGraph],
    now: Optional[datetime] = None,
    threshold_days: Optional[int] = None,
) -> ContextHealthAssessment:
    """
    Assess completeness and freshness of a context graph.

    Args:
        graph: Graph to assess (None means no graph exists yet)
        now: Reference time for staleness (defaults to current UTC time)
        threshold_days: Freshness threshold (defaults to CONTEXT_FRESHNESS_DAYS)

    Returns:
        ContextHealthAssessment
    """
    if graph is None:
        return ContextHealthAssessment(
            missing_critical_fields=list(CRITICAL_FIELDS),
            recommendations=[BOOTSTRAP_RECOMMENDATION],
        )

    now = now or utc_now()
    if threshold_days is None:
        threshold_days = get_settings().CONTEXT_FRESHNESS_DAYS
    cutoff = now - timedelta(days=threshold_days)

    total = 0
    populated = 0
    fresh = 0
    stale_fields: List[str] = []
    stale_sections: List[str] = []

    for domain, field_name, cell in graph.iter_fields():
        total += 1
        if not cell.is_populated:
            continue
        populated += 1

        current = cell.current
        updated = current.updated_datetime if current else None
        if updated is not None and updated >= cutoff:
            fresh += 1
            continue

        stale_fields.append(f"{domain}.{field_name}")
        if domain not in stale_sections:
            stale_sections.append(domain)

    missing_critical = []
    for path in CRITICAL_FIELDS:
        cell = graph.get_field(path)
        if cell is None or not cell.is_populated:
            missing_critical.append(path)

    completeness = _percent(populated, total)
    freshness = _percent(fresh, populated)

    assessment = ContextHealthAssessment(
        completeness=completeness,
        freshness=freshness,
        missing_critical_fields=missing_critical,
        stale_fields=stale_fields,
        stale_sections=stale_sections,
        recommendations=_build_recommendations(
            missing_critical, stale_fields, completeness, threshold_days
        ),
        total_fields=total,
        populated_fields=populated,
        fresh_fields=fresh,
    )

    logger.debug(
        f"Context health for {graph.company_id}: completeness={completeness}% "
        f"freshness={freshness}% missing={len(missing_critical)} stale={len(stale_fields)}"
    )
    return assessment


def _build_recommendations(
    missing_critical: List[str],
    stale_fields: List[str],
    completeness: int,
    threshold_days: int,
) -> List[str]:
    recommendations = []

    # Group missing critical fields by domain, keeping first-seen order
    by_domain: Dict[str, List[str]] = {}
    for path in missing_critical:
        domain, field_name = split_path(path)
        by_domain.setdefault(domain, []).append(field_name)

    for domain, fields in by_domain.items():
        first_path = f"{domain}.{fields[0]}"
        owner = FIELD_TO_LAB.get(first_path)
        if owner:
            action = f"Run {get_lab_name(owner)}"
        elif is_competition_gap_exclusive(first_path):
            action = "Run Competition Lab"
        else:
            action = "Complete Strategic Setup"
        recommendations.append(f"{action} to populate: {', '.join(fields)}")

    if len(stale_fields) > STALE_REFRESH_THRESHOLD:
        recommendations.append(
            f"{len(stale_fields)} fields are older than {threshold_days} days. "
            f"Re-run the owning Labs to refresh them."
        )

    if completeness < BOOTSTRAP_COMPLETENESS_THRESHOLD:
        recommendations.append(
            f"Context is only {completeness}% complete. "
            f"Run a full GAP orchestration to bootstrap missing context."
        )

    return recommendations


def quick_health_score(assessment: ContextHealthAssessment) -> int:
    """Single 0-100 score: 70% completeness, 30% freshness."""
    return round_half_up(assessment.completeness * 0.7 + assessment.freshness * 0.3)
