"""
Lab Run Planner

Maps missing and stale context fields to the Lab that owns them and builds
a priority-ordered execution plan.

Planning rules:
- Missing critical fields first, then stale fields
- Skip-listed Labs never run, even when forced
- Forced Labs run even when no field triggered them
- Labs are ordered by fixed priority (1 = run first); ties keep insertion order
- Fields with no owning Lab (identity.*, objectives.*) are reported as
  unmapped instead of triggering work. Competitive fields are owned by
  Competition Gap, so they are unmapped too and the Competitor Lab only
  runs when forced
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .types import (
    ContextHealthAssessment,
    LabId,
    LabIdLike,
    LabRunPlan,
    LabRunPlanItem,
    coerce_lab_ids,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LAB METADATA
# =============================================================================


@dataclass(frozen=True)
class LabMetadata:
    name: str
    estimated_duration_ms: int
    priority: int


LAB_METADATA: Dict[LabId, LabMetadata] = {
    LabId.AUDIENCE: LabMetadata("Audience Lab", 120_000, 1),
    LabId.BRAND: LabMetadata("Brand Lab", 180_000, 2),
    LabId.WEBSITE: LabMetadata("Website Lab", 150_000, 3),
    LabId.UX: LabMetadata("UX Lab", 120_000, 4),
    LabId.SEO: LabMetadata("SEO Lab", 180_000, 5),
    LabId.CONTENT: LabMetadata("Content Lab", 150_000, 6),
    LabId.CREATIVE: LabMetadata("Creative Lab", 150_000, 7),
    LabId.DEMAND: LabMetadata("Demand Lab", 120_000, 8),
    LabId.MEDIA: LabMetadata("Media Lab", 120_000, 9),
    LabId.OPS: LabMetadata("Ops Lab", 90_000, 10),
    LabId.COMPETITOR: LabMetadata("Competitor Lab", 240_000, 11),
}


def get_lab_name(lab_id: LabId) -> str:
    meta = LAB_METADATA.get(lab_id)
    return meta.name if meta else f"{lab_id.value.title()} Lab"


# =============================================================================
# FIELD OWNERSHIP
# =============================================================================

FIELD_TO_LAB: Dict[str, LabId] = {
    # Brand
    "brand.positioning": LabId.BRAND,
    "brand.valueProps": LabId.BRAND,
    "brand.differentiators": LabId.BRAND,
    "brand.toneOfVoice": LabId.BRAND,
    "brand.messagingPillars": LabId.BRAND,
    "brand.healthScore": LabId.BRAND,
    "brand.dimensionScores": LabId.BRAND,
    "brand.pillars": LabId.BRAND,
    # Audience
    "audience.primaryAudience": LabId.AUDIENCE,
    "audience.coreSegments": LabId.AUDIENCE,
    "audience.painPoints": LabId.AUDIENCE,
    "audience.motivations": LabId.AUDIENCE,
    "audience.icpDescription": LabId.AUDIENCE,
    "audience.clarityScore": LabId.AUDIENCE,
    # Website
    "website.uxScore": LabId.WEBSITE,
    "website.criticalIssues": LabId.WEBSITE,
    "website.conversionFactors": LabId.WEBSITE,
    "website.quickWins": LabId.WEBSITE,
    "website.primaryConversionGoal": LabId.WEBSITE,
    # UX
    "website.mobileExperience": LabId.UX,
    "website.navigationClarity": LabId.UX,
    # SEO
    "seo.overallScore": LabId.SEO,
    "seo.technicalIssues": LabId.SEO,
    "seo.contentGaps": LabId.SEO,
    "seo.keywordThemes": LabId.SEO,
    # Content
    "content.qualityScore": LabId.CONTENT,
    "content.contentPillars": LabId.CONTENT,
    "content.topicCoverage": LabId.CONTENT,
    "content.publishingCadence": LabId.CONTENT,
    # Ops
    "ops.maturityScore": LabId.OPS,
    "ops.martechStack": LabId.OPS,
    "ops.analyticsSetup": LabId.OPS,
    # Demand
    "digitalInfra.demandGenScore": LabId.DEMAND,
    "digitalInfra.demandChannels": LabId.DEMAND,
    "digitalInfra.trackingSetup": LabId.DEMAND,
    "digitalInfra.crmPlatform": LabId.DEMAND,
    # Creative
    "creative.coreMessages": LabId.CREATIVE,
    "creative.proofPoints": LabId.CREATIVE,
    "creative.callToActions": LabId.CREATIVE,
    "creative.messaging": LabId.CREATIVE,
    # Performance media
    "performanceMedia.activeChannels": LabId.MEDIA,
    "performanceMedia.mediaScore": LabId.MEDIA,
    "performanceMedia.channelMix": LabId.MEDIA,
    "performanceMedia.budgetAllocation": LabId.MEDIA,
}


def get_lab_for_field(path: str) -> Optional[LabId]:
    """Owning Lab for a dotted field path, or None if unmapped."""
    return FIELD_TO_LAB.get(path)


def get_fields_for_lab(lab_id: LabIdLike) -> List[str]:
    """Dotted paths a Lab is responsible for, in registry order."""
    lab_ids = coerce_lab_ids([lab_id])
    if not lab_ids:
        return []
    return [path for path, owner in FIELD_TO_LAB.items() if owner == lab_ids[0]]


# =============================================================================
# PLANNING
# =============================================================================


def _plan_item(lab_id: LabId, reason: str, fields: List[str]) -> LabRunPlanItem:
    meta = LAB_METADATA[lab_id]
    return LabRunPlanItem(
        lab_id=lab_id,
        lab_name=meta.name,
        reason=reason,
        fields_to_fill=fields,
        priority=meta.priority,
        estimated_duration_ms=meta.estimated_duration_ms,
    )


def _finalize(items: List[LabRunPlanItem], missing_count: int, unmapped: List[str]) -> LabRunPlan:
    # sorted() is stable, so equal priorities keep insertion order
    ordered = sorted(items, key=lambda item: item.priority)
    return LabRunPlan(
        labs=ordered,
        total_estimated_duration_ms=sum(item.estimated_duration_ms for item in ordered),
        missing_fields_count=missing_count,
        unmapped_fields=unmapped,
    )


def determine_labs_needed_for_missing_fields(
    health: ContextHealthAssessment,
    force_labs: Optional[List[LabIdLike]] = None,
    skip_labs: Optional[List[LabIdLike]] = None,
) -> LabRunPlan:
    """
    Build the Lab plan for a health assessment.

    Args:
        health: Assessment whose missing/stale fields drive the plan
        force_labs: Labs to run regardless of field gaps
        skip_labs: Labs that must not run (wins over force_labs)

    Returns:
        Priority-ordered LabRunPlan
    """
    skip = set(coerce_lab_ids(skip_labs))
    force = coerce_lab_ids(force_labs)

    missing = list(health.missing_critical_fields)
    stale = list(health.stale_fields)

    fields_by_lab: Dict[LabId, List[str]] = {}
    reasons: Dict[LabId, str] = {}
    unmapped: List[str] = []

    for path, reason in [(p, "Missing critical fields") for p in missing] + [
        (p, "Stale fields") for p in stale
    ]:
        lab_id = FIELD_TO_LAB.get(path)
        if lab_id is None:
            if path not in unmapped:
                unmapped.append(path)
            continue
        if lab_id in skip:
            continue

        field_name = path.partition(".")[2]
        lab_fields = fields_by_lab.setdefault(lab_id, [])
        if field_name not in lab_fields:
            lab_fields.append(field_name)

        if lab_id not in reasons:
            reasons[lab_id] = reason
        elif reasons[lab_id] != reason:
            reasons[lab_id] = "Missing and stale fields"

    items = [
        _plan_item(lab_id, reasons[lab_id], fields)
        for lab_id, fields in fields_by_lab.items()
    ]

    for lab_id in force:
        if lab_id in skip:
            logger.info(f"Lab {lab_id.value} is both forced and skipped; skipping")
            continue
        if lab_id not in fields_by_lab:
            items.append(_plan_item(lab_id, "Forced by request", []))

    if unmapped:
        logger.info(f"{len(unmapped)} fields have no owning Lab: {', '.join(unmapped)}")

    plan = _finalize(items, len(missing) + len(stale), unmapped)
    logger.info(
        f"Lab plan: {[item.lab_id.value for item in plan.labs]} "
        f"(~{plan.total_estimated_duration_ms // 1000}s, {plan.missing_fields_count} fields considered)"
    )
    return plan


def get_all_available_labs(skip_labs: Optional[List[LabIdLike]] = None) -> LabRunPlan:
    """Every known Lab minus skips, for full-refresh runs."""
    skip = set(coerce_lab_ids(skip_labs))
    items = [
        _plan_item(lab_id, "Full refresh", [])
        for lab_id in LAB_METADATA
        if lab_id not in skip
    ]
    return _finalize(items, 0, [])
