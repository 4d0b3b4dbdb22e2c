"""
GAP Structured Output Builders

Two ways to produce a GAPStructuredOutput:

- build_structured_output_from_growth_plan(): maps the GAP Plan engine's
  growth plan payload (validated with pydantic, tolerant of missing keys)
- build_structured_output_from_labs(): deterministic fallback synthesised
  from Lab diagnostics when the GAP Plan engine is unavailable or fails
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .health import round_half_up
from .types import (
    ContextHealthAssessment,
    DimensionDiagnostic,
    GAPScores,
    GAPStructuredOutput,
    KeyFinding,
    LabId,
    LabRefinementOutput,
    NextStep,
)

logger = logging.getLogger(__name__)

MAX_KEY_FINDINGS = 10
MAX_NEXT_STEPS = 10
MAX_DIAGNOSTIC_ITEMS = 3


def maturity_stage_for(score: float) -> str:
    if score >= 80:
        return "Established"
    if score >= 60:
        return "Scaling"
    if score >= 40:
        return "Emerging"
    return "Early Stage"


# =============================================================================
# GROWTH PLAN PAYLOAD
# =============================================================================


def _coerce_title_items(value: Any) -> Any:
    """Allow bare strings wherever an action object is expected."""
    if isinstance(value, list):
        return [{"title": v} if isinstance(v, str) else v for v in value]
    return value


class ScorecardPayload(BaseModel):
    overall: Optional[float] = None
    website: Optional[float] = None
    content: Optional[float] = None
    brand: Optional[float] = None
    seo: Optional[float] = None
    authority: Optional[float] = None
    digital_footprint: Optional[float] = Field(None, alias="digitalFootprint")

    class Config:
        extra = "ignore"
        populate_by_name = True


class ExecutiveSummaryPayload(BaseModel):
    overall_score: Optional[float] = Field(None, alias="overallScore")
    maturity_stage: Optional[str] = Field(None, alias="maturityStage")
    narrative: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    key_issues: List[str] = Field(default_factory=list, alias="keyIssues")
    strategic_priorities: List[str] = Field(default_factory=list, alias="strategicPriorities")

    class Config:
        extra = "ignore"
        populate_by_name = True


class SectionAnalysisPayload(BaseModel):
    label: Optional[str] = None
    score: Optional[float] = None
    summary: Optional[str] = None
    verdict: Optional[str] = None
    strengths: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    class Config:
        extra = "ignore"
        populate_by_name = True


class GrowthActionPayload(BaseModel):
    title: str
    description: str = ""
    priority: Optional[str] = None
    impact: Optional[str] = None
    resource_requirement: Optional[str] = Field(None, alias="resourceRequirement")
    service_area: Optional[str] = Field(None, alias="serviceArea")

    class Config:
        extra = "ignore"
        populate_by_name = True


class GrowthPlanPayload(BaseModel):
    """The subset of a GAP Plan growth plan this core reads."""
    scorecard: ScorecardPayload = Field(default_factory=ScorecardPayload)
    executive_summary: ExecutiveSummaryPayload = Field(
        default_factory=ExecutiveSummaryPayload, alias="executiveSummary"
    )
    section_analyses: Dict[str, SectionAnalysisPayload] = Field(
        default_factory=dict, alias="sectionAnalyses"
    )
    quick_wins: List[GrowthActionPayload] = Field(default_factory=list, alias="quickWins")
    strategic_initiatives: List[GrowthActionPayload] = Field(
        default_factory=list, alias="strategicInitiatives"
    )
    kpis: List[str] = Field(default_factory=list, alias="kpisToWatch")
    competitor_analysis: Dict[str, Any] = Field(default_factory=dict, alias="competitorAnalysis")

    # Extended fields
    primary_offers: List[str] = Field(default_factory=list, alias="primaryOffers")
    competitors: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    audience_summary: Optional[str] = Field(None, alias="audienceSummary")
    brand_identity_notes: Optional[str] = Field(None, alias="brandIdentityNotes")
    unknowns: List[str] = Field(default_factory=list)
    business_model: Optional[str] = Field(None, alias="businessModel")
    industry: Optional[str] = None

    class Config:
        extra = "ignore"
        populate_by_name = True

    @field_validator("quick_wins", "strategic_initiatives", mode="before")
    @classmethod
    def _titles_as_actions(cls, value: Any) -> Any:
        return _coerce_title_items(value)

    @field_validator("section_analyses", mode="before")
    @classmethod
    def _sections_by_key(cls, value: Any) -> Any:
        # Older plans send a list of sections instead of a keyed object
        if isinstance(value, list):
            return {
                str(section.get("key") or section.get("label") or index): section
                for index, section in enumerate(value)
                if isinstance(section, dict)
            }
        return value

    @field_validator("scorecard", "executive_summary", "competitor_analysis", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


def _competitor_names(items: List[Any]) -> List[str]:
    names = []
    for item in items:
        name = item.get("name") if isinstance(item, dict) else item
        if isinstance(name, str) and name.strip() and name not in names:
            names.append(name.strip())
    return names


def _level(value: Optional[str]) -> str:
    value = (value or "").lower()
    return value if value in ("low", "medium", "high") else "medium"


def build_structured_output_from_growth_plan(growth_plan: Dict[str, Any]) -> GAPStructuredOutput:
    """
    Map a GAP Plan engine growth plan onto the structured output.

    Raises:
        pydantic.ValidationError: payload has the wrong types
    """
    plan = GrowthPlanPayload.model_validate(growth_plan or {})
    card = plan.scorecard

    dimension_values = [
        v for v in (card.brand, card.content, card.seo, card.website, card.authority, card.digital_footprint)
        if v is not None
    ]
    overall = card.overall
    if overall is None:
        overall = plan.executive_summary.overall_score
    if overall is None and dimension_values:
        overall = round_half_up(sum(dimension_values) / len(dimension_values))
    overall = overall or 0

    scores = GAPScores(
        overall=overall,
        brand=card.brand or 0,
        content=card.content or 0,
        seo=card.seo or 0,
        website=card.website or 0,
        authority=card.authority or 0,
        digital_footprint=card.digital_footprint or 0,
    )

    diagnostics = [
        DimensionDiagnostic(
            dimension=section.label or key,
            score=section.score or 0,
            summary=section.summary or section.verdict or "",
            strengths=section.strengths[:5],
            gaps=section.issues[:5],
            opportunities=section.recommendations[:5],
        )
        for key, section in plan.section_analyses.items()
    ]

    findings = [
        KeyFinding(type="gap", title=issue, description=issue, severity="high")
        for issue in plan.executive_summary.key_issues
    ] + [
        KeyFinding(type="strength", title=strength, description=strength, severity="low")
        for strength in plan.executive_summary.strengths
    ]

    actions = plan.quick_wins + plan.strategic_initiatives
    next_steps = [
        NextStep(
            title=action.title,
            description=action.description or action.title,
            priority=index + 1,
            effort=_level(action.resource_requirement),
            impact=_level(action.impact),
            dimension=action.service_area,
        )
        for index, action in enumerate(actions[:MAX_NEXT_STEPS])
    ]

    competitors = _competitor_names(
        plan.competitors or list(plan.competitor_analysis.get("competitors") or [])
    )

    return GAPStructuredOutput(
        scores=scores,
        maturity_stage=plan.executive_summary.maturity_stage or maturity_stage_for(overall),
        dimension_diagnostics=diagnostics,
        key_findings=findings[:MAX_KEY_FINDINGS],
        recommended_next_steps=next_steps,
        kpis_to_watch=list(plan.kpis),
        primary_offers=list(plan.primary_offers),
        competitors=competitors,
        audience_summary=plan.audience_summary,
        brand_identity_notes=plan.brand_identity_notes,
        unknowns=list(plan.unknowns),
        business_model=plan.business_model,
        industry=plan.industry,
        source="growth_plan",
    )


# =============================================================================
# LAB FALLBACK
# =============================================================================

# GAPScores attribute -> Lab whose diagnostics score fills it
DIMENSION_LABS = {
    "brand": LabId.BRAND,
    "content": LabId.CONTENT,
    "seo": LabId.SEO,
    "website": LabId.WEBSITE,
    "authority": LabId.COMPETITOR,
    "digital_footprint": LabId.DEMAND,
}


def build_structured_output_from_labs(
    health: ContextHealthAssessment,
    lab_outputs: List[LabRefinementOutput],
) -> GAPStructuredOutput:
    """Deterministic structured output from Lab diagnostics."""
    successful = [o for o in lab_outputs if o.success]
    lab_scores = {o.lab_id: o.diagnostics.score for o in successful if o.diagnostics.score is not None}

    if lab_scores:
        overall = round_half_up(sum(lab_scores.values()) / len(lab_scores))
    else:
        overall = health.completeness

    scores = GAPScores(overall=overall)
    for attribute, lab_id in DIMENSION_LABS.items():
        setattr(scores, attribute, lab_scores.get(lab_id, 0))

    diagnostics = [
        DimensionDiagnostic(
            dimension=o.lab_name,
            score=o.diagnostics.score or 0,
            summary=o.diagnostics.summary or "",
            gaps=o.diagnostics.issues[:MAX_DIAGNOSTIC_ITEMS],
            opportunities=o.diagnostics.recommendations[:MAX_DIAGNOSTIC_ITEMS],
        )
        for o in successful
    ]

    findings = [
        KeyFinding(
            type="gap" if insight.severity in ("critical", "high") else "opportunity",
            title=insight.title,
            description=insight.summary,
            dimensions=[insight.category],
            severity=insight.severity,
        )
        for o in lab_outputs
        for insight in o.insights
    ][:MAX_KEY_FINDINGS]

    next_steps = [
        NextStep(
            title=recommendation,
            description=recommendation,
            priority=index + 1,
            dimension=o.lab_name,
        )
        for o in lab_outputs
        for index, recommendation in enumerate(o.diagnostics.recommendations)
    ][:MAX_NEXT_STEPS]

    return GAPStructuredOutput(
        scores=scores,
        maturity_stage=maturity_stage_for(overall),
        dimension_diagnostics=diagnostics,
        key_findings=findings,
        recommended_next_steps=next_steps,
        source="lab_fallback",
    )


def empty_structured_output() -> GAPStructuredOutput:
    """Zeroed output used when a run fails outright."""
    return GAPStructuredOutput()
