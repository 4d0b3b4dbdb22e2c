"""
GAP Orchestrator Data Types

Dataclasses shared by every stage of an orchestration run:

- ContextHealthAssessment: completeness / freshness snapshot of a graph
- LabRunPlan / LabRunPlanItem: which Labs to run, in which order
- LabRefinementOutput: normalised result of one Lab run
- GAPStructuredOutput: scored synthesis of the whole run
- ClientInsight: normalised insight records for the client brain
- GAPSnapshot: immutable before/after record for QBR reporting
- OrchestratorInput / OrchestratorOutput: the public entrypoint contract

Every type serializes with `to_dict()` using camelCase keys, since these
payloads are persisted and read by other services.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from src.context_graph.models import CompanyContextGraph

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class LabId(str, Enum):
    """Diagnostic Labs the orchestrator can dispatch."""
    BRAND = "brand"
    WEBSITE = "website"
    SEO = "seo"
    CONTENT = "content"
    DEMAND = "demand"
    OPS = "ops"
    AUDIENCE = "audience"
    CREATIVE = "creative"
    MEDIA = "media"
    UX = "ux"
    COMPETITOR = "competitor"


LabIdLike = Union[LabId, str]


def coerce_lab_id(value: LabIdLike) -> Optional[LabId]:
    """Convert a string or LabId into a LabId, or None if unknown."""
    if isinstance(value, LabId):
        return value
    try:
        return LabId(str(value).strip().lower())
    except ValueError:
        return None


def coerce_lab_ids(values: Optional[List[LabIdLike]]) -> List[LabId]:
    """Convert a list of ids, dropping (and logging) unknown ones."""
    result: List[LabId] = []
    for value in values or []:
        lab_id = coerce_lab_id(value)
        if lab_id is None:
            logger.warning(f"Ignoring unknown lab id: {value!r}")
            continue
        if lab_id not in result:
            result.append(lab_id)
    return result


# =============================================================================
# CONTEXT HEALTH
# =============================================================================


@dataclass
class ContextHealthAssessment:
    """Read-only completeness/freshness snapshot of a context graph."""
    completeness: int = 0
    freshness: int = 0
    missing_critical_fields: List[str] = field(default_factory=list)
    stale_fields: List[str] = field(default_factory=list)
    stale_sections: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    # Raw counts behind the percentages
    total_fields: int = 0
    populated_fields: int = 0
    fresh_fields: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completeness": self.completeness,
            "freshness": self.freshness,
            "missingCriticalFields": list(self.missing_critical_fields),
            "staleFields": list(self.stale_fields),
            "staleSections": list(self.stale_sections),
            "recommendations": list(self.recommendations),
            "totalFields": self.total_fields,
            "populatedFields": self.populated_fields,
            "freshFields": self.fresh_fields,
        }


# =============================================================================
# LAB PLAN
# =============================================================================


@dataclass
class LabRunPlanItem:
    """One Lab scheduled to run."""
    lab_id: LabId
    lab_name: str
    reason: str
    fields_to_fill: List[str] = field(default_factory=list)
    priority: int = 99
    estimated_duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labId": self.lab_id.value,
            "labName": self.lab_name,
            "reason": self.reason,
            "fieldsToFill": list(self.fields_to_fill),
            "priority": self.priority,
            "estimatedDurationMs": self.estimated_duration_ms,
        }


@dataclass
class LabRunPlan:
    """Priority-ordered list of Labs plus aggregate estimates."""
    labs: List[LabRunPlanItem] = field(default_factory=list)
    total_estimated_duration_ms: int = 0
    missing_fields_count: int = 0
    unmapped_fields: List[str] = field(default_factory=list)

    @property
    def lab_ids(self) -> List[LabId]:
        return [item.lab_id for item in self.labs]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labs": [item.to_dict() for item in self.labs],
            "totalEstimatedDurationMs": self.total_estimated_duration_ms,
            "missingFieldsCount": self.missing_fields_count,
            "unmappedFields": list(self.unmapped_fields),
        }


# =============================================================================
# LAB REFINEMENT OUTPUT
# =============================================================================


@dataclass
class LabRefinedContext:
    """Candidate context-graph write produced by a Lab (not yet merged)."""
    domain: str
    field: str
    value: Any
    confidence: float

    @property
    def path(self) -> str:
        return f"{self.domain}.{self.field}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "field": self.field,
            "value": self.value,
            "confidence": self.confidence,
        }


@dataclass
class LabDiagnostics:
    lab_id: LabId
    run_id: str
    score: Optional[float] = None
    summary: Optional[str] = None
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "labId": self.lab_id.value,
            "score": self.score,
            "summary": self.summary,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "runId": self.run_id,
        }


@dataclass
class LabInsightUnit:
    """Insight candidate extracted from one Lab's engine output."""
    title: str
    summary: str
    category: str
    severity: str
    source_lab_id: LabId
    recommendation: Optional[str] = None
    rationale: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "category": self.category,
            "severity": self.severity,
            "recommendation": self.recommendation,
            "rationale": self.rationale,
            "sourceLabId": self.source_lab_id.value,
        }


@dataclass
class LabRefinementOutput:
    """Normalised result of running one Lab in refinement mode."""
    lab_id: LabId
    lab_name: str
    success: bool
    run_id: str
    diagnostics: LabDiagnostics
    refined_context: List[LabRefinedContext] = field(default_factory=list)
    insights: List[LabInsightUnit] = field(default_factory=list)
    duration_ms: int = 0
    error: Optional[str] = None
    raw_engine_data: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(
        cls,
        lab_id: LabId,
        lab_name: str,
        run_id: str,
        error: str,
        duration_ms: int = 0,
    ) -> "LabRefinementOutput":
        """Failed output: empty refined context and insights."""
        return cls(
            lab_id=lab_id,
            lab_name=lab_name,
            success=False,
            run_id=run_id,
            diagnostics=LabDiagnostics(lab_id=lab_id, run_id=run_id),
            error=error,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "labId": self.lab_id.value,
            "labName": self.lab_name,
            "success": self.success,
            "refinedContext": [r.to_dict() for r in self.refined_context],
            "diagnostics": self.diagnostics.to_dict(),
            "insights": [i.to_dict() for i in self.insights],
            "runId": self.run_id,
            "durationMs": self.duration_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


# =============================================================================
# STRUCTURED OUTPUT
# =============================================================================


@dataclass
class GAPScores:
    """Per-dimension scores (0-100)."""
    overall: float = 0
    brand: float = 0
    content: float = 0
    seo: float = 0
    website: float = 0
    authority: float = 0
    digital_footprint: float = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "overall": self.overall,
            "brand": self.brand,
            "content": self.content,
            "seo": self.seo,
            "website": self.website,
            "authority": self.authority,
            "digitalFootprint": self.digital_footprint,
        }


@dataclass
class DimensionDiagnostic:
    dimension: str
    score: float
    summary: str = ""
    strengths: List[str] = field(default_factory=list)
    gaps: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dimension": self.dimension,
            "score": self.score,
            "summary": self.summary,
            "strengths": list(self.strengths),
            "gaps": list(self.gaps),
            "opportunities": list(self.opportunities),
        }


@dataclass
class KeyFinding:
    type: str  # "gap" | "opportunity" | "strength"
    title: str
    description: str
    dimensions: List[str] = field(default_factory=list)
    severity: str = "medium"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "dimensions": list(self.dimensions),
            "severity": self.severity,
        }


@dataclass
class NextStep:
    title: str
    description: str
    priority: int
    effort: str = "medium"
    impact: str = "medium"
    dimension: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "effort": self.effort,
            "impact": self.impact,
            "dimension": self.dimension,
        }


@dataclass
class GAPStructuredOutput:
    """Machine-readable synthesis of a full GAP run."""
    scores: GAPScores = field(default_factory=GAPScores)
    maturity_stage: str = "Unknown"
    dimension_diagnostics: List[DimensionDiagnostic] = field(default_factory=list)
    key_findings: List[KeyFinding] = field(default_factory=list)
    recommended_next_steps: List[NextStep] = field(default_factory=list)
    kpis_to_watch: List[str] = field(default_factory=list)

    # Extended fields used to seed the context graph
    primary_offers: List[str] = field(default_factory=list)
    competitors: List[str] = field(default_factory=list)
    audience_summary: Optional[str] = None
    brand_identity_notes: Optional[str] = None
    unknowns: List[str] = field(default_factory=list)
    business_model: Optional[str] = None
    industry: Optional[str] = None

    # "growth_plan", "lab_fallback" or "empty"
    source: str = "empty"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": self.scores.to_dict(),
            "maturityStage": self.maturity_stage,
            "dimensionDiagnostics": [d.to_dict() for d in self.dimension_diagnostics],
            "keyFindings": [f.to_dict() for f in self.key_findings],
            "recommendedNextSteps": [s.to_dict() for s in self.recommended_next_steps],
            "kpisToWatch": list(self.kpis_to_watch),
            "primaryOffers": list(self.primary_offers),
            "competitors": list(self.competitors),
            "audienceSummary": self.audience_summary,
            "brandIdentityNotes": self.brand_identity_notes,
            "unknowns": list(self.unknowns),
            "businessModel": self.business_model,
            "industry": self.industry,
            "source": self.source,
        }


# =============================================================================
# INSIGHTS
# =============================================================================


@dataclass
class ClientInsight:
    """Normalised insight record written to the client brain."""
    id: str
    company_id: str
    title: str
    body: str
    category: str
    severity: str
    source: Dict[str, Any]
    created_at: str
    updated_at: str
    status: str = "open"
    recommendation: Optional[str] = None
    rationale: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "severity": self.severity,
            "status": self.status,
            "source": dict(self.source),
            "recommendation": self.recommendation,
            "rationale": self.rationale,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# =============================================================================
# SNAPSHOT
# =============================================================================


@dataclass(frozen=True)
class SnapshotChanges:
    fields_updated: int = 0
    fields_added: int = 0
    insights_created: int = 0
    score_change: int = 0
    provenance_entries_added: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "fieldsUpdated": self.fields_updated,
            "fieldsAdded": self.fields_added,
            "insightsCreated": self.insights_created,
            "scoreChange": self.score_change,
            "provenanceEntriesAdded": self.provenance_entries_added,
        }


@dataclass(frozen=True)
class GAPSnapshot:
    """
    Immutable record of one orchestration run.

    Graph states, findings and insights are held as serialized copies taken
    at construction time, so later changes to the live objects never leak in.
    Field rebinding is blocked by the frozen dataclass, but the payload dicts
    themselves are plain dicts and must be treated as read-only. to_dict()
    hands out deep copies; the archived copy is write-once in SnapshotStore.
    """
    id: str
    company_id: str
    timestamp: str
    context_before: Dict[str, Any]
    context_after: Dict[str, Any]
    gap_findings: Dict[str, Any]
    insights: Tuple[Dict[str, Any], ...]
    labs_run: Tuple[str, ...]
    changes: SnapshotChanges

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyId": self.company_id,
            "timestamp": self.timestamp,
            "contextBefore": copy.deepcopy(self.context_before),
            "contextAfter": copy.deepcopy(self.context_after),
            "gapFindings": copy.deepcopy(self.gap_findings),
            "insights": copy.deepcopy(list(self.insights)),
            "labsRun": list(self.labs_run),
            "changes": self.changes.to_dict(),
        }


# =============================================================================
# ORCHESTRATOR CONTRACT
# =============================================================================


@dataclass
class OrchestratorInput:
    """Request for one full GAP orchestration run."""
    company_id: str
    gap_ia_run: Optional[Dict[str, Any]] = None
    force_labs: List[LabIdLike] = field(default_factory=list)
    skip_labs: List[LabIdLike] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class CanonicalRunSummary:
    """What one canonical extraction pass proposed, accepted and wrote."""
    stage: str  # "broad" | "restricted"
    proposed: int = 0
    accepted: int = 0
    written: List[str] = field(default_factory=list)
    rejected: List[Dict[str, str]] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "proposed": self.proposed,
            "accepted": self.accepted,
            "written": list(self.written),
            "rejected": [dict(r) for r in self.rejected],
            "skipped": [dict(s) for s in self.skipped],
            "error": self.error,
        }


@dataclass
class OrchestratorOutput:
    """Fully shaped result of a run, returned on success and on failure."""
    success: bool
    health_before: ContextHealthAssessment
    health_after: ContextHealthAssessment
    gap_structured: GAPStructuredOutput
    started_at: str
    completed_at: str
    duration_ms: int
    mode: str = "os_orchestrator"
    error: Optional[str] = None
    context_before: Optional[CompanyContextGraph] = None
    context_after: Optional[CompanyContextGraph] = None
    labs_run: List[str] = field(default_factory=list)
    lab_outputs: List[LabRefinementOutput] = field(default_factory=list)
    insights: List[ClientInsight] = field(default_factory=list)
    snapshot_id: str = ""
    snapshot: Optional[GAPSnapshot] = None
    lab_plan: Optional[LabRunPlan] = None
    competition_gap: Optional[Any] = None
    competitive_readiness: Optional[Any] = None
    canonical_runs: List[CanonicalRunSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "success": self.success,
            "error": self.error,
            "dryRun": self.dry_run,
            "contextBefore": self.context_before.to_dict() if self.context_before else None,
            "contextAfter": self.context_after.to_dict() if self.context_after else None,
            "healthBefore": self.health_before.to_dict(),
            "healthAfter": self.health_after.to_dict(),
            "labsRun": list(self.labs_run),
            "labOutputs": [o.to_dict() for o in self.lab_outputs],
            "gapStructured": self.gap_structured.to_dict(),
            "insights": [i.to_dict() for i in self.insights],
            "snapshotId": self.snapshot_id,
            "labPlan": self.lab_plan.to_dict() if self.lab_plan else None,
            "competitionGap": self.competition_gap.to_dict() if self.competition_gap else None,
            "competitiveReadiness": (
                self.competitive_readiness.to_dict() if self.competitive_readiness else None
            ),
            "canonicalRuns": [c.to_dict() for c in self.canonical_runs],
            "warnings": list(self.warnings),
            "durationMs": self.duration_ms,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        }
