"""
Lab Execution Adapter

Runs one Lab in "refinement mode": instead of a narrative report, the
engine output is projected into three independent views:

- refined context: candidate context-graph writes with fixed confidences
- diagnostics: score, summary, issues and recommendations for reporting
- insights: up to 5 issues and 3 quick wins, titles truncated

A diagnostic run record is kept for every invocation. Tracking is pure
observability: tracker failures are logged and never affect the Lab run.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from src.context_graph.models import is_populated_value
from src.persistence.diagnostic_runs import DiagnosticRunStatus, DiagnosticRunTracker
from src.utils.config import get_settings
from src.utils.timeouts import run_with_timeout
from src.utils.urls import normalize_website_url

from .engines import EngineInput, EngineResult, LabEngineRegistry, UnknownLabError
from .lab_plan import get_lab_name
from .types import (
    LabDiagnostics,
    LabId,
    LabIdLike,
    LabInsightUnit,
    LabRefinedContext,
    LabRefinementOutput,
    coerce_lab_id,
)

logger = logging.getLogger(__name__)

MAX_ISSUE_INSIGHTS = 5
MAX_QUICK_WIN_INSIGHTS = 3
ISSUE_TITLE_LIMIT = 100
QUICK_WIN_TITLE_LIMIT = 80

VALID_SEVERITIES = ("low", "medium", "high", "critical")


# =============================================================================
# REFINED CONTEXT MAPPINGS
# =============================================================================

# (engine data key, target domain, target field, confidence)
REFINED_FIELD_MAPPINGS: Dict[LabId, List[Tuple[str, str, str, float]]] = {
    LabId.BRAND: [
        ("overallScore", "brand", "healthScore", 0.8),
        ("dimensions", "brand", "dimensionScores", 0.8),
        ("pillars", "brand", "pillars", 0.75),
    ],
    LabId.WEBSITE: [
        ("score", "website", "uxScore", 0.8),
        ("criticalIssues", "website", "criticalIssues", 0.85),
        ("conversionFactors", "website", "conversionFactors", 0.8),
        ("quickWins", "website", "quickWins", 0.8),
    ],
    LabId.SEO: [
        ("overallScore", "seo", "overallScore", 0.8),
        ("technicalIssues", "seo", "technicalIssues", 0.85),
        ("topGaps", "seo", "contentGaps", 0.75),
        ("keywordThemes", "seo", "keywordThemes", 0.75),
    ],
    LabId.CONTENT: [
        ("score", "content", "qualityScore", 0.8),
        ("topics", "content", "topicCoverage", 0.75),
    ],
    LabId.DEMAND: [
        ("score", "digitalInfra", "demandGenScore", 0.8),
        ("channels", "digitalInfra", "demandChannels", 0.75),
    ],
    LabId.OPS: [
        ("score", "ops", "maturityScore", 0.8),
        ("stack", "ops", "martechStack", 0.8),
    ],
    LabId.AUDIENCE: [
        ("score", "audience", "clarityScore", 0.8),
        ("segments", "audience", "coreSegments", 0.75),
        ("painPoints", "audience", "painPoints", 0.75),
    ],
    LabId.CREATIVE: [
        ("coreMessages", "creative", "coreMessages", 0.75),
        ("proofPoints", "creative", "proofPoints", 0.75),
    ],
    LabId.MEDIA: [
        ("score", "performanceMedia", "mediaScore", 0.8),
        ("channels", "performanceMedia", "activeChannels", 0.8),
    ],
    LabId.UX: [
        ("mobileExperience", "website", "mobileExperience", 0.8),
        ("navigation", "website", "navigationClarity", 0.75),
    ],
    LabId.COMPETITOR: [
        ("competitors", "competitive", "competitors", 0.8),
        ("positionSummary", "competitive", "positionSummary", 0.75),
    ],
}


# =============================================================================
# PROJECTIONS
# =============================================================================


def _item_text(item: Any, *keys: str) -> Optional[str]:
    """String items as-is, dict items by the first non-empty key."""
    if isinstance(item, str):
        return item or None
    if isinstance(item, dict):
        for key in keys:
            value = item.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def extract_refined_context(lab_id: LabId, data: Optional[Dict[str, Any]]) -> List[LabRefinedContext]:
    """Candidate context writes from an engine's data payload."""
    if not data:
        return []

    refined = []
    for key, domain, field_name, confidence in REFINED_FIELD_MAPPINGS.get(lab_id, []):
        value = data.get(key)
        if is_populated_value(value):
            refined.append(LabRefinedContext(
                domain=domain,
                field=field_name,
                value=value,
                confidence=confidence,
            ))
    return refined


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def extract_diagnostics(lab_id: LabId, result: EngineResult, run_id: str) -> LabDiagnostics:
    data = result.data or {}

    score = result.score
    if score is None:
        score = _numeric(data.get("overallScore"))
    if score is None:
        score = _numeric(data.get("score"))

    issues = [
        text for text in (_item_text(i, "title", "description") for i in data.get("issues") or [])
        if text
    ]
    recommendations = [
        text for text in (_item_text(r, "title", "description") for r in data.get("recommendations") or [])
        if text
    ]

    return LabDiagnostics(
        lab_id=lab_id,
        run_id=run_id,
        score=score,
        summary=result.summary or data.get("summary"),
        issues=issues,
        recommendations=recommendations,
    )


def determine_severity(issue: Any) -> str:
    """Severity from an issue's own severity, priority or impact; default medium."""
    if isinstance(issue, dict):
        severity = issue.get("severity")
        if isinstance(severity, str) and severity.lower() in VALID_SEVERITIES:
            return severity.lower()
        if issue.get("priority") == "high" or issue.get("impact") == "high":
            return "high"
        if issue.get("priority") == "critical":
            return "critical"
    return "medium"


def extract_insights(lab_id: LabId, data: Optional[Dict[str, Any]]) -> List[LabInsightUnit]:
    data = data or {}
    insights = []

    issues = data.get("issues") or data.get("criticalIssues") or []
    for issue in issues[:MAX_ISSUE_INSIGHTS]:
        title = _item_text(issue, "title", "description")
        if not title:
            continue
        insights.append(LabInsightUnit(
            title=_truncate(title, ISSUE_TITLE_LIMIT),
            summary=_item_text(issue, "description", "title") or title,
            category=lab_id.value,
            severity=determine_severity(issue),
            source_lab_id=lab_id,
            recommendation=_item_text(issue, "recommendation", "recommendedAction") if isinstance(issue, dict) else None,
            rationale=_item_text(issue, "rationale") if isinstance(issue, dict) else None,
        ))

    for quick_win in (data.get("quickWins") or [])[:MAX_QUICK_WIN_INSIGHTS]:
        title = _item_text(quick_win, "title", "description")
        if not title:
            continue
        insights.append(LabInsightUnit(
            title=f"Quick Win: {_truncate(title, QUICK_WIN_TITLE_LIMIT)}",
            summary=_item_text(quick_win, "description", "title") or title,
            category=lab_id.value,
            severity="medium",
            source_lab_id=lab_id,
            recommendation=_item_text(quick_win, "action", "recommendation") if isinstance(quick_win, dict) else None,
        ))

    return insights


def _company_website(company: Any) -> Optional[str]:
    if isinstance(company, dict):
        return company.get("website")
    return getattr(company, "website", None)


# =============================================================================
# RUNNER
# =============================================================================


class LabRefinementRunner:
    """
    Runs Labs through the engine registry.

    Usage:
        runner = LabRefinementRunner(registry, tracker=DiagnosticRunTracker())
        output = await runner.run(LabId.BRAND, company.id, company, graph)
    """

    def __init__(
        self,
        registry: LabEngineRegistry,
        tracker: Optional[DiagnosticRunTracker] = None,
        timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.tracker = tracker
        self.timeout = timeout if timeout is not None else get_settings().LAB_ENGINE_TIMEOUT

    # -------------------------------------------------------------------------
    # Best-effort tracking
    # -------------------------------------------------------------------------

    def _track_start(self, lab_id: LabId, company_id: str, run_id: str) -> Optional[str]:
        if self.tracker is None:
            return None
        try:
            run = self.tracker.create_diagnostic_run(
                company_id=company_id,
                tool_id=f"{lab_id.value}Lab",
                status=DiagnosticRunStatus.RUNNING,
                metadata={"mode": "refinement", "refinementRunId": run_id},
            )
            return run.run_id
        except Exception as e:
            logger.warning(f"Could not create diagnostic run for {lab_id.value}: {e}")
            return None

    def _track_finish(self, tracker_run_id: Optional[str], lab_id: LabId, **updates) -> None:
        if self.tracker is None or tracker_run_id is None:
            return
        try:
            self.tracker.update_diagnostic_run(tracker_run_id, **updates)
        except Exception as e:
            logger.warning(f"Could not update diagnostic run {tracker_run_id} ({lab_id.value}): {e}")

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(
        self,
        lab_id: LabIdLike,
        company_id: str,
        company: Any,
        context: Any = None,
    ) -> LabRefinementOutput:
        """
        Run one Lab and project its output.

        Raises:
            UnknownLabError: lab_id is unknown or has no registered engine
        """
        resolved = coerce_lab_id(lab_id)
        if resolved is None:
            raise UnknownLabError(lab_id)
        engine = self.registry.get(resolved)
        lab_name = get_lab_name(resolved)

        start = time.monotonic()
        run_id = str(uuid.uuid4())
        tracker_run_id = self._track_start(resolved, company_id, run_id)

        engine_input = EngineInput(
            company_id=company_id,
            company=company,
            website_url=normalize_website_url(_company_website(company)),
            context=context,
        )

        logger.info(f"Running {lab_name} for {company_id} (refinement mode)")

        try:
            raw = await run_with_timeout(
                engine(engine_input),
                self.timeout,
                fallback=EngineResult.failure(f"{lab_name} timed out after {self.timeout:.0f}s"),
                label=lab_name,
            )
        except Exception as e:
            self._track_finish(
                tracker_run_id, resolved,
                status=DiagnosticRunStatus.FAILED, error_message=str(e),
            )
            raise

        result = EngineResult.from_raw(raw)
        duration_ms = int((time.monotonic() - start) * 1000)

        if not result.success:
            error = result.error or f"{lab_name} failed"
            logger.warning(f"{lab_name} failed for {company_id}: {error}")
            self._track_finish(
                tracker_run_id, resolved,
                status=DiagnosticRunStatus.FAILED, error_message=error,
            )
            return LabRefinementOutput.failed(resolved, lab_name, run_id, error, duration_ms)

        diagnostics = extract_diagnostics(resolved, result, run_id)
        output = LabRefinementOutput(
            lab_id=resolved,
            lab_name=lab_name,
            success=True,
            run_id=run_id,
            diagnostics=diagnostics,
            refined_context=extract_refined_context(resolved, result.data),
            insights=extract_insights(resolved, result.data),
            duration_ms=duration_ms,
            raw_engine_data=result.data,
        )

        self._track_finish(
            tracker_run_id, resolved,
            status=DiagnosticRunStatus.COMPLETE,
            score=diagnostics.score,
            summary=diagnostics.summary,
            raw_json=result.data,
        )

        logger.info(
            f"{lab_name} complete: {len(output.refined_context)} refined fields, "
            f"{len(output.insights)} insights ({duration_ms}ms)"
        )
        return output
