"""
Competition Gap Runner

Guarantees a fresh competitive context before any Lab runs. The Competition
Lab is the only writer of the competitive fields below; every other Lab's
writes to them are blocked at merge time.

Resolution order for a run:
1. Cached: competitive context still inside its validity window
2. Import: a recent completed Competition Lab run from the run tracker
3. Engine: invoke the Competition Lab engine

The runner never raises. Every failure becomes a failed result, and the
orchestrator carries on with whatever competitive context exists.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from src.context_graph.models import CompanyContextGraph, utc_now
from src.context_graph.store import ContextGraphStore
from src.persistence.diagnostic_runs import DiagnosticRunStatus, DiagnosticRunTracker
from src.utils.config import get_settings
from src.utils.timeouts import run_with_timeout
from src.utils.urls import normalize_website_url

from .collaborators import CompanyDirectory
from .competition_importer import COMPETITION_LAB_SOURCE, CompetitionRunImporter
from .engines import EngineInput, EngineResult

logger = logging.getLogger(__name__)

COMPETITION_LAB_TOOL_ID = "competitionLab"
MIN_COMPETITORS_FOR_STRATEGY = 3

COMPETITION_GAP_EXCLUSIVE_FIELDS = (
    "competitive.competitors",
    "competitive.positionSummary",
    "competitive.primaryAxis",
    "competitive.secondaryAxis",
    "competitive.positioningAxes",
    "competitive.featuresMatrix",
    "competitive.pricingModels",
    "competitive.messageOverlap",
    "competitive.marketClusters",
    "competitive.threatScores",
    "competitive.substitutes",
    "competitive.whitespaceOpportunities",
    "competitive.ownPriceTier",
)

CompetitorLabEngine = Callable[[EngineInput], Awaitable[Union[EngineResult, Dict[str, Any]]]]


def is_competition_gap_exclusive(path: str) -> bool:
    return path in COMPETITION_GAP_EXCLUSIVE_FIELDS


# =============================================================================
# CACHE VALIDITY
# =============================================================================


@dataclass
class CacheValidity:
    valid: bool
    reason: str
    updated_at: Optional[str] = None
    valid_until: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "updatedAt": self.updated_at,
            "validUntil": self.valid_until,
        }


def is_competition_gap_cache_valid(
    graph: Optional[CompanyContextGraph],
    now: Optional[datetime] = None,
) -> CacheValidity:
    """
    Whether the graph's competitive context is still fresh.

    Fails closed: anything missing or unparseable means invalid. The window
    comes from the current provenance entry's valid_for_days, falling back
    to COMPETITION_CACHE_DAYS.
    """
    if graph is None:
        return CacheValidity(False, "No context graph")

    competitive = graph.get_domain("competitive")
    if competitive is None:
        return CacheValidity(False, "No competitive domain")

    cell = competitive.get("competitors")
    if cell is None or not isinstance(cell.value, list) or not cell.value:
        return CacheValidity(False, "No competitors on record")

    entry = cell.current
    if entry is None:
        return CacheValidity(False, "Competitors have no provenance")

    updated = entry.updated_datetime
    if updated is None:
        return CacheValidity(False, f"Unparseable provenance timestamp: {entry.updated_at!r}")

    days = entry.valid_for_days if entry.valid_for_days is not None else get_settings().COMPETITION_CACHE_DAYS
    valid_until = updated + timedelta(days=days)
    now = now or utc_now()

    if now > valid_until:
        return CacheValidity(
            False,
            f"Competitive context expired on {valid_until.date().isoformat()}",
            updated_at=entry.updated_at,
            valid_until=valid_until.isoformat(),
        )

    return CacheValidity(
        True,
        "Competitive context is fresh",
        updated_at=entry.updated_at,
        valid_until=valid_until.isoformat(),
    )


def _competitor_count(graph: Optional[CompanyContextGraph]) -> int:
    if graph is None:
        return 0
    value = graph.get_value("competitive.competitors")
    return len(value) if isinstance(value, list) else 0


# =============================================================================
# RUNNER
# =============================================================================


@dataclass
class CompetitionGapResult:
    success: bool
    error: Optional[str] = None
    cached: bool = False
    valid_until: Optional[str] = None
    fields_updated: List[str] = field(default_factory=list)
    competitors: int = 0
    run_id: Optional[str] = None
    duration_ms: int = 0
    # "cache", "import" or "engine"
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "cached": self.cached,
            "validUntil": self.valid_until,
            "fieldsUpdated": list(self.fields_updated),
            "competitors": self.competitors,
            "runId": self.run_id,
            "durationMs": self.duration_ms,
            "source": self.source,
        }


class CompetitionGapRunner:
    """
    Ensures a company has fresh competitive context.

    Usage:
        runner = CompetitionGapRunner(store, directory, run_competition_lab, tracker)
        result = await runner.run(company_id)
        if result.success and not result.cached:
            graph = await store.load(company_id)
    """

    def __init__(
        self,
        store: ContextGraphStore,
        company_directory: CompanyDirectory,
        competitor_engine: CompetitorLabEngine,
        tracker: Optional[DiagnosticRunTracker] = None,
        importer: Optional[CompetitionRunImporter] = None,
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.company_directory = company_directory
        self.competitor_engine = competitor_engine
        self.tracker = tracker
        self.importer = importer or CompetitionRunImporter()
        self.timeout = timeout if timeout is not None else get_settings().LAB_ENGINE_TIMEOUT

    async def run(self, company_id: str, force_run: bool = False) -> CompetitionGapResult:
        start = time.monotonic()

        try:
            result = await self._run(company_id, force_run)
        except Exception as e:
            logger.error(f"Competition Gap failed for {company_id}: {e}", exc_info=True)
            result = CompetitionGapResult(success=False, error=str(e))

        result.duration_ms = int((time.monotonic() - start) * 1000)
        return result

    async def _run(self, company_id: str, force_run: bool) -> CompetitionGapResult:
        graph = await self.store.load(company_id)
        now = utc_now()

        if not force_run:
            validity = is_competition_gap_cache_valid(graph, now)
            if validity.valid:
                logger.info(f"Competition Gap cache valid for {company_id} until {validity.valid_until}")
                return CompetitionGapResult(
                    success=True,
                    cached=True,
                    valid_until=validity.valid_until,
                    competitors=_competitor_count(graph),
                    source="cache",
                )
            logger.info(f"Competition Gap cache invalid for {company_id}: {validity.reason}")

            imported = await self._import_recent_run(company_id, graph, now)
            if imported is not None:
                return imported

        return await self._run_engine(company_id, graph)

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    async def _import_recent_run(
        self,
        company_id: str,
        graph: Optional[CompanyContextGraph],
        now: datetime,
    ) -> Optional[CompetitionGapResult]:
        if self.tracker is None:
            return None

        try:
            run = self.tracker.find_latest_run(
                company_id, COMPETITION_LAB_TOOL_ID, DiagnosticRunStatus.COMPLETE
            )
        except Exception as e:
            logger.warning(f"Could not look up Competition Lab runs for {company_id}: {e}")
            return None

        if run is None:
            return None

        max_age = get_settings().COMPETITION_RUN_MAX_AGE_DAYS
        competitors = (run.raw_json or {}).get("competitors") or []
        if run.age_days(now) >= max_age or not competitors:
            logger.info(
                f"Competition Lab run {run.run_id} not importable "
                f"(age {run.age_days(now):.1f}d, {len(competitors)} competitors)"
            )
            return None

        base = graph or await self.store.get_or_create(company_id)
        imported = self.importer.import_run(base, run)
        if imported.competitors_imported == 0:
            logger.info(f"Competition Lab run {run.run_id} had no competitors left after the guardrail")
            return None

        saved = await self.store.save(imported.graph, COMPETITION_LAB_SOURCE)
        validity = is_competition_gap_cache_valid(saved)

        return CompetitionGapResult(
            success=True,
            valid_until=validity.valid_until,
            fields_updated=imported.fields_updated,
            competitors=_competitor_count(saved),
            run_id=run.run_id,
            source="import",
        )

    # -------------------------------------------------------------------------
    # Engine
    # -------------------------------------------------------------------------

    async def _run_engine(
        self,
        company_id: str,
        graph: Optional[CompanyContextGraph],
    ) -> CompetitionGapResult:
        company = await self.company_directory.require_company(company_id)
        engine_input = EngineInput(
            company_id=company_id,
            company=company,
            website_url=normalize_website_url(company.website),
            context=graph,
        )

        tracker_run_id = self._track_start(company_id)
        logger.info(f"Running Competition Lab for {company_id}")

        raw = await run_with_timeout(
            self.competitor_engine(engine_input),
            self.timeout,
            fallback=EngineResult.failure(f"Competition Lab timed out after {self.timeout:.0f}s"),
            label="Competition Lab",
        )
        result = EngineResult.from_raw(raw)

        if not result.success:
            error = result.error or "Competition Lab failed"
            logger.warning(f"Competition Lab failed for {company_id}: {error}")
            self._track_finish(tracker_run_id, status=DiagnosticRunStatus.FAILED, error_message=error)
            return CompetitionGapResult(success=False, error=error, run_id=tracker_run_id, source="engine")

        data = result.data or {}
        self._track_finish(
            tracker_run_id,
            status=DiagnosticRunStatus.COMPLETE,
            score=result.score,
            summary=result.summary,
            raw_json=data,
        )

        refreshed = await self.store.load(company_id)
        fields_updated = [
            f"competitive.{key}" for key in data
            if is_competition_gap_exclusive(f"competitive.{key}")
        ]

        # Engines that only return data (without writing the graph themselves)
        if not is_competition_gap_cache_valid(refreshed).valid and data.get("competitors"):
            base = refreshed or await self.store.get_or_create(company_id, company.name)
            imported = self.importer.import_data(base, data, run_id=tracker_run_id)
            if imported.fields_updated:
                refreshed = await self.store.save(imported.graph, COMPETITION_LAB_SOURCE)
                fields_updated = imported.fields_updated

        validity = is_competition_gap_cache_valid(refreshed)
        count = _competitor_count(refreshed)
        logger.info(f"Competition Lab complete for {company_id}: {count} competitors")

        return CompetitionGapResult(
            success=True,
            valid_until=validity.valid_until,
            fields_updated=fields_updated,
            competitors=count,
            run_id=tracker_run_id,
            source="engine",
        )

    def _track_start(self, company_id: str) -> Optional[str]:
        if self.tracker is None:
            return None
        try:
            run = self.tracker.create_diagnostic_run(
                company_id=company_id,
                tool_id=COMPETITION_LAB_TOOL_ID,
                metadata={"mode": "competition_gap"},
            )
            return run.run_id
        except Exception as e:
            logger.warning(f"Could not create Competition Lab run record: {e}")
            return None

    def _track_finish(self, tracker_run_id: Optional[str], **updates) -> None:
        if self.tracker is None or tracker_run_id is None:
            return
        try:
            self.tracker.update_diagnostic_run(tracker_run_id, **updates)
        except Exception as e:
            logger.warning(f"Could not update Competition Lab run {tracker_run_id}: {e}")


# =============================================================================
# READINESS
# =============================================================================


@dataclass
class CompetitiveReadiness:
    ready: bool
    missing_fields: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ready": self.ready,
            "missingFields": list(self.missing_fields),
            "warnings": list(self.warnings),
        }


def validate_competitive_context_for_strategy(
    graph: Optional[CompanyContextGraph],
    now: Optional[datetime] = None,
) -> CompetitiveReadiness:
    """
    Check the competitive context is good enough for strategy generation.

    Requires a non-empty competitor list and a position summary. Thin
    competitor lists and expired context produce warnings only.
    """
    missing = []
    warnings = []

    count = _competitor_count(graph)
    if count == 0:
        missing.append("competitive.competitors")
    if graph is None or graph.get_value("competitive.positionSummary") is None:
        missing.append("competitive.positionSummary")

    if 0 < count < MIN_COMPETITORS_FOR_STRATEGY:
        warnings.append(
            f"Only {count} competitor(s) identified; strategy comparisons work best with "
            f"{MIN_COMPETITORS_FOR_STRATEGY} or more"
        )

    if count:
        validity = is_competition_gap_cache_valid(graph, now)
        if not validity.valid:
            warnings.append(validity.reason)

    return CompetitiveReadiness(ready=not missing, missing_fields=missing, warnings=warnings)
