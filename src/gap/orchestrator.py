"""
GAP Orchestrator

Runs a full GAP pass for one company and keeps its context graph healthy.

Steps:
1. Load company and context graph, assess health
2. Competition Gap (competitive context first), readiness check
3. Plan which Labs to run from the health measured in step 1
4. Run Labs sequentially in refinement mode
5. Merge refined context, save
6. Broad canonical extraction
7. Full GAP Plan engine (or the Lab fallback)
8. Restricted canonical extraction from the GAP result, save if changed
9. Client insights
10. Snapshot + archive
11. Run-history row
12. Return OrchestratorOutput

Only a missing company (or something unexpected escaping the outer try)
fails the run. Every collaborator failure degrades the run and is recorded
as a warning.

Usage:
    orchestrator = GAPOrchestrator(
        store=StorageContextGraphStore(get_storage_backend()),
        company_directory=directory,
        lab_registry=registry,
        gap_plan_engine=run_gap_plan,
        competitor_engine=run_competition_lab,
    )
    output = await orchestrator.run(OrchestratorInput(company_id="rec123"))
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from src.context_graph.models import CompanyContextGraph, create_empty_graph, utc_now
from src.context_graph.store import ContextGraphStore
from src.database.repository import GapPlanRunPayload
from src.persistence.diagnostic_runs import DiagnosticRunTracker
from src.persistence.snapshots import SnapshotStore
from src.utils.config import get_settings
from src.utils.timeouts import run_with_timeout
from src.utils.urls import normalize_website_url

from .canonical import CanonicalFieldPipeline, DefaultCanonicalPipeline
from .collaborators import CompanyDirectory, CompanyRecord, GapPlanEngine, RunHistoryLogger, extract_growth_plan
from .competition_gap import (
    CompetitionGapResult,
    CompetitionGapRunner,
    CompetitiveReadiness,
    CompetitorLabEngine,
    validate_competitive_context_for_strategy,
)
from .engines import EngineInput, EngineResult, LabEngineRegistry
from .health import assess_context_health
from .insights import extract_insights_from_lab_outputs
from .lab_plan import determine_labs_needed_for_missing_fields
from .merge import merge_refined_context
from .refinement import LabRefinementRunner
from .snapshot import build_snapshot
from .structured_output import (
    build_structured_output_from_growth_plan,
    build_structured_output_from_labs,
    empty_structured_output,
)
from .types import (
    CanonicalRunSummary,
    ContextHealthAssessment,
    GAPStructuredOutput,
    LabRefinementOutput,
    LabRunPlan,
    OrchestratorInput,
    OrchestratorOutput,
)

logger = logging.getLogger(__name__)

ORCHESTRATOR_WRITER_ID = "gap_orchestrator"


@dataclass
class _RunState:
    """Mutable working state threaded through one run."""
    request: OrchestratorInput
    started_at: str
    start: float
    company: Optional[CompanyRecord] = None
    graph: Optional[CompanyContextGraph] = None
    context_before: Optional[CompanyContextGraph] = None
    health_before: ContextHealthAssessment = field(default_factory=ContextHealthAssessment)
    warnings: List[str] = field(default_factory=list)
    growth_plan: Optional[Dict[str, Any]] = None
    dirty: bool = False

    def warn(self, message: str) -> None:
        logger.warning(f"[{self.request.company_id}] {message}")
        self.warnings.append(message)


class GAPOrchestrator:
    """
    Full GAP orchestration over injected collaborators.

    Optional collaborators are skipped when absent: no competitor engine
    means no Competition Gap, no GAP Plan engine means the Lab fallback
    builder, no run logger or snapshot store means nothing is archived.
    """

    def __init__(
        self,
        store: ContextGraphStore,
        company_directory: CompanyDirectory,
        lab_registry: LabEngineRegistry,
        gap_plan_engine: Optional[GapPlanEngine] = None,
        competitor_engine: Optional[CompetitorLabEngine] = None,
        tracker: Optional[DiagnosticRunTracker] = None,
        run_logger: Optional[RunHistoryLogger] = None,
        canonical_pipeline: Optional[CanonicalFieldPipeline] = None,
        snapshot_store: Optional[SnapshotStore] = None,
        competition_runner: Optional[CompetitionGapRunner] = None,
        lab_timeout: Optional[float] = None,
        gap_engine_timeout: Optional[float] = None,
    ):
        settings = get_settings()

        self.store = store
        self.company_directory = company_directory
        self.gap_plan_engine = gap_plan_engine
        self.run_logger = run_logger
        self.snapshot_store = snapshot_store
        self.canonical = canonical_pipeline or DefaultCanonicalPipeline()
        self.lab_runner = LabRefinementRunner(lab_registry, tracker=tracker, timeout=lab_timeout)
        self.gap_engine_timeout = (
            gap_engine_timeout if gap_engine_timeout is not None else settings.GAP_ENGINE_TIMEOUT
        )

        if competition_runner is None and competitor_engine is not None:
            competition_runner = CompetitionGapRunner(
                store, company_directory, competitor_engine, tracker=tracker, timeout=lab_timeout
            )
        self.competition_runner = competition_runner

    # =========================================================================
    # ENTRYPOINT
    # =========================================================================

    async def run(self, orchestrator_input: OrchestratorInput) -> OrchestratorOutput:
        state = _RunState(
            request=orchestrator_input,
            started_at=utc_now().isoformat(),
            start=time.monotonic(),
        )

        logger.info(
            f"Starting GAP orchestration for {orchestrator_input.company_id}"
            f"{' (dry run)' if orchestrator_input.dry_run else ''}"
        )

        try:
            return await self._run(state)
        except Exception as e:
            logger.error(f"GAP orchestration failed for {orchestrator_input.company_id}: {e}", exc_info=True)
            return OrchestratorOutput(
                success=False,
                error=str(e),
                health_before=ContextHealthAssessment(),
                health_after=ContextHealthAssessment(),
                gap_structured=empty_structured_output(),
                started_at=state.started_at,
                completed_at=utc_now().isoformat(),
                duration_ms=self._elapsed_ms(state),
                warnings=state.warnings,
                dry_run=orchestrator_input.dry_run,
            )

    async def _run(self, state: _RunState) -> OrchestratorOutput:
        request = state.request
        company_id = request.company_id

        # Step 1: company, graph, health
        state.company = await self.company_directory.require_company(company_id)
        if request.dry_run:
            state.graph = await self.store.load(company_id) or create_empty_graph(
                company_id, state.company.name
            )
        else:
            state.graph = await self.store.get_or_create(company_id, state.company.name)
        state.context_before = state.graph.clone()
        state.health_before = assess_context_health(state.context_before)
        logger.info(
            f"Health before: completeness={state.health_before.completeness}% "
            f"freshness={state.health_before.freshness}% "
            f"missing={len(state.health_before.missing_critical_fields)}"
        )

        # Step 2: competitive context first
        competition_gap = await self._run_competition_gap(state)
        readiness = self._check_readiness(state)

        # Step 3: plan against the health measured before any writes
        lab_plan = determine_labs_needed_for_missing_fields(
            state.health_before,
            force_labs=request.force_labs,
            skip_labs=request.skip_labs,
        )

        # Step 4: Labs, one at a time
        lab_outputs, labs_run = await self._run_labs(state, lab_plan)

        # Step 5: merge + save
        await self._merge_lab_outputs(state, lab_outputs)

        # Step 6: broad canonical extraction
        canonical_runs = [self._run_broad_canonical(state, lab_outputs)]

        # Step 7: full GAP
        gap_structured = await self._build_structured_output(state, lab_outputs)

        # Step 8: restricted canonical extraction, save if anything changed
        canonical_runs.append(self._run_restricted_canonical(state, gap_structured))
        if state.dirty and not request.dry_run:
            state.graph = await self.store.save(state.graph, ORCHESTRATOR_WRITER_ID)
            state.dirty = False

        # Step 9: insights
        insights = extract_insights_from_lab_outputs(lab_outputs, company_id)

        # Step 10: snapshot
        health_after = assess_context_health(state.graph)
        snapshot = build_snapshot(
            company_id=company_id,
            context_before=state.context_before,
            context_after=state.graph,
            gap_structured=gap_structured,
            insights=insights,
            labs_run=labs_run,
            health_before=state.health_before,
        )
        if not request.dry_run:
            await self._archive_snapshot(state, snapshot)

        # Step 11: run history
        if not request.dry_run:
            await self._log_run(state, snapshot.id, gap_structured)

        duration_ms = self._elapsed_ms(state)
        logger.info(
            f"GAP orchestration complete for {company_id} in {round(duration_ms / 1000)}s: "
            f"{len(labs_run)} labs, {len(insights)} insights, "
            f"score change {snapshot.changes.score_change:+d}"
        )

        # Step 12
        return OrchestratorOutput(
            success=True,
            health_before=state.health_before,
            health_after=health_after,
            gap_structured=gap_structured,
            started_at=state.started_at,
            completed_at=utc_now().isoformat(),
            duration_ms=duration_ms,
            context_before=state.context_before,
            context_after=state.graph,
            labs_run=labs_run,
            lab_outputs=lab_outputs,
            insights=insights,
            snapshot_id=snapshot.id,
            snapshot=snapshot,
            lab_plan=lab_plan,
            competition_gap=competition_gap,
            competitive_readiness=readiness,
            canonical_runs=canonical_runs,
            warnings=state.warnings,
            dry_run=request.dry_run,
        )

    # =========================================================================
    # STEPS
    # =========================================================================

    async def _run_competition_gap(self, state: _RunState) -> Optional[CompetitionGapResult]:
        if state.request.dry_run:
            logger.info("Dry run: skipping Competition Gap")
            return None
        if self.competition_runner is None:
            logger.info("No Competition Lab engine configured, skipping Competition Gap")
            return None

        result = await self.competition_runner.run(state.request.company_id)
        if not result.success:
            state.warn(f"Competition Gap failed: {result.error}")
        elif not result.cached:
            reloaded = await self.store.load(state.request.company_id)
            if reloaded is not None:
                state.graph = reloaded.clone()
        return result

    def _check_readiness(self, state: _RunState) -> CompetitiveReadiness:
        readiness = validate_competitive_context_for_strategy(state.graph)
        if not readiness.ready:
            state.warn(
                f"Competitive context not ready for strategy, missing: {', '.join(readiness.missing_fields)}"
            )
        for warning in readiness.warnings:
            state.warn(warning)
        return readiness

    async def _run_labs(self, state: _RunState, lab_plan: LabRunPlan) -> Tuple[List[LabRefinementOutput], List[str]]:
        lab_outputs: List[LabRefinementOutput] = []
        labs_run: List[str] = []

        if state.request.dry_run:
            logger.info(f"Dry run: skipping {len(lab_plan.labs)} planned labs")
            return lab_outputs, labs_run

        for item in lab_plan.labs:
            logger.info(f"Running {item.lab_name} ({item.reason})")
            try:
                output = await self.lab_runner.run(
                    item.lab_id, state.request.company_id, state.company, state.graph
                )
                labs_run.append(item.lab_id.value)
            except Exception as e:
                state.warn(f"{item.lab_name} failed: {e}")
                output = LabRefinementOutput.failed(item.lab_id, item.lab_name, str(uuid.uuid4()), str(e))
            lab_outputs.append(output)

        failed = [o.lab_id.value for o in lab_outputs if not o.success]
        if failed:
            logger.warning(f"{len(failed)} of {len(lab_outputs)} labs failed: {', '.join(failed)}")
        return lab_outputs, labs_run

    async def _merge_lab_outputs(self, state: _RunState, lab_outputs: List[LabRefinementOutput]) -> None:
        if state.request.dry_run:
            return

        graph = state.graph
        for output in lab_outputs:
            if not output.success or not output.refined_context:
                continue
            merged = merge_refined_context(graph, output.refined_context, output.lab_id)
            graph = merged.graph
            logger.debug(
                f"Merged {len(merged.applied)} fields from {output.lab_name} "
                f"({len(merged.skipped_unknown_domain)} skipped, {len(merged.blocked_exclusive)} blocked)"
            )

        state.graph = await self.store.save(graph, ORCHESTRATOR_WRITER_ID)

    def _run_broad_canonical(
        self,
        state: _RunState,
        lab_outputs: List[LabRefinementOutput],
    ) -> CanonicalRunSummary:
        summary = CanonicalRunSummary(stage="broad")
        try:
            candidates = self.canonical.merge_extraction_results(
                self.canonical.extract_canonical_fields(lab_outputs)
            )
            summary.proposed = len(candidates)
            self._canonicalize_and_upsert(state, candidates, summary)
        except Exception as e:
            logger.error(f"Broad canonical extraction failed: {e}", exc_info=True)
            summary.error = str(e)
        return summary

    def _run_restricted_canonical(
        self,
        state: _RunState,
        gap_structured: GAPStructuredOutput,
    ) -> CanonicalRunSummary:
        summary = CanonicalRunSummary(stage="restricted")
        if gap_structured.source != "growth_plan":
            return summary

        try:
            allowed = self.canonical.get_fields_for_gap_to_propose(state.graph)
            candidates = self.canonical.extract_from_full_gap(gap_structured, allowed)
            summary.proposed = len(candidates)
            self._canonicalize_and_upsert(state, candidates, summary)
        except Exception as e:
            logger.error(f"Restricted canonical extraction failed: {e}", exc_info=True)
            summary.error = str(e)
        return summary

    def _canonicalize_and_upsert(self, state: _RunState, candidates, summary: CanonicalRunSummary) -> None:
        canonicalized = self.canonical.canonicalize_findings(candidates)
        summary.accepted = len(canonicalized.accepted)
        summary.rejected = canonicalized.rejected
        for rejection in canonicalized.rejected:
            logger.info(f"Canonical {summary.stage}: rejected {rejection['path']}: {rejection['reason']}")

        if not canonicalized.accepted:
            return

        upserted = self.canonical.upsert_context_fields(state.graph, canonicalized.accepted)
        summary.written = upserted.written
        summary.skipped = upserted.skipped
        if upserted.written:
            state.graph = upserted.graph
            state.dirty = True

    async def _build_structured_output(
        self,
        state: _RunState,
        lab_outputs: List[LabRefinementOutput],
    ) -> GAPStructuredOutput:
        website_url = normalize_website_url(state.company.website)

        if self.gap_plan_engine is not None and website_url and not state.request.dry_run:
            try:
                raw = await run_with_timeout(
                    self.gap_plan_engine(
                        EngineInput(
                            company_id=state.request.company_id,
                            company=state.company,
                            website_url=website_url,
                            context=state.graph,
                        ),
                        state.request.gap_ia_run,
                    ),
                    self.gap_engine_timeout,
                    fallback=EngineResult.failure(f"GAP Plan engine timed out after {self.gap_engine_timeout:.0f}s"),
                    label="GAP Plan engine",
                )
                result = EngineResult.from_raw(raw)
                growth_plan = extract_growth_plan(result)
                if growth_plan is not None:
                    structured = build_structured_output_from_growth_plan(growth_plan)
                    state.growth_plan = growth_plan
                    return structured
                state.warn(f"GAP Plan engine failed: {result.error or 'no growth plan returned'}")
            except ValidationError as e:
                state.warn(f"GAP Plan payload invalid: {e.error_count()} validation errors")
            except Exception as e:
                state.warn(f"GAP Plan engine failed: {e}")
        elif not website_url:
            logger.info("No website URL, using Lab fallback for structured output")

        return build_structured_output_from_labs(assess_context_health(state.graph), lab_outputs)

    async def _archive_snapshot(self, state: _RunState, snapshot) -> None:
        if self.snapshot_store is None:
            return
        try:
            await self.snapshot_store.save(snapshot)
        except Exception as e:
            state.warn(f"Snapshot archive failed: {e}")

    async def _log_run(self, state: _RunState, plan_id: str, gap_structured: GAPStructuredOutput) -> None:
        if self.run_logger is None:
            return

        plan = state.growth_plan or {}
        payload = GapPlanRunPayload(
            plan_id=plan_id,
            url=normalize_website_url(state.company.website),
            maturity_stage=gap_structured.maturity_stage,
            scores=gap_structured.scores.to_dict(),
            quick_wins_count=len(plan.get("quickWins") or []),
            initiatives_count=len(plan.get("strategicInitiatives") or gap_structured.recommended_next_steps),
            created_at=state.started_at,
            company_id=state.request.company_id,
            raw_plan=state.growth_plan or gap_structured.to_dict(),
        )

        try:
            await self.run_logger.log_run(payload)
        except Exception as e:
            state.warn(f"Run history logging failed: {e}")

    @staticmethod
    def _elapsed_ms(state: _RunState) -> int:
        return int((time.monotonic() - state.start) * 1000)


async def run_full_gap_orchestrator(
    orchestrator_input: OrchestratorInput,
    **dependencies,
) -> OrchestratorOutput:
    """
    Convenience wrapper: build a GAPOrchestrator and run it once.

    Args:
        orchestrator_input: The run request
        **dependencies: GAPOrchestrator constructor arguments
    """
    return await GAPOrchestrator(**dependencies).run(orchestrator_input)
