"""
GAP Orchestrator

Context health, Lab planning, Competition Gap, Lab execution, merge,
canonical extraction and the full orchestration run.

Usage:
    from src.gap import GAPOrchestrator, OrchestratorInput

    output = await GAPOrchestrator(store=store, company_directory=directory,
                                   lab_registry=registry).run(
        OrchestratorInput(company_id="rec123")
    )
"""

from .types import (
    CanonicalRunSummary,
    ClientInsight,
    ContextHealthAssessment,
    GAPScores,
    GAPSnapshot,
    GAPStructuredOutput,
    LabDiagnostics,
    LabId,
    LabInsightUnit,
    LabRefinedContext,
    LabRefinementOutput,
    LabRunPlan,
    LabRunPlanItem,
    OrchestratorInput,
    OrchestratorOutput,
    SnapshotChanges,
)
from .health import assess_context_health, quick_health_score
from .lab_plan import (
    FIELD_TO_LAB,
    LAB_METADATA,
    determine_labs_needed_for_missing_fields,
    get_all_available_labs,
    get_fields_for_lab,
    get_lab_for_field,
)
from .engines import EngineInput, EngineResult, LabEngineRegistry, UnknownLabError
from .collaborators import (
    CompanyDirectory,
    CompanyNotFoundError,
    CompanyRecord,
    InMemoryCompanyDirectory,
    InMemoryRunHistoryLogger,
    RunHistoryLogger,
    SqlRunHistoryLogger,
)
from .category_guardrails import (
    CategoryFingerprint,
    CompetitorFilterResult,
    filter_competitors_by_category,
    fingerprint_from_graph,
    infer_category_fingerprint,
    should_reject_competitor,
)
from .competition_importer import CompetitionRunImporter, ImportResult
from .competition_gap import (
    COMPETITION_GAP_EXCLUSIVE_FIELDS,
    CacheValidity,
    CompetitionGapResult,
    CompetitionGapRunner,
    CompetitiveReadiness,
    is_competition_gap_cache_valid,
    validate_competitive_context_for_strategy,
)
from .refinement import REFINED_FIELD_MAPPINGS, LabRefinementRunner
from .merge import MergeResult, merge_refined_context
from .canonical import (
    GAP_ALLOWED_FIELDS,
    LAB_CANONICAL_SOURCES,
    CanonicalCandidate,
    CanonicalFieldPipeline,
    DefaultCanonicalPipeline,
)
from .structured_output import (
    GrowthPlanPayload,
    build_structured_output_from_growth_plan,
    build_structured_output_from_labs,
    empty_structured_output,
)
from .insights import extract_insights_from_lab_outputs
from .snapshot import GraphDiff, build_snapshot, diff_graphs
from .orchestrator import GAPOrchestrator, run_full_gap_orchestrator

__all__ = [
    # Types
    "CanonicalRunSummary",
    "ClientInsight",
    "ContextHealthAssessment",
    "GAPScores",
    "GAPSnapshot",
    "GAPStructuredOutput",
    "LabDiagnostics",
    "LabId",
    "LabInsightUnit",
    "LabRefinedContext",
    "LabRefinementOutput",
    "LabRunPlan",
    "LabRunPlanItem",
    "OrchestratorInput",
    "OrchestratorOutput",
    "SnapshotChanges",
    # Health
    "assess_context_health",
    "quick_health_score",
    # Lab plan
    "FIELD_TO_LAB",
    "LAB_METADATA",
    "determine_labs_needed_for_missing_fields",
    "get_all_available_labs",
    "get_fields_for_lab",
    "get_lab_for_field",
    # Engines
    "EngineInput",
    "EngineResult",
    "LabEngineRegistry",
    "UnknownLabError",
    # Collaborators
    "CompanyDirectory",
    "CompanyNotFoundError",
    "CompanyRecord",
    "InMemoryCompanyDirectory",
    "InMemoryRunHistoryLogger",
    "RunHistoryLogger",
    "SqlRunHistoryLogger",
    # Competition
    "CategoryFingerprint",
    "CompetitorFilterResult",
    "filter_competitors_by_category",
    "fingerprint_from_graph",
    "infer_category_fingerprint",
    "should_reject_competitor",
    "CompetitionRunImporter",
    "ImportResult",
    "COMPETITION_GAP_EXCLUSIVE_FIELDS",
    "CacheValidity",
    "CompetitionGapResult",
    "CompetitionGapRunner",
    "CompetitiveReadiness",
    "is_competition_gap_cache_valid",
    "validate_competitive_context_for_strategy",
    # Execution and merge
    "REFINED_FIELD_MAPPINGS",
    "LabRefinementRunner",
    "MergeResult",
    "merge_refined_context",
    # Canonical
    "GAP_ALLOWED_FIELDS",
    "LAB_CANONICAL_SOURCES",
    "CanonicalCandidate",
    "CanonicalFieldPipeline",
    "DefaultCanonicalPipeline",
    # Output
    "GrowthPlanPayload",
    "build_structured_output_from_growth_plan",
    "build_structured_output_from_labs",
    "empty_structured_output",
    "extract_insights_from_lab_outputs",
    "GraphDiff",
    "build_snapshot",
    "diff_graphs",
    # Orchestrator
    "GAPOrchestrator",
    "run_full_gap_orchestrator",
]
