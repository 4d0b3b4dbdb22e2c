"""
Tests for the Competition Gap.

These tests verify:
- Cache validity windows (fail closed)
- Strategy readiness checks
- Run resolution: cache, tracker import, engine
- The runner never raises
"""

import pytest
from datetime import timedelta

from src.context_graph.models import CompanyContextGraph, ProvenanceEntry, WithMeta
from src.gap.competition_gap import (
    COMPETITION_LAB_TOOL_ID,
    CompetitionGapRunner,
    is_competition_gap_cache_valid,
    is_competition_gap_exclusive,
    validate_competitive_context_for_strategy,
)
from src.gap.competition_importer import CompetitionRunImporter
from src.persistence.diagnostic_runs import DiagnosticRunStatus


POSITION_SUMMARY = "Premium performance running brand competing on comfort"


def _competitive_graph(make_graph, make_cell, competitors, days_old=1, valid_for_days=None):
    return make_graph({
        "competitive.competitors": make_cell(
            competitors, source="competition_lab", days_old=days_old, valid_for_days=valid_for_days,
        ),
        "competitive.positionSummary": make_cell(POSITION_SUMMARY, source="competition_lab", days_old=days_old),
    })


def _record_run(tracker, raw_json, status=DiagnosticRunStatus.COMPLETE, age_days=None):
    run = tracker.create_diagnostic_run(company_id="rec123", tool_id=COMPETITION_LAB_TOOL_ID)
    tracker.update_diagnostic_run(run.run_id, status=status, raw_json=raw_json)
    if age_days is not None:
        stored = tracker.get_run(run.run_id)
        stored.created_at = stored.created_at - timedelta(days=age_days)
        tracker._save_run(stored)
    return run.run_id


# =============================================================================
# CACHE VALIDITY
# =============================================================================

class TestCacheValidity:
    """is_competition_gap_cache_valid()"""

    def test_exclusive_fields(self):
        assert is_competition_gap_exclusive("competitive.competitors")
        assert is_competition_gap_exclusive("competitive.ownPriceTier")
        assert not is_competition_gap_exclusive("brand.positioning")

    def test_fresh_within_default_window(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list, days_old=29)

        validity = is_competition_gap_cache_valid(graph, now)

        assert validity.valid
        assert validity.valid_until is not None

    def test_expired_after_default_window(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list, days_old=31)

        validity = is_competition_gap_cache_valid(graph, now)

        assert not validity.valid
        assert validity.reason.startswith("Competitive context expired")

    def test_entry_window_overrides_default(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list, days_old=10, valid_for_days=7)

        assert not is_competition_gap_cache_valid(graph, now).valid

    def test_zero_day_window_is_not_treated_as_unset(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list, days_old=1, valid_for_days=0)

        validity = is_competition_gap_cache_valid(graph, now)

        assert not validity.valid
        assert validity.reason.startswith("Competitive context expired")

    @pytest.mark.parametrize("graph_factory,reason", [
        (lambda mg, mc: None, "No context graph"),
        (lambda mg, mc: CompanyContextGraph(company_id="rec123"), "No competitive domain"),
        (lambda mg, mc: mg(), "No competitors on record"),
        (lambda mg, mc: mg({"competitive.competitors": WithMeta(value=["Nike"])}), "Competitors have no provenance"),
    ])
    def test_fails_closed(self, make_graph, make_cell, now, graph_factory, reason):
        validity = is_competition_gap_cache_valid(graph_factory(make_graph, make_cell), now)

        assert not validity.valid
        assert validity.reason == reason

    def test_unparseable_timestamp(self, make_graph, now):
        cell = WithMeta(
            value=["Nike"],
            provenance=[ProvenanceEntry(source="competition_lab", updated_at="yesterday-ish")],
        )

        validity = is_competition_gap_cache_valid(make_graph({"competitive.competitors": cell}), now)

        assert not validity.valid
        assert "Unparseable" in validity.reason


# =============================================================================
# READINESS
# =============================================================================

class TestReadiness:
    """validate_competitive_context_for_strategy()"""

    def test_empty_graph_not_ready(self, make_graph, now):
        readiness = validate_competitive_context_for_strategy(make_graph(), now)

        assert not readiness.ready
        assert readiness.missing_fields == ["competitive.competitors", "competitive.positionSummary"]

    def test_ready_with_fresh_context(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list)

        readiness = validate_competitive_context_for_strategy(graph, now)

        assert readiness.ready
        assert readiness.warnings == []

    def test_thin_competitor_list_warns(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list[:2])

        readiness = validate_competitive_context_for_strategy(graph, now)

        assert readiness.ready
        assert readiness.warnings[0].startswith("Only 2 competitor(s)")

    def test_expired_context_warns(self, make_graph, make_cell, competitor_list, now):
        graph = _competitive_graph(make_graph, make_cell, competitor_list, days_old=45)

        readiness = validate_competitive_context_for_strategy(graph, now)

        assert readiness.ready
        assert any("expired" in w for w in readiness.warnings)


# =============================================================================
# IMPORTER
# =============================================================================

class TestImporter:
    """CompetitionRunImporter"""

    def test_import_applies_guardrail_and_provenance(self, make_graph, competitor_list):
        graph = make_graph()
        data = {
            "competitors": competitor_list + ["Disruptive Advertising"],
            "positioning": {"positionSummary": POSITION_SUMMARY, "primaryAxis": "Price vs performance"},
        }

        result = CompetitionRunImporter(valid_for_days=14).import_data(graph, data, run_id="run_abc")

        assert result.competitors_imported == 3
        assert len(result.rejected) == 1
        assert result.fields_updated == [
            "competitive.competitors", "competitive.positionSummary", "competitive.primaryAxis",
        ]
        cell = result.graph.get_field("competitive.competitors")
        assert cell.current.source == "competition_lab"
        assert cell.current.valid_for_days == 14
        assert cell.current.notes == "Imported from Competition Lab run run_abc"
        assert graph.get_value("competitive.competitors") is None

    def test_all_rejected_writes_no_competitors(self, make_graph):
        result = CompetitionRunImporter().import_data(make_graph(), {"competitors": ["HubSpot"]})

        assert result.competitors_imported == 0
        assert "competitive.competitors" not in result.fields_updated


# =============================================================================
# RUNNER
# =============================================================================

class TestCompetitionGapRunner:
    """CompetitionGapRunner.run()"""

    @pytest.mark.asyncio
    async def test_valid_cache_skips_engine(self, store, directory, make_engine, make_graph, make_cell, competitor_list):
        store.seed(_competitive_graph(make_graph, make_cell, competitor_list))
        engine = make_engine(data={"competitors": competitor_list})

        result = await CompetitionGapRunner(store, directory, engine).run("rec123")

        assert result.success
        assert result.cached
        assert result.source == "cache"
        assert result.competitors == 3
        engine.assert_not_awaited()
        assert store.audit_log == []

    @pytest.mark.asyncio
    async def test_imports_recent_tracker_run(self, store, directory, tracker, make_engine, make_graph, competitor_list):
        store.seed(make_graph())
        run_id = _record_run(tracker, {"competitors": competitor_list, "positionSummary": POSITION_SUMMARY})
        engine = make_engine()

        result = await CompetitionGapRunner(store, directory, engine, tracker=tracker).run("rec123")

        assert result.success
        assert result.source == "import"
        assert result.run_id == run_id
        assert result.competitors == 3
        assert "competitive.positionSummary" in result.fields_updated
        engine.assert_not_awaited()
        assert [w.writer_id for w in store.audit_log] == ["competition_lab"]

        saved = await store.load("rec123")
        assert saved.get_field("competitive.competitors").current.notes.endswith(run_id)

    @pytest.mark.asyncio
    async def test_old_tracker_run_falls_through_to_engine(self, store, directory, tracker, make_engine, make_graph, competitor_list):
        store.seed(make_graph())
        _record_run(tracker, {"competitors": competitor_list}, age_days=40)
        engine = make_engine(data={"competitors": competitor_list, "positionSummary": POSITION_SUMMARY})

        result = await CompetitionGapRunner(store, directory, engine, tracker=tracker).run("rec123")

        assert result.source == "engine"
        engine.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_engine_result_is_imported_and_tracked(self, store, directory, tracker, make_engine, make_graph, competitor_list):
        store.seed(make_graph())
        engine = make_engine(data={"competitors": competitor_list, "positionSummary": POSITION_SUMMARY}, score=64)

        result = await CompetitionGapRunner(store, directory, engine, tracker=tracker).run("rec123")

        assert result.success
        assert result.source == "engine"
        assert result.competitors == 3
        assert set(result.fields_updated) == {"competitive.competitors", "competitive.positionSummary"}

        engine_input = engine.await_args.args[0]
        assert engine_input.website_url == "https://www.acme-running.com"

        run = tracker.find_latest_run("rec123", COMPETITION_LAB_TOOL_ID)
        assert run.run_id == result.run_id
        assert run.score == 64

        saved = await store.load("rec123")
        assert is_competition_gap_cache_valid(saved).valid

    @pytest.mark.asyncio
    async def test_force_run_bypasses_cache(self, store, directory, make_engine, make_graph, make_cell, competitor_list):
        store.seed(_competitive_graph(make_graph, make_cell, competitor_list))
        engine = make_engine(data={"competitors": competitor_list})

        result = await CompetitionGapRunner(store, directory, engine).run("rec123", force_run=True)

        assert result.source == "engine"
        engine.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_engine_failure(self, store, directory, tracker, make_engine, make_graph):
        store.seed(make_graph())
        engine = make_engine(success=False, error="Rate limited")

        result = await CompetitionGapRunner(store, directory, engine, tracker=tracker).run("rec123")

        assert not result.success
        assert result.error == "Rate limited"
        failed = tracker.find_latest_run("rec123", COMPETITION_LAB_TOOL_ID, DiagnosticRunStatus.FAILED)
        assert failed.error_message == "Rate limited"

    @pytest.mark.asyncio
    async def test_engine_exception_never_raises(self, store, directory, make_engine, make_graph):
        store.seed(make_graph())
        engine = make_engine()
        engine.side_effect = RuntimeError("upstream exploded")

        result = await CompetitionGapRunner(store, directory, engine).run("rec123")

        assert not result.success
        assert result.error == "upstream exploded"
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_missing_company(self, store, directory, make_engine):
        result = await CompetitionGapRunner(store, directory, make_engine()).run("nope")

        assert not result.success
        assert "Company not found" in result.error
