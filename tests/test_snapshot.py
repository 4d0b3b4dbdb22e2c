"""
Tests for graph diffs and GAP snapshots.

These tests verify:
- Structural change counting (added / updated / provenance growth)
- Snapshot score change rounding
- Snapshot immutability, including exported copies
"""

import dataclasses

import pytest

from src.context_graph.models import ProvenanceEntry, WithMeta
from src.gap.snapshot import build_snapshot, diff_graphs
from src.gap.types import ContextHealthAssessment, GAPScores, GAPStructuredOutput


def _structured(overall):
    return GAPStructuredOutput(scores=GAPScores(overall=overall), source="lab_fallback")


# =============================================================================
# DIFF
# =============================================================================

class TestDiffGraphs:
    """diff_graphs()"""

    def test_added_and_updated(self, make_graph, make_cell):
        before = make_graph({"brand.healthScore": make_cell(55)})
        after = make_graph({
            "brand.healthScore": make_cell(72),
            "seo.overallScore": make_cell(61),
        })

        diff = diff_graphs(before, after)

        assert diff.fields_added == 1
        assert diff.fields_updated == 1

    def test_reconfirmation_counts_as_update(self, make_graph, make_cell):
        before = make_graph({"brand.healthScore": make_cell(55)})
        after = before.clone()
        cell = after.get_field("brand.healthScore")
        cell.provenance.insert(0, ProvenanceEntry(source="brand_lab", updated_at="2026-01-01T00:00:00+00:00"))

        diff = diff_graphs(before, after)

        assert diff.fields_updated == 1
        assert diff.fields_added == 0
        assert diff.provenance_entries_added == 1

    def test_identical_graphs(self, make_graph, make_cell):
        graph = make_graph({"brand.healthScore": make_cell(55)})

        assert diff_graphs(graph, graph.clone()) == diff_graphs(None, None)

    def test_no_before_graph(self, make_graph, make_cell):
        after = make_graph({
            "brand.healthScore": make_cell(72),
            "seo.overallScore": make_cell(61),
        })

        diff = diff_graphs(None, after)

        assert diff.fields_added == 2
        assert diff.provenance_entries_added == 2

    def test_emptied_field_not_counted(self, make_graph, make_cell):
        before = make_graph({"brand.healthScore": make_cell(55)})
        after = make_graph({"brand.healthScore": WithMeta(value=None)})

        diff = diff_graphs(before, after)

        assert diff.fields_added == 0
        assert diff.fields_updated == 0


# =============================================================================
# SNAPSHOT
# =============================================================================

class TestBuildSnapshot:
    """build_snapshot()"""

    def test_score_change_and_counts(self, make_graph, make_cell, now):
        before = make_graph()
        after = make_graph({"brand.healthScore": make_cell(72)})

        snapshot = build_snapshot(
            company_id="rec123",
            context_before=before,
            context_after=after,
            gap_structured=_structured(40.5),
            insights=[],
            labs_run=["brand"],
            health_before=ContextHealthAssessment(completeness=38),
            now=now,
        )

        # 40.5 - 38 = 2.5 -> 3
        assert snapshot.changes.score_change == 3
        assert snapshot.changes.fields_added == 1
        assert snapshot.labs_run == ("brand",)
        assert snapshot.timestamp == now.isoformat()
        assert snapshot.to_dict()["changes"]["scoreChange"] == 3

    def test_negative_score_change_rounds_away_from_zero(self, make_graph):
        snapshot = build_snapshot(
            "rec123", make_graph(), make_graph(), _structured(35.5), [], [],
            ContextHealthAssessment(completeness=38),
        )

        assert snapshot.changes.score_change == -3

    def test_snapshot_is_isolated_from_live_graph(self, make_graph, make_cell):
        after = make_graph({"brand.healthScore": make_cell(72)})
        snapshot = build_snapshot(
            "rec123", make_graph(), after, _structured(50), [], [], ContextHealthAssessment(),
        )

        after.get_field("brand.healthScore").value = 1

        assert snapshot.context_after["brand"]["healthScore"]["value"] == 72

    def test_snapshot_is_frozen(self, make_graph):
        snapshot = build_snapshot(
            "rec123", None, make_graph(), _structured(50), [], [], ContextHealthAssessment(),
        )

        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.labs_run = ("brand",)

        assert snapshot.context_before == {}

    def test_to_dict_hands_out_copies(self, make_graph, make_cell):
        snapshot = build_snapshot(
            "rec123", make_graph(), make_graph({"brand.healthScore": make_cell(72)}),
            _structured(50), [], ["brand"], ContextHealthAssessment(),
        )

        exported = snapshot.to_dict()
        exported["contextAfter"]["brand"]["healthScore"]["value"] = 1
        exported["gapFindings"]["tampered"] = True

        assert snapshot.context_after["brand"]["healthScore"]["value"] == 72
        assert "tampered" not in snapshot.gap_findings
