"""
Tests for the context merge engine.

These tests verify:
- Append-only provenance
- Competition Lab field exclusivity
- Unknown domains are skipped
- The input graph is never mutated
"""

import pytest

from src.gap.merge import merge_refined_context
from src.gap.types import LabId, LabRefinedContext


def _refined(domain, field, value, confidence=0.8):
    return LabRefinedContext(domain=domain, field=field, value=value, confidence=confidence)


class TestMergeRefinedContext:
    """merge_refined_context()"""

    def test_prepends_provenance(self, make_graph, make_cell, now):
        graph = make_graph({"brand.healthScore": make_cell(55, source="brand_lab", days_old=60)})
        previous = graph.get_field("brand.healthScore").provenance[0]

        result = merge_refined_context(graph, [_refined("brand", "healthScore", 72)], LabId.BRAND, now=now)

        cell = result.graph.get_field("brand.healthScore")
        assert cell.value == 72
        assert len(cell.provenance) == 2
        assert cell.provenance[0].source == "brand_lab"
        assert cell.provenance[0].confidence == 0.8
        assert cell.provenance[0].updated_at == now.isoformat()
        assert cell.provenance[0].notes == "Auto-populated by brand lab during GAP orchestration"
        assert cell.provenance[1] == previous
        assert result.applied == ["brand.healthScore"]

    def test_input_graph_not_mutated(self, make_graph, make_cell):
        graph = make_graph({"brand.healthScore": make_cell(55)})
        before = graph.to_dict()

        result = merge_refined_context(graph, [_refined("brand", "healthScore", 72)], "brand")

        assert graph.to_dict() == before
        assert result.graph is not graph
        assert result.graph.domains["brand"] is not graph.domains["brand"]
        assert result.graph.meta is not graph.meta

    def test_untouched_domains_shared(self, make_graph):
        graph = make_graph()

        result = merge_refined_context(graph, [_refined("brand", "healthScore", 72)], LabId.BRAND)

        assert result.graph.domains["seo"] is graph.domains["seo"]

    def test_exclusive_fields_blocked_for_other_labs(self, make_graph, competitor_list):
        graph = make_graph()

        result = merge_refined_context(
            graph, [_refined("competitive", "competitors", competitor_list)], LabId.BRAND
        )

        assert result.blocked_exclusive == ["competitive.competitors"]
        assert result.applied == []
        assert result.graph.get_value("competitive.competitors") is None

    def test_competitor_lab_cannot_write_exclusive_fields(self, make_graph, make_cell):
        graph = make_graph({"brand.healthScore": make_cell(55)})

        result = merge_refined_context(
            graph,
            [
                _refined("competitive", "competitors", ["Disruptive Advertising"]),
                _refined("competitive", "positionSummary", "Agency view"),
                _refined("brand", "healthScore", 60),
            ],
            LabId.COMPETITOR,
        )

        assert result.blocked_exclusive == ["competitive.competitors", "competitive.positionSummary"]
        assert result.applied == ["brand.healthScore"]
        assert result.graph.get_value("competitive.competitors") is None
        assert result.graph.get_value("competitive.positionSummary") is None

    def test_unknown_domain_skipped(self, make_graph):
        result = merge_refined_context(
            make_graph(), [_refined("pricing", "tiers", ["Basic", "Pro"])], LabId.BRAND
        )

        assert result.skipped_unknown_domain == ["pricing.tiers"]
        assert "pricing" not in result.graph.domains

    def test_new_field_in_known_domain(self, make_graph):
        result = merge_refined_context(
            make_graph(), [_refined("brand", "tagline", "Run further")], LabId.BRAND
        )

        cell = result.graph.get_field("brand.tagline")
        assert cell.value == "Run further"
        assert len(cell.provenance) == 1

    def test_empty_refined_context(self, make_graph):
        graph = make_graph()

        result = merge_refined_context(graph, [], LabId.SEO)

        assert result.applied == []
        assert result.graph.to_dict() == graph.to_dict()
