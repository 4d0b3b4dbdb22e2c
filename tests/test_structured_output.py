"""
Tests for GAP structured output builders and insight extraction.

These tests verify:
- Growth plan mapping (tolerant of missing and legacy shapes)
- Lab fallback scoring
- Maturity stages
- Client insight records
"""

import pytest
from pydantic import ValidationError

from src.gap.insights import extract_insights_from_lab_outputs, map_lab_category
from src.gap.structured_output import (
    build_structured_output_from_growth_plan,
    build_structured_output_from_labs,
    empty_structured_output,
    maturity_stage_for,
)
from src.gap.types import (
    ContextHealthAssessment,
    LabDiagnostics,
    LabId,
    LabInsightUnit,
    LabRefinementOutput,
)


GROWTH_PLAN = {
    "scorecard": {"overall": 64, "brand": 70, "content": 58, "seo": 61, "website": 66, "digitalFootprint": 52},
    "executiveSummary": {
        "maturityStage": "Emerging",
        "strengths": ["Loyal customer base"],
        "keyIssues": ["Thin organic search presence", "No email capture"],
    },
    "sectionAnalyses": {
        "seo": {"label": "SEO", "score": 61, "summary": "Technical basics in place", "issues": ["Slow pages"]},
    },
    "quickWins": ["Add email capture popup"],
    "strategicInitiatives": [
        {"title": "Launch content hub", "description": "Guides for marathon training", "impact": "high", "resourceRequirement": "High"},
    ],
    "kpisToWatch": ["Organic sessions", "Email list growth"],
    "competitorAnalysis": {"competitors": [{"name": "Hoka"}, {"name": "Brooks Running"}]},
    "businessModel": "Direct-to-consumer e-commerce",
    "unexpectedKey": "ignored",
}


def _lab_output(lab_id, score=None, success=True, insights=None, recommendations=None):
    return LabRefinementOutput(
        lab_id=lab_id,
        lab_name=f"{lab_id.value.title()} Lab",
        success=success,
        run_id=f"run-{lab_id.value}",
        diagnostics=LabDiagnostics(
            lab_id=lab_id,
            run_id=f"run-{lab_id.value}",
            score=score,
            recommendations=list(recommendations or []),
        ),
        insights=list(insights or []),
    )


# =============================================================================
# GROWTH PLAN
# =============================================================================

class TestFromGrowthPlan:
    """build_structured_output_from_growth_plan()"""

    def test_maps_full_plan(self):
        output = build_structured_output_from_growth_plan(GROWTH_PLAN)

        assert output.source == "growth_plan"
        assert output.scores.overall == 64
        assert output.scores.digital_footprint == 52
        assert output.scores.authority == 0
        assert output.maturity_stage == "Emerging"
        assert [f.type for f in output.key_findings] == ["gap", "gap", "strength"]
        assert [s.title for s in output.recommended_next_steps] == ["Add email capture popup", "Launch content hub"]
        assert output.recommended_next_steps[1].effort == "high"
        assert output.recommended_next_steps[1].impact == "high"
        assert output.competitors == ["Hoka", "Brooks Running"]
        assert output.kpis_to_watch == ["Organic sessions", "Email list growth"]
        assert output.business_model == "Direct-to-consumer e-commerce"
        assert output.dimension_diagnostics[0].dimension == "SEO"
        assert output.dimension_diagnostics[0].gaps == ["Slow pages"]

    def test_overall_falls_back_to_dimension_mean(self):
        output = build_structured_output_from_growth_plan({"scorecard": {"brand": 60, "content": 71}})

        # (60 + 71) / 2 = 65.5 -> 66
        assert output.scores.overall == 66
        assert output.maturity_stage == "Scaling"

    def test_overall_from_executive_summary(self):
        output = build_structured_output_from_growth_plan({"executiveSummary": {"overallScore": 45}})

        assert output.scores.overall == 45
        assert output.maturity_stage == "Emerging"

    def test_null_sections_and_empty_plan(self):
        output = build_structured_output_from_growth_plan({"scorecard": None, "executiveSummary": None})

        assert output.scores.overall == 0
        assert output.maturity_stage == "Early Stage"
        assert output.source == "growth_plan"

    def test_legacy_section_list(self):
        output = build_structured_output_from_growth_plan({
            "sectionAnalyses": [{"key": "brand", "score": 70}, {"label": "Website", "score": 66}],
        })

        assert [d.dimension for d in output.dimension_diagnostics] == ["brand", "Website"]

    def test_wrong_types_raise(self):
        with pytest.raises(ValidationError):
            build_structured_output_from_growth_plan({"quickWins": "add a popup"})


# =============================================================================
# LAB FALLBACK
# =============================================================================

class TestFromLabs:
    """build_structured_output_from_labs()"""

    def test_scores_from_successful_labs(self):
        outputs = [
            _lab_output(LabId.BRAND, score=70),
            _lab_output(LabId.SEO, score=81),
            _lab_output(LabId.WEBSITE, score=10, success=False),
            _lab_output(LabId.OPS),
        ]

        output = build_structured_output_from_labs(ContextHealthAssessment(completeness=20), outputs)

        # (70 + 81) / 2 = 75.5 -> 76
        assert output.scores.overall == 76
        assert output.scores.brand == 70
        assert output.scores.seo == 81
        assert output.scores.website == 0
        assert output.maturity_stage == "Scaling"
        assert output.source == "lab_fallback"
        assert len(output.dimension_diagnostics) == 3

    def test_no_scores_uses_completeness(self):
        output = build_structured_output_from_labs(ContextHealthAssessment(completeness=34), [])

        assert output.scores.overall == 34
        assert output.maturity_stage == "Early Stage"

    def test_findings_and_next_steps(self):
        insight = LabInsightUnit(
            title="Checkout breaks on mobile", summary="Cart button hidden",
            category="website", severity="critical", source_lab_id=LabId.WEBSITE,
        )
        outputs = [_lab_output(LabId.WEBSITE, score=40, insights=[insight], recommendations=["Fix checkout"])]

        output = build_structured_output_from_labs(ContextHealthAssessment(), outputs)

        assert output.key_findings[0].type == "gap"
        assert output.key_findings[0].severity == "critical"
        assert output.recommended_next_steps[0].title == "Fix checkout"

    def test_empty_output(self):
        output = empty_structured_output()

        assert output.source == "empty"
        assert output.scores.overall == 0


class TestMaturityStage:
    """maturity_stage_for() thresholds"""

    @pytest.mark.parametrize("score,stage", [
        (95, "Established"), (80, "Established"), (79, "Scaling"), (60, "Scaling"),
        (59, "Emerging"), (40, "Emerging"), (39, "Early Stage"), (0, "Early Stage"),
    ])
    def test_thresholds(self, score, stage):
        assert maturity_stage_for(score) == stage


# =============================================================================
# INSIGHTS
# =============================================================================

class TestInsights:
    """extract_insights_from_lab_outputs()"""

    def test_one_record_per_unit(self, now):
        ux_insight = LabInsightUnit(
            title="Menu hidden on mobile", summary="Hamburger menu has no label",
            category="ux", severity="high", source_lab_id=LabId.UX, recommendation="Label the menu",
        )
        outputs = [_lab_output(LabId.UX, insights=[ux_insight]), _lab_output(LabId.SEO)]

        insights = extract_insights_from_lab_outputs(outputs, "rec123", now=now)

        assert len(insights) == 1
        record = insights[0]
        assert record.company_id == "rec123"
        assert record.category == "website"
        assert record.status == "open"
        assert record.recommendation == "Label the menu"
        assert record.source == {"type": "tool_run", "toolSlug": "ux", "toolRunId": "run-ux"}
        assert record.created_at == now.isoformat()

    def test_ids_are_unique(self):
        unit = LabInsightUnit(
            title="Weak tagline", summary="Generic", category="brand",
            severity="medium", source_lab_id=LabId.BRAND,
        )

        insights = extract_insights_from_lab_outputs([_lab_output(LabId.BRAND, insights=[unit, unit])], "rec123")

        assert insights[0].id != insights[1].id

    def test_category_mapping(self):
        assert map_lab_category("competitor") == "competitive"
        assert map_lab_category("brand") == "brand"
        assert map_lab_category("astrology") == "other"
