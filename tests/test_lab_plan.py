"""
Tests for the Lab Run Planner.

These tests verify:
- Field ownership lookups
- Priority ordering of planned Labs
- Force / skip handling (skip wins)
- Unmapped fields
"""

import pytest

from src.gap.lab_plan import (
    LAB_METADATA,
    determine_labs_needed_for_missing_fields,
    get_all_available_labs,
    get_fields_for_lab,
    get_lab_for_field,
)
from src.gap.types import ContextHealthAssessment, LabId


def _health(missing=None, stale=None):
    return ContextHealthAssessment(
        missing_critical_fields=list(missing or []),
        stale_fields=list(stale or []),
    )


# =============================================================================
# OWNERSHIP
# =============================================================================

class TestFieldOwnership:
    """Field -> Lab registry lookups."""

    def test_lab_for_field(self):
        assert get_lab_for_field("brand.positioning") == LabId.BRAND
        assert get_lab_for_field("website.mobileExperience") == LabId.UX
        assert get_lab_for_field("digitalInfra.demandGenScore") == LabId.DEMAND

    def test_identity_fields_are_unowned(self):
        assert get_lab_for_field("identity.industry") is None
        assert get_lab_for_field("objectives.kpis") is None

    def test_competitive_fields_have_no_lab_owner(self):
        assert get_lab_for_field("competitive.competitors") is None
        assert get_lab_for_field("competitive.positionSummary") is None
        assert get_fields_for_lab(LabId.COMPETITOR) == []

    def test_fields_for_lab_in_registry_order(self):
        assert get_fields_for_lab(LabId.UX) == ["website.mobileExperience", "website.navigationClarity"]
        assert get_fields_for_lab("ux") == get_fields_for_lab(LabId.UX)

    def test_fields_for_unknown_lab(self):
        assert get_fields_for_lab("astrology") == []


# =============================================================================
# PLANNING
# =============================================================================

class TestPlanning:
    """determine_labs_needed_for_missing_fields()"""

    def test_labs_ordered_by_priority(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["seo.overallScore", "brand.positioning", "audience.primaryAudience"],
        ))

        assert plan.lab_ids == [LabId.AUDIENCE, LabId.BRAND, LabId.SEO]
        assert [item.priority for item in plan.labs] == [1, 2, 5]

    def test_fields_grouped_per_lab(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["brand.positioning", "brand.valueProps"],
        ))

        assert len(plan.labs) == 1
        assert plan.labs[0].fields_to_fill == ["positioning", "valueProps"]
        assert plan.labs[0].reason == "Missing critical fields"

    def test_stale_and_missing_reasons(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["brand.positioning"],
            stale=["brand.toneOfVoice", "seo.keywordThemes"],
        ))

        reasons = {item.lab_id: item.reason for item in plan.labs}
        assert reasons[LabId.BRAND] == "Missing and stale fields"
        assert reasons[LabId.SEO] == "Stale fields"
        assert plan.missing_fields_count == 3

    def test_unmapped_fields_reported_not_planned(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["identity.industry", "objectives.kpis", "brand.positioning"],
        ))

        assert plan.lab_ids == [LabId.BRAND]
        assert plan.unmapped_fields == ["identity.industry", "objectives.kpis"]

    def test_missing_competitive_fields_do_not_plan_competitor_lab(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["competitive.competitors", "competitive.positionSummary", "brand.positioning"],
        ))

        assert plan.lab_ids == [LabId.BRAND]
        assert plan.unmapped_fields == ["competitive.competitors", "competitive.positionSummary"]

    def test_competitor_lab_runs_only_when_forced(self):
        plan = determine_labs_needed_for_missing_fields(
            _health(missing=["competitive.competitors"]),
            force_labs=[LabId.COMPETITOR],
        )

        assert plan.lab_ids == [LabId.COMPETITOR]
        assert plan.labs[0].reason == "Forced by request"

    def test_total_duration_is_sum(self):
        plan = determine_labs_needed_for_missing_fields(_health(
            missing=["brand.positioning", "seo.overallScore"],
        ))

        expected = (
            LAB_METADATA[LabId.BRAND].estimated_duration_ms
            + LAB_METADATA[LabId.SEO].estimated_duration_ms
        )
        assert plan.total_estimated_duration_ms == expected

    def test_healthy_graph_plans_nothing(self):
        plan = determine_labs_needed_for_missing_fields(_health())

        assert plan.labs == []
        assert plan.total_estimated_duration_ms == 0


class TestForceAndSkip:
    """Request overrides."""

    def test_forced_lab_runs_without_gaps(self):
        plan = determine_labs_needed_for_missing_fields(_health(), force_labs=["ops"])

        assert plan.lab_ids == [LabId.OPS]
        assert plan.labs[0].reason == "Forced by request"
        assert plan.labs[0].fields_to_fill == []

    def test_forced_lab_already_planned_is_not_duplicated(self):
        plan = determine_labs_needed_for_missing_fields(
            _health(missing=["brand.positioning"]),
            force_labs=[LabId.BRAND],
        )

        assert plan.lab_ids == [LabId.BRAND]
        assert plan.labs[0].reason == "Missing critical fields"

    def test_skip_removes_planned_lab(self):
        plan = determine_labs_needed_for_missing_fields(
            _health(missing=["brand.positioning", "seo.overallScore"]),
            skip_labs=["brand"],
        )

        assert plan.lab_ids == [LabId.SEO]

    def test_skip_wins_over_force(self):
        plan = determine_labs_needed_for_missing_fields(
            _health(),
            force_labs=["brand", "ops"],
            skip_labs=["brand"],
        )

        assert plan.lab_ids == [LabId.OPS]

    def test_unknown_lab_ids_are_ignored(self):
        plan = determine_labs_needed_for_missing_fields(_health(), force_labs=["astrology", "SEO"])

        assert plan.lab_ids == [LabId.SEO]

    def test_all_available_labs_minus_skips(self):
        plan = get_all_available_labs(skip_labs=["competitor"])

        assert len(plan.labs) == len(LabId) - 1
        assert LabId.COMPETITOR not in plan.lab_ids
        assert plan.lab_ids[0] == LabId.AUDIENCE
