"""
Tests for the competitor category guardrails.

These tests verify:
- Target category inference
- Platform-domain, agency, marketplace and vendor rejections
- Whole-word keyword matching
- List filtering with reasons
"""

import pytest

from src.gap.category_guardrails import (
    CategoryFingerprint,
    filter_competitors_by_category,
    fingerprint_from_graph,
    get_platform_exclusion_reason,
    infer_category_fingerprint,
    should_reject_competitor,
)


FOOTWEAR = infer_category_fingerprint(
    industry="Footwear retail",
    business_model="Direct-to-consumer e-commerce",
    product_offer="Running shoes",
)
AGENCY = infer_category_fingerprint(industry="Digital marketing agency")
MARKETPLACE = infer_category_fingerprint(business_model="Two-sided marketplace for local trades")


# =============================================================================
# FINGERPRINT
# =============================================================================

class TestFingerprint:
    """infer_category_fingerprint() / fingerprint_from_graph()"""

    def test_product_company(self):
        assert FOOTWEAR == CategoryFingerprint()

    def test_agency(self):
        assert AGENCY.is_agency_or_services
        assert not AGENCY.is_marketplace

    def test_marketplace(self):
        assert MARKETPLACE.is_marketplace

    def test_saas(self):
        assert infer_category_fingerprint(business_model="B2B SaaS").is_platform_or_saas

    def test_from_graph_identity(self, make_graph, make_cell):
        graph = make_graph({"identity.industry": make_cell("Brand consultancy", source="user")})

        assert fingerprint_from_graph(graph).is_agency_or_services

    def test_from_missing_graph(self):
        assert fingerprint_from_graph(None) == CategoryFingerprint()


# =============================================================================
# REJECTION RULES
# =============================================================================

class TestShouldReject:
    """should_reject_competitor()"""

    def test_agency_rejected_for_product_company(self):
        reason = should_reject_competitor(FOOTWEAR, "Disruptive Advertising")

        assert reason is not None
        assert "advertising" in reason

    def test_real_competitor_kept(self):
        assert should_reject_competitor(FOOTWEAR, "Nike", "nike.com", "Athletic footwear") is None

    def test_agency_kept_for_agency(self):
        assert should_reject_competitor(AGENCY, "Disruptive Advertising") is None

    def test_marketplace_rejected_for_non_marketplace(self):
        reason = should_reject_competitor(FOOTWEAR, "Etsy")

        assert reason.startswith("Marketplace ('etsy')")

    def test_marketplace_kept_for_marketplace(self):
        assert should_reject_competitor(MARKETPLACE, "Thumbtack") is None

    def test_generic_vendor_rejected(self):
        reason = should_reject_competitor(FOOTWEAR, "HubSpot")

        assert "tool, not a competitor" in reason

    def test_keywords_match_whole_words_only(self):
        # "moz" is a vendor, "Mozart" is not
        assert should_reject_competitor(FOOTWEAR, "Mozart Running Co") is None

    def test_category_text_is_checked(self):
        reason = should_reject_competitor(FOOTWEAR, "Northwind", category="Digital marketing services")

        assert reason is not None


class TestPlatformDomains:
    """Platforms are never competitors, whatever the target category."""

    def test_social_platform(self):
        assert should_reject_competitor(AGENCY, "Facebook", "facebook.com") == (
            "Social media platform, not a competitor"
        )

    def test_subdomain_and_url_forms(self):
        assert get_platform_exclusion_reason("business.facebook.com") == "Social media platform"
        assert get_platform_exclusion_reason("https://www.youtube.com/@acme") == "Video/media platform"

    def test_regular_domain(self):
        assert get_platform_exclusion_reason("hoka.com") is None
        assert get_platform_exclusion_reason(None) is None


# =============================================================================
# FILTER
# =============================================================================

class TestFilterCompetitors:
    """filter_competitors_by_category()"""

    def test_partitions_with_reasons(self, competitor_list):
        candidates = competitor_list + [
            "Disruptive Advertising",
            {"name": "LinkedIn", "url": "https://linkedin.com"},
        ]

        result = filter_competitors_by_category(FOOTWEAR, candidates)

        assert result.valid == competitor_list
        assert [r["competitor"] for r in result.rejected] == candidates[3:]
        assert all(r["reason"] for r in result.rejected)

    def test_empty_input(self):
        result = filter_competitors_by_category(FOOTWEAR, [])

        assert result.valid == []
        assert result.rejected == []
