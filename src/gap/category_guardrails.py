"""
Competitor Category Guardrails

Filters LLM-sourced competitor lists so they stay in the target company's
category. A footwear brand should not end up benchmarked against marketing
agencies, freelance marketplaces or Facebook.

Rejection rules, checked in order (first match wins):
1. Platform domains (social, video, tech giants, marketplaces, news, reviews)
2. Agency/services signals when the target is not an agency
3. Marketplace signals when the target is not a marketplace
4. Generic marketing vendors when the target is not an agency
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from src.context_graph.models import CompanyContextGraph
from src.utils.urls import extract_domain

logger = logging.getLogger(__name__)


# =============================================================================
# KEYWORD LISTS
# =============================================================================

# Target-side category inference
AGENCY_TARGET_KEYWORDS = (
    "agency", "consultancy", "consulting", "consultants", "professional services",
    "services firm", "marketing firm", "studio", "advisory",
)
MARKETPLACE_TARGET_KEYWORDS = (
    "marketplace", "two-sided", "two sided", "exchange", "listings platform",
)
PLATFORM_TARGET_KEYWORDS = (
    "saas", "software", "platform", "cloud", "api", "subscription software",
)

# Candidate-side signals
AGENCY_SIGNALS = (
    "agency", "advertising", "consultancy", "consulting", "marketing services",
    "digital marketing", "creative studio", "media buying", "ppc management",
    "seo services", "growth partners",
)
MARKETPLACE_SIGNALS = (
    "marketplace", "upwork", "fiverr", "freelancer", "toptal", "thumbtack",
    "etsy", "ebay",
)
GENERIC_MARKETING_VENDORS = (
    "hubspot", "mailchimp", "hootsuite", "semrush", "ahrefs", "wordstream",
    "moz", "sprout social", "buffer", "constant contact", "klaviyo",
)


# =============================================================================
# PLATFORM DOMAINS
# =============================================================================

SOCIAL_MEDIA = {
    "facebook.com", "fb.com", "twitter.com", "x.com", "instagram.com",
    "linkedin.com", "tiktok.com", "pinterest.com", "reddit.com",
    "tumblr.com", "snapchat.com", "threads.net",
}

VIDEO_PLATFORMS = {
    "youtube.com", "youtu.be", "vimeo.com", "twitch.tv",
}

TECH_GIANTS = {
    "google.com", "apple.com", "microsoft.com", "bing.com",
    "amazon.com", "meta.com",
}

MARKETPLACES = {
    "ebay.com", "etsy.com", "aliexpress.com", "alibaba.com",
    "walmart.com", "upwork.com", "fiverr.com",
}

REFERENCE_SITES = {
    "wikipedia.org", "quora.com", "medium.com", "substack.com", "github.com",
}

NEWS_MEDIA = {
    "bbc.com", "cnn.com", "nytimes.com", "theguardian.com", "reuters.com",
    "bloomberg.com", "forbes.com", "techcrunch.com", "wired.com",
}

REVIEW_DIRECTORIES = {
    "yelp.com", "tripadvisor.com", "trustpilot.com", "g2.com",
    "capterra.com", "glassdoor.com", "crunchbase.com",
}

PLATFORM_CATEGORIES: Tuple[Tuple[str, Set[str]], ...] = (
    ("Social media platform", SOCIAL_MEDIA),
    ("Video/media platform", VIDEO_PLATFORMS),
    ("Technology platform", TECH_GIANTS),
    ("E-commerce marketplace", MARKETPLACES),
    ("Reference/educational site", REFERENCE_SITES),
    ("News/media organization", NEWS_MEDIA),
    ("Review/directory site", REVIEW_DIRECTORIES),
)


def get_platform_exclusion_reason(domain: Optional[str]) -> Optional[str]:
    """
    Why a domain is a platform rather than a competitor, or None.

    Matches exact domains and their subdomains (business.facebook.com).
    """
    if not domain:
        return None

    domain_lower = extract_domain(domain)
    if not domain_lower:
        return None

    for reason, domains in PLATFORM_CATEGORIES:
        if domain_lower in domains or any(domain_lower.endswith("." + d) for d in domains):
            return reason

    return None


# =============================================================================
# FINGERPRINT
# =============================================================================


def _matches_any(text: str, keywords: Iterable[str]) -> Optional[str]:
    """First keyword found in text as a whole word/phrase, or None."""
    for keyword in keywords:
        if re.search(rf"\b{re.escape(keyword)}\b", text):
            return keyword
    return None


@dataclass(frozen=True)
class CategoryFingerprint:
    """Coarse category of the target company."""
    is_agency_or_services: bool = False
    is_marketplace: bool = False
    is_platform_or_saas: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "isAgencyOrServices": self.is_agency_or_services,
            "isMarketplace": self.is_marketplace,
            "isPlatformOrSaas": self.is_platform_or_saas,
        }


def infer_category_fingerprint(
    industry: Optional[str] = None,
    business_model: Optional[str] = None,
    product_offer: Optional[str] = None,
) -> CategoryFingerprint:
    """Infer the target's category from free-text identity fields."""
    text = " ".join(
        str(part) for part in (industry, business_model, product_offer) if part
    ).lower()

    return CategoryFingerprint(
        is_agency_or_services=_matches_any(text, AGENCY_TARGET_KEYWORDS) is not None,
        is_marketplace=_matches_any(text, MARKETPLACE_TARGET_KEYWORDS) is not None,
        is_platform_or_saas=_matches_any(text, PLATFORM_TARGET_KEYWORDS) is not None,
    )


def fingerprint_from_graph(graph: Optional[CompanyContextGraph]) -> CategoryFingerprint:
    """Fingerprint from the graph's identity domain."""
    if graph is None:
        return CategoryFingerprint()

    def text_value(path: str) -> Optional[str]:
        value = graph.get_value(path)
        if isinstance(value, (list, tuple)):
            return " ".join(str(v) for v in value)
        return str(value) if value is not None else None

    return infer_category_fingerprint(
        industry=text_value("identity.industry"),
        business_model=text_value("identity.businessModel"),
        product_offer=text_value("identity.primaryOffering"),
    )


# =============================================================================
# FILTER
# =============================================================================


def should_reject_competitor(
    fingerprint: CategoryFingerprint,
    name: str,
    domain: Optional[str] = None,
    category: Optional[str] = None,
) -> Optional[str]:
    """
    Decide whether a candidate competitor is outside the target's category.

    Returns:
        Human-readable rejection reason, or None to keep the candidate
    """
    platform_reason = get_platform_exclusion_reason(domain)
    if platform_reason:
        return f"{platform_reason}, not a competitor"

    text = " ".join(part for part in (name, domain, category) if part).lower()

    if not fingerprint.is_agency_or_services:
        signal = _matches_any(text, AGENCY_SIGNALS)
        if signal:
            return f"Agency/services provider ('{signal}') does not compete with a non-agency business"

    if not fingerprint.is_marketplace:
        signal = _matches_any(text, MARKETPLACE_SIGNALS)
        if signal:
            return f"Marketplace ('{signal}') does not compete with a non-marketplace business"

    if not fingerprint.is_agency_or_services:
        vendor = _matches_any(text, GENERIC_MARKETING_VENDORS)
        if vendor:
            return f"Generic marketing vendor ('{vendor}') is a tool, not a competitor"

    return None


@dataclass
class CompetitorFilterResult:
    valid: List[Any] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)


def competitor_identity(competitor: Any) -> Tuple[str, Optional[str], Optional[str]]:
    """(name, domain, category) of a competitor given as a string or dict."""
    if isinstance(competitor, str):
        return competitor, None, None
    if isinstance(competitor, dict):
        name = competitor.get("name") or competitor.get("title") or ""
        domain = competitor.get("domain") or competitor.get("url") or competitor.get("website")
        category = competitor.get("category") or competitor.get("type") or competitor.get("industry")
        return str(name), domain, category
    return str(competitor), None, None


def filter_competitors_by_category(
    fingerprint: CategoryFingerprint,
    competitors: List[Any],
) -> CompetitorFilterResult:
    """Partition candidates into valid and rejected (with reasons)."""
    result = CompetitorFilterResult()

    for competitor in competitors or []:
        name, domain, category = competitor_identity(competitor)
        reason = should_reject_competitor(fingerprint, name, domain, category)
        if reason:
            logger.debug(f"Rejected competitor {name or domain}: {reason}")
            result.rejected.append({"competitor": competitor, "reason": reason})
        else:
            result.valid.append(competitor)

    if result.rejected:
        logger.info(
            f"Category guardrail rejected {len(result.rejected)} of "
            f"{len(result.rejected) + len(result.valid)} competitors"
        )
    return result
