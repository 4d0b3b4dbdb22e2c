"""
Context Graph Schema

Registry of the domains and fields a company context graph carries.

Every known field is created as an empty cell when a graph is first
bootstrapped, so completeness can be measured against the full registry
rather than only against fields some Lab happened to write.
"""

from typing import Dict, List, Tuple


# =============================================================================
# DOMAINS
# =============================================================================

DOMAIN_NAMES: Tuple[str, ...] = (
    "identity",
    "objectives",
    "brand",
    "audience",
    "website",
    "seo",
    "content",
    "competitive",
    "ops",
    "digitalInfra",
    "creative",
    "performanceMedia",
)

# Top-level keys of a serialized graph that are not domains
RESERVED_KEYS = frozenset({"companyId", "companyName", "meta"})


# =============================================================================
# FIELD REGISTRY
# =============================================================================

DOMAIN_FIELDS: Dict[str, List[str]] = {
    "identity": [
        "businessName",
        "industry",
        "businessModel",
        "primaryOffering",
        "geographicFootprint",
        "companyStage",
    ],
    "objectives": [
        "primaryObjective",
        "kpis",
        "timeHorizon",
        "budgetRange",
    ],
    "brand": [
        "positioning",
        "valueProps",
        "differentiators",
        "toneOfVoice",
        "messagingPillars",
        "healthScore",
        "dimensionScores",
        "pillars",
    ],
    "audience": [
        "primaryAudience",
        "coreSegments",
        "painPoints",
        "motivations",
        "icpDescription",
        "clarityScore",
    ],
    "website": [
        "uxScore",
        "criticalIssues",
        "conversionFactors",
        "quickWins",
        "primaryConversionGoal",
        "mobileExperience",
        "navigationClarity",
    ],
    "seo": [
        "overallScore",
        "technicalIssues",
        "contentGaps",
        "keywordThemes",
    ],
    "content": [
        "qualityScore",
        "contentPillars",
        "topicCoverage",
        "publishingCadence",
    ],
    "competitive": [
        "competitors",
        "positionSummary",
        "primaryAxis",
        "secondaryAxis",
        "positioningAxes",
        "featuresMatrix",
        "pricingModels",
        "messageOverlap",
        "marketClusters",
        "threatScores",
        "substitutes",
        "whitespaceOpportunities",
        "ownPriceTier",
    ],
    "ops": [
        "maturityScore",
        "martechStack",
        "analyticsSetup",
    ],
    "digitalInfra": [
        "demandGenScore",
        "demandChannels",
        "trackingSetup",
        "crmPlatform",
    ],
    "creative": [
        "coreMessages",
        "proofPoints",
        "callToActions",
        "messaging",
    ],
    "performanceMedia": [
        "activeChannels",
        "mediaScore",
        "channelMix",
        "budgetAllocation",
    ],
}


# =============================================================================
# CRITICAL FIELDS
# =============================================================================

# Fields downstream strategy generation cannot work without.
CRITICAL_FIELDS: Tuple[str, ...] = (
    "identity.industry",
    "identity.businessModel",
    "identity.geographicFootprint",
    "objectives.primaryObjective",
    "objectives.kpis",
    "brand.positioning",
    "brand.valueProps",
    "brand.differentiators",
    "audience.primaryAudience",
    "audience.coreSegments",
    "audience.painPoints",
    "website.uxScore",
    "website.criticalIssues",
    "seo.overallScore",
    "seo.technicalIssues",
    "content.qualityScore",
    "competitive.competitors",
    "competitive.positionSummary",
    "ops.maturityScore",
    "digitalInfra.demandGenScore",
    "creative.coreMessages",
    "performanceMedia.activeChannels",
)


def split_path(path: str) -> Tuple[str, str]:
    """Split a dotted "domain.field" path."""
    domain, _, field_name = path.partition(".")
    return domain, field_name


def all_field_paths() -> List[str]:
    """Every registered dotted path, in registry order."""
    return [
        f"{domain}.{field_name}"
        for domain in DOMAIN_NAMES
        for field_name in DOMAIN_FIELDS.get(domain, [])
    ]
