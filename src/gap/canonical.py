"""
Canonical Field Pipeline

Distills Lab outputs (and the full GAP result) into canonical text fields
that downstream strategy work reads: positioning, value props, ICP, and so
on. Candidates go through three gates before they touch the graph:

1. Arbitration: one candidate per path, highest confidence wins
2. Quality: blank, placeholder, evaluation-style, too-short and
   low-confidence values are rejected with a reason
3. Upsert rules: confirmed values (set by a person or a strategy session)
   are never overwritten, and Competition Lab fields are never written

The full GAP result may only propose GAP_ALLOWED_FIELDS that are currently
missing from the graph.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from src.context_graph.models import (
    CompanyContextGraph,
    ProvenanceEntry,
    WithMeta,
    is_populated_value,
    utc_now,
)
from src.context_graph.schema import split_path

from .competition_gap import is_competition_gap_exclusive
from .types import GAPStructuredOutput, LabId, LabRefinementOutput

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

# Provenance sources that mark a value as confirmed (compared case-insensitively)
CONFIRMED_SOURCES = frozenset({"user", "manual", "setup_wizard", "qbr", "strategy"})

# Fields the full GAP result may propose, and only while they are missing
GAP_ALLOWED_FIELDS: Tuple[str, ...] = (
    "identity.businessModel",
    "identity.companyStage",
)

GAP_FULL_SOURCE = "gap_full"
GAP_FULL_CONFIDENCE = 0.6
MIN_CONFIDENCE = 0.5
MIN_TEXT_LENGTH = 15

# Short identity-style values are legitimate ("B2B SaaS", "Growth")
FIELD_MIN_LENGTH: Dict[str, int] = {
    "identity.businessModel": 3,
    "identity.companyStage": 3,
    "digitalInfra.crmPlatform": 2,
}

# (engine data key, target path, confidence)
LAB_CANONICAL_SOURCES: Dict[LabId, List[Tuple[str, str, float]]] = {
    LabId.BRAND: [
        ("positioning", "brand.positioning", 0.8),
        ("valueProposition", "brand.valueProps", 0.75),
        ("differentiators", "brand.differentiators", 0.7),
        ("toneOfVoice", "brand.toneOfVoice", 0.7),
        ("messagingPillars", "brand.messagingPillars", 0.7),
    ],
    LabId.AUDIENCE: [
        ("primaryAudience", "audience.primaryAudience", 0.8),
        ("icp", "audience.icpDescription", 0.75),
        ("motivations", "audience.motivations", 0.7),
    ],
    LabId.WEBSITE: [
        ("primaryConversionGoal", "website.primaryConversionGoal", 0.7),
    ],
    LabId.CONTENT: [
        ("contentPillars", "content.contentPillars", 0.7),
        ("publishingCadence", "content.publishingCadence", 0.6),
    ],
    LabId.CREATIVE: [
        ("messaging", "creative.messaging", 0.7),
        ("callToActions", "creative.callToActions", 0.65),
    ],
    LabId.DEMAND: [
        ("crmPlatform", "digitalInfra.crmPlatform", 0.7),
        ("trackingSetup", "digitalInfra.trackingSetup", 0.65),
    ],
    LabId.OPS: [
        ("analyticsSetup", "ops.analyticsSetup", 0.7),
    ],
    LabId.MEDIA: [
        ("channelMix", "performanceMedia.channelMix", 0.7),
    ],
}

PLACEHOLDER_VALUES = frozenset({
    "unknown", "n/a", "na", "tbd", "todo", "none", "null", "missing",
    "not specified", "not available", "-", "?",
})

PLACEHOLDER_PATTERNS = [
    re.compile(r"^(n/a|tbd|todo|unknown|none|missing)\b", re.IGNORECASE),
    re.compile(r"^not specified", re.IGNORECASE),
    re.compile(r"^website does not specify", re.IGNORECASE),
    re.compile(r"^unable to determine", re.IGNORECASE),
    re.compile(r"^cannot (determine|identify|find)", re.IGNORECASE),
    re.compile(r"^information not (available|found|provided)", re.IGNORECASE),
    re.compile(r"^no (clear|specific|explicit)", re.IGNORECASE),
]

# Lab commentary about quality, not business facts
EVALUATION_PATTERNS = [
    re.compile(r"is present but", re.IGNORECASE),
    re.compile(r"could be (sharper|clearer|stronger|better|more)", re.IGNORECASE),
    re.compile(r"is not (immediately |clearly )?(clear|defined|obvious)", re.IGNORECASE),
    re.compile(r"needs? (more|to be|improvement)", re.IGNORECASE),
    re.compile(r"should (be|have|include)", re.IGNORECASE),
    re.compile(r"\(score:", re.IGNORECASE),
]


# =============================================================================
# DATA TYPES
# =============================================================================


@dataclass
class CanonicalCandidate:
    """A proposed value for one canonical field."""
    path: str
    value: Any
    confidence: float
    source: str
    evidence: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "value": self.value,
            "confidence": self.confidence,
            "source": self.source,
            "evidence": self.evidence,
        }


@dataclass
class CanonicalizeResult:
    accepted: List[CanonicalCandidate] = field(default_factory=list)
    rejected: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class UpsertResult:
    graph: CompanyContextGraph
    written: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)


def is_confirmed_source(source: Optional[str]) -> bool:
    return bool(source) and source.strip().lower() in CONFIRMED_SOURCES


def is_confirmed_cell(cell: Optional[WithMeta]) -> bool:
    """Populated and last set by a confirmed source."""
    if cell is None or not cell.is_populated or cell.current is None:
        return False
    return is_confirmed_source(cell.current.source)


# =============================================================================
# INTERFACE
# =============================================================================


class CanonicalFieldPipeline(ABC):
    """Contract the orchestrator uses for canonical field extraction."""

    @abstractmethod
    def extract_canonical_fields(self, lab_outputs: List[LabRefinementOutput]) -> List[CanonicalCandidate]:
        """Candidates from successful Lab outputs."""

    @abstractmethod
    def extract_from_full_gap(
        self,
        structured: GAPStructuredOutput,
        allowed_paths: List[str],
    ) -> List[CanonicalCandidate]:
        """Candidates from the full GAP result, restricted to allowed_paths."""

    @abstractmethod
    def merge_extraction_results(self, candidates: List[CanonicalCandidate]) -> List[CanonicalCandidate]:
        """One candidate per path."""

    @abstractmethod
    def canonicalize_findings(self, candidates: List[CanonicalCandidate]) -> CanonicalizeResult:
        """Quality arbitration."""

    @abstractmethod
    def upsert_context_fields(
        self,
        graph: CompanyContextGraph,
        candidates: List[CanonicalCandidate],
        now: Optional[datetime] = None,
    ) -> UpsertResult:
        """Write accepted candidates. The input graph is not mutated."""

    @abstractmethod
    def get_fields_for_gap_to_propose(self, graph: CompanyContextGraph) -> List[str]:
        """Allowed paths the full GAP result may fill right now."""


# =============================================================================
# DEFAULT IMPLEMENTATION
# =============================================================================


class DefaultCanonicalPipeline(CanonicalFieldPipeline):

    def __init__(
        self,
        lab_sources: Optional[Dict[LabId, List[Tuple[str, str, float]]]] = None,
        allowed_fields: Tuple[str, ...] = GAP_ALLOWED_FIELDS,
        min_confidence: float = MIN_CONFIDENCE,
    ):
        self.lab_sources = lab_sources if lab_sources is not None else LAB_CANONICAL_SOURCES
        self.allowed_fields = allowed_fields
        self.min_confidence = min_confidence

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def extract_canonical_fields(self, lab_outputs: List[LabRefinementOutput]) -> List[CanonicalCandidate]:
        candidates = []
        for output in lab_outputs:
            if not output.success or not output.raw_engine_data:
                continue
            for key, path, confidence in self.lab_sources.get(output.lab_id, []):
                value = output.raw_engine_data.get(key)
                if not _is_text_value(value):
                    continue
                candidates.append(CanonicalCandidate(
                    path=path,
                    value=value,
                    confidence=confidence,
                    source=f"{output.lab_id.value}_lab",
                    evidence=f"{output.lab_name} run {output.run_id}",
                ))
        return candidates

    def extract_from_full_gap(
        self,
        structured: GAPStructuredOutput,
        allowed_paths: List[str],
    ) -> List[CanonicalCandidate]:
        proposals = {
            "identity.businessModel": structured.business_model,
            "identity.companyStage": (
                structured.maturity_stage if structured.maturity_stage != "Unknown" else None
            ),
        }

        candidates = []
        for path in allowed_paths:
            value = proposals.get(path)
            if value is None:
                continue
            candidates.append(CanonicalCandidate(
                path=path,
                value=value,
                confidence=GAP_FULL_CONFIDENCE,
                source=GAP_FULL_SOURCE,
                evidence=f"Full GAP result ({structured.source})",
            ))
        return candidates

    def merge_extraction_results(self, candidates: List[CanonicalCandidate]) -> List[CanonicalCandidate]:
        best: Dict[str, CanonicalCandidate] = {}
        for candidate in candidates:
            current = best.get(candidate.path)
            if current is None or candidate.confidence > current.confidence:
                best[candidate.path] = candidate
        return list(best.values())

    # -------------------------------------------------------------------------
    # Quality
    # -------------------------------------------------------------------------

    def canonicalize_findings(self, candidates: List[CanonicalCandidate]) -> CanonicalizeResult:
        result = CanonicalizeResult()
        for candidate in candidates:
            reason = self._quality_rejection(candidate)
            if reason:
                logger.debug(f"Canonicalizer rejected {candidate.path}: {reason}")
                result.rejected.append({"path": candidate.path, "reason": reason})
            else:
                result.accepted.append(candidate)
        return result

    def _quality_rejection(self, candidate: CanonicalCandidate) -> Optional[str]:
        if candidate.confidence < self.min_confidence:
            return f"Confidence {candidate.confidence:.2f} below {self.min_confidence:.2f}"

        texts = candidate.value if isinstance(candidate.value, list) else [candidate.value]
        texts = [t.strip() for t in texts if isinstance(t, str)]
        if not texts or not any(texts):
            return "Blank value"

        min_length = FIELD_MIN_LENGTH.get(candidate.path, MIN_TEXT_LENGTH)
        for text in texts:
            if text.lower() in PLACEHOLDER_VALUES or any(p.search(text) for p in PLACEHOLDER_PATTERNS):
                return f"Placeholder value: {text[:60]!r}"
            if any(p.search(text) for p in EVALUATION_PATTERNS):
                return f"Evaluation text, not a fact: {text[:60]!r}"

        if isinstance(candidate.value, str) and len(texts[0]) < min_length:
            return f"Too short ({len(texts[0])} < {min_length} chars)"

        return None

    # -------------------------------------------------------------------------
    # Upsert
    # -------------------------------------------------------------------------

    def upsert_context_fields(
        self,
        graph: CompanyContextGraph,
        candidates: List[CanonicalCandidate],
        now: Optional[datetime] = None,
    ) -> UpsertResult:
        updated = graph.clone()
        result = UpsertResult(graph=updated)
        timestamp = (now or utc_now()).isoformat()

        for candidate in candidates:
            domain, field_name = split_path(candidate.path)

            if is_competition_gap_exclusive(candidate.path):
                result.skipped.append({"path": candidate.path, "reason": "Owned by Competition Lab"})
                continue

            fields = updated.domains.get(domain)
            if fields is None:
                result.skipped.append({"path": candidate.path, "reason": f"Unknown domain {domain}"})
                continue

            existing = fields.get(field_name)
            if is_confirmed_cell(existing):
                result.skipped.append({
                    "path": candidate.path,
                    "reason": f"Confirmed by {existing.current.source}",
                })
                continue

            if (
                existing is not None
                and existing.is_populated
                and existing.current is not None
                and existing.current.confidence > candidate.confidence
            ):
                result.skipped.append({
                    "path": candidate.path,
                    "reason": "Existing value has higher confidence",
                })
                continue

            entry = ProvenanceEntry(
                source=candidate.source,
                updated_at=timestamp,
                confidence=candidate.confidence,
                notes=candidate.evidence,
            )
            fields[field_name] = WithMeta(
                value=candidate.value,
                provenance=[entry] + (list(existing.provenance) if existing else []),
            )
            result.written.append(candidate.path)

        return result

    def get_fields_for_gap_to_propose(self, graph: CompanyContextGraph) -> List[str]:
        fields = []
        for path in self.allowed_fields:
            cell = graph.get_field(path)
            if cell is None or not cell.is_populated:
                fields.append(path)
        return fields


def _is_text_value(value: Any) -> bool:
    if isinstance(value, str):
        return is_populated_value(value)
    if isinstance(value, list):
        return bool(value) and all(isinstance(v, str) for v in value)
    return False
