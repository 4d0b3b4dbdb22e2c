"""
Lab Engine Contract and Registry

Every diagnostic Lab is an async callable:

    async def run_brand_lab(engine_input: EngineInput) -> EngineResult | dict

Engines are registered once, at startup, into a LabEngineRegistry and
dispatched by LabId. Dict results (the shape most engine wrappers return)
are normalised with EngineResult.from_raw().
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .types import LabId, LabIdLike, coerce_lab_id

logger = logging.getLogger(__name__)


class UnknownLabError(Exception):
    """Raised when dispatching a Lab id with no registered engine."""

    def __init__(self, lab_id: Any):
        self.lab_id = lab_id
        super().__init__(f"Unknown lab: {getattr(lab_id, 'value', lab_id)}")


@dataclass
class EngineInput:
    """Uniform input handed to every Lab engine."""
    company_id: str
    company: Any
    website_url: str
    # Current context graph, read-only for engines that use prior context
    context: Any = None


@dataclass
class EngineResult:
    """Uniform engine result."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    score: Optional[float] = None
    summary: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> "EngineResult":
        """Normalise an engine's return value."""
        if isinstance(raw, EngineResult):
            return raw

        if isinstance(raw, dict):
            data = raw.get("data")
            score = raw.get("score")
            return cls(
                success=bool(raw.get("success", False)),
                data=data if isinstance(data, dict) else None,
                error=raw.get("error"),
                score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
                summary=raw.get("summary"),
            )

        return cls(
            success=False,
            error=f"Engine returned unexpected result type: {type(raw).__name__}",
        )

    @classmethod
    def failure(cls, error: str) -> "EngineResult":
        return cls(success=False, error=error)


LabEngine = Callable[[EngineInput], Awaitable[Union[EngineResult, Dict[str, Any]]]]


class LabEngineRegistry:
    """
    LabId -> engine map.

    Usage:
        registry = LabEngineRegistry({LabId.BRAND: run_brand_lab})
        registry.register(LabId.SEO, run_seo_lab)
        result = await registry.run(LabId.SEO, engine_input)
    """

    def __init__(self, engines: Optional[Dict[LabIdLike, LabEngine]] = None):
        self._engines: Dict[LabId, LabEngine] = {}
        for lab_id, engine in (engines or {}).items():
            self.register(lab_id, engine)

    def register(self, lab_id: LabIdLike, engine: LabEngine) -> None:
        resolved = coerce_lab_id(lab_id)
        if resolved is None:
            raise UnknownLabError(lab_id)
        if resolved in self._engines:
            logger.warning(f"Replacing engine registered for {resolved.value}")
        self._engines[resolved] = engine

    def has(self, lab_id: LabIdLike) -> bool:
        resolved = coerce_lab_id(lab_id)
        return resolved is not None and resolved in self._engines

    def get(self, lab_id: LabIdLike) -> LabEngine:
        """
        Look up the engine for a Lab.

        Raises:
            UnknownLabError: Lab id is unknown or has no registered engine
        """
        resolved = coerce_lab_id(lab_id)
        if resolved is None or resolved not in self._engines:
            raise UnknownLabError(lab_id)
        return self._engines[resolved]

    def registered_labs(self) -> List[LabId]:
        return list(self._engines)

    async def run(self, lab_id: LabIdLike, engine_input: EngineInput) -> EngineResult:
        """Dispatch and normalise. Engine exceptions propagate to the caller."""
        engine = self.get(lab_id)
        return EngineResult.from_raw(await engine(engine_input))
