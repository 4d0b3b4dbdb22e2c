"""
Pytest Configuration and Shared Fixtures

Provides common fixtures and configuration for all test modules.
"""

import pytest
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

from src.context_graph.models import (
    CompanyContextGraph,
    ProvenanceEntry,
    WithMeta,
    create_empty_graph,
    utc_now,
)
from src.context_graph.store import InMemoryContextGraphStore
from src.database.session import reset_engine
from src.gap.collaborators import CompanyRecord, InMemoryCompanyDirectory
from src.gap.engines import LabEngineRegistry
from src.gap.types import LabId
from src.persistence.diagnostic_runs import DiagnosticRunTracker
from src.utils.config import get_settings


# ============================================================================
# Settings isolation
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Point every setting at throwaway locations and an in-memory database."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("DIAGNOSTIC_RUNS_PATH", str(tmp_path / "diagnostic_runs"))
    get_settings.cache_clear()
    reset_engine()
    yield
    reset_engine()
    get_settings.cache_clear()


# ============================================================================
# Graph builders
# ============================================================================

@pytest.fixture
def now() -> datetime:
    return utc_now().replace(microsecond=0)


@pytest.fixture
def make_cell(now) -> Callable[..., WithMeta]:
    """Build a populated cell with one provenance entry `days_old` days old."""

    def _make(
        value: Any,
        source: str = "brand_lab",
        days_old: float = 1,
        confidence: float = 0.8,
        valid_for_days: Optional[int] = None,
        updated_at: Optional[str] = None,
    ) -> WithMeta:
        timestamp = updated_at if updated_at is not None else (now - timedelta(days=days_old)).isoformat()
        return WithMeta(
            value=value,
            provenance=[ProvenanceEntry(
                source=source,
                updated_at=timestamp,
                confidence=confidence,
                valid_for_days=valid_for_days,
            )],
        )

    return _make


@pytest.fixture
def make_graph(now) -> Callable[..., CompanyContextGraph]:
    """Empty full-registry graph with selected cells replaced."""

    def _make(
        cells: Optional[Dict[str, WithMeta]] = None,
        company_id: str = "rec123",
        company_name: str = "Acme Running",
    ) -> CompanyContextGraph:
        graph = create_empty_graph(company_id, company_name, now=now)
        for path, cell in (cells or {}).items():
            domain, _, field_name = path.partition(".")
            graph.domains.setdefault(domain, {})[field_name] = cell
        return graph

    return _make


@pytest.fixture
def competitor_list() -> List[Dict[str, Any]]:
    return [
        {"name": "Nike", "domain": "nike.com", "category": "Athletic footwear"},
        {"name": "Hoka", "domain": "hoka.com", "category": "Running shoes"},
        {"name": "Brooks Running", "domain": "brooksrunning.com"},
    ]


# ============================================================================
# Collaborators
# ============================================================================

@pytest.fixture
def company() -> CompanyRecord:
    return CompanyRecord(
        id="rec123",
        name="Acme Running",
        website="www.Acme-Running.com/",
        industry="Footwear retail",
        business_model="Direct-to-consumer e-commerce",
        product_offer="Running shoes",
    )


@pytest.fixture
def directory(company) -> InMemoryCompanyDirectory:
    return InMemoryCompanyDirectory([company])


@pytest.fixture
def store() -> InMemoryContextGraphStore:
    return InMemoryContextGraphStore()


@pytest.fixture
def tracker(tmp_path) -> DiagnosticRunTracker:
    return DiagnosticRunTracker(str(tmp_path / "runs"))


@pytest.fixture
def make_engine() -> Callable[..., AsyncMock]:
    """AsyncMock engine returning a dict-shaped engine result."""

    def _make(
        data: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error: Optional[str] = None,
        score: Optional[float] = None,
        summary: Optional[str] = None,
    ) -> AsyncMock:
        return AsyncMock(return_value={
            "success": success,
            "data": data,
            "error": error,
            "score": score,
            "summary": summary,
        })

    return _make


@pytest.fixture
def make_registry(make_engine) -> Callable[..., Tuple[LabEngineRegistry, Dict[LabId, Any]]]:
    """Registry with a succeeding no-op engine for every Lab, plus overrides."""

    def _make(overrides: Optional[Dict[LabId, Any]] = None) -> Tuple[LabEngineRegistry, Dict[LabId, Any]]:
        engines: Dict[LabId, Any] = {lab_id: make_engine(data={}) for lab_id in LabId}
        engines.update(overrides or {})
        return LabEngineRegistry(engines), engines

    return _make


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
