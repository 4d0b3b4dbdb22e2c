"""
Orchestrator Collaborators

Interfaces the orchestrator consumes, plus the default implementations:

- CompanyDirectory: company record lookup
- GapPlanEngine: the multi-pass full GAP Plan engine
- RunHistoryLogger: one summary row per orchestration run
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from src.database.repository import GapPlanRunPayload, log_gap_plan_run
from src.database.session import init_db

from .engines import EngineInput, EngineResult

logger = logging.getLogger(__name__)


# =============================================================================
# COMPANIES
# =============================================================================


class CompanyNotFoundError(Exception):
    """Raised when a company record does not exist."""

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


@dataclass
class CompanyRecord:
    """The subset of a company record the orchestrator needs."""
    id: str
    name: str
    website: Optional[str] = None
    industry: Optional[str] = None
    business_model: Optional[str] = None
    product_offer: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "website": self.website,
            "industry": self.industry,
            "businessModel": self.business_model,
            "productOffer": self.product_offer,
            "metadata": dict(self.metadata),
        }


class CompanyDirectory(ABC):
    """Company record lookup."""

    @abstractmethod
    async def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        pass

    async def require_company(self, company_id: str) -> CompanyRecord:
        """
        Look up a company.

        Raises:
            CompanyNotFoundError: No record for company_id
        """
        company = await self.get_company(company_id)
        if company is None:
            raise CompanyNotFoundError(company_id)
        return company


class InMemoryCompanyDirectory(CompanyDirectory):
    def __init__(self, companies: Optional[List[CompanyRecord]] = None):
        self._companies: Dict[str, CompanyRecord] = {c.id: c for c in companies or []}

    def add(self, company: CompanyRecord) -> None:
        self._companies[company.id] = company

    async def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        return self._companies.get(company_id)


# =============================================================================
# GAP PLAN ENGINE
# =============================================================================

# async (engine_input, gap_ia_run) -> EngineResult | {"success", "data": {"growthPlan": ...}, "error"}
GapPlanEngine = Callable[
    [EngineInput, Optional[Dict[str, Any]]],
    Awaitable[Union[EngineResult, Dict[str, Any]]],
]


def extract_growth_plan(result: EngineResult) -> Optional[Dict[str, Any]]:
    """Pull the growth plan out of a GAP Plan engine result."""
    if not result.success or not result.data:
        return None
    plan = result.data.get("growthPlan", result.data)
    return plan if isinstance(plan, dict) else None


# =============================================================================
# RUN HISTORY
# =============================================================================


class RunHistoryLogger(ABC):
    """Writes a summary row per orchestration run."""

    @abstractmethod
    async def log_run(self, payload: GapPlanRunPayload) -> Optional[str]:
        """Returns the stored row id."""
        pass


class SqlRunHistoryLogger(RunHistoryLogger):
    """
    Run history in the SQLAlchemy `gap_plan_runs` table.

    Tables are created on first use. Session work is blocking, so it runs in
    a worker thread to keep the event loop free.
    """

    def __init__(self):
        self._tables_ready = False

    def _log_run_sync(self, payload: GapPlanRunPayload) -> str:
        if not self._tables_ready:
            init_db()
            self._tables_ready = True
        return log_gap_plan_run(payload)

    async def log_run(self, payload: GapPlanRunPayload) -> Optional[str]:
        return await asyncio.to_thread(self._log_run_sync, payload)



class InMemoryRunHistoryLogger(RunHistoryLogger):
    """Keeps payloads in a list (tests, dry environments)."""

    def __init__(self):
        self.payloads: List[GapPlanRunPayload] = []

    async def log_run(self, payload: GapPlanRunPayload) -> Optional[str]:
        self.payloads.append(payload)
        return payload.plan_id
