"""
Run History Repository

High-level operations on the GAP run-history table. Callers never touch
sessions directly.

Usage:
    from src.database.repository import GapPlanRunPayload, log_gap_plan_run

    run_id = log_gap_plan_run(GapPlanRunPayload(plan_id="gap_123", ...))
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from src.utils.config import get_settings

from .models import GapPlanRun
from .session import get_db_context

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "...[TRUNCATED]"

# Payload score key -> column
SCORE_COLUMNS = {
    "overall": "overall_score",
    "brand": "brand_score",
    "content": "content_score",
    "website": "website_score",
    "seo": "seo_score",
    "authority": "authority_score",
    "digitalFootprint": "digital_footprint_score",
}


@dataclass
class GapPlanRunPayload:
    """Summary of one orchestration run, as handed to the run-history logger."""
    plan_id: str
    url: str
    maturity_stage: str
    scores: Dict[str, Optional[float]] = field(default_factory=dict)
    quick_wins_count: int = 0
    initiatives_count: int = 0
    created_at: str = ""
    company_id: Optional[str] = None
    raw_plan: Any = None


def serialize_raw_plan(raw_plan: Any, limit: Optional[int] = None) -> Tuple[Optional[str], bool]:
    """
    JSON-encode a raw plan, truncating to `limit` characters.

    Returns:
        (json_text, truncated)
    """
    if raw_plan is None:
        return None, False

    if limit is None:
        limit = get_settings().RUN_LOG_RAW_PAYLOAD_LIMIT

    text = json.dumps(raw_plan, default=str)
    if len(text) <= limit:
        return text, False

    logger.warning(f"Raw plan payload exceeds limit ({len(text)} > {limit} chars), truncating")
    keep = max(limit - len(TRUNCATION_MARKER), 0)
    return text[:keep] + TRUNCATION_MARKER, True


# =============================================================================
# RUN LOGGING
# =============================================================================

def log_gap_plan_run(payload: GapPlanRunPayload) -> str:
    """
    Insert a run-history row.

    Returns:
        ID of the created row
    """
    data_json, truncated = serialize_raw_plan(payload.raw_plan)

    with get_db_context() as db:
        row = GapPlanRun(
            plan_id=payload.plan_id,
            company_id=payload.company_id,
            url=payload.url,
            status="completed",
            maturity_stage=payload.maturity_stage,
            quick_wins_count=payload.quick_wins_count,
            initiatives_count=payload.initiatives_count,
            data_json=data_json,
            data_truncated=truncated,
            run_created_at=payload.created_at,
        )
        for key, column in SCORE_COLUMNS.items():
            setattr(row, column, payload.scores.get(key))

        db.add(row)
        db.flush()

        row_id = row.id
        logger.info(f"Logged GAP plan run {payload.plan_id} for {payload.company_id} ({row_id})")

        return row_id


def list_gap_plan_runs(company_id: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
    """Most recent run-history rows, optionally for one company."""
    with get_db_context() as db:
        query = db.query(GapPlanRun)
        if company_id:
            query = query.filter(GapPlanRun.company_id == company_id)
        rows = query.order_by(GapPlanRun.created_at.desc()).limit(limit).all()

        return [_run_to_dict(r) for r in rows]


def _run_to_dict(r: GapPlanRun) -> Dict[str, Any]:
    return {
        "id": r.id,
        "planId": r.plan_id,
        "companyId": r.company_id,
        "url": r.url,
        "status": r.status,
        "maturityStage": r.maturity_stage,
        "scores": {key: getattr(r, column) for key, column in SCORE_COLUMNS.items()},
        "quickWinsCount": r.quick_wins_count,
        "initiativesCount": r.initiatives_count,
        "dataTruncated": r.data_truncated,
        "createdAt": r.run_created_at,
    }
