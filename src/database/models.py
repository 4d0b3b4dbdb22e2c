"""
SQLAlchemy Models for the GAP run history

One row per orchestration run: company, scores, counts and a truncated copy
of the raw plan payload. Portable column types only, so the same table works
on PostgreSQL and on SQLite during local development and tests.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, DateTime, Float, Index, Integer, String, Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid4())


# =============================================================================
# RUN HISTORY
# =============================================================================

class GapPlanRun(Base):
    """Summary row for one GAP orchestration run"""
    __tablename__ = "gap_plan_runs"

    id = Column(String(36), primary_key=True, default=_uuid)
    plan_id = Column(String(64), nullable=False, index=True)
    company_id = Column(String(255), index=True)

    url = Column(String(500))
    status = Column(String(20), default="completed")
    maturity_stage = Column(String(50))

    # Scores (0-100)
    overall_score = Column(Float)
    brand_score = Column(Float)
    content_score = Column(Float)
    website_score = Column(Float)
    seo_score = Column(Float)
    authority_score = Column(Float)
    digital_footprint_score = Column(Float)

    # Counts
    quick_wins_count = Column(Integer, default=0)
    initiatives_count = Column(Integer, default=0)

    # Raw payload (JSON text, truncated to RUN_LOG_RAW_PAYLOAD_LIMIT)
    data_json = Column(Text)
    data_truncated = Column(Boolean, default=False)

    # Timestamps
    run_created_at = Column(String(40))  # ISO timestamp reported by the orchestrator
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("idx_gap_plan_runs_company_created", "company_id", "created_at"),
    )

    def __repr__(self):
        return f"<GapPlanRun {self.plan_id} company={self.company_id} overall={self.overall_score}>"
