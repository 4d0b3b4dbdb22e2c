"""
GAP Run History Database

Usage:
    from src.database import init_db, log_gap_plan_run, GapPlanRunPayload

    init_db()
    log_gap_plan_run(GapPlanRunPayload(plan_id="gap_123", url="https://acme.com", ...))
"""

from .models import Base, GapPlanRun

from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    reset_engine,
    get_session_factory,
    get_db_context,
    init_db,
)

from .repository import (
    GapPlanRunPayload,
    serialize_raw_plan,
    log_gap_plan_run,
    list_gap_plan_runs,
)

__all__ = [
    # Models
    "Base",
    "GapPlanRun",
    # Session
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "reset_engine",
    "get_session_factory",
    "get_db_context",
    "init_db",
    # Repository
    "GapPlanRunPayload",
    "serialize_raw_plan",
    "log_gap_plan_run",
    "list_gap_plan_runs",
]
