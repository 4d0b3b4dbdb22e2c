"""
Diagnostic Run Tracking

Track Lab / tool runs from start to completion.

Each run is one JSON file under DIAGNOSTIC_RUNS_PATH. The Lab execution
adapter records a run per Lab invocation, and the Competition Gap runner
reads completed Competition Lab runs back to avoid re-running the engine.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.utils.config import get_settings

logger = logging.getLogger(__name__)


class DiagnosticRunStatus(Enum):
    """Diagnostic run states."""
    PENDING = "pending"     # Created, not started
    RUNNING = "running"     # Engine executing
    COMPLETE = "complete"   # Finished successfully
    FAILED = "failed"       # Engine reported failure or crashed


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class DiagnosticRun:
    """One tool run (a Lab, the GAP Plan engine, the Competition Lab)."""
    run_id: str
    company_id: str
    tool_id: str
    status: DiagnosticRunStatus
    created_at: datetime
    updated_at: datetime

    # Results
    score: Optional[float] = None
    summary: Optional[str] = None
    raw_json: Optional[Dict[str, Any]] = None

    # Timing
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    # Errors
    error_message: Optional[str] = None

    # Metadata
    metadata: Dict[str, Any] = field(default_factory=dict)

    def age_days(self, now: Optional[datetime] = None) -> float:
        """Days since the run was created."""
        return ((now or _now()) - self.created_at).total_seconds() / 86400

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "DiagnosticRun":
        """Create from dictionary."""
        data = dict(data)
        data["status"] = DiagnosticRunStatus(data["status"])
        data["created_at"] = _parse(data["created_at"])
        data["updated_at"] = _parse(data["updated_at"])
        data["completed_at"] = _parse(data.get("completed_at"))
        return cls(**data)


class DiagnosticRunTracker:
    """
    Tracks diagnostic runs.

    Provides run lifecycle management and lookups by company and tool.
    """

    def __init__(self, storage_path: Optional[str] = None):
        """
        Initialize run tracker.

        Args:
            storage_path: Directory for run data.
                         Defaults to DIAGNOSTIC_RUNS_PATH or ~/.gap_engine/diagnostic_runs/
        """
        if storage_path is None:
            storage_path = get_settings().DIAGNOSTIC_RUNS_PATH or str(
                Path.home() / ".gap_engine" / "diagnostic_runs"
            )

        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def _get_run_path(self, run_id: str) -> Path:
        """Get path for run file."""
        return self.storage_path / f"{run_id}.json"

    def _save_run(self, run: DiagnosticRun):
        """Persist run to storage."""
        path = self._get_run_path(run.run_id)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(run.to_dict(), f, indent=2, default=str)

    def create_diagnostic_run(
        self,
        company_id: str,
        tool_id: str,
        status: DiagnosticRunStatus = DiagnosticRunStatus.RUNNING,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DiagnosticRun:
        """
        Create a new diagnostic run record.

        Returns:
            The created DiagnosticRun
        """
        now = _now()
        run = DiagnosticRun(
            run_id=f"run_{uuid.uuid4().hex[:16]}",
            company_id=company_id,
            tool_id=tool_id,
            status=status,
            created_at=now,
            updated_at=now,
            metadata=metadata or {},
        )

        self._save_run(run)

        logger.info(f"Created diagnostic run {run.run_id} ({tool_id}) for {company_id}")
        return run

    def get_run(self, run_id: str) -> Optional[DiagnosticRun]:
        """Get run by ID."""
        path = self._get_run_path(run_id)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                return DiagnosticRun.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load diagnostic run {run_id}: {e}")
            return None

    def update_diagnostic_run(
        self,
        run_id: str,
        status: Optional[DiagnosticRunStatus] = None,
        score: Optional[float] = None,
        summary: Optional[str] = None,
        raw_json: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> Optional[DiagnosticRun]:
        """
        Update a run's status and/or results.

        Returns:
            Updated DiagnosticRun or None if not found
        """
        run = self.get_run(run_id)
        if not run:
            logger.warning(f"Diagnostic run {run_id} not found for update")
            return None

        now = _now()
        run.updated_at = now

        if status:
            run.status = status
            if status in (DiagnosticRunStatus.COMPLETE, DiagnosticRunStatus.FAILED):
                run.completed_at = now
                run.duration_seconds = (now - run.created_at).total_seconds()
        if score is not None:
            run.score = score
        if summary is not None:
            run.summary = summary
        if raw_json is not None:
            run.raw_json = raw_json
        if error_message is not None:
            run.error_message = error_message

        self._save_run(run)
        return run

    def list_runs(
        self,
        company_id: Optional[str] = None,
        tool_id: Optional[str] = None,
        status: Optional[DiagnosticRunStatus] = None,
        limit: int = 100,
    ) -> List[DiagnosticRun]:
        """
        List runs with optional filters, newest first.

        Args:
            company_id: Filter by company
            tool_id: Filter by tool
            status: Filter by status
            limit: Maximum number of runs to return
        """
        runs = []
        for file_path in self.storage_path.glob("*.json"):
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    runs.append(DiagnosticRun.from_dict(json.load(f)))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Failed to load diagnostic run from {file_path}: {e}")

        if company_id:
            runs = [r for r in runs if r.company_id == company_id]
        if tool_id:
            runs = [r for r in runs if r.tool_id == tool_id]
        if status:
            runs = [r for r in runs if r.status == status]

        runs.sort(key=lambda r: r.created_at, reverse=True)

        return runs[:limit]

    def find_latest_run(
        self,
        company_id: str,
        tool_id: str,
        status: Optional[DiagnosticRunStatus] = DiagnosticRunStatus.COMPLETE,
    ) -> Optional[DiagnosticRun]:
        """Most recent run for a company/tool, optionally restricted to a status."""
        runs = self.list_runs(company_id=company_id, tool_id=tool_id, status=status, limit=1)
        return runs[0] if runs else None
