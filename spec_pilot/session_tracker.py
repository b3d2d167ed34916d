"""
Session accounting and execution reports.

This module provides:
- SessionTracker, counting features and gate runs for one CLI invocation
- ExecutionReport, the structured batch outcome the CLI maps to an exit code
- build_report(), folding tracker counters and per-feature results together
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from spec_pilot.models import ImplementationResult, utc_now
from spec_pilot.utils.fs import safe_write

EXIT_SUCCESS = 0
EXIT_FEATURE_FAILURES = 3


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def format_duration(seconds: int) -> str:
    """Render seconds as "1m 5s" or "42s"."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass
class SessionData:
    """Counters for one session."""
    id: str
    started_at: str
    completed_at: Optional[str] = None
    features_processed: list[str] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    total_checks_run: int = 0
    total_checks_passed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "featuresProcessed": list(self.features_processed),
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "skippedCount": self.skipped_count,
            "totalChecksRun": self.total_checks_run,
            "totalChecksPassed": self.total_checks_passed,
        }


class SessionTracker:
    """
    Tracks what happened during one run.

    Saved to .spec-pilot/logs/session-<id>.json when complete.
    """

    def __init__(self, logs_dir: str | Path, session_id: Optional[str] = None) -> None:
        self.logs_dir = Path(logs_dir)
        self.session = SessionData(
            id=session_id or uuid.uuid4().hex[:8],
            started_at=utc_now(),
        )

    @property
    def session_id(self) -> str:
        return self.session.id

    def add_feature_processed(self, feature_id: str) -> None:
        if feature_id not in self.session.features_processed:
            self.session.features_processed.append(feature_id)

    def increment_success(self) -> None:
        self.session.success_count += 1

    def increment_failure(self) -> None:
        self.session.failure_count += 1

    def increment_skipped(self, count: int = 1) -> None:
        self.session.skipped_count += count

    def add_checks_run(self, count: int) -> None:
        self.session.total_checks_run += count

    def add_checks_passed(self, count: int) -> None:
        self.session.total_checks_passed += count

    def complete(self) -> None:
        self.session.completed_at = utc_now()

    def get_duration(self) -> int:
        """Elapsed seconds, up to completion or now."""
        start = _parse_timestamp(self.session.started_at)
        end = _parse_timestamp(self.session.completed_at or utc_now())
        return round((end - start).total_seconds())

    def save(self) -> Path:
        """Write the session file and return its path."""
        path = self.logs_dir / f"session-{self.session.id}.json"
        safe_write(path, json.dumps(self.session.to_dict(), indent=2) + "\n")
        return path


@dataclass
class ExecutionReport:
    """Outcome of a batch implementation run."""
    session_id: str
    started_at: str
    completed_at: Optional[str]
    duration_seconds: int
    implemented: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    total_checks: int = 0
    checks_passed: int = 0
    checks_fixed: int = 0
    exit_code: int = EXIT_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_seconds": self.duration_seconds,
            "features": {
                "implemented": list(self.implemented),
                "failed": list(self.failed),
                "skipped": list(self.skipped),
            },
            "summary": {
                "success_count": self.success_count,
                "failure_count": self.failure_count,
                "skipped_count": self.skipped_count,
                "total_checks": self.total_checks,
                "checks_passed": self.checks_passed,
                "checks_fixed": self.checks_fixed,
            },
            "exit_code": self.exit_code,
        }


def build_report(
    tracker: SessionTracker,
    results: list[ImplementationResult],
    skipped: Optional[list[str]] = None,
) -> ExecutionReport:
    """
    Build the execution report for a batch.

    exit_code is 3 when any feature failed, 0 otherwise. checks_fixed is the
    total number of fix iterations spent across all features.
    """
    session = tracker.session
    implemented = [r.feature_id for r in results if r.success]
    failed = [r.feature_id for r in results if not r.success]

    return ExecutionReport(
        session_id=session.id,
        started_at=session.started_at,
        completed_at=session.completed_at,
        duration_seconds=tracker.get_duration(),
        implemented=implemented,
        failed=failed,
        skipped=list(skipped or []),
        success_count=session.success_count,
        failure_count=session.failure_count,
        skipped_count=session.skipped_count,
        total_checks=session.total_checks_run,
        checks_passed=session.total_checks_passed,
        checks_fixed=sum(r.retries for r in results),
        exit_code=EXIT_FEATURE_FAILURES if failed else EXIT_SUCCESS,
    )
