"""
Core data models for spec-pilot.

This module defines the foundational data structures used throughout the system:
- Enums for implementation status, pipeline steps, gate types and severities
- Dataclasses for persisted feature state and ephemeral gate/agent results
- JSON serialization support for all models
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> str:
    """Current UTC time as an ISO timestamp with a trailing Z."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ImplementationStatus(Enum):
    """
    Status of a single feature's implementation.

    A feature with no recorded state is implicitly PENDING.
    """
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    TESTING = "testing"              # Quality gates running
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineStep(Enum):
    """
    Steps of the pipeline, in execution order.

    The checkpoint persisted by the state store is always one of these.
    """
    INITIALIZE = "initialize"
    SPECIFY = "specify"
    PLAN = "plan"
    TASKS = "tasks"
    IMPLEMENT = "implement"
    QUALITY = "quality"

    @classmethod
    def ordered(cls) -> list[PipelineStep]:
        """All steps in total order."""
        return [cls.INITIALIZE, cls.SPECIFY, cls.PLAN, cls.TASKS, cls.IMPLEMENT, cls.QUALITY]

    @property
    def description(self) -> str:
        return STEP_DESCRIPTIONS[self]


STEP_DESCRIPTIONS: dict[PipelineStep, str] = {
    PipelineStep.INITIALIZE: "Initialize project structure",
    PipelineStep.SPECIFY: "Generate feature specification",
    PipelineStep.PLAN: "Create implementation plan",
    PipelineStep.TASKS: "Break down into tasks",
    PipelineStep.IMPLEMENT: "Implement tasks",
    PipelineStep.QUALITY: "Run quality checks",
}


class QualityCheckType(Enum):
    """Quality gates. Declaration order is the fixed run order."""
    TEST = "test"
    LINT = "lint"
    BUILD = "build"


class Severity(Enum):
    """Severity of a single normalized diagnostic."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @classmethod
    def from_token(cls, token: Optional[str]) -> Severity:
        """
        Map a severity token from tool output to a Severity.

        Matching is case-insensitive; "fatal error" counts as an error and
        anything unrecognized (or missing) defaults to ERROR.
        """
        if not token:
            return cls.ERROR
        token = token.strip().lower()
        if token.startswith("warn"):
            return cls.WARNING
        if token in ("info", "note", "hint"):
            return cls.INFO
        return cls.ERROR


@dataclass
class FeatureState:
    """
    Persistent implementation state of one feature.

    Persisted inside .spec-pilot/state.json under "features".
    implemented_steps and failed_checks have set semantics: adding an
    entry that is already present is a no-op.
    """
    status: ImplementationStatus = ImplementationStatus.PENDING
    implemented_steps: list[str] = field(default_factory=list)
    failed_checks: list[str] = field(default_factory=list)
    retry_count: int = 0
    last_attempt: Optional[str] = None   # ISO timestamp of the last status transition

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted (camelCase) dictionary form."""
        return {
            "status": self.status.value,
            "implementedSteps": list(self.implemented_steps),
            "failedChecks": list(self.failed_checks),
            "retryCount": self.retry_count,
            "lastAttempt": self.last_attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeatureState:
        """Create from the persisted dictionary form."""
        retry_count = int(data.get("retryCount", 0))
        if retry_count < 0:
            raise ValueError(f"retryCount must be non-negative, got {retry_count}")
        return cls(
            status=ImplementationStatus(data.get("status", ImplementationStatus.PENDING.value)),
            implemented_steps=list(data.get("implementedSteps", [])),
            failed_checks=list(data.get("failedChecks", [])),
            retry_count=retry_count,
            last_attempt=data.get("lastAttempt"),
        )


@dataclass
class FailureDetail:
    """
    One problem extracted from build/lint/test output.

    Produced only by the output normalizer.
    """
    message: str
    severity: Severity = Severity.ERROR
    file: Optional[str] = None
    line: Optional[int] = None

    @property
    def location(self) -> Optional[str]:
        """Render "file:line", "file" or None."""
        if not self.file:
            return None
        if self.line:
            return f"{self.file}:{self.line}"
        return self.file

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class QualityCheckResult:
    """
    Result of one gate execution.

    Ephemeral: only pass/fail and the gate name are folded into FeatureState.
    """
    type: QualityCheckType
    passed: bool
    output: str = ""
    failures: list[FailureDetail] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "passed": self.passed,
            "output": self.output,
            "failures": [f.to_dict() for f in self.failures],
            "duration_ms": self.duration_ms,
        }


@dataclass
class ImplementationContext:
    """Request sent to the code generation agent."""
    feature_id: str
    spec_content: str
    root_path: str
    additional_context: Optional[str] = None


@dataclass
class AgentResult:
    """Response from the code generation agent."""
    success: bool
    output: str = ""
    error: Optional[str] = None
    duration_ms: int = 0

    @classmethod
    def failure(cls, error: str, output: str = "", duration_ms: int = 0) -> AgentResult:
        """Create a failed result."""
        return cls(success=False, output=output, error=error, duration_ms=duration_ms)


@dataclass
class ImplementationResult:
    """
    Outcome of driving one feature through the retry-fix loop.

    The CLI maps a batch of these to an exit code.
    """
    feature_id: str
    success: bool = False
    quality_results: list[QualityCheckResult] = field(default_factory=list)
    retries: int = 0
    error: Optional[str] = None

    @property
    def failed_checks(self) -> list[str]:
        """Names of the gates still failing in the last gate run."""
        return [r.type.value for r in self.quality_results if not r.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "success": self.success,
            "quality_results": [r.to_dict() for r in self.quality_results],
            "retries": self.retries,
            "error": self.error,
        }


@dataclass
class FeatureSpecification:
    """A feature discovered under specs/<id>/spec.md."""
    id: str
    name: str
    path: str
    priority: str = "P3"
    raw_content: str = ""


class PilotEncoder(json.JSONEncoder):
    """JSON encoder that handles spec-pilot model types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def model_to_json(obj: Any, **kwargs: Any) -> str:
    """Serialize a model object to JSON string."""
    return json.dumps(obj, cls=PilotEncoder, **kwargs)
