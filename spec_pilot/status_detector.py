"""
Feature eligibility policy over the state store.

This module provides:
- StatusInfo, a read-only view of one feature's state
- StatusDetector, answering "may this feature be (re)implemented?"
- StatusSummary, counts by status for a set of features

Policy:
- No recorded state: pending and always eligible
- Completed: never eligible again
- Failed (or otherwise attempted): eligible while retry_count < max_retries
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Optional, TypeVar, Union

from spec_pilot.models import FeatureSpecification, ImplementationStatus

if TYPE_CHECKING:
    from spec_pilot.state_store import FeatureStateStore


FeatureRef = Union[str, FeatureSpecification]
F = TypeVar("F", str, FeatureSpecification)


def _feature_id(feature: FeatureRef) -> str:
    return feature if isinstance(feature, str) else feature.id


@dataclass
class StatusInfo:
    """Read-only snapshot of one feature's status."""
    feature_id: str
    status: ImplementationStatus
    retry_count: int = 0
    last_attempt: Optional[str] = None
    failed_checks: list[str] = field(default_factory=list)
    can_retry: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature_id": self.feature_id,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "last_attempt": self.last_attempt,
            "failed_checks": list(self.failed_checks),
            "can_retry": self.can_retry,
        }


@dataclass
class StatusSummary:
    """Counts by status. Testing counts as in-progress."""
    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0
    in_progress: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "skipped": self.skipped,
        }


class StatusDetector:
    """
    Read-only policy layer over a FeatureStateStore.

    Never mutates the store.
    """

    def __init__(self, store: FeatureStateStore, max_retries: int = 3) -> None:
        self.store = store
        self.max_retries = max_retries

    def get_status(self, feature: FeatureRef) -> StatusInfo:
        """Status snapshot for a feature. Unknown features are pending."""
        feature_id = _feature_id(feature)
        state = self.store.get_feature_state(feature_id)
        if state is None:
            return StatusInfo(feature_id=feature_id, status=ImplementationStatus.PENDING)

        return StatusInfo(
            feature_id=feature_id,
            status=state.status,
            retry_count=state.retry_count,
            last_attempt=state.last_attempt,
            failed_checks=list(state.failed_checks),
            can_retry=self.can_retry(feature_id),
        )

    def is_implemented(self, feature: FeatureRef) -> bool:
        return self.get_status(feature).status == ImplementationStatus.COMPLETED

    def is_pending(self, feature: FeatureRef) -> bool:
        return self.get_status(feature).status == ImplementationStatus.PENDING

    def is_failed(self, feature: FeatureRef) -> bool:
        return self.get_status(feature).status == ImplementationStatus.FAILED

    def can_retry(self, feature: FeatureRef) -> bool:
        """Whether the feature is still within its retry budget."""
        state = self.store.get_feature_state(_feature_id(feature))
        if state is None:
            return True
        if state.status == ImplementationStatus.COMPLETED:
            return False
        return state.retry_count < self.max_retries

    def filter_pending_features(self, features: Iterable[F]) -> list[F]:
        """
        Features a bulk run should attempt.

        Pending features, plus failed features still within the retry budget.
        Input order is preserved.
        """
        selected = []
        for feature in features:
            status = self.get_status(feature).status
            if status == ImplementationStatus.PENDING:
                selected.append(feature)
            elif status == ImplementationStatus.FAILED and self.can_retry(feature):
                selected.append(feature)
        return selected

    def filter_by_status(self, features: Iterable[F], status: ImplementationStatus) -> list[F]:
        return [f for f in features if self.get_status(f).status == status]

    def get_summary(self, features: Iterable[FeatureRef]) -> StatusSummary:
        """Count features by status."""
        summary = StatusSummary()
        for feature in features:
            summary.total += 1
            status = self.get_status(feature).status
            if status == ImplementationStatus.COMPLETED:
                summary.completed += 1
            elif status == ImplementationStatus.FAILED:
                summary.failed += 1
            elif status == ImplementationStatus.PENDING:
                summary.pending += 1
            elif status in (ImplementationStatus.IN_PROGRESS, ImplementationStatus.TESTING):
                summary.in_progress += 1
            elif status == ImplementationStatus.SKIPPED:
                summary.skipped += 1
        return summary
