"""
State persistence for spec-pilot.

This module handles:
- Keeping per-feature implementation state and the pipeline checkpoint
  in memory as the working copy
- Saving it to .spec-pilot/state.json with atomic writes and a file lock
  (explicit flush)
- Graceful handling of missing or corrupted state files (start empty)
- Get-or-create access so every mutator materializes a default entry
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from filelock import FileLock, Timeout

from spec_pilot.errors import SpecPilotError
from spec_pilot.models import (
    FeatureState,
    ImplementationStatus,
    PipelineStep,
    model_to_json,
    utc_now,
)
from spec_pilot.utils.fs import FileSystemError, ensure_dir, file_exists, read_file, safe_write

if TYPE_CHECKING:
    from spec_pilot.config import PilotConfig
    from spec_pilot.logger import PilotLogger


STATE_VERSION = "1.0.0"


class StateStoreError(SpecPilotError):
    """Raised when state store operations fail."""
    pass


class FeatureStateStore:
    """
    Persistent state storage for spec-pilot.

    The in-memory copy is the working state; save() is the explicit flush.
    Callers save after every transition they need to survive a crash.

    Persisted shape:
        {version, lastRun, features: {id: FeatureState}, checkpoint, currentFeatureId}
    """

    def __init__(
        self,
        config: Optional[PilotConfig] = None,
        logger: Optional[PilotLogger] = None,
        state_path: Optional[str | Path] = None,
    ) -> None:
        """
        Initialize the state store.

        Args:
            config: PilotConfig providing the state file location.
            logger: Optional logger for recording operations.
            state_path: Explicit state file path, overriding the config.
        """
        if state_path is None and config is None:
            raise ValueError("FeatureStateStore needs a config or a state_path")
        self._state_path = Path(state_path) if state_path is not None else config.state_file
        self._logger = logger
        self._reset_memory()

    def _reset_memory(self) -> None:
        self.version = STATE_VERSION
        self.last_run: Optional[str] = None
        self._features: dict[str, FeatureState] = {}
        self._checkpoint: Optional[PipelineStep] = None
        self._current_feature_id: Optional[str] = None

    @property
    def state_path(self) -> Path:
        return self._state_path

    @property
    def _lock_path(self) -> Path:
        return self._state_path.with_name(self._state_path.name + ".lock")

    def _log(
        self,
        event_type: str,
        data: Optional[dict] = None,
        level: str = "info"
    ) -> None:
        """Log an event if logger is configured."""
        if self._logger:
            self._logger.log(event_type, data, level=level)

    # Persistence

    def load(self) -> bool:
        """
        Load state from disk, replacing the in-memory copy.

        Missing, unreadable or corrupted files load as the empty state.

        Returns:
            True if a valid state file was loaded, False if starting empty.
        """
        self._reset_memory()

        if not file_exists(self._state_path):
            self._log("state_load_miss", {"path": str(self._state_path)}, level="debug")
            return False

        try:
            data = json.loads(read_file(self._state_path))
            self._apply(data)
        except json.JSONDecodeError as e:
            self._log("state_corrupted", {
                "error": str(e),
                "path": str(self._state_path)
            }, level="error")
            self._reset_memory()
            return False
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            self._log("state_invalid", {
                "error": str(e),
                "path": str(self._state_path)
            }, level="error")
            self._reset_memory()
            return False
        except FileSystemError as e:
            self._log("state_read_error", {"error": str(e)}, level="error")
            self._reset_memory()
            return False

        if self.version != STATE_VERSION:
            self._log("state_version_mismatch", {
                "found": self.version,
                "expected": STATE_VERSION,
            }, level="warn")

        self._log("state_loaded", {
            "features": len(self._features),
            "checkpoint": self._checkpoint.value if self._checkpoint else None,
        }, level="debug")
        return True

    def _apply(self, data: dict[str, Any]) -> None:
        """Populate memory from a decoded state document."""
        if not isinstance(data, dict):
            raise TypeError("state document must be an object")
        features = data.get("features") or {}
        if not isinstance(features, dict):
            raise TypeError("features must be an object")

        checkpoint = data.get("checkpoint")
        self.version = data.get("version", STATE_VERSION)
        self.last_run = data.get("lastRun")
        self._features = {
            feature_id: FeatureState.from_dict(entry)
            for feature_id, entry in features.items()
        }
        self._checkpoint = PipelineStep(checkpoint) if checkpoint else None
        self._current_feature_id = data.get("currentFeatureId")

    def to_dict(self) -> dict[str, Any]:
        """The persisted document for the current in-memory state."""
        return {
            "version": self.version,
            "lastRun": self.last_run,
            "features": {
                feature_id: state.to_dict()
                for feature_id, state in self._features.items()
            },
            "checkpoint": self._checkpoint.value if self._checkpoint else None,
            "currentFeatureId": self._current_feature_id,
        }

    def save(self) -> None:
        """
        Save state to disk atomically with file locking.

        Raises:
            StateStoreError: If save fails or the lock cannot be acquired.
        """
        content = model_to_json(self.to_dict(), indent=2) + "\n"
        try:
            ensure_dir(self._state_path.parent)
            with FileLock(self._lock_path, timeout=10):
                safe_write(self._state_path, content)
            self._log("state_saved", {"features": len(self._features)}, level="debug")
        except Timeout:
            self._log("state_save_timeout", {"path": str(self._state_path)}, level="error")
            raise StateStoreError(f"Timeout acquiring lock for {self._state_path}")
        except FileSystemError as e:
            self._log("state_save_error", {"error": str(e)}, level="error")
            raise StateStoreError(f"Failed to save state to {self._state_path}: {e}")

    # Feature state

    def get_feature_state(self, feature_id: str) -> Optional[FeatureState]:
        """Return the recorded state for a feature, or None if never recorded."""
        return self._features.get(feature_id)

    def get_or_create(self, feature_id: str) -> FeatureState:
        """Return the recorded state for a feature, creating a pending entry if absent."""
        state = self._features.get(feature_id)
        if state is None:
            state = FeatureState()
            self._features[feature_id] = state
        return state

    def update_status(self, feature_id: str, status: ImplementationStatus) -> FeatureState:
        """Set a feature's status and stamp lastAttempt."""
        state = self.get_or_create(feature_id)
        previous = state.status
        state.status = status
        state.last_attempt = utc_now()
        self._log("feature_status_changed", {
            "feature_id": feature_id,
            "from": previous.value,
            "to": status.value,
        }, level="debug")
        return state

    def add_implemented_step(self, feature_id: str, step: str) -> None:
        """Record a step as applied. Re-adding is a no-op."""
        state = self.get_or_create(feature_id)
        if step not in state.implemented_steps:
            state.implemented_steps.append(step)

    def add_failed_check(self, feature_id: str, gate: str) -> None:
        """Record a failing gate. Re-adding is a no-op."""
        state = self.get_or_create(feature_id)
        if gate not in state.failed_checks:
            state.failed_checks.append(gate)

    def clear_failed_checks(self, feature_id: str) -> None:
        """Forget the failing gates of a previous attempt."""
        self.get_or_create(feature_id).failed_checks.clear()

    def increment_retry_count(self, feature_id: str) -> int:
        """Increment and return the feature's retry counter."""
        state = self.get_or_create(feature_id)
        state.retry_count += 1
        return state.retry_count

    def reset_feature(self, feature_id: str) -> FeatureState:
        """Replace a feature's state with a fresh pending entry."""
        state = FeatureState()
        self._features[feature_id] = state
        self._log("feature_reset", {"feature_id": feature_id})
        return state

    def reset_all_features(self) -> int:
        """Reset every recorded feature. Returns the number reset."""
        feature_ids = list(self._features)
        for feature_id in feature_ids:
            self._features[feature_id] = FeatureState()
        self._log("features_reset_all", {"count": len(feature_ids)})
        return len(feature_ids)

    def list_features(self, status: Optional[ImplementationStatus] = None) -> list[str]:
        """Feature ids with recorded state, optionally filtered by status."""
        return [
            feature_id
            for feature_id, state in self._features.items()
            if status is None or state.status == status
        ]

    def get_pending_features(self) -> list[str]:
        return self.list_features(ImplementationStatus.PENDING)

    def get_failed_features(self) -> list[str]:
        return self.list_features(ImplementationStatus.FAILED)

    def get_completed_features(self) -> list[str]:
        return self.list_features(ImplementationStatus.COMPLETED)

    # Pipeline checkpoint

    def get_checkpoint(self) -> Optional[PipelineStep]:
        return self._checkpoint

    def set_checkpoint(self, step: PipelineStep) -> None:
        """Record the pipeline checkpoint and stamp lastRun."""
        self._checkpoint = step
        self.last_run = utc_now()
        self._log("checkpoint_set", {"step": step.value}, level="debug")

    def clear_checkpoint(self) -> None:
        self._checkpoint = None

    def get_current_feature_id(self) -> Optional[str]:
        return self._current_feature_id

    def set_current_feature_id(self, feature_id: Optional[str]) -> None:
        self._current_feature_id = feature_id

    def update_last_run(self) -> None:
        self.last_run = utc_now()
