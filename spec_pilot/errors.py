"""
Exception hierarchy for spec-pilot.

This module provides:
- SpecPilotError, the base class the CLI catches at its boundary
- AgentInvocationError for an agent that cannot be started
- PipelineStepError carrying the step that failed

Module-specific errors live beside their modules (ConfigError in config.py,
StateStoreError in state_store.py, FileSystemError in utils/fs.py) and
derive from SpecPilotError.

Gate failures and unparseable tool output are NOT exceptions; they are
reported as failed QualityCheckResult values.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from spec_pilot.models import PipelineStep


class SpecPilotError(Exception):
    """Base exception for all spec-pilot errors."""
    pass


class AgentInvocationError(SpecPilotError):
    """
    Raised when the code generation agent cannot be invoked at all.

    A non-zero exit from the agent is reported as AgentResult(success=False);
    this exception covers the cases where no result exists, such as a
    missing binary.
    """

    def __init__(self, message: str, binary: Optional[str] = None) -> None:
        super().__init__(message)
        self.binary = binary


class PipelineStepError(SpecPilotError):
    """Raised when a pipeline step fails. The checkpoint already points at the step."""

    def __init__(self, step: PipelineStep, message: str) -> None:
        super().__init__(f"Step '{step.value}' failed: {message}")
        self.step = step
        self.reason = message
