"""
Feature orchestrator: the quality-gated retry-fix loop.

This module handles:
- Driving one feature through generation -> gates -> fix -> re-gate
- Bounding fix attempts by a retry budget
- Persisting every status transition before moving on
- Sequential processing of a batch of features

Per-feature state machine (terminal states: completed, failed):

    pending -> in-progress -> testing -> completed
                    |            |
                    v            v
                  failed <- (fix loop exhausted)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from spec_pilot.models import (
    FeatureSpecification,
    ImplementationContext,
    ImplementationResult,
    ImplementationStatus,
    QualityCheckResult,
    QualityCheckType,
)
from spec_pilot.quality.fix_prompt import build_fix_prompt
from spec_pilot.state_store import StateStoreError

if TYPE_CHECKING:
    from spec_pilot.config import PilotConfig
    from spec_pilot.llm_clients import CodeGenerationAgent
    from spec_pilot.logger import PilotLogger
    from spec_pilot.quality.gates import QualityGateRunner
    from spec_pilot.session_tracker import SessionTracker
    from spec_pilot.state_store import FeatureStateStore


CODE_GENERATION_STEP = "code-generation"


@dataclass
class OrchestratorOptions:
    """Knobs for one orchestrator run."""
    max_retries: int = 3
    dry_run: bool = False
    skip_tests: bool = False
    skip_lint: bool = False
    skip_build: bool = False

    @classmethod
    def from_config(cls, config: PilotConfig, **overrides: object) -> OrchestratorOptions:
        """Options seeded from config.checks and config.max_retries."""
        options = cls(
            max_retries=config.max_retries,
            skip_tests=not config.checks.tests,
            skip_lint=not config.checks.linting,
            skip_build=not config.checks.build,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    @property
    def enabled_gates(self) -> set[QualityCheckType]:
        enabled = set()
        if not self.skip_tests:
            enabled.add(QualityCheckType.TEST)
        if not self.skip_lint:
            enabled.add(QualityCheckType.LINT)
        if not self.skip_build:
            enabled.add(QualityCheckType.BUILD)
        return enabled


class FeatureOrchestrator:
    """
    Implements features one at a time under a retry budget.

    Agent failures are not retried by the fix loop: a generation that
    reports failure ends the feature as failed. Gate failures drive up to
    max_retries fix attempts, each re-running every enabled gate.
    """

    def __init__(
        self,
        config: PilotConfig,
        agent: CodeGenerationAgent,
        store: FeatureStateStore,
        gate_runner: QualityGateRunner,
        logger: Optional[PilotLogger] = None,
        session_tracker: Optional[SessionTracker] = None,
        options: Optional[OrchestratorOptions] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Configuration (project root).
            agent: Code generation agent.
            store: Feature state store. Must already be loaded.
            gate_runner: Runner for the quality gates.
            logger: Optional logger for recording transitions.
            session_tracker: Optional counters for the run report.
            options: Run options. Defaults to OrchestratorOptions().
        """
        self.config = config
        self.agent = agent
        self.store = store
        self.gate_runner = gate_runner
        self._logger = logger
        self.session_tracker = session_tracker
        self.options = options or OrchestratorOptions()

    def _log(
        self,
        event_type: str,
        data: Optional[dict] = None,
        level: str = "info"
    ) -> None:
        """Log an event if logger is configured."""
        if self._logger:
            self._logger.log(event_type, data, level=level)

    def _transition(self, feature_id: str, status: ImplementationStatus) -> None:
        """Change status and flush to disk."""
        self.store.update_status(feature_id, status)
        self.store.save()

    def _context(self, feature: FeatureSpecification, additional: Optional[str] = None) -> ImplementationContext:
        return ImplementationContext(
            feature_id=feature.id,
            spec_content=feature.raw_content,
            root_path=self.config.repo_root,
            additional_context=additional,
        )

    def _run_quality_checks(self, feature_id: str) -> list[QualityCheckResult]:
        """Mark the feature as testing, then run every enabled gate."""
        self._transition(feature_id, ImplementationStatus.TESTING)
        results = self.gate_runner.run_all(self.options.enabled_gates)

        if self.session_tracker:
            self.session_tracker.add_checks_run(len(results))
            self.session_tracker.add_checks_passed(sum(1 for r in results if r.passed))

        self._log("quality_checks_complete", {
            "feature_id": feature_id,
            "results": {r.type.value: r.passed for r in results},
        })
        return results

    def _fail(self, feature_id: str, result: ImplementationResult, error: str) -> ImplementationResult:
        result.error = error
        self._transition(feature_id, ImplementationStatus.FAILED)
        if self.session_tracker:
            self.session_tracker.increment_failure()
        self._log("feature_failed", {"feature_id": feature_id, "error": error}, level="error")
        return result

    def implement_feature(self, feature: FeatureSpecification) -> ImplementationResult:
        """
        Drive one feature to a terminal state.

        Returns:
            ImplementationResult with the last gate results and retries used.

        Raises:
            AgentInvocationError: If the agent cannot be invoked. The feature
                is marked failed and saved first.
            StateStoreError: If state cannot be persisted.
        """
        result = ImplementationResult(feature_id=feature.id)
        if self.session_tracker:
            self.session_tracker.add_feature_processed(feature.id)

        self._log("feature_start", {"feature_id": feature.id, "priority": feature.priority})

        if self.options.dry_run:
            self._log("feature_dry_run", {"feature_id": feature.id})
            result.success = True
            return result

        self.store.set_current_feature_id(feature.id)
        self.store.update_last_run()
        self.store.clear_failed_checks(feature.id)
        self._transition(feature.id, ImplementationStatus.IN_PROGRESS)

        try:
            agent_result = self.agent.implement(self._context(feature))
            if not agent_result.success:
                return self._fail(feature.id, result, agent_result.error or "Code generation failed")

            self.store.add_implemented_step(feature.id, CODE_GENERATION_STEP)
            results = self._run_quality_checks(feature.id)
            result.quality_results = results

            while self.gate_runner.get_failures(results) and result.retries < self.options.max_retries:
                result.retries += 1
                retry_count = self.store.increment_retry_count(feature.id)
                self.store.save()
                self._log("fix_attempt", {
                    "feature_id": feature.id,
                    "attempt": result.retries,
                    "max_retries": self.options.max_retries,
                    "retry_count": retry_count,
                    "failing": [r.type.value for r in self.gate_runner.get_failures(results)],
                })

                fix_result = self.agent.implement(self._context(feature, build_fix_prompt(results)))
                if not fix_result.success:
                    # Iteration consumed; previous gate results stand
                    self._log("fix_attempt_failed", {
                        "feature_id": feature.id,
                        "attempt": result.retries,
                        "error": fix_result.error,
                    }, level="warn")
                    continue

                results = self._run_quality_checks(feature.id)
                result.quality_results = results

            still_failing = self.gate_runner.get_failures(results)
            if still_failing:
                for failed in still_failing:
                    self.store.add_failed_check(feature.id, failed.type.value)
                names = ", ".join(r.type.value for r in still_failing)
                return self._fail(feature.id, result, f"Quality checks failed: {names}")

            self._transition(feature.id, ImplementationStatus.COMPLETED)
            if self.session_tracker:
                self.session_tracker.increment_success()
            self._log("feature_completed", {"feature_id": feature.id, "retries": result.retries})
            result.success = True
            return result

        except Exception as e:
            self._log("feature_error", {
                "feature_id": feature.id,
                "error": str(e),
                "error_type": type(e).__name__,
            }, level="error")
            self.store.update_status(feature.id, ImplementationStatus.FAILED)
            if self.session_tracker:
                self.session_tracker.increment_failure()
            if not isinstance(e, StateStoreError):
                self.store.save()
            raise

    def implement_features(self, features: list[FeatureSpecification]) -> list[ImplementationResult]:
        """Implement features sequentially, each to a terminal state."""
        return [self.implement_feature(feature) for feature in features]
