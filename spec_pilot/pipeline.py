"""
Pipeline step machine: initialize -> specify -> plan -> tasks -> implement -> quality.

This module handles:
- Detecting which spec-driven artifacts already exist in the project
- Choosing the steps to run (artifact based, or from the checkpoint on resume)
- Executing steps in order, recording the checkpoint after each one
- Recording the failing step as the checkpoint so a resume retries it

There is no automatic retry at this level; resuming is user initiated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from spec_pilot.errors import PipelineStepError, SpecPilotError
from spec_pilot.models import PipelineStep
from spec_pilot.orchestrator import OrchestratorOptions
from spec_pilot.quality.fix_prompt import build_fix_prompt
from spec_pilot.utils.fs import ensure_dir

if TYPE_CHECKING:
    from spec_pilot.config import PilotConfig
    from spec_pilot.llm_clients import CodeGenerationAgent
    from spec_pilot.logger import PilotLogger
    from spec_pilot.quality.gates import QualityGateRunner
    from spec_pilot.state_store import FeatureStateStore


SPECIFY_DIR = ".specify"
SPECIFY_SUBDIRS = ("memory", "templates", "scripts")

STEP_PROMPTS: dict[PipelineStep, str] = {
    PipelineStep.SPECIFY: "Use the speckit-specify agent to create a feature specification for: {description}",
    PipelineStep.PLAN: "Use the speckit-plan agent to create an implementation plan based on the current spec",
    PipelineStep.TASKS: "Use the speckit-tasks agent to generate actionable tasks from the plan",
    PipelineStep.IMPLEMENT: "Use the speckit-implement agent to implement all tasks in tasks.md",
}


@dataclass
class ProjectState:
    """Which pipeline artifacts exist on disk."""
    is_initialized: bool = False
    has_spec: bool = False
    has_plan: bool = False
    has_tasks: bool = False

    def has_artifact(self, step: PipelineStep) -> bool:
        """Whether the artifact a step would produce already exists."""
        return {
            PipelineStep.INITIALIZE: self.is_initialized,
            PipelineStep.SPECIFY: self.has_spec,
            PipelineStep.PLAN: self.has_plan,
            PipelineStep.TASKS: self.has_tasks,
        }.get(step, False)


class ArtifactDetector:
    """Best-effort detection of spec-driven project artifacts."""

    def __init__(self, project_root: str | Path) -> None:
        self.project_root = Path(project_root)

    def _any(self, pattern: str) -> bool:
        return any(self.project_root.glob(pattern))

    def is_initialized(self) -> bool:
        return (self.project_root / SPECIFY_DIR).is_dir()

    def has_spec(self) -> bool:
        return self._any("specs/**/spec.md")

    def has_plan(self) -> bool:
        return self._any("specs/**/plan.md")

    def has_tasks(self) -> bool:
        return self._any("specs/**/tasks.md")

    def detect(self) -> ProjectState:
        return ProjectState(
            is_initialized=self.is_initialized(),
            has_spec=self.has_spec(),
            has_plan=self.has_plan(),
            has_tasks=self.has_tasks(),
        )


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""
    planned: list[PipelineStep] = field(default_factory=list)
    completed: list[PipelineStep] = field(default_factory=list)
    dry_run: bool = False
    resumed: bool = False
    description_ignored: bool = False

    @property
    def success(self) -> bool:
        return self.dry_run or self.completed == self.planned


def steps_from_checkpoint(checkpoint: PipelineStep) -> list[PipelineStep]:
    """Checkpoint step through the end, in order."""
    ordered = PipelineStep.ordered()
    return ordered[ordered.index(checkpoint):]


class PipelineStepMachine:
    """
    Runs the six pipeline steps in order.

    Example:
        machine = PipelineStepMachine(config, agent, store, gate_runner)
        machine.run("Add CSV export to reports")
    """

    def __init__(
        self,
        config: PilotConfig,
        agent: CodeGenerationAgent,
        store: FeatureStateStore,
        gate_runner: QualityGateRunner,
        logger: Optional[PilotLogger] = None,
        detector: Optional[ArtifactDetector] = None,
    ) -> None:
        self.config = config
        self.agent = agent
        self.store = store
        self.gate_runner = gate_runner
        self._logger = logger
        self.detector = detector or ArtifactDetector(config.repo_root)
        self._handlers: dict[PipelineStep, Callable[[Optional[str]], None]] = {
            PipelineStep.INITIALIZE: self._execute_initialize,
            PipelineStep.SPECIFY: self._execute_specify,
            PipelineStep.PLAN: self._execute_prompt_step(PipelineStep.PLAN),
            PipelineStep.TASKS: self._execute_prompt_step(PipelineStep.TASKS),
            PipelineStep.IMPLEMENT: self._execute_prompt_step(PipelineStep.IMPLEMENT),
            PipelineStep.QUALITY: self._execute_quality,
        }

    def _log(
        self,
        event_type: str,
        data: Optional[dict] = None,
        level: str = "info"
    ) -> None:
        """Log an event if logger is configured."""
        if self._logger:
            self._logger.log(event_type, data, level=level)

    # Planning

    def determine_steps(self, state: ProjectState, resume: bool = False) -> list[PipelineStep]:
        """
        Steps to execute, in order.

        On resume with a recorded checkpoint, the checkpoint step through the
        end, ignoring artifacts. Otherwise every step whose artifact already
        exists is skipped; implement and quality always run.
        """
        checkpoint = self.store.get_checkpoint()
        if resume and checkpoint is not None:
            return steps_from_checkpoint(checkpoint)

        return [step for step in PipelineStep.ordered() if not state.has_artifact(step)]

    # Execution

    def run(
        self,
        description: Optional[str] = None,
        resume: bool = False,
        dry_run: bool = False,
    ) -> PipelineResult:
        """
        Run the pipeline.

        Args:
            description: Natural language feature description for the specify step.
            resume: Continue from the recorded checkpoint.
            dry_run: Only compute the plan.

        Returns:
            PipelineResult listing planned and completed steps.

        Raises:
            PipelineStepError: If a step fails. The checkpoint is that step.
        """
        state = self.detector.detect()
        steps = self.determine_steps(state, resume=resume)
        result = PipelineResult(
            planned=steps,
            dry_run=dry_run,
            resumed=resume and self.store.get_checkpoint() is not None,
        )

        if description and PipelineStep.SPECIFY not in steps:
            result.description_ignored = True
            self._log("description_ignored", {
                "description": description,
                "reason": "specify step skipped",
            }, level="warn")

        self._log("pipeline_plan", {
            "steps": [s.value for s in steps],
            "resume": resume,
            "dry_run": dry_run,
            "initialized": state.is_initialized,
            "has_spec": state.has_spec,
            "has_plan": state.has_plan,
            "has_tasks": state.has_tasks,
        })

        if dry_run:
            return result

        for step in steps:
            self._execute_step(step, description)
            result.completed.append(step)

        self._log("pipeline_complete", {"steps": [s.value for s in result.completed]})
        return result

    def _execute_step(self, step: PipelineStep, description: Optional[str]) -> None:
        """Run one step and record the checkpoint whether it succeeds or fails."""
        self._log("step_start", {"step": step.value, "description": step.description})
        try:
            self._handlers[step](description)
        except PipelineStepError as e:
            self._record_failure(step, e.reason)
            raise
        except SpecPilotError as e:
            self._record_failure(step, str(e))
            raise PipelineStepError(step, str(e)) from e
        except Exception as e:
            self._record_failure(step, str(e))
            raise

        self.store.set_checkpoint(step)
        self.store.save()
        self._log("step_complete", {"step": step.value})

    def _record_failure(self, step: PipelineStep, reason: str) -> None:
        self._log("step_failed", {"step": step.value, "error": reason}, level="error")
        self.store.set_checkpoint(step)
        self.store.save()

    # Step handlers

    def _execute_initialize(self, description: Optional[str]) -> None:
        """Create the .specify marker directories and specs/."""
        root = Path(self.config.repo_root)
        for subdir in SPECIFY_SUBDIRS:
            ensure_dir(root / SPECIFY_DIR / subdir)
        ensure_dir(self.config.specs_path)

    def _execute_specify(self, description: Optional[str]) -> None:
        if not description:
            raise PipelineStepError(
                PipelineStep.SPECIFY,
                "a feature description is required to write a specification",
            )
        self._run_agent(PipelineStep.SPECIFY, STEP_PROMPTS[PipelineStep.SPECIFY].format(description=description))

    def _execute_prompt_step(self, step: PipelineStep) -> Callable[[Optional[str]], None]:
        def handler(description: Optional[str]) -> None:
            self._run_agent(step, STEP_PROMPTS[step])
        return handler

    def _run_agent(self, step: PipelineStep, prompt: str) -> None:
        result = self.agent.run_prompt(prompt, self.config.repo_root)
        if not result.success:
            raise PipelineStepError(step, result.error or "agent reported failure")

    def _execute_quality(self, description: Optional[str]) -> None:
        """Run gates, asking the agent for fixes up to max_retries times."""
        enabled = OrchestratorOptions.from_config(self.config).enabled_gates
        results = self.gate_runner.run_all(enabled)

        attempts = 0
        while self.gate_runner.get_failures(results) and attempts < self.config.max_retries:
            attempts += 1
            self._log("quality_fix_attempt", {
                "attempt": attempts,
                "max_retries": self.config.max_retries,
                "failing": [r.type.value for r in self.gate_runner.get_failures(results)],
            }, level="warn")

            fix = self.agent.run_prompt(build_fix_prompt(results), self.config.repo_root)
            if not fix.success:
                continue
            results = self.gate_runner.run_all(enabled)

        failing = self.gate_runner.get_failures(results)
        if failing:
            names = ", ".join(r.type.value for r in failing)
            raise PipelineStepError(
                PipelineStep.QUALITY,
                f"quality checks still failing after {attempts} fix attempts: {names}",
            )
