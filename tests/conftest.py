# Shared fixtures for the spec-pilot test suite

from typing import Optional

import pytest
from typer.testing import CliRunner

from spec_pilot.config import PilotConfig
from spec_pilot.models import AgentResult, ImplementationContext, QualityCheckResult, QualityCheckType
from spec_pilot.state_store import FeatureStateStore


@pytest.fixture
def config(tmp_path):
    """Default config rooted at a temporary project directory."""
    return PilotConfig(repo_root=str(tmp_path))


@pytest.fixture
def store(config):
    """Empty, loaded state store for the temporary project."""
    state_store = FeatureStateStore(config)
    state_store.load()
    return state_store


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_project_dir():
    """Keep the CLI's --project override from leaking between tests."""
    import spec_pilot.cli.common as common

    common._project_dir = None
    yield
    common._project_dir = None


@pytest.fixture(autouse=True)
def clear_log_level_override(monkeypatch):
    monkeypatch.delenv("SPEC_PILOT_LOG_LEVEL", raising=False)


class FakeAgent:
    """Scripted code generation agent recording every call."""

    def __init__(self, results: Optional[list[AgentResult]] = None) -> None:
        self.results = list(results or [])
        self.implement_calls: list[ImplementationContext] = []
        self.prompt_calls: list[str] = []

    def _next(self) -> AgentResult:
        if self.results:
            return self.results.pop(0)
        return AgentResult(success=True, output="done")

    def implement(self, context: ImplementationContext) -> AgentResult:
        self.implement_calls.append(context)
        return self._next()

    def run_prompt(self, prompt, cwd) -> AgentResult:
        self.prompt_calls.append(prompt)
        return self._next()


class ScriptedGateRunner:
    """
    Gate runner returning a scripted sequence of gate runs.

    Each script entry maps gate types to passed flags; the last entry
    repeats once the script is exhausted.
    """

    def __init__(self, script: list[dict[QualityCheckType, bool]]) -> None:
        self.script = list(script)
        self.runs: list[Optional[set[QualityCheckType]]] = []

    def run_all(self, enabled=None) -> list[QualityCheckResult]:
        self.runs.append(enabled)
        index = min(len(self.runs) - 1, len(self.script) - 1)
        outcome = self.script[index]
        return [
            QualityCheckResult(
                type=gate,
                passed=passed,
                output="" if passed else f"{gate.value} failed",
            )
            for gate, passed in outcome.items()
            if enabled is None or gate in enabled
        ]

    @staticmethod
    def all_passed(results):
        return all(r.passed for r in results)

    @staticmethod
    def get_failures(results):
        return [r for r in results if not r.passed]


@pytest.fixture
def fake_agent():
    return FakeAgent()
