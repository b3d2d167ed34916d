"""
Quality gates: test, lint and build.

This module handles:
- Best-effort detection of project tooling from config files
- Resolving the command for a gate (override or auto-detected)
- Executing the command with a bounded timeout, without a shell
- Handing combined output to the output normalizer

A gate that detects no tooling and has no override command passes
vacuously. A timeout or a missing executable is an ordinary failed result;
nothing in this module raises for gate-level problems.
"""

from __future__ import annotations

import shlex
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from spec_pilot.models import FailureDetail, QualityCheckResult, QualityCheckType
from spec_pilot.quality.normalizer import OutputNormalizer

if TYPE_CHECKING:
    from spec_pilot.logger import PilotLogger


DEFAULT_TIMEOUTS: dict[QualityCheckType, int] = {
    QualityCheckType.TEST: 300,
    QualityCheckType.LINT: 120,
    QualityCheckType.BUILD: 300,
}


def _exists(root: Path, name: str) -> bool:
    return (root / name).exists()


class QualityGate:
    """
    Base class for a quality gate.

    Subclasses provide the gate type, the config files that indicate the
    tooling is present, and an ordered command detection table of
    (marker file, command) pairs.
    """

    type: QualityCheckType
    config_files: tuple[str, ...] = ()
    command_table: tuple[tuple[str, str], ...] = ()

    def __init__(self, normalizer: Optional[OutputNormalizer] = None) -> None:
        self.normalizer = normalizer or OutputNormalizer()

    def detect(self, project_root: str | Path) -> bool:
        """Check whether any of this gate's config files exist in project_root."""
        root = Path(project_root)
        return any(_exists(root, name) for name in self.config_files)

    def detect_command(self, project_root: str | Path) -> Optional[str]:
        """Return the first command whose marker file exists, or None."""
        root = Path(project_root)
        for marker, command in self.command_table:
            if _exists(root, marker):
                return command
        return None

    def parse(self, output: str) -> list[FailureDetail]:
        """Normalize raw output into failure records."""
        return self.normalizer.parse(output)

    def _vacuous_pass(self, reason: str) -> QualityCheckResult:
        return QualityCheckResult(
            type=self.type,
            passed=True,
            output=reason,
            failures=[],
            duration_ms=0,
        )

    def resolve_command(self, project_root: str | Path, command: Optional[str] = None) -> Optional[str]:
        """Override command if given, otherwise the detected one."""
        if command:
            return command
        if not self.detect(project_root):
            return None
        return self.detect_command(project_root)

    def run(
        self,
        project_root: str | Path,
        command: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> QualityCheckResult:
        """
        Run the gate in project_root.

        Args:
            project_root: Working directory for the command.
            command: Override command. Auto-detected when None.
            timeout: Timeout in seconds. Gate default when None.

        Returns:
            QualityCheckResult with passed set iff the exit status is zero.
        """
        resolved = self.resolve_command(project_root, command)
        if not resolved:
            return self._vacuous_pass(f"No {self.type.value} command detected")

        timeout = timeout or DEFAULT_TIMEOUTS[self.type]
        start = time.monotonic()

        try:
            argv = shlex.split(resolved)
        except ValueError as e:
            return QualityCheckResult(
                type=self.type,
                passed=False,
                output=f"Invalid {self.type.value} command {resolved!r}: {e}",
            )

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
                cwd=str(project_root),
            )
        except subprocess.TimeoutExpired:
            return QualityCheckResult(
                type=self.type,
                passed=False,
                output=f"{self.type.value} command timed out after {timeout} seconds: {resolved}",
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except (FileNotFoundError, PermissionError) as e:
            return QualityCheckResult(
                type=self.type,
                passed=False,
                output=f"Could not execute {self.type.value} command {resolved!r}: {e}",
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        output = result.stdout or ""
        if result.stderr:
            output += "\n" + result.stderr

        return QualityCheckResult(
            type=self.type,
            passed=result.returncode == 0,
            output=output,
            failures=self.parse(output),
            duration_ms=int((time.monotonic() - start) * 1000),
        )


class TestGate(QualityGate):
    """Runs the project's test suite."""

    __test__ = False  # not a pytest test class

    type = QualityCheckType.TEST
    config_files = (
        "jest.config.js",
        "jest.config.ts",
        "vitest.config.ts",
        "vitest.config.js",
        "pytest.ini",
        "pyproject.toml",
        "Cargo.toml",
        "go.mod",
        "package.json",
    )
    command_table = (
        ("package.json", "npm test"),
        ("pytest.ini", "pytest"),
        ("pyproject.toml", "pytest"),
        ("Cargo.toml", "cargo test"),
        ("go.mod", "go test ./..."),
    )


class LintGate(QualityGate):
    """Runs the project's linter."""

    type = QualityCheckType.LINT
    config_files = (
        ".eslintrc.js",
        ".eslintrc.json",
        ".eslintrc.yaml",
        ".eslintrc.yml",
        "eslint.config.js",
        "eslint.config.mjs",
        ".pylintrc",
        "pyproject.toml",
        "clippy.toml",
        "Cargo.toml",
        "go.mod",
    )
    command_table = (
        (".eslintrc.js", "npm run lint"),
        (".eslintrc.json", "npm run lint"),
        ("eslint.config.js", "npm run lint"),
        ("eslint.config.mjs", "npm run lint"),
        (".pylintrc", "pylint ."),
        ("Cargo.toml", "cargo clippy"),
        ("go.mod", "go vet ./..."),
    )


class BuildGate(QualityGate):
    """Runs the project's build."""

    type = QualityCheckType.BUILD
    config_files = (
        "tsconfig.json",
        "package.json",
        "Makefile",
        "Cargo.toml",
        "go.mod",
        "pyproject.toml",
    )
    command_table = (
        ("tsconfig.json", "npm run build"),
        ("package.json", "npm run build"),
        ("Cargo.toml", "cargo build"),
        ("go.mod", "go build ./..."),
        ("Makefile", "make"),
    )


GATE_ORDER = (QualityCheckType.TEST, QualityCheckType.LINT, QualityCheckType.BUILD)


class QualityGateRunner:
    """
    Runs the quality gates for one project root.

    Gates always run in the fixed order test -> lint -> build, and every
    enabled gate runs on each pass regardless of earlier failures.

    Example:
        runner = QualityGateRunner(config.repo_root, commands={"test": "pytest -q"})
        results = runner.run_all()
        if not runner.all_passed(results):
            failures = runner.get_failures(results)
    """

    def __init__(
        self,
        project_root: str | Path,
        commands: Optional[dict[str, Optional[str]]] = None,
        timeouts: Optional[dict[str, int]] = None,
        logger: Optional[PilotLogger] = None,
        gates: Optional[dict[QualityCheckType, QualityGate]] = None,
    ) -> None:
        """
        Initialize the runner.

        Args:
            project_root: Directory the gate commands run in.
            commands: Override command per gate name ("test", "lint", "build").
            timeouts: Timeout in seconds per gate name.
            logger: Optional logger for recording gate runs.
            gates: Gate implementations keyed by type. Defaults to the built-in gates.
        """
        self.project_root = Path(project_root)
        self.commands = commands or {}
        self.timeouts = timeouts or {}
        self._logger = logger
        self.gates = gates or {
            QualityCheckType.TEST: TestGate(),
            QualityCheckType.LINT: LintGate(),
            QualityCheckType.BUILD: BuildGate(),
        }

    @classmethod
    def from_config(cls, config: Any, logger: Optional[PilotLogger] = None) -> QualityGateRunner:
        """Build a runner from a PilotConfig."""
        return cls(
            project_root=config.repo_root,
            commands={gate.value: config.gate_command(gate.value) for gate in GATE_ORDER},
            timeouts={gate.value: config.gate_timeout(gate.value) for gate in GATE_ORDER},
            logger=logger,
        )

    def _log(self, event_type: str, data: dict, level: str = "info") -> None:
        """Log an event if logger is configured."""
        if self._logger:
            self._logger.log(event_type, data, level=level)

    def run_gate(self, gate_type: QualityCheckType) -> QualityCheckResult:
        """Run a single gate."""
        gate = self.gates[gate_type]
        self._log("gate_start", {"gate": gate_type.value}, level="debug")

        result = gate.run(
            self.project_root,
            command=self.commands.get(gate_type.value),
            timeout=self.timeouts.get(gate_type.value),
        )

        self._log(
            "gate_complete",
            {
                "gate": gate_type.value,
                "passed": result.passed,
                "failures": len(result.failures),
                "duration_ms": result.duration_ms,
            },
            level="info" if result.passed else "warn",
        )
        return result

    def run_tests(self) -> QualityCheckResult:
        return self.run_gate(QualityCheckType.TEST)

    def run_lint(self) -> QualityCheckResult:
        return self.run_gate(QualityCheckType.LINT)

    def run_build(self) -> QualityCheckResult:
        return self.run_gate(QualityCheckType.BUILD)

    def run_all(self, enabled: Optional[set[QualityCheckType]] = None) -> list[QualityCheckResult]:
        """
        Run every enabled gate in order test -> lint -> build.

        Args:
            enabled: Gates to run. All gates when None.
        """
        return [
            self.run_gate(gate_type)
            for gate_type in GATE_ORDER
            if enabled is None or gate_type in enabled
        ]

    @staticmethod
    def all_passed(results: list[QualityCheckResult]) -> bool:
        return all(r.passed for r in results)

    @staticmethod
    def get_failures(results: list[QualityCheckResult]) -> list[QualityCheckResult]:
        """Results of the gates that did not pass."""
        return [r for r in results if not r.passed]
