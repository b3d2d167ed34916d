"""
Code generation agent interface and Claude CLI adapter.

This module provides:
- CodeGenerationAgent, the request/response contract the orchestrators use
- ClaudeCliAgent, running prompts through the Claude Code CLI in print mode
- Timeout handling that reports a failed result instead of hanging
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from spec_pilot.errors import AgentInvocationError
from spec_pilot.models import AgentResult, ImplementationContext

if TYPE_CHECKING:
    from spec_pilot.config import PilotConfig
    from spec_pilot.logger import PilotLogger


@runtime_checkable
class CodeGenerationAgent(Protocol):
    """
    External code generation capability.

    Implementations report ordinary failures (non-zero exit, timeout) as
    AgentResult(success=False) and raise AgentInvocationError only when
    the agent cannot be invoked at all.
    """

    def implement(self, context: ImplementationContext) -> AgentResult:
        """Implement (or fix) a feature from its specification."""
        ...

    def run_prompt(self, prompt: str, cwd: str | Path) -> AgentResult:
        """Run a free-form prompt in a working directory."""
        ...


def build_implementation_prompt(context: ImplementationContext) -> str:
    """Render the prompt sent for an implement request."""
    prompt = "Implement the following feature specification:\n\n"
    prompt += f"Feature ID: {context.feature_id}\n\n"
    prompt += f"Specification:\n{context.spec_content}\n"

    if context.additional_context:
        prompt += f"\nAdditional Context:\n{context.additional_context}\n"

    return prompt


@dataclass
class ClaudeCliAgent:
    """
    Code generation agent backed by the Claude Code CLI.

    Runs ``claude -p <prompt> --dangerously-skip-permissions`` in the
    target directory.
    """

    config: PilotConfig
    logger: Optional[PilotLogger] = None

    def _log(
        self,
        event_type: str,
        data: Optional[dict] = None,
        level: str = "info"
    ) -> None:
        """Log an event if logger is configured."""
        if self.logger:
            self.logger.log(event_type, data, level=level)

    def _build_command(self, prompt: str) -> list[str]:
        cmd = [self.config.agent.binary, "-p", prompt]
        if self.config.agent.auto_approve_flag:
            cmd.append(self.config.agent.auto_approve_flag)
        return cmd

    def _run(self, prompt: str, cwd: str | Path, timeout_seconds: int) -> AgentResult:
        """
        Execute one CLI invocation.

        Raises:
            AgentInvocationError: If the binary cannot be found or executed.
        """
        cmd = self._build_command(prompt)
        start = time.monotonic()

        self._log("agent_invocation_start", {
            "prompt_length": len(prompt),
            "cwd": str(cwd),
            "timeout": timeout_seconds,
        })

        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(cwd),
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            duration_ms = int((time.monotonic() - start) * 1000)
            self._log("agent_invocation_timeout", {
                "timeout_seconds": timeout_seconds,
            }, level="error")
            return AgentResult.failure(
                f"Agent timed out after {timeout_seconds} seconds",
                duration_ms=duration_ms,
            )
        except (FileNotFoundError, PermissionError) as e:
            self._log("agent_invocation_error", {
                "binary": self.config.agent.binary,
                "error": str(e),
            }, level="error")
            raise AgentInvocationError(
                f"Could not run agent binary '{self.config.agent.binary}': {e}",
                binary=self.config.agent.binary,
            )

        duration_ms = int((time.monotonic() - start) * 1000)

        if proc.returncode != 0:
            self._log("agent_invocation_failed", {
                "returncode": proc.returncode,
                "stderr": proc.stderr[:500] if proc.stderr else "",
            }, level="error")
            return AgentResult.failure(
                proc.stderr.strip() or f"Agent exited with code {proc.returncode}",
                output=proc.stdout,
                duration_ms=duration_ms,
            )

        self._log("agent_invocation_complete", {"duration_ms": duration_ms})
        return AgentResult(success=True, output=proc.stdout, duration_ms=duration_ms)

    def implement(self, context: ImplementationContext) -> AgentResult:
        return self._run(
            build_implementation_prompt(context),
            context.root_path,
            self.config.agent.timeout_seconds,
        )

    def run_prompt(self, prompt: str, cwd: str | Path) -> AgentResult:
        return self._run(prompt, cwd, self.config.agent.prompt_timeout_seconds)
