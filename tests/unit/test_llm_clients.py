"""Tests for the Claude CLI agent adapter."""

import subprocess
import sys
from unittest.mock import patch

import pytest

from spec_pilot.errors import AgentInvocationError
from spec_pilot.llm_clients import (
    ClaudeCliAgent,
    CodeGenerationAgent,
    build_implementation_prompt,
)
from spec_pilot.models import ImplementationContext


@pytest.fixture
def context(config):
    return ImplementationContext(
        feature_id="001-auth",
        spec_content="# Auth\nUsers log in.",
        root_path=config.repo_root,
    )


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestBuildImplementationPrompt:
    """Tests for build_implementation_prompt()."""

    def test_basic_prompt(self, context):
        prompt = build_implementation_prompt(context)

        assert prompt.startswith("Implement the following feature specification:")
        assert "Feature ID: 001-auth" in prompt
        assert "Specification:\n# Auth\nUsers log in." in prompt
        assert "Additional Context" not in prompt

    def test_additional_context_appended(self, context):
        context.additional_context = "Please fix the following issues:"

        prompt = build_implementation_prompt(context)

        assert prompt.endswith("\nAdditional Context:\nPlease fix the following issues:\n")


class TestClaudeCliAgent:
    """Tests for ClaudeCliAgent."""

    def test_satisfies_protocol(self, config):
        assert isinstance(ClaudeCliAgent(config), CodeGenerationAgent)

    def test_success(self, config, context):
        with patch("spec_pilot.llm_clients.subprocess.run", return_value=completed(0, "done")) as mock_run:
            result = ClaudeCliAgent(config).implement(context)

        assert result.success is True
        assert result.output == "done"
        args, kwargs = mock_run.call_args
        cmd = args[0]
        assert cmd[0] == "claude"
        assert cmd[1] == "-p"
        assert cmd[-1] == "--dangerously-skip-permissions"
        assert kwargs["cwd"] == config.repo_root
        assert kwargs["timeout"] == config.agent.timeout_seconds

    def test_run_prompt_uses_prompt_timeout(self, config):
        with patch("spec_pilot.llm_clients.subprocess.run", return_value=completed()) as mock_run:
            ClaudeCliAgent(config).run_prompt("plan it", config.repo_root)

        args, kwargs = mock_run.call_args
        assert args[0][2] == "plan it"
        assert kwargs["timeout"] == config.agent.prompt_timeout_seconds

    def test_empty_auto_approve_flag_omitted(self, config):
        config.agent.auto_approve_flag = ""
        with patch("spec_pilot.llm_clients.subprocess.run", return_value=completed()) as mock_run:
            ClaudeCliAgent(config).run_prompt("x", config.repo_root)

        assert mock_run.call_args.args[0] == ["claude", "-p", "x"]

    def test_nonzero_exit_is_failed_result(self, config, context):
        with patch(
            "spec_pilot.llm_clients.subprocess.run",
            return_value=completed(1, "partial", "API error"),
        ):
            result = ClaudeCliAgent(config).implement(context)

        assert result.success is False
        assert result.error == "API error"
        assert result.output == "partial"

    def test_nonzero_exit_without_stderr(self, config, context):
        with patch("spec_pilot.llm_clients.subprocess.run", return_value=completed(2)):
            result = ClaudeCliAgent(config).implement(context)

        assert result.error == "Agent exited with code 2"

    def test_timeout_is_failed_result(self, config, context):
        with patch(
            "spec_pilot.llm_clients.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="claude", timeout=300),
        ):
            result = ClaudeCliAgent(config).implement(context)

        assert result.success is False
        assert result.error == "Agent timed out after 300 seconds"

    def test_missing_binary_raises(self, config, context):
        config.agent.binary = "/nonexistent/claude"
        with patch(
            "spec_pilot.llm_clients.subprocess.run",
            side_effect=FileNotFoundError("No such file"),
        ):
            with pytest.raises(AgentInvocationError) as exc_info:
                ClaudeCliAgent(config).implement(context)

        assert exc_info.value.binary == "/nonexistent/claude"

    def test_undecodable_output_is_replaced(self, config, context, tmp_path):
        script = tmp_path / "fake-claude"
        script.write_text(
            f"#!{sys.executable}\n"
            "import sys\n"
            r"sys.stdout.buffer.write(b'partial \xff\xfe')" "\n"
            r"sys.stderr.buffer.write(b'bad byte \xff')" "\n"
            "sys.exit(1)\n"
        )
        script.chmod(0o755)
        config.agent.binary = str(script)

        result = ClaudeCliAgent(config).implement(context)

        assert result.success is False
        assert result.error == "bad byte \ufffd"
        assert result.output == "partial \ufffd\ufffd"
