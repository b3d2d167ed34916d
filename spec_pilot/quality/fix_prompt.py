"""Fix prompt construction from failed gate results."""

from __future__ import annotations

from spec_pilot.models import FailureDetail, QualityCheckResult
from spec_pilot.utils.fs import tail_text

FIX_PROMPT_HEADER = "Please fix the following issues:"
FIX_PROMPT_FOOTER = (
    "Please make the necessary changes to fix these issues "
    "while maintaining the original functionality."
)


def format_failure(failure: FailureDetail) -> str:
    """Render one failure as a ``- file:line: message`` bullet."""
    location = failure.location
    if location:
        return f"- {location}: {failure.message}"
    return f"- {failure.message}"


def build_fix_prompt(results: list[QualityCheckResult], raw_tail_lines: int = 40) -> str:
    """
    Build the additional-context prompt for a fix attempt.

    One section per failing gate, in the order given. A failing gate with no
    parsed failures contributes the tail of its raw output instead, so the
    agent always sees something to act on.

    Args:
        results: Gate results from the most recent run. Passing gates are ignored.
        raw_tail_lines: Lines of raw output to include when nothing was parsed.

    Returns:
        The prompt text, or an empty string when nothing failed.
    """
    failing = [r for r in results if not r.passed]
    if not failing:
        return ""

    parts = [FIX_PROMPT_HEADER, ""]
    for result in failing:
        parts.append(f"## {result.type.value.upper()} Failures:")
        if result.failures:
            parts.extend(format_failure(f) for f in result.failures)
        else:
            parts.append("No structured failures were parsed. Raw output:")
            parts.append("```")
            parts.append(tail_text(result.output, max_lines=raw_tail_lines) or "(no output)")
            parts.append("```")
        parts.append("")

    parts.append(FIX_PROMPT_FOOTER)
    return "\n".join(parts) + "\n"
