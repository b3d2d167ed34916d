"""Quality gates, output normalization and fix prompts."""

from spec_pilot.quality.fix_prompt import build_fix_prompt
from spec_pilot.quality.gates import (
    BuildGate,
    LintGate,
    QualityGate,
    QualityGateRunner,
    TestGate,
)
from spec_pilot.quality.normalizer import OutputNormalizer, parse_output

__all__ = [
    "BuildGate",
    "LintGate",
    "OutputNormalizer",
    "QualityGate",
    "QualityGateRunner",
    "TestGate",
    "build_fix_prompt",
    "parse_output",
]
