"""
spec-pilot - Spec-driven feature implementation CLI.

Drives a specify -> plan -> tasks -> implement -> verify workflow, delegating
code generation to an external agent and verifying the result with
build/lint/test quality gates under a bounded retry budget.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
