"""Tests for the output normalizer.

Covers each matcher in the cascade plus the cascade's guarantees:
- Empty or unrecognized text yields an empty list
- Overlapping matches are deduplicated
- A failing matcher never breaks parsing
"""

import pytest

from spec_pilot.models import FailureDetail, Severity
from spec_pilot.quality.normalizer import (
    OutputNormalizer,
    deduplicate,
    match_generic,
    parse_output,
)


class TestCompilerFormats:
    """tsc, rustc and gcc style diagnostics."""

    def test_tsc_parenthesized_error(self):
        """The tsc default format produces exactly one located error."""
        failures = parse_output("src/app.ts(10,5): error TS2322: Type 'x' is not assignable")

        assert len(failures) == 1
        failure = failures[0]
        assert failure.file == "src/app.ts"
        assert failure.line == 10
        assert failure.severity == Severity.ERROR
        assert "TS2322" in failure.message

    def test_tsc_pretty_dashed_error(self):
        failures = parse_output("src/app.ts:10:5 - error TS2322: Type 'x' is not assignable")

        assert len(failures) == 1
        assert failures[0].file == "src/app.ts"
        assert failures[0].line == 10
        assert failures[0].message == "TS2322: Type 'x' is not assignable"

    def test_rust_error_with_arrow_location(self):
        output = "error[E0308]: mismatched types\n --> src/main.rs:4:18\n"

        failures = parse_output(output)

        assert len(failures) == 1
        assert failures[0].file == "src/main.rs"
        assert failures[0].line == 4
        assert failures[0].message == "mismatched types"
        assert failures[0].severity == Severity.ERROR

    def test_rust_warning_not_duplicated_by_generic_matcher(self):
        """The bare 'warning:' line is dropped because a located record carries it."""
        output = "warning: unused variable: `x`\n --> src/lib.rs:2:9\n"

        failures = parse_output(output)

        assert len(failures) == 1
        assert failures[0].file == "src/lib.rs"
        assert failures[0].severity == Severity.WARNING

    def test_gcc_style_error(self):
        failures = parse_output("main.c:12:5: error: expected ';' before '}' token")

        assert len(failures) == 1
        assert failures[0].file == "main.c"
        assert failures[0].line == 12
        assert failures[0].message == "expected ';' before '}' token"

    def test_gcc_style_warning_severity(self):
        failures = parse_output("main.c:3:1: warning: unused variable 'y'")

        assert len(failures) == 1
        assert failures[0].severity == Severity.WARNING

    def test_go_vet_relative_path(self):
        failures = parse_output("./main.go:10:2: undefined: foo")

        assert len(failures) == 1
        assert failures[0].file == "main.go"
        assert failures[0].line == 10
        assert failures[0].message == "undefined: foo"


class TestLinterFormats:
    """pylint message codes and eslint unix output."""

    def test_pylint_convention_is_warning(self):
        output = "app/models.py:10:0: C0114: Missing module docstring (missing-module-docstring)"

        failures = parse_output(output)

        assert len(failures) == 1
        assert failures[0].file == "app/models.py"
        assert failures[0].line == 10
        assert failures[0].message.startswith("C0114: ")
        assert failures[0].severity == Severity.WARNING

    def test_pylint_error_code_is_error(self):
        failures = parse_output("app/views.py:22:8: E1101: Instance of 'Foo' has no 'bar' member")

        assert len(failures) == 1
        assert failures[0].severity == Severity.ERROR

    def test_eslint_unix_with_rule(self):
        failures = parse_output("src/a.ts:3:5: error Unexpected var, use let or const instead (no-var)")

        assert len(failures) == 1
        assert failures[0].file == "src/a.ts"
        assert failures[0].line == 3
        assert failures[0].message == "Unexpected var, use let or const instead (no-var)"
        assert failures[0].severity == Severity.ERROR

    def test_eslint_unix_warning_without_rule(self):
        failures = parse_output("src/b.ts:7:1: warning Missing semicolon")

        assert [(f.file, f.line, f.message) for f in failures] == [("src/b.ts", 7, "Missing semicolon")]
        assert failures[0].severity == Severity.WARNING

    def test_eslint_unix_bracketed_severity(self):
        failures = parse_output("src/c.js:2:10: Unexpected console statement. [Warning/no-console]")

        assert len(failures) == 1
        assert failures[0].message == "Unexpected console statement. (no-console)"
        assert failures[0].severity == Severity.WARNING


class TestTestRunnerFormats:
    """Test runner failure markers."""

    def test_pytest_failed_with_reason(self):
        failures = parse_output("FAILED tests/test_app.py::test_add - assert 1 == 2")

        assert len(failures) == 1
        assert failures[0].file == "tests/test_app.py"
        assert failures[0].message == "assert 1 == 2"

    def test_pytest_failed_without_reason(self):
        failures = parse_output("FAILED tests/test_app.py::test_sub")

        assert len(failures) == 1
        assert failures[0].message == "Test test_sub failed"

    def test_tap_not_ok(self):
        failures = parse_output("ok 1 - adds\nnot ok 2 - subtracts numbers\n")

        assert [f.message for f in failures] == ["subtracts numbers"]

    def test_jest_file_and_bullet(self):
        output = (
            "FAIL src/sum.test.js\n"
            "  ● sum › adds numbers\n"
            "\n"
            "    expect(received).toBe(expected)\n"
        )

        messages = [f.message for f in parse_output(output)]

        assert "Test file failed" in messages
        assert "sum › adds numbers: expect(received).toBe(expected)" in messages

    def test_bracketed_fail_marker(self):
        failures = parse_output("[FAIL] integration suite\n")

        assert [f.message for f in failures] == ["integration suite"]

    def test_mocha_numbered_failure(self):
        output = "  1) Array #indexOf():\n     AssertionError: expected -1 to equal 0\n"

        failures = parse_output(output)

        assert [f.message for f in failures] == [
            "Array #indexOf(): AssertionError: expected -1 to equal 0"
        ]

    def test_jest_expect_located_by_stack_frame(self):
        output = (
            "    expect(received).toBe(expected) // Object.is equality\n"
            "\n"
            "    Expected: 4\n"
            "    Received: 3\n"
            "\n"
            "      at Object.<anonymous> (src/sum.test.js:5:17)\n"
        )

        failures = parse_output(output)

        assert len(failures) == 1
        assert failures[0].file == "src/sum.test.js"
        assert failures[0].line == 5
        assert failures[0].message == "Expectation failed: toBe(expected)"

    def test_rust_assertion_failed_with_panic_location(self):
        output = (
            "thread 'tests::adds' panicked at src/lib.rs:12:9:\n"
            "assertion failed: add(1, 2) == 4\n"
        )

        failures = parse_output(output)

        assert len(failures) == 1
        assert failures[0].location == "src/lib.rs:12"
        assert failures[0].message == "assertion failed: add(1, 2) == 4"

    def test_python_located_error_line(self):
        failures = parse_output("tests/test_calc.py:12: AssertionError: assert 3 == 4\n")

        assert len(failures) == 1
        assert failures[0].location == "tests/test_calc.py:12"
        assert failures[0].message == "AssertionError: assert 3 == 4"


class TestGenericFallback:
    """Bare severity-prefixed lines."""

    def test_fatal_error_is_error(self):
        failures = match_generic("fatal error: no input files")

        assert len(failures) == 1
        assert failures[0].file is None
        assert failures[0].severity == Severity.ERROR
        assert failures[0].message == "no input files"


class TestNormalizerGuarantees:
    """Tolerant scanner behaviour."""

    @pytest.mark.parametrize("text", ["", None, "All 12 tests passed\nDone in 1.2s\n"])
    def test_empty_or_unrecognized_returns_empty_list(self, text):
        assert parse_output(text) == []

    def test_non_string_input_returns_empty_list(self):
        assert OutputNormalizer().parse(b"error: bytes") == []

    def test_repeated_lines_are_deduplicated(self):
        line = "src/app.ts(10,5): error TS2322: Type 'x' is not assignable"

        failures = parse_output(f"{line}\n{line}\n")

        assert len(failures) == 1

    def test_failing_matcher_does_not_break_parsing(self):
        def broken(text):
            raise RuntimeError("bad pattern")

        normalizer = OutputNormalizer(matchers=(broken, match_generic))

        failures = normalizer.parse("error: something broke")

        assert len(failures) == 1
        assert failures[0].message == "something broke"


class TestDeduplicate:
    """Tests for deduplicate()."""

    def test_keeps_first_occurrence(self):
        first = FailureDetail(message="boom", file="a.py", line=1)
        second = FailureDetail(message="boom", file="a.py", line=2)

        assert deduplicate([first, second]) == [first]

    def test_drops_unlocated_duplicate_of_located_message(self):
        located = FailureDetail(message="boom", file="a.py", line=1)
        bare = FailureDetail(message="boom")

        assert deduplicate([located, bare]) == [located]

    def test_same_message_in_different_files_kept(self):
        a = FailureDetail(message="boom", file="a.py")
        b = FailureDetail(message="boom", file="b.py")

        assert deduplicate([a, b]) == [a, b]
