"""Output normalizer for build, lint and test tool output.

Converts raw text from heterogeneous tools into a flat list of FailureDetail
records. The normalizer is a tolerant scanner: an ordered list of pure
matchers, each ``text -> list[FailureDetail]``, whose results are
concatenated and deduplicated. Unrecognized text yields an empty list and
no input ever raises.

Recognized formats:
- tsc style ``file(line,col): error CODE: message``
- tsc pretty style ``file:line:col - error CODE: message``
- rustc/clippy ``error[E0308]: message`` followed by ``--> file:line:col``
- gcc/clang/go ``file:line:col: error: message``
- eslint unix ``file:line:col: error message (rule)`` and ``[Error/rule]``
- pylint ``file:line:col: C0114: message``
- pytest ``FAILED``, jest ``FAIL``, ``●`` and ``expect(...)``, mocha
  ``1) title:``, TAP ``not ok``, ``[FAIL]`` markers, Rust
  ``assertion failed`` and Python ``file.py:line: SomeError`` lines
- bare ``error:``/``warning:``/``fatal error:`` lines as a fallback
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from spec_pilot.models import FailureDetail, Severity

logger = logging.getLogger(__name__)

Matcher = Callable[[str], list[FailureDetail]]

_SEVERITY = r"(?P<sev>fatal error|error|warning)"
_CODE = r"(?:(?P<code>[A-Za-z]+\d+):\s*)?"

_PARENTHESIZED = re.compile(
    r"^\s*(?P<file>[^\s(][^(\n]*?)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    + _SEVERITY + r"\s+" + _CODE + r"(?P<msg>.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)

_DASHED = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):(?P<col>\d+)\s+-\s+"
    + _SEVERITY + r"\s+" + _CODE + r"(?P<msg>.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)

_ARROW = re.compile(
    r"^\s*(?P<sev>error|warning)(?:\[(?P<code>[^\]\n]+)\])?:\s*(?P<msg>.+?)\s*\n"
    r"\s*-->\s*(?P<file>[^\n]+?):(?P<line>\d+):\d+",
    re.IGNORECASE | re.MULTILINE,
)

_GNU = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):(?:\d+:)?\s*"
    + _SEVERITY + r":\s*(?P<msg>.+?)\s*$",
    re.IGNORECASE,
)

_ESLINT_UNIX = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):\d+:\s*(?P<msg>.+?)\s*"
    r"\[(?P<sev>Error|Warning)/(?P<rule>[^\]]+)\]\s*$",
    re.IGNORECASE,
)

_ESLINT_PLAIN = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):\d+:\s*(?P<sev>error|warning)\s+"
    r"(?P<msg>.+?)(?:\s+\((?P<rule>[^()]+)\))?\s*$",
    re.IGNORECASE,
)

_GO = re.compile(r"^\s*\./(?P<file>[^:\n]+):(?P<line>\d+):\d+:\s*(?P<msg>.+?)\s*$")

_PYLINT = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):(?:\d+:)?\s*"
    r"(?P<code>[CRWEF]\d{4}):?\s*(?P<msg>.+?)\s*$",
    re.MULTILINE,
)

_PYTEST = re.compile(
    r"^(?:FAILED|ERROR)\s+(?P<file>[^\s:]+)::(?P<test>\S+?)(?:\s+-\s+(?P<reason>.+?))?\s*$",
    re.MULTILINE,
)
_JEST_FAIL = re.compile(r"^\s*FAIL\s+(?P<file>\S+)", re.MULTILINE)
_JEST_BULLET = re.compile(r"^\s*●\s+(?P<name>.+?)\s*$")
_TAP = re.compile(r"^\s*not ok\s+\d+\s*(?:-\s*)?(?P<desc>.+?)\s*$", re.MULTILINE)
_BRACKETED = re.compile(r"^\s*\[(?P<tag>FAIL|FAILED|ERROR)\]\s*(?P<name>.+?)\s*$", re.MULTILINE)
_MOCHA = re.compile(
    r"^[ \t]*\d+\)[ \t]+(?P<title>[^\n]+?):[ \t]*\n[ \t]*(?P<detail>[^\n]+?)[ \t]*$",
    re.MULTILINE,
)
_JEST_EXPECT = re.compile(r"expect\(.*\)\.(?P<matcher>[^\n/]+?)(?:\s*//.*)?\s*$")
_STACK_FRAME = re.compile(
    r"^\s*at\s+(?:[^\n(]*\()?(?P<file>[^\s():]+):(?P<line>\d+)(?::\d+)?\)?\s*$"
)
_ASSERTION_FAILED = re.compile(r"assertion failed:?\s*(?P<msg>.+?)\s*$", re.IGNORECASE)
_RUST_PANIC = re.compile(r"panicked at '?(?P<file>[^\s:']+):(?P<line>\d+):\d+:?\s*$")
_PYTHON_LOCATED = re.compile(
    r"^\s*(?P<file>[^\s:][^:\n]*?\.py):(?P<line>\d+):\s+"
    r"(?P<msg>\w*(?:Error|Exception)\b.*?)\s*$",
    re.MULTILINE,
)

_FRAME_LOOKAHEAD = 20

_GENERIC = re.compile(r"^\s*" + _SEVERITY + r":\s*(?P<msg>.+?)\s*$", re.IGNORECASE | re.MULTILINE)


def _with_code(code: Optional[str], message: str) -> str:
    return f"{code}: {message}" if code else message


def match_compiler_parenthesized(text: str) -> list[FailureDetail]:
    """Match ``src/app.ts(10,5): error TS2322: message``."""
    return [
        FailureDetail(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            message=_with_code(m.group("code"), m.group("msg")),
            severity=Severity.from_token(m.group("sev")),
        )
        for m in _PARENTHESIZED.finditer(text)
    ]


def match_compiler_dashed(text: str) -> list[FailureDetail]:
    """Match ``src/app.ts:10:5 - error TS2322: message``."""
    return [
        FailureDetail(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            message=_with_code(m.group("code"), m.group("msg")),
            severity=Severity.from_token(m.group("sev")),
        )
        for m in _DASHED.finditer(text)
    ]


def match_arrow_continuation(text: str) -> list[FailureDetail]:
    """Match a rustc/clippy diagnostic whose location is on the next ``-->`` line."""
    return [
        FailureDetail(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            message=m.group("msg"),
            severity=Severity.from_token(m.group("sev")),
        )
        for m in _ARROW.finditer(text)
    ]


def match_gnu_diagnostic(text: str) -> list[FailureDetail]:
    """
    Match ``file:line[:col]: error: message`` lines.

    Also covers eslint's ``file:line:col: error message (rule)`` and
    ``[Error/rule]`` unix formats, and go's ``./file.go:line:col: message``.
    Each line produces at most one record.
    """
    failures: list[FailureDetail] = []
    for raw_line in text.splitlines():
        m = _GNU.match(raw_line)
        if m:
            failures.append(FailureDetail(
                file=m.group("file").strip(),
                line=int(m.group("line")),
                message=m.group("msg"),
                severity=Severity.from_token(m.group("sev")),
            ))
            continue

        m = _ESLINT_UNIX.match(raw_line)
        if m:
            failures.append(FailureDetail(
                file=m.group("file").strip(),
                line=int(m.group("line")),
                message=f"{m.group('msg')} ({m.group('rule')})",
                severity=Severity.from_token(m.group("sev")),
            ))
            continue

        m = _ESLINT_PLAIN.match(raw_line)
        if m:
            rule = m.group("rule")
            failures.append(FailureDetail(
                file=m.group("file").strip(),
                line=int(m.group("line")),
                message=f"{m.group('msg')} ({rule})" if rule else m.group("msg"),
                severity=Severity.from_token(m.group("sev")),
            ))
            continue

        m = _GO.match(raw_line)
        if m and not _PYLINT.match(raw_line):
            failures.append(FailureDetail(
                file=m.group("file").strip(),
                line=int(m.group("line")),
                message=m.group("msg"),
            ))
    return failures


def match_pylint_codes(text: str) -> list[FailureDetail]:
    """Match pylint's ``file:line:col: C0114: message`` format."""
    failures = []
    for m in _PYLINT.finditer(text):
        code = m.group("code")
        failures.append(FailureDetail(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            message=f"{code}: {m.group('msg')}",
            severity=Severity.ERROR if code[0] in "EF" else Severity.WARNING,
        ))
    return failures


def match_test_failures(text: str) -> list[FailureDetail]:
    """
    Match test runner failure markers.

    Covers pytest, jest (including ``expect(...)`` failures located by the
    next ``at file:line`` frame), mocha numbered failures, TAP, bracketed
    markers, Rust ``assertion failed`` panics and Python
    ``file.py:line: SomeError`` lines.
    """
    failures: list[FailureDetail] = []

    for m in _PYTEST.finditer(text):
        failures.append(FailureDetail(
            file=m.group("file"),
            message=m.group("reason") or f"Test {m.group('test')} failed",
        ))

    for m in _JEST_FAIL.finditer(text):
        failures.append(FailureDetail(file=m.group("file"), message="Test file failed"))

    lines = text.splitlines()
    for index, raw_line in enumerate(lines):
        m = _JEST_BULLET.match(raw_line)
        if not m:
            continue
        detail = next((l.strip() for l in lines[index + 1:] if l.strip()), "")
        message = f"{m.group('name')}: {detail}" if detail else m.group("name")
        failures.append(FailureDetail(message=message))

    for m in _TAP.finditer(text):
        failures.append(FailureDetail(message=m.group("desc")))

    for m in _BRACKETED.finditer(text):
        failures.append(FailureDetail(message=m.group("name")))

    for m in _MOCHA.finditer(text):
        failures.append(FailureDetail(message=f"{m.group('title')}: {m.group('detail')}"))

    for index, raw_line in enumerate(lines):
        m = _JEST_EXPECT.search(raw_line)
        if not m:
            continue
        for frame_line in lines[index + 1:index + 1 + _FRAME_LOOKAHEAD]:
            frame = _STACK_FRAME.match(frame_line)
            if frame:
                failures.append(FailureDetail(
                    file=frame.group("file"),
                    line=int(frame.group("line")),
                    message=f"Expectation failed: {m.group('matcher')}",
                ))
                break

    for index, raw_line in enumerate(lines):
        m = _ASSERTION_FAILED.search(raw_line)
        if not m:
            continue
        # Rust prints the panic location on the line before the assertion
        panic = _RUST_PANIC.search(lines[index - 1]) if index else None
        failures.append(FailureDetail(
            file=panic.group("file") if panic else None,
            line=int(panic.group("line")) if panic else None,
            message=f"assertion failed: {m.group('msg')}",
        ))

    for m in _PYTHON_LOCATED.finditer(text):
        failures.append(FailureDetail(
            file=m.group("file").strip(),
            line=int(m.group("line")),
            message=m.group("msg"),
        ))

    return failures


def match_generic(text: str) -> list[FailureDetail]:
    """Fallback for bare ``error:``, ``warning:`` and ``fatal error:`` lines."""
    return [
        FailureDetail(message=m.group("msg"), severity=Severity.from_token(m.group("sev")))
        for m in _GENERIC.finditer(text)
    ]


DEFAULT_MATCHERS: tuple[Matcher, ...] = (
    match_compiler_parenthesized,
    match_compiler_dashed,
    match_arrow_continuation,
    match_gnu_diagnostic,
    match_pylint_codes,
    match_test_failures,
    match_generic,
)


def deduplicate(failures: list[FailureDetail]) -> list[FailureDetail]:
    """
    Drop repeated records, keeping the first occurrence.

    A record is dropped when its (file, message) pair was already seen, or
    when it has no file and a located record already carried its message.
    """
    seen: set[tuple[Optional[str], str]] = set()
    located_messages: set[str] = set()
    unique = []
    for failure in failures:
        key = (failure.file, failure.message)
        if key in seen:
            continue
        if failure.file is None and failure.message in located_messages:
            continue
        seen.add(key)
        if failure.file is not None:
            located_messages.add(failure.message)
        unique.append(failure)
    return unique


class OutputNormalizer:
    """
    Ordered matcher cascade.

    Example:
        normalizer = OutputNormalizer()
        for failure in normalizer.parse(output):
            print(f"{failure.location}: {failure.message}")
    """

    def __init__(self, matchers: Optional[tuple[Matcher, ...]] = None) -> None:
        self.matchers = matchers if matchers is not None else DEFAULT_MATCHERS

    def parse(self, raw_text: Optional[str]) -> list[FailureDetail]:
        """Parse raw tool output. Never raises."""
        if not raw_text or not isinstance(raw_text, str):
            return []

        collected: list[FailureDetail] = []
        for matcher in self.matchers:
            try:
                collected.extend(matcher(raw_text))
            except Exception as e:
                logger.warning(f"Matcher {getattr(matcher, '__name__', matcher)} failed: {e}")
        return deduplicate(collected)


def parse_output(raw_text: Optional[str]) -> list[FailureDetail]:
    """Parse raw tool output with the default matchers."""
    return OutputNormalizer().parse(raw_text)
