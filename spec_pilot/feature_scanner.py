"""
Discovery of feature specifications under specs/.

Each feature lives in ``specs/<feature-id>/spec.md``. The feature id is the
directory name; the display name comes from the first H1 heading and the
priority from the first ``Priority: P1..P4`` marker (default P3).
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from spec_pilot.models import FeatureSpecification
from spec_pilot.utils.fs import FileSystemError, read_file

if TYPE_CHECKING:
    from spec_pilot.logger import PilotLogger


DEFAULT_PRIORITY = "P3"
PRIORITY_ORDER = {"P1": 0, "P2": 1, "P3": 2, "P4": 3}

_H1_PATTERN = re.compile(r"^#\s+(?:Feature Specification:\s*)?(.+)$", re.MULTILINE)
_PRIORITY_PATTERN = re.compile(r"Priority:\s*(P[1-4])", re.IGNORECASE)


def extract_name(content: str, fallback: str) -> str:
    """First H1 heading, or the directory name in title case."""
    match = _H1_PATTERN.search(content)
    if match and match.group(1).strip():
        return match.group(1).strip()
    name = re.sub(r"^\d+-", "", fallback).replace("-", " ")
    return name.title()


def extract_priority(content: str) -> str:
    match = _PRIORITY_PATTERN.search(content)
    if match:
        return match.group(1).upper()
    return DEFAULT_PRIORITY


def parse_spec(spec_path: str | Path) -> FeatureSpecification:
    """
    Parse a spec.md file.

    Raises:
        FileSystemError: If the file cannot be read.
    """
    spec_path = Path(spec_path)
    content = read_file(spec_path)
    feature_id = spec_path.parent.name
    return FeatureSpecification(
        id=feature_id,
        name=extract_name(content, feature_id),
        path=str(spec_path),
        priority=extract_priority(content),
        raw_content=content,
    )


class FeatureScanner:
    """Finds and parses feature specifications."""

    def __init__(self, specs_path: str | Path, logger: Optional[PilotLogger] = None) -> None:
        self.specs_path = Path(specs_path)
        self._logger = logger

    def _log(self, event_type: str, data: Optional[dict] = None, level: str = "info") -> None:
        if self._logger:
            self._logger.log(event_type, data, level=level)

    def scan(self) -> list[FeatureSpecification]:
        """All parseable features, ordered by directory name."""
        if not self.specs_path.is_dir():
            return []

        features = []
        for spec_file in sorted(self.specs_path.glob("*/spec.md")):
            try:
                features.append(parse_spec(spec_file))
            except FileSystemError as e:
                self._log("spec_unreadable", {"path": str(spec_file), "error": str(e)}, level="warn")
        return features

    def scan_feature(self, feature_id: str) -> Optional[FeatureSpecification]:
        """A single feature by id, or None if missing or unreadable."""
        spec_file = self.specs_path / feature_id / "spec.md"
        if not spec_file.is_file():
            return None
        try:
            return parse_spec(spec_file)
        except FileSystemError as e:
            self._log("spec_unreadable", {"path": str(spec_file), "error": str(e)}, level="warn")
            return None

    @staticmethod
    def sort_by_priority(features: Iterable[FeatureSpecification]) -> list[FeatureSpecification]:
        """Stable sort P1 first, unknown priorities last."""
        return sorted(features, key=lambda f: PRIORITY_ORDER.get(f.priority, len(PRIORITY_ORDER)))

    @staticmethod
    def filter_by_priority(
        features: Iterable[FeatureSpecification],
        priorities: Iterable[str],
    ) -> list[FeatureSpecification]:
        wanted = {p.upper() for p in priorities}
        return [f for f in features if f.priority in wanted]
