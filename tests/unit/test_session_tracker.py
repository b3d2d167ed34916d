"""Tests for session accounting and the execution report."""

import json

import pytest

from spec_pilot.models import ImplementationResult
from spec_pilot.session_tracker import (
    EXIT_FEATURE_FAILURES,
    EXIT_SUCCESS,
    SessionTracker,
    build_report,
    format_duration,
)


@pytest.fixture
def tracker(tmp_path):
    return SessionTracker(tmp_path / "logs", session_id="abc123")


class TestFormatDuration:
    """Tests for format_duration()."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0s"),
        (42, "42s"),
        (65, "1m 5s"),
        (3600, "60m 0s"),
        (-3, "0s"),
    ])
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestSessionTracker:
    """Tests for SessionTracker counters and persistence."""

    def test_counters(self, tracker):
        tracker.add_feature_processed("a")
        tracker.add_feature_processed("a")
        tracker.add_feature_processed("b")
        tracker.increment_success()
        tracker.increment_failure()
        tracker.increment_skipped(2)
        tracker.add_checks_run(6)
        tracker.add_checks_passed(4)

        session = tracker.session
        assert session.features_processed == ["a", "b"]
        assert session.success_count == 1
        assert session.failure_count == 1
        assert session.skipped_count == 2
        assert session.total_checks_run == 6
        assert session.total_checks_passed == 4

    def test_duration_is_non_negative(self, tracker):
        tracker.complete()

        assert tracker.session.completed_at is not None
        assert tracker.get_duration() >= 0

    def test_save_writes_session_file(self, tracker, tmp_path):
        tracker.increment_success()
        tracker.complete()

        path = tracker.save()

        assert path == tmp_path / "logs" / "session-abc123.json"
        data = json.loads(path.read_text())
        assert data["id"] == "abc123"
        assert data["successCount"] == 1
        assert data["completedAt"] is not None

    def test_generated_session_id(self, tmp_path):
        assert len(SessionTracker(tmp_path).session_id) == 8


class TestBuildReport:
    """Tests for build_report()."""

    def test_all_succeeded(self, tracker):
        tracker.increment_success()
        results = [ImplementationResult(feature_id="a", success=True, retries=1)]

        report = build_report(tracker, results)

        assert report.exit_code == EXIT_SUCCESS
        assert report.implemented == ["a"]
        assert report.failed == []
        assert report.checks_fixed == 1

    def test_any_failure_exits_three(self, tracker):
        results = [
            ImplementationResult(feature_id="a", success=True),
            ImplementationResult(feature_id="b", success=False, retries=3),
        ]

        report = build_report(tracker, results, skipped=["c"])

        assert report.exit_code == EXIT_FEATURE_FAILURES == 3
        assert report.failed == ["b"]
        assert report.skipped == ["c"]
        assert report.checks_fixed == 3

    def test_to_dict_shape(self, tracker):
        tracker.add_checks_run(3)
        tracker.add_checks_passed(3)
        tracker.complete()

        data = build_report(tracker, []).to_dict()

        assert data["session_id"] == "abc123"
        assert data["features"] == {"implemented": [], "failed": [], "skipped": []}
        assert data["summary"]["total_checks"] == 3
        assert data["summary"]["checks_passed"] == 3
        assert data["exit_code"] == 0
