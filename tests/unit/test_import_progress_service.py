"""
Unit tests for progress reporting.

Run: pytest tests/unit/test_import_progress_service.py -v
"""

import pytest

from exceptions import ImportNotFoundError
from models.catalog_import import ProgressStatus
from services.import_progress_service import (
    CompositeProgressSink,
    ImportProgressTracker,
    LoggingProgressSink,
    ProgressReporter,
)
from tests.fakes import FailingSink, RecordingSink


class TestProgressReporter:
    """Tests for ProgressReporter"""

    def test_generates_import_id(self):
        assert ProgressReporter().import_id

    def test_emits_to_sink(self, sink):
        reporter = ProgressReporter(sink, "imp-1")

        assert reporter.emit(ProgressStatus.READING_FILE, "Reading 3 rows") is True

        assert sink.events == [("reading_file", "Reading 3 rows", {})]

    def test_backwards_event_is_dropped(self, sink):
        reporter = ProgressReporter(sink)
        reporter.emit(ProgressStatus.MATCHING, "Matching")

        assert reporter.emit(ProgressStatus.VALIDATING, "Validating") is False
        assert sink.statuses == ["matching"]

    def test_creating_and_updating_may_alternate(self, sink):
        reporter = ProgressReporter(sink)

        reporter.emit(ProgressStatus.CREATING, "Creating A")
        reporter.emit(ProgressStatus.UPDATING, "Updating B")
        reporter.emit(ProgressStatus.CREATING, "Creating C")

        assert sink.statuses == ["creating", "updating", "creating"]

    def test_nothing_after_terminal_event(self, sink):
        reporter = ProgressReporter(sink)
        reporter.emit(ProgressStatus.ERROR, "Import failed")

        assert reporter.emit(ProgressStatus.COMPLETED, "Done") is False
        assert reporter.finished is True
        assert sink.statuses == ["error"]

    def test_stats_carry_forward(self, sink):
        reporter = ProgressReporter(sink)
        reporter.emit(ProgressStatus.CREATING, "Creating A", {"variants_created": 2})

        reporter.phase(ProgressStatus.COMPLETED, "Done")

        assert sink.events[-1][2] == {"variants_created": 2}

    def test_catch_up_fills_missing_checkpoints(self, sink):
        reporter = ProgressReporter(sink)
        reporter.emit(ProgressStatus.READING_FILE, "Reading")

        reporter.catch_up(ProgressStatus.MATCHING, "Plan ready")

        assert sink.statuses == ["reading_file", "validating", "resolving_parents", "matching"]

    def test_failing_sink_is_tolerated(self):
        failing = FailingSink()
        reporter = ProgressReporter(failing)

        assert reporter.emit(ProgressStatus.READING_FILE, "Reading") is True
        assert failing.calls == 1


class TestCompositeProgressSink:
    """Tests for CompositeProgressSink"""

    def test_one_failing_sink_does_not_starve_others(self):
        recording = RecordingSink()
        composite = CompositeProgressSink([FailingSink(), recording, LoggingProgressSink("imp-1")])

        composite.emit("validating", "Validating", {"errors": 0})

        assert recording.statuses == ["validating"]


class TestImportProgressTracker:
    """Tests for ImportProgressTracker"""

    def test_records_events_in_order(self):
        tracker = ImportProgressTracker()
        reporter = ProgressReporter(tracker.sink_for("imp-1"), "imp-1")

        reporter.emit(ProgressStatus.READING_FILE, "Reading")
        reporter.emit(ProgressStatus.COMPLETED, "Done", {"variants_created": 4})

        events = tracker.get_events("imp-1")
        assert [e.status for e in events] == [ProgressStatus.READING_FILE, ProgressStatus.COMPLETED]
        assert tracker.latest("imp-1").stats == {"variants_created": 4}

    def test_registered_import_without_events(self):
        tracker = ImportProgressTracker()
        tracker.sink_for("imp-1")

        assert tracker.get_events("imp-1") == []
        assert tracker.latest("imp-1") is None

    def test_unknown_import_raises(self):
        with pytest.raises(ImportNotFoundError):
            ImportProgressTracker().get_events("missing")

    def test_oldest_import_evicted(self):
        tracker = ImportProgressTracker(max_imports=2)
        for import_id in ("a", "b", "c"):
            tracker.sink_for(import_id)

        with pytest.raises(ImportNotFoundError):
            tracker.get_events("a")
        assert tracker.get_events("c") == []
