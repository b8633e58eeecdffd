# tests/unit/execution/test_unit_progress.py — v1
"""Tests for execution.progress — percent parsing and clamped step tracking."""

from __future__ import annotations

from toppbridge.execution.progress import (
    LoggingProgressSink,
    NullProgressSink,
    ProgressSink,
    ProgressTracker,
    parse_percent,
)


class RecordingSink:
    def __init__(self):
        self.reports: list[tuple[float, str]] = []
        self.statuses: list[tuple[str, float | None]] = []

    def report(self, fraction, text):
        self.reports.append((fraction, text))

    def status(self, text, percent=None):
        self.statuses.append((text, percent))


class TestParsePercent:
    def test_integer(self):
        assert parse_percent("Progress: 45 %") == 45.0

    def test_decimal(self):
        assert parse_percent("12.5% done") == 12.5

    def test_none(self):
        assert parse_percent("no figure here") is None


class TestSinks:
    def test_protocol(self):
        assert isinstance(NullProgressSink(), ProgressSink)
        assert isinstance(LoggingProgressSink(), ProgressSink)
        assert isinstance(RecordingSink(), ProgressSink)

    def test_logging_sink_logs_report(self, caplog):
        with caplog.at_level("INFO", logger="toppbridge.execution.progress"):
            LoggingProgressSink().report(0.5, "halfway")
        assert "halfway" in caplog.text


class TestProgressTracker:
    def test_advance_reports_fraction(self):
        sink = RecordingSink()
        tracker = ProgressTracker(sink, total_steps=4)
        assert tracker.advance("one") == 0.25
        tracker.advance("two")
        assert sink.reports == [(0.25, "one"), (0.5, "two")]
        assert tracker.current_step == 2

    def test_clamped_when_estimate_exceeded(self):
        sink = RecordingSink()
        tracker = ProgressTracker(sink, total_steps=2)
        for _ in range(5):
            tracker.advance()
        assert tracker.fraction == 1.0
        assert all(fraction <= 1.0 for fraction, _ in sink.reports)

    def test_zero_total_is_treated_as_one(self):
        tracker = ProgressTracker(total_steps=0)
        assert tracker.total_steps == 1
        assert tracker.fraction == 0.0

    def test_complete(self):
        sink = RecordingSink()
        tracker = ProgressTracker(sink, total_steps=3)
        tracker.advance()
        tracker.complete()
        assert sink.reports[-1] == (1.0, "Done")
        assert tracker.current_step == 3

    def test_default_sink(self):
        tracker = ProgressTracker(total_steps=1)
        assert isinstance(tracker.sink, NullProgressSink)
        assert tracker.advance() == 1.0
