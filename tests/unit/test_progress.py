"""
Tests for replication progress reporting.
"""

import io
import sys
from unittest.mock import MagicMock, patch

import pytest

from simreg.progress import PrintReporter, ProgressUpdate, ReplicationProgress, SimulationCancelled, TqdmReporter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _completed(reporter):
    return [call.args[0].completed for call in reporter.call_args_list]


class TestProgressUpdate:
    """Test derived fields of a progress update."""

    def test_remaining_from_mean_time(self):
        update = ProgressUpdate(completed=4, total=10, elapsed=8.0)
        assert update.fraction == 0.4
        assert update.remaining == pytest.approx(12.0)
        assert not update.done

    def test_remaining_unknown_before_first_replication(self):
        assert ProgressUpdate(0, 10, 1.0).remaining is None

    def test_done(self):
        assert ProgressUpdate(10, 10, 3.0).done


class TestSimulationCancelled:
    """Test SimulationCancelled exception."""

    def test_is_exception_not_value_error(self):
        assert issubclass(SimulationCancelled, Exception)
        assert not issubclass(SimulationCancelled, ValueError)

    def test_counts(self):
        exc = SimulationCancelled(3, 10)
        assert (exc.completed, exc.total) == (3, 10)
        assert "after 3 of 10" in str(exc)


class TestReplicationProgress:
    """Test time-throttled progress tracking."""

    def test_start_reports_zero(self):
        reporter = MagicMock()
        ReplicationProgress(5, reporter, clock=FakeClock()).start()
        update = reporter.call_args.args[0]
        assert (update.completed, update.total, update.elapsed) == (0, 5, 0.0)

    def test_updates_throttled_by_time(self):
        clock = FakeClock()
        reporter = MagicMock()
        tracker = ReplicationProgress(10, reporter, min_interval=1.0, clock=clock)
        tracker.start()

        clock.now += 0.3
        tracker.advance()
        clock.now += 0.3
        tracker.advance()
        assert _completed(reporter) == [0]

        clock.now += 0.5
        tracker.advance()
        assert _completed(reporter) == [0, 3]
        assert reporter.call_args.args[0].elapsed == pytest.approx(1.1)
        assert tracker.completed == 3

    def test_last_replication_always_reported(self):
        reporter = MagicMock()
        tracker = ReplicationProgress(3, reporter, min_interval=60.0, clock=FakeClock())
        tracker.start()
        for _ in range(3):
            tracker.advance()
        assert _completed(reporter) == [0, 3]

    def test_finish_does_not_repeat_final_update(self):
        reporter = MagicMock()
        tracker = ReplicationProgress(2, reporter, min_interval=60.0, clock=FakeClock())
        tracker.start()
        tracker.advance()
        tracker.advance()
        tracker.finish()
        assert _completed(reporter) == [0, 2]

    def test_finish_reports_completion(self):
        reporter = MagicMock()
        tracker = ReplicationProgress(4, reporter, min_interval=60.0, clock=FakeClock())
        tracker.start()
        tracker.advance()
        tracker.finish()
        assert _completed(reporter) == [0, 4]

    def test_restart_counts_from_zero(self):
        reporter = MagicMock()
        tracker = ReplicationProgress(4, reporter, min_interval=0.0, clock=FakeClock())
        tracker.start()
        tracker.advance()
        tracker.start()
        assert tracker.completed == 0
        assert _completed(reporter) == [0, 1, 0]


class TestPrintReporter:
    """Test PrintReporter console output."""

    def test_output_format(self):
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            PrintReporter()(ProgressUpdate(25, 100, 10.0))
        out = buf.getvalue()
        assert "Replications: 25/100 (25.0%)" in out
        assert "10s elapsed" in out
        assert "~30s left" in out

    def test_minutes(self):
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            PrintReporter()(ProgressUpdate(1, 2, 125.0))
        assert "2m 05s elapsed" in buf.getvalue()

    def test_total_zero(self):
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            PrintReporter()(ProgressUpdate(0, 0, 0.0))
        assert buf.getvalue() == ""

    def test_completion_newline(self):
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            PrintReporter()(ProgressUpdate(3, 3, 1.0))
        assert buf.getvalue().endswith("\n")
        assert "left" not in buf.getvalue()


class TestTqdmReporter:
    """Test TqdmReporter with a mocked tqdm module."""

    @staticmethod
    def _module():
        bar = MagicMock()
        bar.n = 0
        module = MagicMock()
        module.tqdm = MagicMock(return_value=bar)
        return module, bar

    def test_tqdm_missing_raises(self):
        reporter = TqdmReporter()
        with patch.dict("sys.modules", {"tqdm": None}):
            with pytest.raises(ImportError):
                reporter(ProgressUpdate(0, 10, 0.0))

    def test_bar_lifecycle(self):
        module, bar = self._module()
        reporter = TqdmReporter(desc="reps")
        with patch.dict("sys.modules", {"tqdm": module}):
            reporter(ProgressUpdate(0, 10, 0.0))
            module.tqdm.assert_called_once_with(total=10, unit="rep", desc="reps")

            reporter(ProgressUpdate(4, 10, 1.0))
            bar.update.assert_called_with(4)

            bar.n = 4
            reporter(ProgressUpdate(10, 10, 2.0))
            bar.update.assert_called_with(6)
            bar.close.assert_called_once()

    def test_restart_opens_new_bar(self):
        module, bar = self._module()
        reporter = TqdmReporter()
        with patch.dict("sys.modules", {"tqdm": module}):
            reporter(ProgressUpdate(0, 10, 0.0))
            bar.n = 5
            reporter(ProgressUpdate(0, 10, 0.0))
        assert module.tqdm.call_count == 2
        bar.close.assert_called_once()
