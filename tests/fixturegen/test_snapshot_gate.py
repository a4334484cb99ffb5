"""
Snapshot Gate tests.

The driver, bus and server are mocks sharing one call recorder so the
exact interleaving of submissions, waits and shutdown is visible.
"""

from unittest.mock import MagicMock

import pytest

from src.fixturegen import JobCategory, SignalTimeoutError, SnapshotGate
from src.fixturegen.signals import SignalBus


@pytest.fixture
def recorder() -> MagicMock:
    rec = MagicMock()
    rec.driver.submit_initial_wave.return_value = ["wave"]
    rec.driver.submit_late_schedule.return_value = "late-schedule"
    rec.driver.submit_late_enqueue.return_value = "late-enqueue"
    rec.server.stop.return_value = True
    return rec


class TestOrdering:
    """Submit/wait/stop interleaving."""

    def test_exact_sequence(self, recorder: MagicMock):
        gate = SnapshotGate(
            recorder.driver, recorder.signals, recorder.server, shutdown_timeout=7.0
        )

        gate.run()

        names = [(c[0], c.args) for c in recorder.mock_calls]
        assert names == [
            ("driver.submit_initial_wave", ()),
            ("signals.wait", (JobCategory.SCHEDULED,)),
            ("driver.submit_late_schedule", ()),
            ("signals.wait", (JobCategory.CONTINUATION,)),
            ("signals.wait", (JobCategory.RECURRING,)),
            ("signals.wait", (JobCategory.ENQUEUED,)),
            ("driver.submit_late_enqueue", ()),
            ("server.stop", ()),
        ]
        recorder.server.stop.assert_called_once_with(timeout=7.0)

    def test_report(self, recorder: MagicMock):
        report = SnapshotGate(recorder.driver, recorder.signals, recorder.server).run()

        assert report.initial_wave == ["wave"]
        assert report.submissions == ["wave", "late-schedule", "late-enqueue"]
        assert report.awaited == [
            JobCategory.SCHEDULED,
            JobCategory.CONTINUATION,
            JobCategory.RECURRING,
            JobCategory.ENQUEUED,
        ]
        assert report.clean_shutdown is True


class TestTimeouts:
    """Bounded gate waits."""

    def test_unset_gate_raises_and_skips_shutdown(self, recorder: MagicMock):
        signals = SignalBus()
        gate = SnapshotGate(recorder.driver, signals, recorder.server, gate_timeout=0.05)

        with pytest.raises(SignalTimeoutError) as exc_info:
            gate.run()

        assert exc_info.value.category == "SCHEDULED"
        recorder.driver.submit_late_schedule.assert_not_called()
        recorder.server.stop.assert_not_called()

    def test_gate_timeout_passed_to_waits(self, recorder: MagicMock):
        SnapshotGate(recorder.driver, recorder.signals, recorder.server, gate_timeout=3.0).run()

        for call in recorder.signals.wait.call_args_list:
            assert call.kwargs == {"timeout": 3.0}
