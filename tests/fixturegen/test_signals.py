"""
Signal Bus tests.
"""

import threading

import pytest

from src.fixturegen import JobCategory, SignalBus, SignalGate, SignalTimeoutError


class TestSignalGate:
    """Set-once gate semantics."""

    def test_wait_returns_after_set(self):
        gate = SignalGate(JobCategory.ENQUEUED)
        gate.set()
        gate.wait(timeout=0.1)
        assert gate.is_set()

    def test_set_is_idempotent(self):
        gate = SignalGate(JobCategory.ENQUEUED)
        gate.set()
        gate.set()
        assert gate.is_set()

    def test_wait_with_timeout_raises(self):
        gate = SignalGate(JobCategory.SCHEDULED)

        with pytest.raises(SignalTimeoutError) as exc_info:
            gate.wait(timeout=0.05)

        assert exc_info.value.category == "SCHEDULED"
        assert exc_info.value.timeout == 0.05

    def test_all_waiters_released(self):
        gate = SignalGate(JobCategory.RECURRING)
        released = []
        lock = threading.Lock()

        def waiter():
            gate.wait(timeout=5.0)
            with lock:
                released.append(True)

        threads = [threading.Thread(target=waiter) for _ in range(4)]
        for thread in threads:
            thread.start()

        gate.set()
        for thread in threads:
            thread.join(5.0)

        assert len(released) == 4


class TestSignalBus:
    """One gate per category."""

    def test_all_categories_pending_initially(self):
        bus = SignalBus()
        assert bus.pending() == list(JobCategory)

    def test_set_removes_from_pending(self):
        bus = SignalBus()
        bus.set(JobCategory.CONTINUATION)

        assert bus.is_set(JobCategory.CONTINUATION)
        assert JobCategory.CONTINUATION not in bus.pending()
        assert not bus.is_set(JobCategory.ENQUEUED)

    def test_set_from_other_thread_wakes_waiter(self):
        bus = SignalBus()
        timer = threading.Timer(0.05, bus.set, args=(JobCategory.ENQUEUED,))
        timer.start()

        bus.wait(JobCategory.ENQUEUED, timeout=5.0)

        assert bus.is_set(JobCategory.ENQUEUED)

    def test_subset_bus_rejects_unknown_category(self):
        bus = SignalBus([JobCategory.ENQUEUED])
        with pytest.raises(KeyError):
            bus.set(JobCategory.RECURRING)

    def test_empty_category_list_has_no_gates(self):
        bus = SignalBus([])

        assert bus.pending() == []
        with pytest.raises(KeyError):
            bus.gate(JobCategory.SCHEDULED)
