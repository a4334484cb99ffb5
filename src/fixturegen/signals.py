"""
Signal Bus - one-shot completion gates per job category.

A gate moves from unset to set exactly once. Every waiter, including
ones that start waiting after the set, observes it.
"""

import logging
import threading
from enum import Enum
from typing import Iterable, Optional

from .errors import SignalTimeoutError


logger = logging.getLogger(__name__)


class JobCategory(str, Enum):
    """Job categories driven through the engine."""

    RECURRING = "RECURRING"
    SCHEDULED = "SCHEDULED"
    ENQUEUED = "ENQUEUED"
    CONTINUATION = "CONTINUATION"


class SignalGate:
    """Set-once flag with broadcast wake-up."""

    def __init__(self, category: JobCategory):
        self.category = category
        self._event = threading.Event()

    def set(self) -> None:
        """Open the gate. Setting an open gate is a no-op."""
        if not self._event.is_set():
            logger.debug(f"Gate {self.category.value} set")
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> None:
        """
        Block until the gate is set.

        Args:
            timeout: Seconds to wait (None = wait forever)

        Raises:
            SignalTimeoutError: If the timeout expires first
        """
        if not self._event.wait(timeout):
            raise SignalTimeoutError(self.category.value, timeout)


class SignalBus:
    """
    One gate per category for a single fixture run.

    There is no unset operation; create a new bus per run.
    """

    def __init__(self, categories: Optional[Iterable[JobCategory]] = None):
        self._gates = {
            category: SignalGate(category)
            for category in (list(JobCategory) if categories is None else categories)
        }

    def gate(self, category: JobCategory) -> SignalGate:
        try:
            return self._gates[category]
        except KeyError:
            raise KeyError(f"No gate for category {category}") from None

    def set(self, category: JobCategory) -> None:
        self.gate(category).set()

    def is_set(self, category: JobCategory) -> bool:
        return self.gate(category).is_set()

    def wait(self, category: JobCategory, timeout: Optional[float] = None) -> None:
        logger.info(f"Waiting for {category.value} gate...")
        self.gate(category).wait(timeout)
        logger.info(f"{category.value} gate is set")

    def pending(self) -> list[JobCategory]:
        """Categories whose gate is not set yet, in bus order."""
        return [category for category, gate in self._gates.items() if not gate.is_set()]
