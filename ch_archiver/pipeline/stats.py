"""
Process-wide run counters shared by concurrent export units.

Counters only ever grow; callers increment them and take snapshot reads. The
only control decision made from them is the boolean "any error yet" check.
"""

from __future__ import annotations

import threading


class AtomicCounter:
    """Thread-safe monotonically increasing integer."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def add(self, amount: int = 1) -> int:
        if amount < 0:
            raise ValueError("AtomicCounter only supports non-negative increments")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        return self._value


class RunStatistics:
    """
    Fail-fast flag and estimated-volume accumulator for one run.
    """

    def __init__(self) -> None:
        self._errors = AtomicCounter()
        self._estimated_bytes = AtomicCounter()

    def record_error(self) -> int:
        return self._errors.add(1)

    def add_estimated_bytes(self, amount: int) -> int:
        return self._estimated_bytes.add(amount)

    @property
    def failed(self) -> bool:
        return self._errors.value != 0

    @property
    def errors(self) -> int:
        return self._errors.value

    @property
    def estimated_bytes(self) -> int:
        return self._estimated_bytes.value


__all__ = ["AtomicCounter", "RunStatistics"]
