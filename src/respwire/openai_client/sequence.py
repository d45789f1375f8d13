"""Sequence-number tracking for one response stream."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SequenceStatus(str, Enum):
    OK = "ok"
    GAP = "gap"
    REGRESSION = "regression"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class SequenceObservation:
    """Outcome of observing one event's sequence number.

    ``expected`` is set for gaps, ``last`` for regressions.
    """

    status: SequenceStatus
    got: int | None = None
    expected: int | None = None
    last: int | None = None

    @property
    def is_anomaly(self) -> bool:
        return self.status in (SequenceStatus.GAP, SequenceStatus.REGRESSION)

    def __str__(self) -> str:
        if self.status is SequenceStatus.GAP:
            return f"sequence gap: expected {self.expected}, got {self.got}"
        if self.status is SequenceStatus.REGRESSION:
            return f"sequence regression: last {self.last}, got {self.got}"
        return f"sequence {self.status.value}: {self.got}"


class SequenceGuard:
    """Classify sequence numbers against the highest one seen so far.

    Anomalies never raise; the caller decides what to do with them.
    """

    def __init__(self) -> None:
        self._last: int | None = None

    @property
    def last_seen(self) -> int | None:
        return self._last

    def observe(self, sequence_number: int | None) -> SequenceObservation:
        if sequence_number is None:
            return SequenceObservation(SequenceStatus.UNKNOWN)

        last = self._last
        if last is None:
            self._last = sequence_number
            return SequenceObservation(SequenceStatus.OK, got=sequence_number)

        if sequence_number < last:
            return SequenceObservation(SequenceStatus.REGRESSION, got=sequence_number, last=last)
        if sequence_number == last:
            # Numbers only need to be non-decreasing.
            return SequenceObservation(SequenceStatus.OK, got=sequence_number)

        self._last = sequence_number
        expected = last + 1
        if sequence_number != expected:
            return SequenceObservation(SequenceStatus.GAP, got=sequence_number, expected=expected)
        return SequenceObservation(SequenceStatus.OK, got=sequence_number)

    def reset(self) -> None:
        self._last = None


__all__ = ["SequenceGuard", "SequenceObservation", "SequenceStatus"]
