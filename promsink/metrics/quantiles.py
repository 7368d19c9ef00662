"""Streaming quantile estimation for summary metrics.

`CKMSQuantiles` implements the targeted-quantile variant of the
Cormode-Korn-Muthukrishnan-Srivastava algorithm ("Effective Computation of
Biased Quantiles over Data Streams", ICDE 2005). Each target is a
``(quantile, error)`` pair; the estimate returned for quantile ``q`` has a rank
within ``error * n`` of the true rank. An error of 0 keeps every observation
and yields exact results.

`TimeWindowQuantiles` rotates a ring of estimators so that quantiles describe
roughly the last ``max_age_seconds`` of observations instead of the whole
process lifetime.

Neither class is thread-safe; callers serialize access (see summary.py).
"""
from __future__ import annotations

import math
import time
from collections.abc import Callable, Sequence

__all__ = ["CKMSQuantiles", "TimeWindowQuantiles"]

BUFFER_SIZE = 500


class _Item:
    __slots__ = ("value", "g", "delta")

    def __init__(self, value: float, g: int, delta: int) -> None:
        self.value = value
        self.g = g          # rank difference to the previous item
        self.delta = delta  # rank uncertainty of this item


class CKMSQuantiles:
    def __init__(self, targets: Sequence[tuple[float, float]], buffer_size: int = BUFFER_SIZE) -> None:
        self._targets = tuple(targets)
        self._buffer_size = buffer_size
        self._buffer: list[float] = []
        self._samples: list[_Item] = []
        self._count = 0

    @property
    def count(self) -> int:
        return self._count + len(self._buffer)

    def insert(self, value: float) -> None:
        self._buffer.append(value)
        if len(self._buffer) >= self._buffer_size:
            self._flush()

    def get(self, q: float) -> float:
        """Return the estimate for quantile `q`, NaN when nothing was observed."""
        self._flush()
        samples = self._samples
        if not samples:
            return math.nan
        desired = int(q * self._count)
        bound = desired + self._allowable_error(desired) / 2
        rank_min = 0
        prev = samples[0]
        for cur in samples[1:]:
            rank_min += prev.g
            if rank_min + cur.g + cur.delta > bound:
                return prev.value
            prev = cur
        return samples[-1].value

    def _allowable_error(self, rank: int) -> float:
        n = self._count
        min_error = float(n + 1)
        for q, err in self._targets:
            if rank <= q * n:
                error = 2.0 * err * (n - rank) / (1.0 - q)
            elif q == 0.0:
                error = math.inf
            else:
                error = 2.0 * err * rank / q
            if error < min_error:
                min_error = error
        return min_error

    def _flush(self) -> None:
        if self._buffer:
            self._insert_batch()
            self._compress()

    def _insert_batch(self) -> None:
        batch = sorted(self._buffer)
        self._buffer.clear()
        samples = self._samples
        idx = 0
        for v in batch:
            while idx < len(samples) and samples[idx].value <= v:
                idx += 1
            if idx == 0 or idx == len(samples):
                delta = 0
            else:
                delta = max(int(math.floor(self._allowable_error(idx))) - 1, 0)
            samples.insert(idx, _Item(v, 1, delta))
            self._count += 1
            idx += 1

    def _compress(self) -> None:
        samples = self._samples
        i = 0
        while i < len(samples) - 1:
            prev, nxt = samples[i], samples[i + 1]
            if prev.g + nxt.g + nxt.delta <= self._allowable_error(i + 1):
                nxt.g += prev.g
                del samples[i]
            else:
                i += 1


class TimeWindowQuantiles:
    """Sliding-window wrapper: `age_buckets` estimators, one rotated out per period."""

    def __init__(
        self,
        targets: Sequence[tuple[float, float]],
        max_age_seconds: float = 600.0,
        age_buckets: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if age_buckets < 1:
            raise ValueError("age_buckets must be >= 1")
        self._targets = tuple(targets)
        self._clock = clock
        self._ring = [CKMSQuantiles(self._targets) for _ in range(age_buckets)]
        self._current = 0
        self._rotate_every = max_age_seconds / age_buckets
        self._last_rotate = clock()

    def insert(self, value: float) -> None:
        self._rotate()
        for estimator in self._ring:
            estimator.insert(value)

    def get(self, q: float) -> float:
        return self._rotate().get(q)

    def _rotate(self) -> CKMSQuantiles:
        elapsed = self._clock() - self._last_rotate
        while elapsed > self._rotate_every:
            self._ring[self._current] = CKMSQuantiles(self._targets)
            self._current = (self._current + 1) % len(self._ring)
            elapsed -= self._rotate_every
            self._last_rotate += self._rotate_every
        return self._ring[self._current]
