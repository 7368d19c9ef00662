"""Labeled summary collector with quantile estimates.

`prometheus_client.Summary` only exposes ``_count`` and ``_sum``. This
collector keeps the same child/labels interface but also feeds a
`TimeWindowQuantiles` estimator per series and emits one
``{quantile="q"}`` sample per configured quantile.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Sequence

from prometheus_client.core import Metric
from prometheus_client.registry import CollectorRegistry
from prometheus_client.utils import floatToGoString

from .quantiles import TimeWindowQuantiles

__all__ = ["QuantileSummary"]

DEFAULT_MAX_AGE_SECONDS = 600.0
DEFAULT_AGE_BUCKETS = 5


class _SummaryChild:
    __slots__ = ("_lock", "_count", "_sum", "_estimator")

    def __init__(self, estimator: TimeWindowQuantiles | None) -> None:
        self._lock = threading.Lock()
        self._count = 0.0
        self._sum = 0.0
        self._estimator = estimator

    def observe(self, amount: float) -> None:
        with self._lock:
            self._count += 1
            self._sum += amount
            if self._estimator is not None:
                self._estimator.insert(amount)

    def _read(self, quantiles: Sequence[float]) -> tuple[float, float, list[tuple[float, float]]]:
        with self._lock:
            estimates = []
            if self._estimator is not None:
                estimates = [(q, self._estimator.get(q)) for q in quantiles]
            return self._count, self._sum, estimates


class QuantileSummary:
    """Summary metric family with optional quantiles.

    Parameters
    ----------
    quantiles : sequence of float
        Targets in [0, 1). Empty -> count and sum only.
    error : float
        Shared rank error tolerance for every quantile.
    registry : CollectorRegistry | None
        Registered immediately when given (duplicate names raise ValueError).
    """

    def __init__(
        self,
        name: str,
        documentation: str,
        labelnames: Iterable[str] = (),
        *,
        quantiles: Sequence[float] = (),
        error: float = 0.001,
        registry: CollectorRegistry | None = None,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        age_buckets: int = DEFAULT_AGE_BUCKETS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._name = name
        self._documentation = documentation
        self._labelnames = tuple(labelnames)
        self._quantiles = tuple(quantiles)
        self._error = error
        self._max_age_seconds = max_age_seconds
        self._age_buckets = age_buckets
        self._clock = clock
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], _SummaryChild] = {}
        if registry is not None:
            registry.register(self)

    def _new_child(self) -> _SummaryChild:
        estimator = None
        if self._quantiles:
            estimator = TimeWindowQuantiles(
                [(q, self._error) for q in self._quantiles],
                max_age_seconds=self._max_age_seconds,
                age_buckets=self._age_buckets,
                clock=self._clock,
            )
        return _SummaryChild(estimator)

    def labels(self, *labelvalues: str) -> _SummaryChild:
        if len(labelvalues) != len(self._labelnames):
            raise ValueError(f"Incorrect label count (expected {len(self._labelnames)}, got {labelvalues})")
        key = tuple(str(v) for v in labelvalues)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._new_child()
                self._children[key] = child
            return child

    def observe(self, amount: float) -> None:
        if self._labelnames:
            raise ValueError(f"summary {self._name} has labels; use labels(...).observe()")
        self.labels().observe(amount)

    def remove(self, *labelvalues: str) -> None:
        with self._lock:
            self._children.pop(tuple(str(v) for v in labelvalues), None)

    def clear(self) -> None:
        with self._lock:
            self._children.clear()

    def describe(self) -> list[Metric]:
        return [Metric(self._name, self._documentation, 'summary')]

    def collect(self) -> list[Metric]:
        family = Metric(self._name, self._documentation, 'summary')
        with self._lock:
            children = list(self._children.items())
        for labelvalues, child in children:
            labels = dict(zip(self._labelnames, labelvalues))
            count, total, estimates = child._read(self._quantiles)
            for q, value in estimates:
                family.add_sample(self._name, dict(labels, quantile=floatToGoString(q)), value)
            family.add_sample(self._name + '_count', labels, count)
            family.add_sample(self._name + '_sum', labels, total)
        return [family]
