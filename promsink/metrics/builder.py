"""Metric Registry Builder.

Turns one validated `MetricSpec` into a live collector attached to a
`CollectorRegistry`. Construction is purely in-memory: no sockets, no pushes.

Kind dispatch follows the descriptor table pattern (`_TYPE_MAP`): counters
and gauges only need name/help/labels, histograms add bucket boundaries
(client default ladder when none are configured), summaries use the
project's `QuantileSummary` so quantiles can be exposed.
"""
from __future__ import annotations

import logging
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from ..utils.exceptions import ConfigError
from .spec import CounterSpec, GaugeSpec, HistogramSpec, MetricKind, MetricSpec, SummarySpec
from .summary import QuantileSummary

logger = logging.getLogger(__name__)

__all__ = ["MetricBuilder", "DEFAULT_BUCKETS", "build_metric"]

DEFAULT_BUCKETS: tuple[float, ...] = tuple(b for b in Histogram.DEFAULT_BUCKETS if b != float('inf'))


def _build_counter(spec: CounterSpec, registry: CollectorRegistry) -> Counter:
    return Counter(spec.name, spec.help, list(spec.label_names), registry=registry)


def _build_gauge(spec: GaugeSpec, registry: CollectorRegistry) -> Gauge:
    return Gauge(spec.name, spec.help, list(spec.label_names), registry=registry)


def _build_histogram(spec: HistogramSpec, registry: CollectorRegistry) -> Histogram:
    buckets = spec.buckets or DEFAULT_BUCKETS
    return Histogram(spec.name, spec.help, list(spec.label_names), registry=registry, buckets=list(buckets))


def _build_summary(spec: SummarySpec, registry: CollectorRegistry) -> QuantileSummary:
    return QuantileSummary(
        spec.name,
        spec.help,
        spec.label_names,
        quantiles=spec.quantiles,
        error=spec.quantile_error,
        registry=registry,
    )


_TYPE_MAP = {
    MetricKind.COUNTER: _build_counter,
    MetricKind.GAUGE: _build_gauge,
    MetricKind.HISTOGRAM: _build_histogram,
    MetricKind.SUMMARY: _build_summary,
}


def build_metric(spec: MetricSpec, registry: CollectorRegistry) -> Any:
    """Construct and register the collector for `spec`.

    A name already present on `registry` raises ConfigError (field
    ``metric.name``); the registry is left unchanged in that case.
    """
    ctor = _TYPE_MAP[spec.kind]
    try:
        metric = ctor(spec, registry)  # type: ignore[arg-type]
    except ValueError as e:
        raise ConfigError(
            f"Unable to register metric '{spec.name}': {e}", field='metric.name'
        ) from e
    logger.debug("registered %s metric %s labels=%s", spec.kind.value, spec.name, list(spec.label_names))
    return metric


class MetricBuilder:
    """Owns the collector built for one sink and its registration on the registry."""

    def __init__(self, spec: MetricSpec, registry: CollectorRegistry) -> None:
        self.spec = spec
        self.registry = registry
        self.metric: Any = None

    def build(self) -> Any:
        if self.metric is None:
            self.metric = build_metric(self.spec, self.registry)
        return self.metric

    def unregister(self) -> None:
        """Clear every series of the metric and detach it from the registry."""
        metric, self.metric = self.metric, None
        if metric is None:
            return
        if self.spec.label_names:
            metric.clear()
        try:
            self.registry.unregister(metric)
        except KeyError:
            # registry already cleared by its pool
            logger.debug("metric %s was not registered", self.spec.name)
