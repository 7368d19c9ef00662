import math
import random

import pytest
from prometheus_client import CollectorRegistry

from promsink.metrics.quantiles import CKMSQuantiles, TimeWindowQuantiles
from promsink.metrics.summary import QuantileSummary


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_empty_estimator_returns_nan():
    est = CKMSQuantiles([(0.5, 0.01)])
    assert math.isnan(est.get(0.5))
    assert est.count == 0


def test_zero_error_is_exact():
    est = CKMSQuantiles([(0.5, 0.0), (0.9, 0.0)])
    for v in range(1, 101):
        est.insert(float(v))
    assert est.get(0.5) == 50.0
    assert est.get(0.9) == 90.0
    assert est.count == 100


def test_estimates_within_rank_error():
    rng = random.Random(42)
    values = [rng.uniform(0, 1000) for _ in range(5000)]
    targets = [(0.5, 0.01), (0.9, 0.005), (0.99, 0.001)]
    est = CKMSQuantiles(targets)
    for v in values:
        est.insert(v)
    ordered = sorted(values)
    n = len(ordered)
    for q, err in targets:
        got = est.get(q)
        rank = ordered.index(got)
        assert abs(rank - q * n) <= 3 * err * n + 2, (q, rank)


def test_compression_keeps_sample_count_bounded():
    est = CKMSQuantiles([(0.5, 0.05)])
    for v in range(10000):
        est.insert(float(v))
    est.get(0.5)
    assert len(est._samples) < 1000


def test_time_window_rotates_out_old_observations():
    clock = _Clock()
    win = TimeWindowQuantiles([(0.5, 0.0)], max_age_seconds=10, age_buckets=2, clock=clock)
    for _ in range(10):
        win.insert(100.0)
    assert win.get(0.5) == 100.0
    clock.now = 6.0
    for _ in range(10):
        win.insert(1.0)
    clock.now = 11.0
    # the bucket now read was reset after the 100s were observed
    assert win.get(0.5) == 1.0
    clock.now = 40.0
    assert math.isnan(win.get(0.5))


def test_quantile_summary_exposes_quantile_samples():
    registry = CollectorRegistry()
    summary = QuantileSummary('latency', 'request latency', ['route'], quantiles=(0.5, 0.9), error=0.0,
                              registry=registry)
    for v in range(1, 11):
        summary.labels('/a').observe(float(v))
    assert registry.get_sample_value('latency_count', {'route': '/a'}) == 10.0
    assert registry.get_sample_value('latency_sum', {'route': '/a'}) == 55.0
    assert registry.get_sample_value('latency', {'route': '/a', 'quantile': '0.5'}) == 5.0
    assert registry.get_sample_value('latency', {'route': '/a', 'quantile': '0.9'}) == 9.0


def test_quantile_summary_without_quantiles_has_count_and_sum_only():
    registry = CollectorRegistry()
    summary = QuantileSummary('plain', 'no quantiles', registry=registry)
    summary.observe(2.5)
    summary.observe(0.5)
    assert registry.get_sample_value('plain_count') == 2.0
    assert registry.get_sample_value('plain_sum') == 3.0
    names = {s.name for fam in registry.collect() for s in fam.samples}
    assert names == {'plain_count', 'plain_sum'}


def test_quantile_summary_label_count_checked():
    summary = QuantileSummary('x', 'x', ['a', 'b'])
    with pytest.raises(ValueError):
        summary.labels('only-one')


def test_quantile_summary_duplicate_registration_rejected():
    registry = CollectorRegistry()
    QuantileSummary('dup', 'first', registry=registry)
    with pytest.raises(ValueError):
        QuantileSummary('dup', 'second', registry=registry)


def test_quantile_summary_clear_and_remove():
    registry = CollectorRegistry()
    summary = QuantileSummary('cl', 'clear', ['k'], registry=registry)
    summary.labels('a').observe(1)
    summary.labels('b').observe(1)
    summary.remove('a')
    assert registry.get_sample_value('cl_count', {'k': 'a'}) is None
    assert registry.get_sample_value('cl_count', {'k': 'b'}) == 1.0
    summary.clear()
    assert registry.get_sample_value('cl_count', {'k': 'b'}) is None
