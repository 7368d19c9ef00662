import pytest
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from promsink.metrics.builder import DEFAULT_BUCKETS, MetricBuilder, build_metric
from promsink.metrics.spec import CounterSpec, GaugeSpec, HistogramSpec, SummarySpec
from promsink.metrics.summary import QuantileSummary
from promsink.utils.exceptions import ConfigError


def _family(registry, name):
    for fam in registry.collect():
        if fam.name == name:
            return fam
    return None


@pytest.mark.parametrize('spec,cls,typ', [
    (CounterSpec('orders', 'order count', ('symbol',)), Counter, 'counter'),
    (GaugeSpec('stock', 'stock level', ('symbol',)), Gauge, 'gauge'),
    (HistogramSpec('size', 'order size', ('symbol',), buckets=(1.0, 5.0)), Histogram, 'histogram'),
    (SummarySpec('lat', 'latency', ('symbol',), quantiles=(0.5,)), QuantileSummary, 'summary'),
])
def test_build_each_kind(spec, cls, typ):
    registry = CollectorRegistry()
    metric = build_metric(spec, registry)
    assert isinstance(metric, cls)
    metric.labels('WSO2')
    fam = _family(registry, spec.name)
    assert fam is not None
    assert fam.type == typ
    assert fam.documentation == spec.help


def test_build_does_not_create_series_until_first_record():
    registry = CollectorRegistry()
    build_metric(CounterSpec('lazy', 'lazy', ('symbol',)), registry)
    assert _family(registry, 'lazy').samples == []


def test_histogram_custom_buckets():
    registry = CollectorRegistry()
    hist = build_metric(HistogramSpec('h', 'h', (), buckets=(2.0, 4.0)), registry)
    hist.observe(3)
    assert registry.get_sample_value('h_bucket', {'le': '2.0'}) == 0.0
    assert registry.get_sample_value('h_bucket', {'le': '4.0'}) == 1.0
    assert registry.get_sample_value('h_bucket', {'le': '+Inf'}) == 1.0


def test_histogram_default_ladder():
    registry = CollectorRegistry()
    hist = build_metric(HistogramSpec('hd', 'hd'), registry)
    hist.observe(0.2)
    les = {s.labels['le'] for s in _family(registry, 'hd').samples if s.name == 'hd_bucket'}
    assert len(les) == len(DEFAULT_BUCKETS) + 1
    assert '+Inf' in les


def test_duplicate_name_on_same_registry_is_config_error():
    registry = CollectorRegistry()
    build_metric(GaugeSpec('dup', 'first'), registry)
    with pytest.raises(ConfigError) as ei:
        build_metric(CounterSpec('dup', 'second'), registry)
    assert ei.value.field == 'metric.name'
    # the first registration is untouched
    assert _family(registry, 'dup').type == 'gauge'


def test_same_name_on_different_registries_is_fine():
    build_metric(GaugeSpec('shared', 'x'), CollectorRegistry())
    build_metric(GaugeSpec('shared', 'x'), CollectorRegistry())


def test_builder_unregister_removes_family():
    registry = CollectorRegistry()
    builder = MetricBuilder(CounterSpec('gone', 'gone', ('symbol',)), registry)
    metric = builder.build()
    assert builder.build() is metric
    metric.labels('IBM').inc(3)
    builder.unregister()
    assert registry.get_sample_value('gone_total', {'symbol': 'IBM'}) is None
    assert builder.metric is None
    # name is free again
    build_metric(CounterSpec('gone', 'again'), registry)


def test_builder_unregister_unlabeled_and_twice():
    registry = CollectorRegistry()
    builder = MetricBuilder(GaugeSpec('solo', 'solo'), registry)
    builder.build().inc(1)
    builder.unregister()
    builder.unregister()
    assert registry.get_sample_value('solo') is None
