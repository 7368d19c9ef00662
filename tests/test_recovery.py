import pytest
from prometheus_client import CollectorRegistry, Counter, Gauge

from promsink.metrics.recovery import REGISTERED_METRICS, RecoveryState, from_bytes, to_bytes


def test_snapshot_empty_when_family_absent_or_unobserved():
    registry = CollectorRegistry()
    state = RecoveryState(registry, 'orders')
    assert state.snapshot() == {REGISTERED_METRICS: ''}
    Counter('orders', 'orders', ['symbol'], registry=registry)
    assert state.exposition() == ''


def test_snapshot_contains_only_matching_family():
    registry = CollectorRegistry()
    Counter('orders', 'order count', ['symbol'], registry=registry).labels('WSO2').inc(100)
    Gauge('other', 'unrelated', registry=registry).set(1)
    text = RecoveryState(registry, 'orders').snapshot()[REGISTERED_METRICS]
    assert '# HELP orders_total order count' in text
    assert 'orders_total{symbol="WSO2"} 100.0' in text
    assert 'other' not in text


def test_snapshot_matches_name_given_with_total_suffix():
    registry = CollectorRegistry()
    Counter('hits_total', 'hits', registry=registry).inc(2)
    assert 'hits_total 2.0' in RecoveryState(registry, 'hits_total').exposition()


def test_restore_keeps_text_without_touching_registry():
    registry = CollectorRegistry()
    counter = Counter('orders', 'order count', ['symbol'], registry=registry)
    state = RecoveryState(registry, 'orders')
    state.restore({REGISTERED_METRICS: 'orders_total{symbol="WSO2"} 100.0\n'})
    assert state.last_restored == 'orders_total{symbol="WSO2"} 100.0\n'
    assert registry.get_sample_value('orders_total', {'symbol': 'WSO2'}) is None
    counter.labels('WSO2').inc(1)
    assert registry.get_sample_value('orders_total', {'symbol': 'WSO2'}) == 1


@pytest.mark.parametrize('payload', [{}, {REGISTERED_METRICS: ''}, {REGISTERED_METRICS: None}])
def test_restore_ignores_empty_state(payload):
    state = RecoveryState(CollectorRegistry(), 'orders')
    state.restore(payload)
    assert state.last_restored is None


def test_checkpoint_bytes():
    blob = to_bytes({REGISTERED_METRICS: 'x 1.0\n'})
    assert from_bytes(blob) == {REGISTERED_METRICS: 'x 1.0\n'}
    assert from_bytes(b'') == {}
    with pytest.raises(ValueError):
        from_bytes(b'[1, 2]')
