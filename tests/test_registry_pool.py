import pytest
from prometheus_client import Gauge

from promsink.metrics.registry_pool import RegistryPool, clear_registry, default_pool, reset_default_pool


class _StubListener:
    def __init__(self, registry):
        self.registry = registry
        self.stopped = 0

    def stop(self):
        self.stopped += 1


def test_acquire_shares_registry_per_address(pool):
    a = pool.acquire('http://localhost:9080')
    b = pool.acquire('http://localhost:9080')
    c = pool.acquire('http://localhost:9081')
    assert a is b
    assert a.registry is b.registry
    assert c.registry is not a.registry
    assert a.refs == 2
    assert pool.addresses() == ['http://localhost:9080', 'http://localhost:9081']


def test_last_release_clears_registry(pool):
    entry = pool.acquire('addr')
    pool.acquire('addr')
    Gauge('g', 'g', registry=entry.registry).set(1)
    pool.release('addr')
    assert pool.get('addr') is entry
    assert entry.registry.get_sample_value('g') == 1
    pool.release('addr')
    assert pool.get('addr') is None
    assert entry.registry.get_sample_value('g') is None


def test_release_unknown_address_is_noop(pool):
    pool.release('nowhere')
    assert pool.addresses() == []


def test_listener_started_once_and_stopped_by_last_user(pool):
    pool.acquire('addr')
    created = []

    def factory(registry):
        listener = _StubListener(registry)
        created.append(listener)
        return listener

    first = pool.attach_listener('addr', factory)
    second = pool.attach_listener('addr', factory)
    assert first is second
    assert len(created) == 1
    assert pool.detach_listener('addr') is False
    assert first.stopped == 0
    assert pool.detach_listener('addr') is True
    assert first.stopped == 1
    assert pool.detach_listener('addr') is False


def test_attach_requires_acquired_entry(pool):
    with pytest.raises(KeyError):
        pool.attach_listener('missing', _StubListener)


def test_factory_failure_leaves_no_listener(pool):
    pool.acquire('addr')

    def broken(registry):
        raise RuntimeError('bind failed')

    with pytest.raises(RuntimeError):
        pool.attach_listener('addr', broken)
    assert pool.get('addr').listener is None
    assert pool.get('addr').listener_users == 0


def test_release_stops_listener(pool):
    pool.acquire('addr')
    listener = pool.attach_listener('addr', _StubListener)
    pool.release('addr')
    assert listener.stopped == 1


def test_clear_registry_counts_collectors(pool):
    registry = pool.acquire('addr').registry
    Gauge('a', 'a', registry=registry)
    Gauge('b', 'b', registry=registry)
    assert clear_registry(registry) == 2
    assert list(registry.collect()) == []


def test_reset_default_pool_closes_old():
    old = default_pool()
    entry = old.acquire('x')
    listener = old.attach_listener('x', _StubListener)
    new = reset_default_pool()
    assert new is default_pool()
    assert new is not old
    assert listener.stopped == 1
    assert old.addresses() == []
    assert list(entry.registry.collect()) == []
