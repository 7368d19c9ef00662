import contextlib
import socket

import pytest
from prometheus_client import CollectorRegistry, Gauge

from promsink.metrics.server import MetricsListener, endpoint_key, parse_address, parse_gateway_url
from promsink.utils.exceptions import ConnectionUnavailableError
from tests._helpers import scrape


@pytest.mark.parametrize('url,expected', [
    ('http://localhost:9080', ('localhost', 9080)),
    ('http://127.0.0.1:1', ('127.0.0.1', 1)),
    ('https://metrics.example.com:443/path', ('metrics.example.com', 443)),
])
def test_parse_address(url, expected):
    assert parse_address(url) == expected


@pytest.mark.parametrize('url', ['localhost:9080', 'http://localhost', 'ftp://host:21', 'http://:9080',
                                 'http://host:notaport', 'not a url'])
def test_parse_address_rejects_malformed(url):
    with pytest.raises(ConnectionUnavailableError) as ei:
        parse_address(url)
    assert 'Error in URL format' in str(ei.value)


@pytest.mark.parametrize('url', ['http://localhost:9080', 'http://localhost:9080/', 'http://localhost:9080/metrics'])
def test_endpoint_key_ignores_path(url):
    assert endpoint_key(url) == 'localhost:9080'


def test_endpoint_key_keeps_unparsable_url():
    assert endpoint_key('localhost-9080') == 'localhost-9080'


def test_parse_gateway_url_port_optional():
    assert parse_gateway_url('https://pushgateway.example.com') == 'https://pushgateway.example.com'
    with pytest.raises(ConnectionUnavailableError):
        parse_gateway_url('pushgateway.example.com')


def test_listener_serves_registry(free_port):
    registry = CollectorRegistry()
    Gauge('served_value', 'served', registry=registry).set(42)
    listener = MetricsListener(registry, '127.0.0.1', free_port).start()
    try:
        assert listener.bound
        assert listener.server_port == free_port
        body = scrape(free_port)
        assert 'served_value 42.0' in body
        # any path renders the registry
        assert 'served_value 42.0' in scrape(free_port, '/')
    finally:
        listener.stop()
    assert not listener.bound
    with pytest.raises(OSError):
        scrape(free_port)


def test_listener_port_zero_reports_bound_port():
    listener = MetricsListener(CollectorRegistry(), '127.0.0.1', 0).start()
    try:
        assert listener.server_port > 0
    finally:
        listener.stop()


def test_address_in_use_is_tolerated(free_port):
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as blocker:
        blocker.bind(('127.0.0.1', free_port))
        blocker.listen(1)
        listener = MetricsListener(CollectorRegistry(), '127.0.0.1', free_port).start()
        assert listener.bound is False
        listener.stop()  # no-op


def test_unbindable_address_raises():
    # TEST-NET-3 address, never assigned to a local interface
    listener = MetricsListener(CollectorRegistry(), '203.0.113.1', 19080)
    with pytest.raises(ConnectionUnavailableError):
        listener.start()
    assert listener.bound is False
