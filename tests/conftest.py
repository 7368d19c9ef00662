"""Pytest configuration & shared fixtures for promsink.

Responsibilities:
1. Ensure project root on sys.path.
2. Isolate the process-wide registry pool between tests (autouse).
3. Provide free-port, schema and fake Pushgateway handler fixtures.
"""
from __future__ import annotations

import contextlib
import socket
import sys
import warnings
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from promsink.metrics.registry_pool import RegistryPool, reset_default_pool  # noqa: E402
from promsink.metrics.spec import StreamSchema  # noqa: E402

# Silence noisy ResourceWarnings from listener sockets closed at shutdown
warnings.simplefilter("ignore", ResourceWarning)


def _find_free_port() -> int:
    with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture()
def free_port() -> int:
    return _find_free_port()


@pytest.fixture()
def pool():
    p = RegistryPool()
    yield p
    p.close()


@pytest.fixture(autouse=True)
def _default_pool_isolation():
    yield
    reset_default_pool()


@pytest.fixture()
def stock_schema() -> StreamSchema:
    return StreamSchema.parse('StockStream', 'symbol:string, value:int, price:double')


class FakePushHandler:
    """Stand-in for prometheus_client's push handler; records requests instead of sending them."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.error: BaseException | None = None

    def __call__(self, url, method, timeout, headers, data):
        def _handle():
            if self.error is not None:
                raise self.error
            self.calls.append({
                'url': url,
                'method': method,
                'timeout': timeout,
                'headers': headers,
                'body': data.decode('utf-8'),
            })
        return _handle

    @property
    def methods(self) -> list[str]:
        return [c['method'] for c in self.calls]


@pytest.fixture()
def push_handler() -> FakePushHandler:
    return FakePushHandler()
