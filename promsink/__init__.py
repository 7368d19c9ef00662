"""promsink: publish record streams as Prometheus metrics.

Convenience facade:

    from promsink import PrometheusSink, StreamSchema
    schema = StreamSchema.parse('StockStream', 'symbol:string, value:int, price:double')
    sink = PrometheusSink({'metric.type': 'counter', 'server.url': 'http://localhost:9080'}, schema)
"""
from __future__ import annotations

from .metrics.spec import MetricKind, StreamSchema
from .sink import PrometheusSink, SinkState
from .utils.exceptions import (
    ConfigError,
    ConnectionUnavailableError,
    PromSinkException,
    RecordError,
    SinkStateError,
)
from .version import __version__

__all__ = [
    "PrometheusSink",
    "SinkState",
    "StreamSchema",
    "MetricKind",
    "PromSinkException",
    "ConfigError",
    "ConnectionUnavailableError",
    "RecordError",
    "SinkStateError",
    "__version__",
]
