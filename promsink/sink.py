"""Prometheus sink lifecycle.

`PrometheusSink` publishes records as updates to one Prometheus metric and
exposes it through a pull listener (``server`` mode) or a Pushgateway
(``pushgateway`` mode). The host drives it through explicit lifecycle calls:

    sink = PrometheusSink(options, schema)   # validate + build, no I/O
    sink.connect()                           # bind listener / first push
    sink.publish({'symbol': 'WSO2', 'value': 100, 'price': 78.8})
    state = sink.snapshot()                  # checkpoint
    sink.disconnect()
    sink.destroy()

States: CREATED -> CONNECTED <-> DISCONNECTED, any -> DESTROYED.

Error categories (see utils.exceptions):
  ConfigError                 from the constructor only; nothing is registered
  ConnectionUnavailableError  from connect() and push-mode publish(); retryable
  RecordError                 one record; logged and dropped (policy 'log') or raised
  SinkStateError              lifecycle misuse, e.g. publish after destroy
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from prometheus_client import CollectorRegistry
from prometheus_client.exposition import default_handler

from .config.defaults import SinkDefaults
from .config.validation import validate_sink_config
from .metrics.builder import MetricBuilder
from .metrics.push import PushGatewayPublisher
from .metrics.recovery import RecoveryState
from .metrics.registry_pool import PooledRegistry, RegistryPool, default_pool
from .metrics.server import MetricsListener, parse_address
from .metrics.spec import PullEndpoint, PushGateway, SinkSettings, StreamSchema
from .metrics.updater import MetricUpdater
from .utils.exceptions import RecordError, SinkStateError

logger = logging.getLogger(__name__)

__all__ = ["PrometheusSink", "SinkState"]


class SinkState(Enum):
    CREATED = "created"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DESTROYED = "destroyed"


class PrometheusSink:
    def __init__(
        self,
        options: Mapping[str, Any],
        schema: StreamSchema,
        *,
        pool: RegistryPool | None = None,
        defaults: SinkDefaults | None = None,
        push_handler: Callable[..., Any] = default_handler,
        push_timeout: float | None = None,
    ) -> None:
        self.settings: SinkSettings = validate_sink_config(options, schema, defaults)
        self._pool = pool if pool is not None else default_pool()
        self._address = self.settings.target.address
        self._entry: PooledRegistry = self._pool.acquire(self._address)
        self._builder = MetricBuilder(self.settings.metric, self._entry.registry)
        try:
            metric = self._builder.build()
        except Exception:
            self._pool.release(self._address)
            raise
        self._updater = MetricUpdater(self.settings.metric, metric, self.settings.value_attribute)
        self._recovery = RecoveryState(self._entry.registry, self.settings.metric.name)
        self._push_handler = push_handler
        self._push_timeout = push_timeout
        self._publisher: PushGatewayPublisher | None = None
        self._listener: MetricsListener | None = None
        self._lock = threading.RLock()
        self._state = SinkState.CREATED
        self.dropped_records = 0

    # -- introspection -------------------------------------------------
    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def stream_id(self) -> str:
        return self.settings.stream_id

    @property
    def registry(self) -> CollectorRegistry:
        return self._entry.registry

    @property
    def metric(self) -> Any:
        return self._builder.metric

    @property
    def listen_port(self) -> int | None:
        """Port actually bound by the shared listener (pull mode, connected only)."""
        if self._listener is None or not self._listener.bound:
            return None
        return self._listener.server_port

    @property
    def last_restored(self) -> str | None:
        return self._recovery.last_restored

    # -- lifecycle -----------------------------------------------------
    def connect(self) -> None:
        with self._lock:
            self._require_alive('connect')
            if self._state is SinkState.CONNECTED:
                return
            target = self.settings.target
            if isinstance(target, PullEndpoint):
                self._connect_pull(target)
            else:
                self._connect_push(target)
            self._state = SinkState.CONNECTED

    def _connect_pull(self, target: PullEndpoint) -> None:
        host, port = parse_address(target.url)

        def _factory(registry: CollectorRegistry) -> MetricsListener:
            return MetricsListener(registry, host, port).start()

        self._listener = self._pool.attach_listener(self._address, _factory)
        logger.info("%s has successfully connected at %s", self.stream_id, target.url)

    def _connect_push(self, target: PushGateway) -> None:
        publisher = PushGatewayPublisher(
            target, self._entry.registry, timeout=self._push_timeout, handler=self._push_handler
        )
        publisher.connect()
        self._publisher = publisher
        logger.info("%s has successfully connected to pushgateway at %s", self.stream_id, target.url)

    def publish(self, record: Mapping[str, Any]) -> bool:
        """Apply one record; returns False when the record was dropped.

        In push mode the registry is pushed after every applied record; a
        failed push raises ConnectionUnavailableError (the local update stays
        applied).
        """
        with self._lock:
            self._require_alive('publish')
            try:
                self._updater.update(record)
            except RecordError as e:
                if self.settings.record_error_policy == 'raise':
                    raise
                self.dropped_records += 1
                logger.warning("Dropping record for stream %s: %s", self.stream_id, e)
                return False
            if self._publisher is not None and self._state is SinkState.CONNECTED:
                self._publisher.publish()
            return True

    def disconnect(self) -> None:
        with self._lock:
            if self._state is not SinkState.CONNECTED:
                return
            if self._listener is not None:
                if self._pool.detach_listener(self._address):
                    logger.info("Server successfully stopped at %s", self.settings.target.url)
                self._listener = None
            self._publisher = None
            self._state = SinkState.DISCONNECTED

    def destroy(self) -> None:
        """Drop this sink's series and registry reference. Irreversible."""
        with self._lock:
            if self._state is SinkState.DESTROYED:
                return
            self.disconnect()
            self._builder.unregister()
            self._pool.release(self._address)
            self._state = SinkState.DESTROYED
            logger.debug("sink for stream %s destroyed", self.stream_id)

    # -- checkpointing ---------------------------------------------------
    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return self._recovery.snapshot()

    def restore(self, state: Mapping[str, Any]) -> None:
        with self._lock:
            self._recovery.restore(state)

    def _require_alive(self, operation: str) -> None:
        if self._state is SinkState.DESTROYED:
            raise SinkStateError(f"cannot {operation}: sink for stream '{self.stream_id}' is destroyed")

    def __repr__(self) -> str:  # pragma: no cover - debug aid
        m = self.settings.metric
        return f"PrometheusSink(stream={self.stream_id!r}, {m.kind.value} {m.name!r}, state={self._state.value})"
