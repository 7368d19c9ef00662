"""Pull-mode metrics listener.

Binds `prometheus_client.start_http_server` to a registry so every scrape of
``http://host:port/`` (any path) renders the registry's live state.

Public API:
  parse_address(url) -> (host, port)
  parse_gateway_url(url) -> url   (Pushgateway URLs, port optional)
  endpoint_key(url) -> "host:port" (registry sharing key for pull URLs)
  MetricsListener(registry, host, port).start() / .stop()

Bind conflicts: when the address is already in use (another process, or a
listener not owned by this pool) the conflict is tolerated and logged; the
listener reports `bound == False` and `stop()` becomes a no-op. Any other
socket error surfaces as `ConnectionUnavailableError`.
"""
from __future__ import annotations

import errno
import logging
import threading
from urllib.parse import urlsplit

from prometheus_client import CollectorRegistry, start_http_server

from ..utils.exceptions import ConnectionUnavailableError

logger = logging.getLogger(__name__)

__all__ = ["MetricsListener", "endpoint_key", "parse_address", "parse_gateway_url"]

_ADDR_IN_USE = {errno.EADDRINUSE, getattr(errno, 'WSAEADDRINUSE', errno.EADDRINUSE)}


def parse_address(url: str) -> tuple[str, int]:
    """Split an ``http://host:port`` URL; raises ConnectionUnavailableError when malformed."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise ConnectionUnavailableError(f"Error in URL format '{url}': {e}") from e
    if parts.scheme not in ('http', 'https') or not parts.hostname or port is None:
        raise ConnectionUnavailableError(f"Error in URL format '{url}': expected http://host:port")
    return parts.hostname, port


def parse_gateway_url(url: str) -> str:
    """Check a Pushgateway URL (scheme and host; port optional) and return it unchanged."""
    try:
        parts = urlsplit(url)
        parts.port  # ValueError on a non-numeric port
    except ValueError as e:
        raise ConnectionUnavailableError(f"Error in URL format '{url}': {e}") from e
    if parts.scheme not in ('http', 'https') or not parts.hostname:
        raise ConnectionUnavailableError(f"Error in URL format '{url}': expected http(s)://host[:port]")
    return url


def endpoint_key(url: str) -> str:
    """Registry sharing key for a pull URL: ``host:port`` when parsable, else the raw URL."""
    try:
        host, port = parse_address(url)
    except ConnectionUnavailableError:
        return url
    return f"{host}:{port}"


class MetricsListener:
    def __init__(self, registry: CollectorRegistry, host: str, port: int) -> None:
        self.registry = registry
        self.host = host
        self.port = port
        self._server = None
        self._thread: threading.Thread | None = None
        self._bound_port: int | None = None
        self.bound = False

    @property
    def server_port(self) -> int:
        """Actual bound port (differs from `port` when 0 was requested)."""
        return self._bound_port if self._bound_port is not None else self.port

    def start(self) -> MetricsListener:
        try:
            self._server, self._thread = start_http_server(self.port, addr=self.host, registry=self.registry)
        except OSError as e:
            if e.errno in _ADDR_IN_USE:
                logger.warning("Address %s:%s already in use; assuming it is served elsewhere", self.host, self.port)
                return self
            logger.error("Unable to start metrics listener at %s:%s: %s", self.host, self.port, e)
            raise ConnectionUnavailableError(f"Unable to start metrics listener at {self.host}:{self.port}") from e
        self.bound = True
        self._bound_port = int(self._server.server_port)
        logger.info("Metrics server started on %s:%s", self.host, self.server_port)
        return self

    def stop(self) -> None:
        if self._server is None:
            return
        server, self._server = self._server, None
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        self.bound = False
        logger.info("Metrics server stopped at %s:%s", self.host, self.port)
