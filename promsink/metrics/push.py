"""Pushgateway publishing.

Thin wrapper over `prometheus_client.push_to_gateway` (HTTP PUT, replaces
every series under the job/grouping key) and `pushadd_to_gateway` (HTTP POST,
only overwrites the families present in the pushed registry).

Every request carries a bounded timeout (PROMSINK_PUSH_TIMEOUT seconds,
default 10). Transport failures, timeouts and non-2xx replies surface as
`ConnectionUnavailableError`; retry policy belongs to the caller.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from prometheus_client import CollectorRegistry, push_to_gateway, pushadd_to_gateway
from prometheus_client.exposition import default_handler

from ..utils.env_flags import env_float
from ..utils.exceptions import ConnectionUnavailableError
from .server import parse_gateway_url
from .spec import PushGateway, PushOperation

logger = logging.getLogger(__name__)

__all__ = ["PushGatewayPublisher", "parse_grouping_key", "DEFAULT_PUSH_TIMEOUT"]

DEFAULT_PUSH_TIMEOUT = 10.0

_OPERATIONS: dict[PushOperation, Callable[..., None]] = {
    PushOperation.PUSH: push_to_gateway,
    PushOperation.PUSHADD: pushadd_to_gateway,
}


def parse_grouping_key(raw: str) -> dict[str, str]:
    """Parse ``'key1:value1','key2:value2'`` into a dict.

    Surrounding quotes are optional; blank input yields an empty dict.
    Raises ValueError on a pair without ``:`` or with an empty key.
    """
    result: dict[str, str] = {}
    for part in raw.split(','):
        part = part.strip().strip("'\"").strip()
        if not part:
            continue
        key, sep, value = part.partition(':')
        if not sep or not key.strip():
            raise ValueError(f"malformed grouping key entry '{part}' (expected key:value)")
        result[key.strip()] = value.strip()
    return result


class PushGatewayPublisher:
    def __init__(
        self,
        target: PushGateway,
        registry: CollectorRegistry,
        *,
        timeout: float | None = None,
        handler: Callable[..., Any] = default_handler,
    ) -> None:
        self.target = target
        self.registry = registry
        self.timeout = timeout if timeout is not None else env_float('PROMSINK_PUSH_TIMEOUT', DEFAULT_PUSH_TIMEOUT)
        self._handler = handler
        self.pushes = 0

    def connect(self) -> None:
        """Validate the URL and push the current (possibly empty) registry once, in merge mode."""
        parse_gateway_url(self.target.url)
        self._send(PushOperation.PUSHADD)
        logger.info("Connected to pushgateway at %s (job=%s)", self.target.url, self.target.job)

    def publish(self) -> None:
        self._send(self.target.operation)

    def _send(self, operation: PushOperation) -> None:
        push = _OPERATIONS[operation]
        try:
            push(
                self.target.url,
                job=self.target.job,
                registry=self.registry,
                grouping_key=self.target.grouping_key or None,
                timeout=self.timeout,
                handler=self._handler,
            )
        except OSError as e:
            logger.error("Unable to %s metrics to pushgateway at %s: %s", operation.value, self.target.url, e)
            raise ConnectionUnavailableError(
                f"Unable to establish connection to pushgateway at {self.target.url}"
            ) from e
        self.pushes += 1
