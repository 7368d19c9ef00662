"""Address-keyed collector registry pool.

Sinks configured against the same publish address share one
`CollectorRegistry`, so their metrics are served together by one endpoint (or
pushed together in one payload). Each entry is reference counted:

* `acquire(address)` creates the entry on first use and bumps the count.
* `attach_listener(address, factory)` starts the pull listener once; later
  callers reuse it. `detach_listener` stops it when the last user leaves.
* `release(address)` drops a reference; the last release clears every
  collector from the registry and forgets the entry.

A process-wide pool is available via `default_pool()`; tests inject their own
`RegistryPool` or call `reset_default_pool()`.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from prometheus_client import CollectorRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "PooledRegistry",
    "RegistryPool",
    "clear_registry",
    "default_pool",
    "reset_default_pool",
]


@dataclass
class PooledRegistry:
    address: str
    registry: CollectorRegistry
    refs: int = 0
    listener: Any = None  # MetricsListener; typed loosely to keep server.py import-free here
    listener_users: int = 0


def clear_registry(registry: CollectorRegistry) -> int:
    """Unregister every collector from `registry`; returns how many were removed."""
    collectors = list(registry._collector_to_names)  # type: ignore[attr-defined]
    for collector in collectors:
        try:
            registry.unregister(collector)
        except KeyError:  # concurrently removed
            continue
    return len(collectors)


class RegistryPool:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, PooledRegistry] = {}

    def acquire(self, address: str) -> PooledRegistry:
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                entry = PooledRegistry(address, CollectorRegistry(auto_describe=True))
                self._entries[address] = entry
                logger.debug("registry created for %s", address)
            entry.refs += 1
            return entry

    def get(self, address: str) -> PooledRegistry | None:
        with self._lock:
            return self._entries.get(address)

    def release(self, address: str) -> None:
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                return
            entry.refs -= 1
            if entry.refs > 0:
                return
            del self._entries[address]
        if entry.listener is not None:
            entry.listener.stop()
            entry.listener = None
        removed = clear_registry(entry.registry)
        logger.debug("registry for %s released (%d collectors cleared)", address, removed)

    def attach_listener(self, address: str, factory: Callable[[CollectorRegistry], Any]) -> Any:
        """Return the entry's listener, creating it with `factory(registry)` when absent.

        The factory runs under the pool lock so concurrent connects on one
        address bind exactly once. Factory exceptions propagate unchanged.
        """
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                raise KeyError(address)
            if entry.listener is None:
                entry.listener = factory(entry.registry)
            entry.listener_users += 1
            return entry.listener

    def detach_listener(self, address: str) -> bool:
        """Drop one listener user; returns True when the listener was stopped."""
        with self._lock:
            entry = self._entries.get(address)
            if entry is None or entry.listener is None:
                return False
            entry.listener_users = max(entry.listener_users - 1, 0)
            if entry.listener_users > 0:
                return False
            listener, entry.listener = entry.listener, None
        listener.stop()
        return True

    def addresses(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def close(self) -> None:
        """Stop all listeners and clear all registries (test/shutdown helper)."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            if entry.listener is not None:
                entry.listener.stop()
            clear_registry(entry.registry)


_DEFAULT_POOL = RegistryPool()
_POOL_LOCK = threading.Lock()


def default_pool() -> RegistryPool:
    return _DEFAULT_POOL


def reset_default_pool() -> RegistryPool:
    """Close and replace the process-wide pool. Intended for isolated test scenarios."""
    global _DEFAULT_POOL  # noqa: PLW0603
    with _POOL_LOCK:
        old, _DEFAULT_POOL = _DEFAULT_POOL, RegistryPool()
    old.close()
    return _DEFAULT_POOL
