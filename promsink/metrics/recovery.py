"""Checkpoint helpers for a sink's metric family.

A snapshot is the text exposition of the one family whose name matches the
sink's configured metric name, stored under ``registered_metrics``. Restoring
keeps that text for inspection only: accumulated values are never written
back into live collectors, so after a restart the registry reflects only what
was observed since start. Exactly-once totals across restarts depend on the
upstream source replaying unacknowledged records.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from prometheus_client import CollectorRegistry, generate_latest

logger = logging.getLogger(__name__)

__all__ = ["RecoveryState", "REGISTERED_METRICS", "to_bytes", "from_bytes"]

REGISTERED_METRICS = "registered_metrics"


class _FamilyView:
    """Minimal collector exposing a pre-collected family to generate_latest."""

    def __init__(self, family: Any) -> None:
        self._family = family

    def collect(self):
        return [self._family]


def _family_names(metric_name: str) -> set[str]:
    names = {metric_name}
    if metric_name.endswith('_total'):
        names.add(metric_name[:-len('_total')])
    return names


class RecoveryState:
    def __init__(self, registry: CollectorRegistry, metric_name: str) -> None:
        self.registry = registry
        self.metric_name = metric_name
        self.last_restored: str | None = None

    def exposition(self) -> str:
        """Text exposition of the matching family, '' when absent or without series."""
        wanted = _family_names(self.metric_name)
        for family in self.registry.collect():
            if family.name in wanted:
                if not family.samples:
                    return ""
                return generate_latest(_FamilyView(family)).decode('utf-8')  # type: ignore[arg-type]
        return ""

    def snapshot(self) -> dict[str, str]:
        return {REGISTERED_METRICS: self.exposition()}

    def restore(self, state: Mapping[str, Any]) -> None:
        text = state.get(REGISTERED_METRICS) or ""
        if text:
            self.last_restored = str(text)
            logger.info("restored last known exposition for %s (%d bytes)", self.metric_name, len(self.last_restored))


def to_bytes(state: Mapping[str, Any]) -> bytes:
    return json.dumps(dict(state), sort_keys=True).encode('utf-8')


def from_bytes(blob: bytes) -> dict[str, Any]:
    if not blob:
        return {}
    data = json.loads(blob.decode('utf-8'))
    if not isinstance(data, dict):
        raise ValueError("checkpoint payload is not a mapping")
    return data
