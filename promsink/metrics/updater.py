"""Update Engine: apply one record to the sink's metric.

Label values are read from the record in `label_names` order; the observation
is the value attribute parsed as a float. Per kind:

  counter    inc(value)
  gauge      inc(value)   increment, never set; two records of 100 and 125 give 225
  histogram  observe(value)
  summary    observe(value)

Records are not deduplicated: redelivering a record counts it twice. NaN and
+/-Inf values are refused as record errors.
"""
from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from typing import Any

from ..utils.exceptions import RecordError
from .spec import MetricKind, MetricSpec

__all__ = ["MetricUpdater", "extract_label_values", "extract_value", "label_string"]


def label_string(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def extract_label_values(record: Mapping[str, Any], label_names: Sequence[str]) -> tuple[str, ...]:
    values = []
    for name in label_names:
        try:
            raw = record[name]
        except KeyError:
            raise RecordError(f"record is missing label attribute '{name}'", attribute=name) from None
        values.append(label_string(raw))
    return tuple(values)


def extract_value(record: Mapping[str, Any], value_attribute: str) -> float:
    try:
        raw = record[value_attribute]
    except KeyError:
        raise RecordError(f"record is missing value attribute '{value_attribute}'", attribute=value_attribute) from None
    if isinstance(raw, bool) or raw is None:
        raise RecordError(f"value attribute '{value_attribute}' is not numeric: {raw!r}", attribute=value_attribute)
    try:
        value = float(raw) if isinstance(raw, (int, float)) else float(str(raw).strip())
    except (ValueError, OverflowError):
        raise RecordError(
            f"value attribute '{value_attribute}' is not numeric: {raw!r}", attribute=value_attribute
        ) from None
    # a single NaN or Inf observation sticks to the series forever
    if not math.isfinite(value):
        raise RecordError(f"value attribute '{value_attribute}' is not finite: {raw!r}", attribute=value_attribute)
    return value


class MetricUpdater:
    def __init__(self, spec: MetricSpec, metric: Any, value_attribute: str) -> None:
        self.spec = spec
        self.metric = metric
        self.value_attribute = value_attribute
        if spec.kind in (MetricKind.COUNTER, MetricKind.GAUGE):
            self._method = 'inc'
        else:
            self._method = 'observe'

    def update(self, record: Mapping[str, Any]) -> tuple[tuple[str, ...], float]:
        """Apply `record`; returns the (label values, value) pair that was applied."""
        labels = extract_label_values(record, self.spec.label_names)
        value = extract_value(record, self.value_attribute)
        self.apply(labels, value)
        return labels, value

    def apply(self, labels: tuple[str, ...], value: float) -> None:
        series = self.metric.labels(*labels) if self.spec.label_names else self.metric
        try:
            getattr(series, self._method)(value)
        except ValueError as e:
            # prometheus_client refuses negative counter increments
            raise RecordError(f"{self.spec.kind.value} '{self.spec.name}' rejected value {value}: {e}",
                              attribute=self.value_attribute) from e
