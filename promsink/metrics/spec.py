"""Declarative metric specification layer.

Immutable descriptors produced by the configuration validator and consumed by
the builder and update engine. The metric descriptor is a tagged variant:
bucket boundaries exist only on `HistogramSpec` and quantiles only on
`SummarySpec`, so a counter with buckets cannot be expressed at all.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from .server import endpoint_key

__all__ = [
    "AttributeType",
    "Attribute",
    "StreamSchema",
    "MetricKind",
    "CounterSpec",
    "GaugeSpec",
    "HistogramSpec",
    "SummarySpec",
    "MetricSpec",
    "PushOperation",
    "PullEndpoint",
    "PushGateway",
    "PublishTarget",
    "SinkSettings",
]


class AttributeType(Enum):
    STRING = "string"
    INT = "int"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    BOOL = "bool"
    OBJECT = "object"

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_TYPES

    @classmethod
    def parse(cls, raw: str) -> AttributeType:
        key = raw.strip().lower()
        try:
            return _TYPE_ALIASES[key]
        except KeyError:
            raise ValueError(f"unknown attribute type '{raw}'") from None


_NUMERIC_TYPES = frozenset({AttributeType.INT, AttributeType.LONG, AttributeType.FLOAT, AttributeType.DOUBLE})

_TYPE_ALIASES = {t.value: t for t in AttributeType}
_TYPE_ALIASES.update({"integer": AttributeType.INT, "boolean": AttributeType.BOOL, "str": AttributeType.STRING})


@dataclass(frozen=True)
class Attribute:
    name: str
    type: AttributeType


@dataclass(frozen=True)
class StreamSchema:
    """Ordered attribute list of the stream feeding one sink."""

    stream_id: str
    attributes: tuple[Attribute, ...]

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.attributes]

    def type_of(self, name: str) -> AttributeType:
        for attr in self.attributes:
            if attr.name == name:
                return attr.type
        raise KeyError(name)

    @classmethod
    def parse(cls, stream_id: str, definition: str) -> StreamSchema:
        """Build a schema from ``"symbol:string, value:int, price:double"``."""
        attrs: list[Attribute] = []
        for part in definition.split(','):
            part = part.strip()
            if not part:
                continue
            name, sep, type_name = part.partition(':')
            if not sep or not name.strip():
                raise ValueError(f"malformed attribute definition '{part}' (expected name:type)")
            attrs.append(Attribute(name.strip(), AttributeType.parse(type_name)))
        return cls(stream_id, tuple(attrs))


class MetricKind(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"


@dataclass(frozen=True)
class _BaseSpec:
    name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class CounterSpec(_BaseSpec):
    kind = MetricKind.COUNTER


@dataclass(frozen=True)
class GaugeSpec(_BaseSpec):
    kind = MetricKind.GAUGE


@dataclass(frozen=True)
class HistogramSpec(_BaseSpec):
    kind = MetricKind.HISTOGRAM
    buckets: tuple[float, ...] = ()  # empty -> client default ladder


@dataclass(frozen=True)
class SummarySpec(_BaseSpec):
    kind = MetricKind.SUMMARY
    quantiles: tuple[float, ...] = ()
    quantile_error: float = 0.001


MetricSpec = Union[CounterSpec, GaugeSpec, HistogramSpec, SummarySpec]


class PushOperation(Enum):
    PUSH = "push"        # replace everything under job/grouping key
    PUSHADD = "pushadd"  # merge: only series present locally are overwritten


@dataclass(frozen=True)
class PullEndpoint:
    url: str

    @property
    def address(self) -> str:
        # http://h:1 and http://h:1/metrics share one registry
        return endpoint_key(self.url)


@dataclass(frozen=True)
class PushGateway:
    url: str
    job: str
    grouping_key: dict[str, str] = field(default_factory=dict, hash=False)
    operation: PushOperation = PushOperation.PUSHADD

    @property
    def address(self) -> str:
        return self.url


PublishTarget = Union[PullEndpoint, PushGateway]


@dataclass(frozen=True)
class SinkSettings:
    """Validated configuration for one sink instance."""

    stream_id: str
    metric: MetricSpec
    target: PublishTarget
    value_attribute: str
    job: str
    record_error_policy: str = "log"

    @property
    def label_names(self) -> Sequence[str]:
        return self.metric.label_names
