"""Sink configuration validation.

Turns a raw option mapping plus the stream schema into `SinkSettings`, or
raises `ConfigError` naming the offending option. Two passes:

  * Structural: jsonschema draft-07 over the option mapping (known keys only,
    string/number values).
  * Semantic: kind/parameter compatibility, literal modes, metric name regex,
    value attribute presence and type, bucket/quantile parsing, label names.

Nothing here touches a registry or the network, and the same input always
fails the same way.

Usage:
    from promsink.config.validation import validate_sink_config
    settings = validate_sink_config({'metric.type': 'counter'}, schema)
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

import jsonschema
from jsonschema.exceptions import best_match

from ..metrics.push import parse_grouping_key
from ..metrics.spec import (
    CounterSpec,
    GaugeSpec,
    HistogramSpec,
    MetricKind,
    MetricSpec,
    PullEndpoint,
    PushGateway,
    PushOperation,
    SinkSettings,
    StreamSchema,
    SummarySpec,
)
from ..utils.exceptions import ConfigError
from .defaults import BUILTIN_DEFAULTS, SinkDefaults

logger = logging.getLogger(__name__)

__all__ = [
    "OPTIONS_SCHEMA",
    "METRIC_NAME_REGEX",
    "validate_options_structure",
    "validate_sink_config",
    "parse_double_list",
]

METRIC_NAME_REGEX = re.compile(r'[a-zA-Z_:][a-zA-Z0-9_:]*')
LABEL_NAME_REGEX = re.compile(r'[a-zA-Z_][a-zA-Z0-9_]*')

JOB = 'job'
PUBLISH_MODE = 'publish.mode'
PUSH_URL = 'push.url'
SERVER_URL = 'server.url'
METRIC_TYPE = 'metric.type'
METRIC_HELP = 'metric.help'
METRIC_NAME = 'metric.name'
BUCKETS = 'buckets'
QUANTILES = 'quantiles'
QUANTILE_ERROR = 'quantile.error'
VALUE_ATTRIBUTE = 'value.attribute'
PUSH_OPERATION = 'push.operation'
GROUPING_KEY = 'grouping.key'
RECORD_ERROR_POLICY = 'record.error.policy'

SERVER_MODE = 'server'
PUSHGATEWAY_MODE = 'pushgateway'
DEFAULT_QUANTILE_ERROR = 0.001
DEFAULT_VALUE_ATTRIBUTE = 'value'
RECORD_ERROR_POLICIES = ('log', 'raise')

_STRING = {"type": "string"}
_NUMBER_LIST = {"type": ["string", "array"], "items": {"type": "number"}}

OPTIONS_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        JOB: _STRING,
        PUBLISH_MODE: _STRING,
        PUSH_URL: _STRING,
        SERVER_URL: _STRING,
        METRIC_TYPE: _STRING,
        METRIC_HELP: _STRING,
        METRIC_NAME: _STRING,
        BUCKETS: _NUMBER_LIST,
        QUANTILES: _NUMBER_LIST,
        QUANTILE_ERROR: {"type": ["string", "number"]},
        VALUE_ATTRIBUTE: _STRING,
        PUSH_OPERATION: _STRING,
        GROUPING_KEY: _STRING,
        RECORD_ERROR_POLICY: _STRING,
    },
    "additionalProperties": False,
}

_VALIDATOR = jsonschema.Draft7Validator(OPTIONS_SCHEMA)


def validate_options_structure(options: Mapping[str, Any]) -> dict[str, Any]:
    """Structural pass; returns a plain dict copy of `options`."""
    cfg = dict(options)
    error = best_match(_VALIDATOR.iter_errors(cfg))
    if error is None:
        return cfg
    if error.validator == 'additionalProperties':
        unknown = sorted(k for k in cfg if k not in OPTIONS_SCHEMA['properties'])
        field = unknown[0] if unknown else None
        raise ConfigError(f"Unknown sink option(s): {unknown}", field=field)
    field = str(error.path[0]) if error.path else None
    raise ConfigError(f"Invalid value for '{field}': {error.message}", field=field)


def parse_double_list(raw: str | Sequence[float], field: str) -> tuple[float, ...]:
    """Parse ``"2,4,6,8"`` (or an already split list) into floats."""
    if isinstance(raw, str):
        parts = [p.strip() for p in raw.split(',')]
        if parts == ['']:
            return ()
    else:
        parts = list(raw)
    values: list[float] = []
    for part in parts:
        try:
            values.append(float(part))
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid number '{part}' in '{field}'", field=field) from None
    return tuple(values)


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return not raw.strip()
    return len(raw) == 0


def _parse_kind(raw: str, stream_id: str) -> MetricKind:
    try:
        return MetricKind(raw.strip().lower())
    except ValueError:
        raise ConfigError(
            f"Metric type '{raw}' is not supported in sink associated with stream '{stream_id}'. "
            "Supported types are counter, gauge, histogram and summary.",
            field=METRIC_TYPE,
        ) from None


def _parse_quantile_error(raw: Any, stream_id: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = float('nan')
    if not 0.0 <= value < 1.0:
        raise ConfigError(
            f"Invalid value for '{QUANTILE_ERROR}' in sink associated with stream '{stream_id}'. "
            "Value must be between 0 and 1",
            field=QUANTILE_ERROR,
        )
    return value


def _check_buckets(buckets: tuple[float, ...]) -> None:
    for b in buckets:
        if not b > 0:
            raise ConfigError(f"Bucket boundaries must be positive, got {b}", field=BUCKETS)
    for lo, hi in zip(buckets, buckets[1:]):
        if not hi > lo:
            raise ConfigError(f"Bucket boundaries must be strictly increasing ({lo} >= {hi})", field=BUCKETS)


def _check_quantiles(quantiles: tuple[float, ...]) -> None:
    for q in quantiles:
        if not 0.0 <= q < 1.0:
            raise ConfigError(f"Quantile {q} is out of range; quantiles must lie in [0, 1)", field=QUANTILES)
    if len(set(quantiles)) != len(quantiles):
        raise ConfigError("Quantiles must not contain duplicates", field=QUANTILES)


def _check_label_names(labels: Sequence[str], kind: MetricKind) -> None:
    reserved = {MetricKind.HISTOGRAM: 'le', MetricKind.SUMMARY: 'quantile'}.get(kind)
    for name in labels:
        if not LABEL_NAME_REGEX.fullmatch(name) or name.startswith('__'):
            raise ConfigError(f"Attribute '{name}' is not a valid label name", field=name)
        if name == reserved:
            raise ConfigError(f"Attribute '{name}' is a reserved label name for {kind.value} metrics", field=name)


def _build_spec(kind: MetricKind, name: str, help_text: str, labels: tuple[str, ...],
                buckets: tuple[float, ...], quantiles: tuple[float, ...], quantile_error: float) -> MetricSpec:
    if kind is MetricKind.COUNTER:
        return CounterSpec(name, help_text, labels)
    if kind is MetricKind.GAUGE:
        return GaugeSpec(name, help_text, labels)
    if kind is MetricKind.HISTOGRAM:
        return HistogramSpec(name, help_text, labels, buckets=buckets)
    return SummarySpec(name, help_text, labels, quantiles=quantiles, quantile_error=quantile_error)


def validate_sink_config(
    options: Mapping[str, Any],
    schema: StreamSchema,
    defaults: SinkDefaults | None = None,
) -> SinkSettings:
    defaults = defaults or BUILTIN_DEFAULTS
    stream_id = schema.stream_id
    cfg = validate_options_structure(options)

    if METRIC_TYPE not in cfg:
        raise ConfigError(
            f"The mandatory field '{METRIC_TYPE}' is not found in sink associated with stream '{stream_id}'",
            field=METRIC_TYPE,
        )
    kind = _parse_kind(cfg[METRIC_TYPE], stream_id)

    job = str(cfg.get(JOB, defaults.job_name)).strip()
    publish_mode = str(cfg.get(PUBLISH_MODE, defaults.publish_mode)).strip()
    push_url = str(cfg.get(PUSH_URL, defaults.push_url)).strip()
    server_url = str(cfg.get(SERVER_URL, defaults.server_url)).strip()
    metric_name = str(cfg.get(METRIC_NAME, stream_id)).strip()
    help_text = str(cfg.get(METRIC_HELP, f"help for {kind.value} {metric_name}")).strip()
    push_operation = str(cfg.get(PUSH_OPERATION, PushOperation.PUSHADD.value)).strip()
    value_attribute = str(cfg.get(VALUE_ATTRIBUTE, DEFAULT_VALUE_ATTRIBUTE)).strip()
    quantile_error = _parse_quantile_error(cfg.get(QUANTILE_ERROR, DEFAULT_QUANTILE_ERROR), stream_id)
    policy = str(cfg.get(RECORD_ERROR_POLICY, RECORD_ERROR_POLICIES[0])).strip().lower()

    if publish_mode.lower() not in (SERVER_MODE, PUSHGATEWAY_MODE):
        raise ConfigError(
            f"Invalid publish mode : {publish_mode} in sink associated with stream '{stream_id}'.",
            field=PUBLISH_MODE,
        )
    if not METRIC_NAME_REGEX.fullmatch(metric_name):
        raise ConfigError(
            f"Metric name '{metric_name}' does not match the regex \"[a-zA-Z_:][a-zA-Z0-9_:]*\" "
            f"in sink associated with stream '{stream_id}'.",
            field=METRIC_NAME,
        )
    try:
        operation = PushOperation(push_operation.lower())
    except ValueError:
        raise ConfigError(
            f"Invalid value for push operation : {push_operation} in sink associated with stream '{stream_id}'.",
            field=PUSH_OPERATION,
        ) from None
    if policy not in RECORD_ERROR_POLICIES:
        raise ConfigError(f"Invalid record error policy '{policy}'; expected one of {RECORD_ERROR_POLICIES}",
                          field=RECORD_ERROR_POLICY)

    try:
        value_type = schema.type_of(value_attribute)
    except KeyError:
        raise ConfigError(
            f"The value attribute '{value_attribute}' is not found in sink associated with stream '{stream_id}'",
            field=VALUE_ATTRIBUTE,
        ) from None
    if not value_type.is_numeric:
        raise ConfigError(
            f"The field value attribute '{value_attribute}' contains unsupported type '{value_type.value}' "
            f"in sink associated with stream '{stream_id}'",
            field=VALUE_ATTRIBUTE,
        )

    raw_buckets = cfg.get(BUCKETS)
    if not _is_blank(raw_buckets) and kind is not MetricKind.HISTOGRAM:
        raise ConfigError(
            f"The buckets field in sink associated with stream '{stream_id}' is not supported "
            f"for metric type '{kind.value}'.",
            field=BUCKETS,
        )
    raw_quantiles = cfg.get(QUANTILES)
    if not _is_blank(raw_quantiles) and kind is not MetricKind.SUMMARY:
        raise ConfigError(
            f"The quantiles field in sink associated with stream '{stream_id}' is not supported "
            f"for metric type '{kind.value}'.",
            field=QUANTILES,
        )
    buckets = parse_double_list(raw_buckets, BUCKETS) if not _is_blank(raw_buckets) else ()
    _check_buckets(buckets)
    quantiles = parse_double_list(raw_quantiles, QUANTILES) if not _is_blank(raw_quantiles) else ()
    _check_quantiles(quantiles)

    labels = tuple(n for n in schema.names if n != value_attribute)
    _check_label_names(labels, kind)

    try:
        grouping_key = parse_grouping_key(str(cfg.get(GROUPING_KEY, defaults.grouping_key)))
    except ValueError as e:
        raise ConfigError(f"{e} in sink associated with stream '{stream_id}'", field=GROUPING_KEY) from e

    if publish_mode.lower() == SERVER_MODE:
        target: PullEndpoint | PushGateway = PullEndpoint(server_url)
    else:
        target = PushGateway(push_url, job, grouping_key, operation)

    spec = _build_spec(kind, metric_name, help_text, labels, buckets, quantiles, quantile_error)
    logger.debug("validated sink for stream %s: %s %s -> %s", stream_id, kind.value, metric_name, target.address)
    return SinkSettings(
        stream_id=stream_id,
        metric=spec,
        target=target,
        value_attribute=value_attribute,
        job=job,
        record_error_policy=policy,
    )
