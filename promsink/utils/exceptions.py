"""promsink exception hierarchy.

A small exception tree separating the three failure categories a host has to
treat differently:

* ConfigError: fatal, raised while the sink is being initialized.
* ConnectionUnavailableError: transient; the host may retry with its own policy.
* RecordError: scoped to a single record; other records are unaffected.
"""
from __future__ import annotations


class PromSinkException(Exception):
    """Base class for all promsink exceptions."""


class ConfigError(PromSinkException):
    """Malformed or contradictory sink configuration.

    `field` names the offending option key (or schema attribute) when known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ConnectionUnavailableError(PromSinkException):
    """Listener bind failure, unreachable gateway or failed push request."""


class RecordError(PromSinkException):
    """A record could not be turned into a metric update."""

    def __init__(self, message: str, attribute: str | None = None) -> None:
        super().__init__(message)
        self.attribute = attribute


class SinkStateError(PromSinkException):
    """Operation not allowed in the sink's current lifecycle state."""


__all__ = [
    "PromSinkException",
    "ConfigError",
    "ConnectionUnavailableError",
    "RecordError",
    "SinkStateError",
]
