"""
Configuration module for promsink sinks.
"""
from .defaults import SinkDefaults, load_defaults
from .validation import validate_sink_config

__all__ = ["SinkDefaults", "load_defaults", "validate_sink_config"]
