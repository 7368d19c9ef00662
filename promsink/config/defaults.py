"""System-level sink defaults.

Sink options that are not set explicitly fall back to these values, which are
shared by every sink in the process. Resolution order per field:

  1. Environment variable (PROMSINK_JOB_NAME, PROMSINK_PUBLISH_MODE,
     PROMSINK_SERVER_URL, PROMSINK_PUSH_URL, PROMSINK_GROUPING_KEY)
  2. Optional JSON defaults file with keys jobName, publishMode, serverURL,
     pushURL, groupingKey
  3. Built-in constants below
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils.env_flags import env_str
from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = ["SinkDefaults", "load_defaults", "BUILTIN_DEFAULTS"]


@dataclass(frozen=True)
class SinkDefaults:
    job_name: str = "promsinkJob"
    publish_mode: str = "server"
    server_url: str = "http://localhost:9080"
    push_url: str = "http://localhost:9091"
    grouping_key: str = ""


BUILTIN_DEFAULTS = SinkDefaults()

# field -> (env var, defaults-file key)
_SOURCES = {
    'job_name': ('PROMSINK_JOB_NAME', 'jobName'),
    'publish_mode': ('PROMSINK_PUBLISH_MODE', 'publishMode'),
    'server_url': ('PROMSINK_SERVER_URL', 'serverURL'),
    'push_url': ('PROMSINK_PUSH_URL', 'pushURL'),
    'grouping_key': ('PROMSINK_GROUPING_KEY', 'groupingKey'),
}


def _read_file(path: str | os.PathLike[str]) -> dict[str, Any]:
    try:
        with Path(path).open('r', encoding='utf-8') as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read sink defaults file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Sink defaults file {path} must contain a JSON object")
    return data


def load_defaults(path: str | os.PathLike[str] | None = None) -> SinkDefaults:
    file_values = _read_file(path) if path is not None else {}
    resolved: dict[str, str] = {}
    for field_name, (env_name, file_key) in _SOURCES.items():
        val = env_str(env_name)
        if val is None and file_key in file_values:
            val = str(file_values[file_key]).strip()
        if val is not None:
            resolved[field_name] = val
    if resolved:
        logger.debug("sink defaults overridden: %s", sorted(resolved))
    return SinkDefaults(**resolved)
