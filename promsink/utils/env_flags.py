"""Environment helpers for PROMSINK_* settings.

Boolean flags use the truthy set {"1","true","yes","on"} (case-insensitive);
string and float lookups treat blank values as unset, so an exported but empty
PROMSINK_PUSH_URL falls back to the next default source.

Usage examples:
    from promsink.utils.env_flags import env_float, is_truthy_env
    verbose = is_truthy_env('PROMSINK_VERBOSE_CONSOLE')
    timeout = env_float('PROMSINK_PUSH_TIMEOUT', 10.0)
"""
from __future__ import annotations

import os

TRUTHY_SET: set[str] = {"1","true","yes","on"}

def is_truthy(value: str | None) -> bool:
    if not value:
        return False
    return value.strip().lower() in TRUTHY_SET

def is_truthy_env(name: str, default: str | None = None) -> bool:
    return is_truthy(os.getenv(name, default or ''))

def env_str(name: str) -> str | None:
    """Return the stripped value of `name`, or None when unset or blank."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return None
    return val.strip()

def env_float(name: str, default: float) -> float:
    val = env_str(name)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default

__all__ = [
    'TRUTHY_SET',
    'is_truthy',
    'is_truthy_env',
    'env_str',
    'env_float',
]
