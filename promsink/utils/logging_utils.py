"""Unified logging setup for the promsink command line driver."""
from __future__ import annotations

import logging
import sys

from .env_flags import env_str, is_truthy_env

DEFAULT_FORMAT = '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s'
# Minimal console format (message only) used for cleaner terminal output.
MINIMAL_CONSOLE_FORMAT = '%(levelname)s %(message)s'

SUPPRESSED_LOGGERS = ['urllib3']

def setup_logging(level: str | None = None, log_file: str | None = None, fmt: str = DEFAULT_FORMAT) -> logging.Logger:
    """Configure root logging.

    Level precedence: explicit `level` argument, then PROMSINK_LOG_LEVEL, then INFO.
    The console uses the minimal format unless PROMSINK_VERBOSE_CONSOLE=1 or a
    custom `fmt` is passed. The optional file handler always uses DEFAULT_FORMAT.
    """
    level_name = level or env_str('PROMSINK_LOG_LEVEL') or 'INFO'
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)
    # Remove existing handlers to avoid duplication on re-init
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()

    if fmt != DEFAULT_FORMAT or is_truthy_env('PROMSINK_VERBOSE_CONSOLE'):
        console_fmt = fmt
    else:
        console_fmt = MINIMAL_CONSOLE_FORMAT

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(console_fmt))
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root.addHandler(file_handler)

    for name in SUPPRESSED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return root

__all__ = ["setup_logging", "DEFAULT_FORMAT", "MINIMAL_CONSOLE_FORMAT"]
