"""Command line driver: feed JSON-lines records into one sink.

Usage:
    python -m promsink --config sink.json --schema "symbol:string,value:int,price:double" \
        --stream StockStream < records.jsonl

`sink.json` holds the sink options (``{"metric.type": "counter", ...}``). Each
input line is one JSON object keyed by attribute name. A `.env` file in the
working directory is loaded first so PROMSINK_* defaults can live there.

Exit Codes:
  0 success
  2 configuration error
  3 connection error
  4 record error (only with record.error.policy=raise)
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import IO, Any

from dotenv import load_dotenv

from .config.defaults import load_defaults
from .metrics.recovery import from_bytes, to_bytes
from .metrics.spec import StreamSchema
from .sink import PrometheusSink
from .utils.exceptions import ConfigError, ConnectionUnavailableError, RecordError
from .utils.logging_utils import setup_logging
from .version import get_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_CONNECTION = 3
EXIT_RECORD = 4


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="promsink", description="Publish JSON-lines records as a Prometheus metric")
    p.add_argument("--config", required=True, help="Sink options JSON path")
    p.add_argument("--schema", required=True, help="Attribute list, e.g. 'symbol:string,value:int'")
    p.add_argument("--stream", default="Stream", help="Stream id (default metric name)")
    p.add_argument("--input", default="-", help="JSON-lines input path ('-' = stdin)")
    p.add_argument("--defaults", default=None, help="Optional sink defaults JSON path")
    p.add_argument("--checkpoint", default=None, help="Checkpoint file restored at start and written at exit")
    p.add_argument("--linger", type=float, default=0.0,
                   help="Seconds to keep serving after input is exhausted (pull mode)")
    p.add_argument("--log-level", default=None, help="Logging level (default PROMSINK_LOG_LEVEL or INFO)")
    p.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    return p.parse_args(argv)


def _load_options(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Unable to read sink options {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Sink options file {path} must contain a JSON object")
    return data


def _iter_records(stream: IO[str]):
    for lineno, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Skipping line %d: invalid JSON (%s)", lineno, e)
            continue
        if not isinstance(record, dict):
            logger.warning("Skipping line %d: expected a JSON object", lineno)
            continue
        yield record


def _restore_checkpoint(sink: PrometheusSink, path: Path) -> None:
    if path.exists():
        sink.restore(from_bytes(path.read_bytes()))


def run(args: argparse.Namespace, stdin: IO[str]) -> int:
    try:
        schema = StreamSchema.parse(args.stream, args.schema)
    except ValueError as e:
        logger.error("Invalid schema: %s", e)
        return EXIT_CONFIG
    try:
        options = _load_options(args.config)
        defaults = load_defaults(args.defaults)
        sink = PrometheusSink(options, schema, defaults=defaults)
    except ConfigError as e:
        logger.error("Configuration error%s: %s", f" ({e.field})" if e.field else "", e)
        return EXIT_CONFIG

    checkpoint = Path(args.checkpoint) if args.checkpoint else None
    if checkpoint is not None:
        try:
            _restore_checkpoint(sink, checkpoint)
        except (OSError, ValueError) as e:
            logger.error("Unable to restore checkpoint %s: %s", checkpoint, e)
            sink.destroy()
            return EXIT_CONFIG

    rc = EXIT_OK
    published = 0
    try:
        sink.connect()
        source = stdin if args.input == '-' else open(args.input, encoding='utf-8')
        try:
            for record in _iter_records(source):
                if sink.publish(record):
                    published += 1
        finally:
            if source is not stdin:
                source.close()
        logger.info("Published %d record(s), dropped %d", published, sink.dropped_records)
        if args.linger > 0:
            time.sleep(args.linger)
    except ConnectionUnavailableError as e:
        logger.error("Connection error: %s", e)
        rc = EXIT_CONNECTION
    except RecordError as e:
        logger.error("Record error: %s", e)
        rc = EXIT_RECORD
    except OSError as e:
        logger.error("Unable to read input %s: %s", args.input, e)
        rc = EXIT_CONFIG
    finally:
        if checkpoint is not None:
            checkpoint.write_bytes(to_bytes(sink.snapshot()))
        sink.disconnect()
        sink.destroy()
    return rc


def main(argv: list[str] | None = None, stdin: IO[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    load_dotenv()
    setup_logging(args.log_level)
    return run(args, stdin if stdin is not None else sys.stdin)


__all__ = ["main", "run", "parse_args"]
