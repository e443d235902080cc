"""
Trifle CLI: query and push metrics, manage transponders, serve MCP.

Usage:
    trifle metrics get|keys|aggregate|timeline|category|push [options]
    trifle transponders list|create|update [options]
    trifle mcp [options]
    trifle version

Every backend command accepts --url (or TRIFLE_URL), --token (or
TRIFLE_TOKEN) and --timeout (default 30s).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from trifle.core import serialization
from trifle.core.config import ClientConfig, LoggingConfig, parse_duration
from trifle.mcp import FrameDecodeError, ServerIdentity, serve_stdio
from trifle.mcp.definitions import AGGREGATORS
from trifle.mcp.protocol import DomainError
from trifle.mcp.utils import (
    format_timestamp, resolve_granularity, resolve_time_range, summarize_keys,
    utc_now, validate_timestamp,
)
from trifle.output import OUTPUT_FORMATS, Table, print_csv, print_json, print_table, print_table_or_json
from trifle.sdk import TrifleClient, TrifleError, query_data
from trifle.version import __version__

logger = logging.getLogger("Trifle.cli")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class UsageError(Exception):
    """Raised for missing or inconsistent command-line arguments."""


# ─────────────────────────────────────────────────────────────────────────────
# Connection / token resolution
# ─────────────────────────────────────────────────────────────────────────────

def _client_config(args: argparse.Namespace) -> ClientConfig:
    """Flags win over TRIFLE_URL / TRIFLE_TOKEN / TRIFLE_TIMEOUT."""
    config = ClientConfig.from_env()
    if args.url:
        config.base_url = args.url.strip()
    if args.token:
        config.token = args.token.strip()
    if args.timeout is not None:
        config.timeout = args.timeout
    return config


def _prompt_token() -> str:
    sys.stderr.write("Trifle token: ")
    sys.stderr.flush()
    line = sys.stdin.readline()
    if not line:
        raise UsageError("read token: unexpected end of input")
    return line.strip()


def ensure_token(config: ClientConfig, *, allow_prompt: bool) -> None:
    if config.token:
        return
    if not allow_prompt:
        raise UsageError("missing token: set --token or TRIFLE_TOKEN")
    config.token = _prompt_token()
    if not config.token:
        raise UsageError("token is required")


def make_client(config: ClientConfig) -> TrifleClient:
    return TrifleClient(config.base_url, token=config.token, timeout=config.timeout)


def _connect(args: argparse.Namespace, *, allow_prompt: bool = True) -> TrifleClient:
    config = _client_config(args)
    ensure_token(config, allow_prompt=allow_prompt)
    return make_client(config)


def load_json_payload(raw_json: Optional[str], file_path: Optional[Path]) -> Any:
    """Parse a JSON payload from a flag or a file; blank input gives None."""
    if file_path is not None:
        try:
            raw_json = Path(file_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise UsageError(f"read payload file: {exc}") from exc

    if not raw_json or not raw_json.strip():
        return None
    try:
        return serialization.loads(raw_json)
    except ValueError as exc:
        raise UsageError(f"parse JSON payload: {exc}") from exc


def _load_object_payload(args: argparse.Namespace) -> dict:
    payload = load_json_payload(args.payload, args.payload_file)
    if payload is None:
        raise UsageError("--payload or --payload-file is required")
    if not isinstance(payload, dict):
        raise UsageError("payload must be a JSON object")
    return payload


# ─────────────────────────────────────────────────────────────────────────────
# metrics
# ─────────────────────────────────────────────────────────────────────────────

def cmd_metrics_get(args: argparse.Namespace) -> int:
    from_value, to_value = resolve_time_range(args.from_, args.to)
    client = _connect(args)
    params = {
        "from": from_value,
        "to": to_value,
        "granularity": resolve_granularity(client, args.granularity or ""),
    }
    if args.key:
        params["key"] = args.key
    print_json(client.get_metrics(params))
    return 0


def cmd_metrics_keys(args: argparse.Namespace) -> int:
    from_value, to_value = resolve_time_range(args.from_, args.to)
    client = _connect(args)
    granularity = resolve_granularity(client, args.granularity or "")
    response = client.get_metrics({"from": from_value, "to": to_value, "granularity": granularity})

    data = response.get("data") if isinstance(response, dict) else None
    entries = summarize_keys(data.get("values") if isinstance(data, dict) else None)
    if args.format in ("table", "csv"):
        table = Table(columns=["metric_key", "observations"])
        table.rows = [[entry["metric_key"], str(entry["observations"])] for entry in entries]
        if args.format == "table":
            print_table(table)
        else:
            print_csv(table)
        return 0

    print_json({
        "status": "ok",
        "timeframe": {"from": from_value, "to": to_value, "granularity": granularity},
        "paths": entries,
        "total_paths": len(entries),
    })
    return 0


def _run_query(args: argparse.Namespace, mode: str) -> int:
    from_value, to_value = resolve_time_range(args.from_, args.to)
    client = _connect(args)
    payload = {
        "mode": mode,
        "key": args.key,
        "value_path": args.value_path,
        "from": from_value,
        "to": to_value,
        "granularity": resolve_granularity(client, args.granularity or ""),
        "slices": args.slices,
    }
    if mode == "aggregate":
        payload["aggregator"] = args.aggregator
    print_table_or_json(query_data(client, payload), args.format)
    return 0


def cmd_metrics_aggregate(args: argparse.Namespace) -> int:
    if not args.key or not args.value_path or not args.aggregator:
        raise UsageError("--key, --value-path, and --aggregator are required")
    return _run_query(args, "aggregate")


def cmd_metrics_timeline(args: argparse.Namespace) -> int:
    if not args.key or not args.value_path:
        raise UsageError("--key and --value-path are required")
    return _run_query(args, "timeline")


def cmd_metrics_category(args: argparse.Namespace) -> int:
    if not args.key or not args.value_path:
        raise UsageError("--key and --value-path are required")
    return _run_query(args, "category")


def cmd_metrics_push(args: argparse.Namespace) -> int:
    if not args.key:
        raise UsageError("--key is required")
    values = load_json_payload(args.values, args.values_file)
    if values is None:
        raise UsageError("--values or --values-file is required")

    at = (args.at or "").strip()
    if not at:
        at = format_timestamp(utc_now())
    else:
        validate_timestamp("at", at)

    client = _connect(args)
    print_json(client.post_metrics({"key": args.key, "at": at, "values": values}))
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# transponders
# ─────────────────────────────────────────────────────────────────────────────

def cmd_transponders_list(args: argparse.Namespace) -> int:
    client = _connect(args)
    print_json(client.get_transponders())
    return 0


def cmd_transponders_create(args: argparse.Namespace) -> int:
    payload = _load_object_payload(args)
    client = _connect(args)
    print_json(client.create_transponder(payload))
    return 0


def cmd_transponders_update(args: argparse.Namespace) -> int:
    if not args.id:
        raise UsageError("--id is required")
    payload = _load_object_payload(args)
    client = _connect(args)
    print_json(client.update_transponder(args.id, payload))
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# mcp / version
# ─────────────────────────────────────────────────────────────────────────────

def cmd_mcp(args: argparse.Namespace) -> int:
    client = _connect(args, allow_prompt=False)
    identity = ServerIdentity(version=__version__)
    logger.info("Starting MCP session against %s", client.base_url)
    try:
        serve_stdio(client, identity)
    finally:
        client.close()
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(__version__)
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Parser
# ─────────────────────────────────────────────────────────────────────────────

def _duration(raw: str) -> float:
    try:
        return parse_duration(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _common_parent() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--url", default=None, metavar="URL", help="Trifle base URL (or TRIFLE_URL).")
    parent.add_argument("--token", default=None, metavar="TOKEN", help="API token (or TRIFLE_TOKEN).")
    parent.add_argument(
        "--timeout",
        type=_duration,
        default=None,
        metavar="DURATION",
        help="HTTP timeout, e.g. 30s or 1m (or TRIFLE_TIMEOUT; default 30s).",
    )
    return parent


def _add_window_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="from_", default="", metavar="TS", help="RFC3339 start timestamp.")
    parser.add_argument("--to", default="", metavar="TS", help="RFC3339 end timestamp.")
    parser.add_argument("--granularity", default="", help="Granularity (e.g. 1h, 1d).")


def _add_format_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        type=str.lower,
        choices=OUTPUT_FORMATS,
        default="json",
        help="Output format: json|table|csv.",
    )


def _add_query_flags(parser: argparse.ArgumentParser, *, with_aggregator: bool) -> None:
    parser.add_argument("--key", default="", help="Metrics key.")
    parser.add_argument("--value-path", dest="value_path", default="", help="Value path.")
    if with_aggregator:
        parser.add_argument("--aggregator", type=str.lower, choices=AGGREGATORS, default=None, help="Aggregator.")
    _add_window_flags(parser)
    parser.add_argument("--slices", type=int, default=1, help="Optional number of slices.")
    _add_format_flag(parser)


def _add_payload_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--payload", default=None, help="JSON payload for transponder.")
    parser.add_argument("--payload-file", dest="payload_file", type=Path, default=None, metavar="PATH",
                        help="Path to JSON file for payload.")


def build_parser() -> argparse.ArgumentParser:
    common = _common_parent()
    parser = argparse.ArgumentParser(
        prog="trifle",
        description="Trifle analytics from the command line and over MCP.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Run 'trifle <command> --help' for details.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    metrics = commands.add_parser("metrics", help="Query or push metrics.")
    metric_commands = metrics.add_subparsers(dest="metrics_command", required=True)

    get = metric_commands.add_parser("get", parents=[common], help="Fetch raw timeseries data.")
    get.add_argument("--key", default="", help="Metrics key (optional).")
    _add_window_flags(get)
    get.set_defaults(handler=cmd_metrics_get)

    keys = metric_commands.add_parser("keys", parents=[common], help="List available metric keys.")
    _add_window_flags(keys)
    _add_format_flag(keys)
    keys.set_defaults(handler=cmd_metrics_keys)

    aggregate = metric_commands.add_parser("aggregate", parents=[common], help="Aggregate a metric series.")
    _add_query_flags(aggregate, with_aggregator=True)
    aggregate.set_defaults(handler=cmd_metrics_aggregate)

    timeline = metric_commands.add_parser("timeline", parents=[common], help="Format a metric timeline.")
    _add_query_flags(timeline, with_aggregator=False)
    timeline.set_defaults(handler=cmd_metrics_timeline)

    category = metric_commands.add_parser("category", parents=[common], help="Format a metric category breakdown.")
    _add_query_flags(category, with_aggregator=False)
    category.set_defaults(handler=cmd_metrics_category)

    push = metric_commands.add_parser("push", parents=[common], help="Submit a metric payload.")
    push.add_argument("--key", default="", help="Metrics key.")
    push.add_argument("--at", default="", help="RFC3339 timestamp (default: now).")
    push.add_argument("--values", default=None, help="Values payload as JSON.")
    push.add_argument("--values-file", dest="values_file", type=Path, default=None, metavar="PATH",
                      help="Path to JSON file with values payload.")
    push.set_defaults(handler=cmd_metrics_push)

    transponders = commands.add_parser("transponders", help="Manage transponders.")
    transponder_commands = transponders.add_subparsers(dest="transponders_command", required=True)

    listing = transponder_commands.add_parser("list", parents=[common], help="List transponders.")
    listing.set_defaults(handler=cmd_transponders_list)

    create = transponder_commands.add_parser("create", parents=[common], help="Create a transponder.")
    _add_payload_flags(create)
    create.set_defaults(handler=cmd_transponders_create)

    update = transponder_commands.add_parser("update", parents=[common], help="Update a transponder.")
    update.add_argument("--id", default="", help="Transponder ID.")
    _add_payload_flags(update)
    update.set_defaults(handler=cmd_transponders_update)

    mcp = commands.add_parser("mcp", parents=[common], help="MCP server mode (JSON-RPC over stdio).")
    mcp.set_defaults(handler=cmd_mcp)

    version = commands.add_parser("version", help="Print version.")
    version.set_defaults(handler=cmd_version)
    return parser


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Log to stderr; stdout carries command output and the MCP protocol."""
    config = config or LoggingConfig.from_env()
    logging.basicConfig(level=config.numeric_level, format=LOG_FORMAT, stream=sys.stderr)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        return args.handler(args)
    except (UsageError, DomainError, TrifleError, ValueError, FrameDecodeError) as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
