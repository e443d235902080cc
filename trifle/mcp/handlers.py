import time
import logging
from typing import Any, Callable, Dict, Union
from urllib.parse import parse_qs, unquote, urlsplit

from trifle.sdk import TrifleClient, TrifleError, query_data

from .definitions import AGGREGATORS, RESOURCE_SCHEME, SYSTEM_KEY
from .protocol import DomainError, ToolResult, resource_contents
from .utils import (
    format_timestamp, get_string_arg, resolve_granularity, resolve_time_range,
    summarize_keys, utc_now
)

logger = logging.getLogger("Trifle.mcp.handlers")

ToolHandler = Callable[[TrifleClient, Dict[str, Any]], Any]


def _timeframe(args: Dict[str, Any], client: TrifleClient) -> Dict[str, str]:
    from_value, to_value = resolve_time_range(get_string_arg(args, "from"), get_string_arg(args, "to"))
    granularity = resolve_granularity(client, get_string_arg(args, "granularity"))
    return {"from": from_value, "to": to_value, "granularity": granularity}


def _series_values(response: Any) -> Any:
    data = response.get("data") if isinstance(response, dict) else None
    if not isinstance(data, dict):
        return []
    return data.get("values") or []


def _require(args: Dict[str, Any], name: str) -> str:
    value = get_string_arg(args, name).strip()
    if not value:
        raise DomainError(f"{name} is required")
    return value


def _do_list_metrics(client: TrifleClient, args: Dict[str, Any]) -> Dict[str, Any]:
    timeframe = _timeframe(args, client)
    response = client.get_metrics(dict(timeframe))
    entries = summarize_keys(_series_values(response))
    return {
        "status": "ok",
        "timeframe": timeframe,
        "paths": entries,
        "total_paths": len(entries),
    }


def _do_fetch_series(client: TrifleClient, args: Dict[str, Any]) -> Dict[str, Any]:
    timeframe = _timeframe(args, client)
    params = dict(timeframe)
    key = get_string_arg(args, "key").strip()
    if key:
        params["key"] = key

    response = client.get_metrics(params)
    data = response.get("data") if isinstance(response, dict) else None
    return {
        "status": "ok",
        "metric_key": key or SYSTEM_KEY,
        "timeframe": timeframe,
        "data": data,
    }


def _query(mode: str) -> ToolHandler:
    def handler(client: TrifleClient, args: Dict[str, Any]) -> Dict[str, Any]:
        key = _require(args, "key")
        value_path = _require(args, "value_path")
        aggregator = None
        if mode == "aggregate":
            aggregator = _require(args, "aggregator").lower()
            if aggregator not in AGGREGATORS:
                raise DomainError(f"aggregator must be one of {', '.join(AGGREGATORS)}")

        timeframe = _timeframe(args, client)
        payload: Dict[str, Any] = {
            "mode": mode,
            "key": key,
            "value_path": value_path,
            **timeframe,
        }
        if aggregator is not None:
            payload["aggregator"] = aggregator
        if "slices" in args:
            payload["slices"] = args["slices"]
        return query_data(client, payload)

    handler.__name__ = f"_do_{mode}"
    return handler


def _do_write_metric(client: TrifleClient, args: Dict[str, Any]) -> Any:
    key = _require(args, "key")
    if "values" not in args:
        raise DomainError("values is required")

    # An explicit timestamp is forwarded unchanged.
    at = get_string_arg(args, "at").strip()
    if not at:
        at = format_timestamp(utc_now())

    payload = {"key": key, "at": at, "values": args["values"]}
    return client.post_metrics(payload)


def _do_list_transponders(client: TrifleClient, args: Dict[str, Any]) -> Any:
    return client.get_transponders()


TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "list_metrics": _do_list_metrics,
    "fetch_series": _do_fetch_series,
    "aggregate_series": _query("aggregate"),
    "format_timeline": _query("timeline"),
    "format_category": _query("category"),
    "write_metric": _do_write_metric,
    "list_transponders": _do_list_transponders,
}


def execute_tool(client: TrifleClient, name: str, arguments: Dict[str, Any]) -> ToolResult:
    """Run one tool. Failures come back as error content, never as exceptions."""
    started = time.monotonic()
    outcome = "success"
    try:
        handler = TOOL_HANDLERS.get(name)
        if handler is None:
            raise DomainError(f"unknown tool: {name}")
        return ToolResult.from_json(handler(client, arguments))
    except (DomainError, TrifleError, ValueError) as exc:
        outcome = "error"
        logger.warning("Tool '%s' failed: %s", name, exc)
        return ToolResult.from_error(exc)
    except Exception as exc:
        outcome = "error"
        logger.exception("Tool execution failed: %s", name)
        return ToolResult.from_error(exc)
    finally:
        logger.info(
            "Tool call telemetry: name=%s outcome=%s elapsed_ms=%.1f",
            name, outcome, (time.monotonic() - started) * 1000.0,
        )


def _first_query_value(query: Dict[str, Any], name: str) -> str:
    values = query.get(name)
    return values[0] if values else ""


def _read_metrics_resource(client: TrifleClient, path: str, query: Dict[str, Any]) -> Dict[str, Any]:
    key = unquote(path[1:] if path.startswith("/") else path)
    args: Dict[str, Any] = {
        "from": _first_query_value(query, "from"),
        "to": _first_query_value(query, "to"),
        "granularity": _first_query_value(query, "granularity"),
    }
    if key:
        args["key"] = key
        return _do_fetch_series(client, args)
    return _do_list_metrics(client, args)


def _read_resource_payload(client: TrifleClient, uri: str) -> Any:
    parsed = urlsplit(uri)
    if parsed.scheme != RESOURCE_SCHEME:
        raise DomainError(f"unsupported scheme: {parsed.scheme}")

    authority = parsed.netloc
    if authority == "source":
        return client.get_source()
    if authority == "transponders":
        return client.get_transponders()
    if authority == "metrics":
        return _read_metrics_resource(client, parsed.path, parse_qs(parsed.query))
    raise DomainError(f"unknown resource: {authority}")


def read_resource(client: TrifleClient, uri: str) -> Union[Dict[str, Any], ToolResult]:
    """Read a ``trifle://`` resource; failures come back as error content."""
    try:
        payload = _read_resource_payload(client, uri)
    except Exception as exc:
        logger.warning("Resource read failed for %s: %s", uri, exc)
        return ToolResult.from_error(exc)
    return resource_contents(uri, payload)
