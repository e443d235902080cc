import copy
from typing import List, Dict, Any, Tuple

RESOURCE_SCHEME = "trifle"
SYSTEM_KEY = "__system__key__"
AGGREGATORS = ("sum", "mean", "min", "max")

_WINDOW_PROPERTIES: Dict[str, Any] = {
    "from": {"type": "string", "description": "RFC3339 start timestamp (default: 24 hours ago)."},
    "to": {"type": "string", "description": "RFC3339 end timestamp (default: now)."},
    "granularity": {"type": "string", "description": "Granularity such as 15m, 1h or 1d (default: source default)."},
}

_SLICES_PROPERTY: Dict[str, Any] = {
    "type": "integer",
    "minimum": 1,
    "description": "Optional number of slices to split the timeframe into.",
}

TOOLS_SCHEMAS: Tuple[Dict[str, Any], ...] = (
    {
        "name": "list_metrics",
        "description": "List available metric keys from the system series.",
        "inputSchema": {
            "type": "object",
            "properties": {**_WINDOW_PROPERTIES},
        },
    },
    {
        "name": "fetch_series",
        "description": "Fetch raw series data for a metric key.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "key": {"type": "string", "description": "Metric key (default: the system series)."},
                **_WINDOW_PROPERTIES,
            },
        },
    },
    {
        "name": "aggregate_series",
        "description": "Aggregate a metric series (sum, mean, min, max).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "value_path": {"type": "string", "description": "Dot path of the value inside each slice."},
                "aggregator": {"type": "string", "enum": list(AGGREGATORS)},
                **_WINDOW_PROPERTIES,
                "slices": _SLICES_PROPERTY,
            },
            "required": ["key", "value_path", "aggregator"],
        },
    },
    {
        "name": "format_timeline",
        "description": "Format a metric series into timeline entries.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "value_path": {"type": "string"},
                **_WINDOW_PROPERTIES,
                "slices": _SLICES_PROPERTY,
            },
            "required": ["key", "value_path"],
        },
    },
    {
        "name": "format_category",
        "description": "Format a metric series into categorical totals.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "value_path": {"type": "string"},
                **_WINDOW_PROPERTIES,
                "slices": _SLICES_PROPERTY,
            },
            "required": ["key", "value_path"],
        },
    },
    {
        "name": "write_metric",
        "description": "Write a metric event.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "at": {"type": "string", "description": "RFC3339 timestamp (default: now)."},
                "values": {"type": ["object", "array", "string", "number", "boolean", "null"]},
            },
            "required": ["key", "values"],
        },
    },
    {
        "name": "list_transponders",
        "description": "List transponders for the active source.",
        "inputSchema": {
            "type": "object",
            "properties": {},
        },
    },
)

RESOURCES: Tuple[Dict[str, str], ...] = (
    {
        "uri": f"{RESOURCE_SCHEME}://source",
        "name": "Source configuration",
        "description": "Active analytics source configuration (defaults and granularities).",
        "mimeType": "application/json",
    },
    {
        "uri": f"{RESOURCE_SCHEME}://metrics",
        "name": "Metrics listing",
        "description": f"Available metrics from {SYSTEM_KEY} (use ?from&to&granularity).",
        "mimeType": "application/json",
    },
    {
        "uri": f"{RESOURCE_SCHEME}://metrics/{{key}}",
        "name": "Metric series",
        "description": "Raw series for a metric key (use ?from&to&granularity).",
        "mimeType": "application/json",
    },
    {
        "uri": f"{RESOURCE_SCHEME}://transponders",
        "name": "Transponders",
        "description": "List transponders for the active source.",
        "mimeType": "application/json",
    },
)


def list_tools() -> List[Dict[str, Any]]:
    """Return a fresh copy of the tool catalog."""
    return copy.deepcopy(list(TOOLS_SCHEMAS))


def list_resources() -> List[Dict[str, str]]:
    """Return a fresh copy of the resource catalog."""
    return [dict(resource) for resource in RESOURCES]
