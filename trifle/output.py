"""
Terminal rendering for CLI results: JSON, aligned tables and CSV.
"""

from __future__ import annotations

import csv
import sys
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, TextIO

from trifle.core import serialization

OUTPUT_FORMATS = ("json", "table", "csv")


@dataclass
class Table:
    columns: List[str]
    rows: List[List[str]] = field(default_factory=list)


def print_json(payload: Any, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    stream.write(serialization.dumps(payload, indent=2) + "\n")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal, float)):
        return str(value)
    return serialization.dumps(value)


def table_from_payload(payload: Any) -> Table:
    """
    Build a table from a JSON payload.

    A ``{"table": {"columns": [...], "rows": [...]}}`` payload is used as-is,
    a list of objects becomes one row per object, and any other object
    becomes key/value rows.
    """
    if isinstance(payload, dict):
        embedded = payload.get("table")
        if isinstance(embedded, dict) and isinstance(embedded.get("columns"), list):
            columns = [_cell(column) for column in embedded["columns"]]
            rows = [[_cell(cell) for cell in row] for row in embedded.get("rows") or [] if isinstance(row, list)]
            return Table(columns=columns, rows=rows)
        return Table(columns=["key", "value"], rows=[[str(key), _cell(value)] for key, value in payload.items()])

    if isinstance(payload, list) and all(isinstance(item, dict) for item in payload):
        columns: List[str] = []
        for item in payload:
            for key in item:
                if key not in columns:
                    columns.append(key)
        return Table(columns=columns, rows=[[_cell(item.get(column)) for column in columns] for item in payload])

    if isinstance(payload, list):
        return Table(columns=["value"], rows=[[_cell(item)] for item in payload])
    return Table(columns=["value"], rows=[[_cell(payload)]])


def print_table(table: Table, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    widths = [len(column) for column in table.columns]
    for row in table.rows:
        for idx, cell in enumerate(row[: len(widths)]):
            widths[idx] = max(widths[idx], len(cell))

    def _line(cells: List[str]) -> str:
        padded = [cell.ljust(widths[idx]) for idx, cell in enumerate(cells[: len(widths)])]
        return "  ".join(padded).rstrip()

    stream.write(_line(table.columns) + "\n")
    stream.write(_line(["-" * width for width in widths]) + "\n")
    for row in table.rows:
        stream.write(_line(row) + "\n")


def print_csv(table: Table, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(table.columns)
    writer.writerows(table.rows)


def print_table_or_json(payload: Any, output_format: str, stream: Optional[TextIO] = None) -> None:
    if output_format == "table":
        print_table(table_from_payload(payload), stream)
    elif output_format == "csv":
        print_csv(table_from_payload(payload), stream)
    else:
        print_json(payload, stream)
