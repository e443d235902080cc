"""
JSON encoding helpers shared by the SDK, the CLI and the MCP transport.

Integers decode to ``int`` and keep full precision. Non-integral numbers
decode to ``JSONNumber``, a ``float`` that remembers the exact literal it was
read from; encoding writes that literal back, so ids and metric values pass
through byte-for-byte.
"""

import json
import math
from decimal import Decimal
from typing import Any, Optional, Tuple


class JSONNumber(float):
    """A non-integral JSON number together with its source text."""

    def __new__(cls, literal: str) -> "JSONNumber":
        number = super().__new__(cls, literal)
        number.literal = literal
        return number

    def __getnewargs__(self) -> Tuple[str]:
        return (self.literal,)

    def __repr__(self) -> str:
        return self.literal

    __str__ = __repr__

    def to_decimal(self) -> Decimal:
        return Decimal(self.literal)


DECODER = json.JSONDecoder(parse_float=JSONNumber)


def loads(raw: str) -> Any:
    return DECODER.decode(raw)


def raw_decode(buffer: str, index: int = 0) -> Tuple[Any, int]:
    """Decode one JSON document starting at ``index``; returns (value, end)."""
    return DECODER.raw_decode(buffer, index)


def _floatstr(value: float) -> str:
    if isinstance(value, JSONNumber):
        return value.literal
    if not math.isfinite(value):
        raise ValueError(f"Out of range float values are not JSON compliant: {value!r}")
    return float.__repr__(value)


class LiteralEncoder(json.JSONEncoder):
    """
    Encoder that writes ``JSONNumber`` and ``Decimal`` values as their own text.

    The C accelerator always formats floats itself, so this encoder drives the
    pure-Python iterator with a number formatter of its own.
    """

    def default(self, o: Any) -> Any:
        if isinstance(o, Decimal):
            if not o.is_finite():
                raise ValueError(f"Out of range decimal values are not JSON compliant: {o}")
            return JSONNumber(str(o))
        if isinstance(o, (set, frozenset)):
            return list(o)
        return super().default(o)

    def iterencode(self, o: Any, _one_shot: bool = False):
        markers = {} if self.check_circular else None
        if self.ensure_ascii:
            encoder = json.encoder.encode_basestring_ascii
        else:
            encoder = json.encoder.encode_basestring
        iterencode = json.encoder._make_iterencode(
            markers, self.default, encoder, self.indent, _floatstr,
            self.key_separator, self.item_separator, self.sort_keys,
            self.skipkeys, _one_shot,
        )
        return iterencode(o, 0)


def dumps(value: Any, indent: Optional[int] = None) -> str:
    if indent is None:
        return json.dumps(value, cls=LiteralEncoder, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(value, cls=LiteralEncoder, ensure_ascii=False, indent=indent)
