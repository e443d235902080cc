"""
Trifle MCP Protocol Constants & Types
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from trifle.core import serialization

JSONRPC_VERSION = "2.0"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "trifle-cli"

# Standard JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RpcError(Exception):
    """Protocol-tier failure, answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        error = {"code": self.code, "message": self.message or f"rpc error {self.code}"}
        if self.data is not None:
            error["data"] = self.data
        return error


def invalid_params(message: str) -> RpcError:
    return RpcError(INVALID_PARAMS, message)


def method_not_found(message: str) -> RpcError:
    return RpcError(METHOD_NOT_FOUND, message)


class DomainError(Exception):
    """Tool or resource failure reported inside a successful result."""


class FrameDecodeError(Exception):
    """The input stream no longer holds decodable frames; the session must end."""


@dataclass(frozen=True)
class ServerIdentity:
    """Process-wide identity advertised by ``initialize``."""
    name: str = SERVER_NAME
    version: str = "0.0.0"
    protocol_version: str = DEFAULT_PROTOCOL_VERSION


@dataclass(frozen=True)
class Frame:
    """One decoded inbound message. ``has_id`` is False for notifications."""
    jsonrpc: str
    method: str
    id: Any = None
    has_id: bool = False
    params: Any = None
    has_params: bool = False

    @property
    def is_notification(self) -> bool:
        return not self.has_id

    @classmethod
    def from_payload(cls, payload: Any) -> "Frame":
        if not isinstance(payload, dict):
            raise FrameDecodeError(f"frame must be a JSON object, got {type(payload).__name__}")
        jsonrpc = payload.get("jsonrpc")
        method = payload.get("method")
        if jsonrpc is not None and not isinstance(jsonrpc, str):
            raise FrameDecodeError("frame field 'jsonrpc' must be a string")
        if method is not None and not isinstance(method, str):
            raise FrameDecodeError("frame field 'method' must be a string")
        return cls(
            jsonrpc=jsonrpc or "",
            method=method or "",
            id=payload.get("id"),
            has_id="id" in payload,
            params=payload.get("params"),
            has_params="params" in payload,
        )


@dataclass
class ToolResult:
    """Content returned by tools/call (and by failed resources/read)."""
    content: List[Dict[str, str]] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_json(cls, payload: Any) -> "ToolResult":
        return cls(content=[{"type": "text", "text": serialization.dumps(payload, indent=2)}])

    @classmethod
    def from_error(cls, exc: BaseException) -> "ToolResult":
        return cls(content=[{"type": "text", "text": str(exc)}], is_error=True)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"content": list(self.content)}
        if self.is_error:
            result["isError"] = True
        return result


def resource_contents(uri: str, payload: Any, mime_type: str = "application/json") -> Dict[str, Any]:
    return {
        "contents": [
            {
                "uri": uri,
                "mimeType": mime_type,
                "text": serialization.dumps(payload, indent=2),
            }
        ]
    }


def result_envelope(msg_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result}


def error_envelope(msg_id: Any, error: RpcError) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "error": error.to_dict()}
