"""
Trifle MCP Request Dispatcher
-----------------------------
Maps a decoded frame to one of the fixed protocol methods and shapes the
reply envelope. Protocol failures (unknown method, malformed params) become
JSON-RPC error objects; tool and resource failures are reported inside a
successful result by the handlers. Notifications never get a reply.
"""

import logging
from typing import Any, Callable, Dict, Optional

from trifle.sdk import TrifleClient

from .definitions import list_resources, list_tools
from .handlers import execute_tool, read_resource
from .protocol import (
    INTERNAL_ERROR, Frame, RpcError, ServerIdentity, ToolResult,
    error_envelope, invalid_params, method_not_found, result_envelope
)

logger = logging.getLogger("Trifle.mcp.dispatcher")

_NO_REPLY = object()


class McpDispatcher:
    def __init__(self, client: TrifleClient, identity: ServerIdentity):
        self.client = client
        self.identity = identity
        self.session: Dict[str, Any] = {
            "protocol_version": None,
            "client_capabilities": {},
            "client_info": {},
        }
        self._methods: Dict[str, Callable[[Frame], Any]] = {
            "initialize": self._handle_initialize,
            "initialized": self._handle_initialized,
            "shutdown": self._handle_empty,
            "exit": self._handle_empty,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "resources/list": self._handle_list_resources,
            "resources/read": self._handle_read_resource,
        }

    def dispatch(self, frame: Frame) -> Optional[Dict[str, Any]]:
        """Return the envelope to send, or None when nothing must be sent."""
        try:
            handler = self._methods.get(frame.method)
            if handler is None:
                raise method_not_found(f"method not found: {frame.method}")
            result = handler(frame)
        except RpcError as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected error handling %s", frame.method)
            error = RpcError(INTERNAL_ERROR, str(exc))
        else:
            if result is _NO_REPLY or frame.is_notification:
                return None
            return result_envelope(frame.id, result)

        if frame.is_notification:
            logger.debug("Dropping error for notification %s: %s", frame.method, error.message)
            return None
        return error_envelope(frame.id, error)

    def _handle_initialize(self, frame: Frame) -> Dict[str, Any]:
        params = frame.params if frame.params is not None else {}
        if not isinstance(params, dict):
            raise invalid_params("invalid initialize params")

        requested = params.get("protocolVersion")
        capabilities = params.get("capabilities")
        client_info = params.get("clientInfo")
        if requested is not None and not isinstance(requested, str):
            raise invalid_params("invalid initialize params")
        if capabilities is not None and not isinstance(capabilities, dict):
            raise invalid_params("invalid initialize params")
        if client_info is not None and not isinstance(client_info, dict):
            raise invalid_params("invalid initialize params")

        protocol_version = requested or self.identity.protocol_version
        self.session["protocol_version"] = protocol_version
        self.session["client_capabilities"] = capabilities or {}
        self.session["client_info"] = client_info or {}
        logger.info(
            "Initialized session: protocol=%s client=%s",
            protocol_version, self.session["client_info"].get("name", "unknown"),
        )

        return {
            "protocolVersion": protocol_version,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"listChanged": False},
            },
            "serverInfo": {"name": self.identity.name, "version": self.identity.version},
        }

    def _handle_initialized(self, frame: Frame) -> Any:
        return _NO_REPLY

    def _handle_empty(self, frame: Frame) -> Dict[str, Any]:
        return {}

    def _handle_list_tools(self, frame: Frame) -> Dict[str, Any]:
        return {"tools": list_tools()}

    def _handle_list_resources(self, frame: Frame) -> Dict[str, Any]:
        return {"resources": list_resources()}

    def _handle_call_tool(self, frame: Frame) -> Dict[str, Any]:
        if not frame.has_params:
            raise invalid_params("missing params")
        params = frame.params if frame.params is not None else {}
        if not isinstance(params, dict):
            raise invalid_params("invalid tool call params")

        name = params.get("name")
        if name is not None and not isinstance(name, str):
            raise invalid_params("invalid tool call params")
        if not name:
            raise invalid_params("tool name required")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise invalid_params("invalid tool call params")

        result: ToolResult = execute_tool(self.client, name, arguments)
        return result.to_dict()

    def _handle_read_resource(self, frame: Frame) -> Dict[str, Any]:
        if not frame.has_params:
            raise invalid_params("missing params")
        params = frame.params if frame.params is not None else {}
        if not isinstance(params, dict):
            raise invalid_params("invalid resource params")

        uri = params.get("uri")
        if uri is not None and not isinstance(uri, str):
            raise invalid_params("invalid resource params")
        if not uri:
            raise invalid_params("uri required")

        result = read_resource(self.client, uri)
        if isinstance(result, ToolResult):
            return result.to_dict()
        return result
