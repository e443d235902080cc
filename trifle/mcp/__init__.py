"""
Trifle MCP server: JSON-RPC over stdio in front of the Trifle API.
"""

from .dispatcher import McpDispatcher
from .protocol import FrameDecodeError, ServerIdentity
from .server import FrameReader, McpServer, serve_stdio

__all__ = [
    "McpDispatcher",
    "McpServer",
    "FrameReader",
    "FrameDecodeError",
    "ServerIdentity",
    "serve_stdio",
]
