import sys
import json
import logging
from typing import Any, BinaryIO, Dict, Optional

from trifle.core import serialization
from trifle.sdk import TrifleClient

from .dispatcher import McpDispatcher
from .protocol import Frame, FrameDecodeError, ServerIdentity

logger = logging.getLogger("Trifle.mcp.server")


class FrameReader:
    """
    Reads consecutive JSON documents from a binary stream.

    Documents may be separated by any whitespace, share a line, or span
    several lines. Returns None at a clean end of input.
    """
    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._buffer = ""
        self._eof = False

    def _fill(self) -> bool:
        if self._eof:
            return False
        line = self._stream.readline()
        if not line:
            self._eof = True
            return False
        try:
            self._buffer += line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FrameDecodeError(f"invalid UTF-8 in input stream: {exc}") from exc
        return True

    def read(self) -> Optional[Any]:
        while True:
            pending = self._buffer.lstrip()
            if not pending:
                self._buffer = ""
                if not self._fill():
                    return None
                continue

            try:
                value, end = serialization.raw_decode(pending)
            except json.JSONDecodeError as exc:
                # An error at the very end of the buffered text means the
                # document continues on the next line.
                if exc.pos < len(pending.rstrip()):
                    raise FrameDecodeError(f"malformed frame: {exc}") from exc
                self._buffer = pending
                if not self._fill():
                    raise FrameDecodeError("unexpected end of input inside a frame") from exc
                continue

            self._buffer = pending[end:]
            return value


class McpServer:
    """
    Runs one MCP session over a pair of byte streams.

    Frames are handled strictly one at a time: each reply is written and
    flushed before the next frame is read.
    """
    def __init__(self, dispatcher: McpDispatcher, input_stream: BinaryIO, output_stream: BinaryIO):
        self.dispatcher = dispatcher
        self.reader = FrameReader(input_stream)
        self.output_stream = output_stream

    def send_rpc(self, message: Dict[str, Any]) -> None:
        """Serialize and send a JSON-RPC message."""
        serialized = serialization.dumps(message)
        try:
            self.output_stream.write(serialized.encode("utf-8") + b"\n")
            self.output_stream.flush()
        except (BrokenPipeError, OSError) as exc:
            logger.warning("MCP stdio transport closed while sending: %s", exc)
            raise

    def serve(self) -> None:
        """
        Process frames until ``exit`` or end of input.

        Raises FrameDecodeError when the input can no longer be decoded.
        """
        while True:
            payload = self.reader.read()
            if payload is None:
                logger.info("Input stream closed; ending MCP session")
                return

            frame = Frame.from_payload(payload)
            if not frame.jsonrpc:
                logger.debug("Skipping frame without jsonrpc version tag")
                continue

            envelope = self.dispatcher.dispatch(frame)
            if envelope is not None:
                self.send_rpc(envelope)

            if frame.method == "exit":
                logger.info("Exit requested; ending MCP session")
                return


def serve_stdio(client: TrifleClient, identity: ServerIdentity) -> None:
    """Run the MCP session on this process's stdin/stdout."""
    dispatcher = McpDispatcher(client, identity)
    McpServer(dispatcher, sys.stdin.buffer, sys.stdout.buffer).serve()
