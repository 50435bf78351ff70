import argparse
import asyncio
import json
import logging
import re
import sys
from typing import Any, BinaryIO, Dict, Optional, Set, TextIO

from mo5_rag.version import __version__
from mo5_rag.core.config import BridgeConfig
from mo5_rag.sdk.client import AsyncRagClient

from .handlers import McpError, McpRouter
from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    SERVER_NAME,
    SUPPORTED_PROTOCOL_VERSIONS,
    RpcCategory,
    negotiate_protocol_version,
)
from .utils import LOG_FORMAT, build_initialize_instructions, configure_logging

logger = logging.getLogger("Mo5Rag.mcp.server")

# Answered on the read loop; every other request runs as its own task.
_INLINE_METHODS = {"initialize", "notifications/initialized", "ping"}

_HEADER_LINE = re.compile(rb"^([A-Za-z][A-Za-z0-9-]*)\s*:\s*(.*)$")


def _decode_object(raw: bytes) -> Optional[Dict[str, Any]]:
    try:
        msg = json.loads(raw.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Skipping non-JSON input on stdio transport")
        return None
    if not isinstance(msg, dict):
        logger.debug("Skipping JSON value that is not an object on stdio transport")
        return None
    return msg


def _read_header_block(stream: BinaryIO, first: "re.Match[bytes]") -> Optional[Dict[bytes, bytes]]:
    headers = {first.group(1).lower(): first.group(2).strip()}
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            return headers
        match = _HEADER_LINE.match(line)
        if match is not None:
            headers[match.group(1).lower()] = match.group(2).strip()


def _content_length(headers: Dict[bytes, bytes]) -> Optional[int]:
    try:
        length = int(headers.get(b"content-length", b""))
    except ValueError:
        return None
    return length if length > 0 else None


class McpServer:
    """
    Handles JSON-RPC communication over stdio on a single asyncio loop.
    """

    def __init__(self, router: McpRouter, output: Optional[TextIO] = None):
        self.router = router
        self.output = output or sys.stdout
        self.transport_closed = False
        # Set by a successful initialize.
        self.protocol_version: Optional[str] = None
        self._pending: Set[asyncio.Task] = set()

    def send_rpc(self, message: Dict[str, Any]) -> None:
        """Serialize and send a JSON-RPC message to stdout."""
        if self.transport_closed:
            return
        try:
            self.output.write(json.dumps(message, ensure_ascii=False) + "\n")
            self.output.flush()
        except (BrokenPipeError, OSError) as exc:
            self.transport_closed = True
            logger.warning("MCP stdio transport closed while sending: %s", exc)

    def send_result(self, msg_id: Any, result: Dict[str, Any]) -> None:
        self.send_rpc({"jsonrpc": "2.0", "id": msg_id, "result": result})

    def send_error(self, msg_id: Any, code: int, message: str) -> None:
        """Convenience method for sending JSON-RPC errors."""
        self.send_rpc({
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": {
                "code": code,
                "message": message,
            },
        })

    @staticmethod
    def read_message(stream: BinaryIO) -> Optional[Dict[str, Any]]:
        """
        Read one inbound JSON-RPC object from a binary stream.

        A line starting with ``Name:`` opens a header block that runs to the
        first blank line; its Content-Length gives the body size. Any other
        non-blank line is taken as a whole newline-delimited message.
        Returns None at end of input or on a body cut short by EOF.
        """
        while True:
            line = stream.readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                continue

            first_header = _HEADER_LINE.match(line)
            if first_header is None:
                msg = _decode_object(line)
                if msg is not None:
                    return msg
                continue

            headers = _read_header_block(stream, first_header)
            if headers is None:
                return None
            length = _content_length(headers)
            if length is None:
                logger.warning("Dropping framed message without a usable Content-Length: %r", headers)
                continue
            body = stream.read(length) or b""
            if len(body) != length:
                logger.warning("Truncated framed JSON payload (%d/%d bytes).", len(body), length)
                return None
            msg = _decode_object(body)
            if msg is not None:
                return msg

    def handle_initialize(self, msg_id: Any, params: Dict[str, Any]) -> None:
        """Handle protocol negotiation."""
        requested = params.get("protocolVersion")
        negotiated = negotiate_protocol_version(requested)
        if negotiated is None:
            self.send_error(
                msg_id,
                INVALID_PARAMS,
                f"Unsupported protocol version: {requested}. "
                f"Supported versions: {', '.join(SUPPORTED_PROTOCOL_VERSIONS)}",
            )
            return

        client_info = params.get("clientInfo")
        client_name = client_info.get("name") if isinstance(client_info, dict) else None
        self.protocol_version = negotiated
        logger.info("Negotiated MCP protocol %s with %s", negotiated, client_name or "unnamed client")

        self.send_result(msg_id, {
            "protocolVersion": negotiated,
            "capabilities": {
                "tools": {"listChanged": False},
                "resources": {"subscribe": False, "listChanged": False},
                "prompts": {"listChanged": False},
            },
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "instructions": build_initialize_instructions(self.router.config.base_url),
        })

    async def handle_message(self, msg: Dict[str, Any]) -> None:
        """
        Handle a single parsed JSON-RPC message.

        Unknown request methods (with id) return -32601; unknown
        notifications (no id) are ignored.
        """
        msg_id = msg.get("id")
        method = msg.get("method")
        params = msg.get("params")

        if not isinstance(method, str):
            if msg_id is not None:
                self.send_error(msg_id, INVALID_REQUEST, "Invalid Request: missing method")
            return

        if params is None:
            params = {}
        if not isinstance(params, dict):
            if msg_id is not None:
                self.send_error(msg_id, INVALID_PARAMS, f"Invalid params: {method} params must be an object")
            return

        if method == "initialize":
            self.handle_initialize(msg_id, params)
            return

        if method == "notifications/initialized":
            if self.protocol_version is not None:
                logger.info("Client initialized connection (protocol %s)", self.protocol_version)
            else:
                logger.warning("Ignored notifications/initialized before successful initialize")
            return

        if method == "ping":
            if msg_id is not None:
                self.send_result(msg_id, {})
            return

        category = RpcCategory.from_method(method)
        if category is None:
            if msg_id is not None:
                self.send_error(msg_id, METHOD_NOT_FOUND, f"Method not found: {method}")
            else:
                logger.debug("Ignoring unknown notification method: %s", method)
            return
        if msg_id is None:
            logger.debug("Ignoring %s notification without id", method)
            return

        if category in (RpcCategory.CALL_TOOL, RpcCategory.GET_PROMPT):
            name = params.get("name")
            if not isinstance(name, str) or not name.strip():
                self.send_error(msg_id, INVALID_PARAMS, f"Invalid params: {method} requires non-empty string name")
                return

        try:
            result = await self.router.dispatch(category, params)
        except McpError as exc:
            self.send_error(msg_id, exc.code, exc.message)
            return
        except Exception:
            logger.exception("Unexpected error during %s dispatch", method)
            self.send_error(msg_id, INTERNAL_ERROR, "Internal error during request dispatch.")
            return
        self.send_result(msg_id, result)

    def submit(self, msg: Dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self.handle_message(msg))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def serve(self, stream: BinaryIO) -> None:
        """Read messages until end of input, then drain in-flight requests."""
        try:
            while not self.transport_closed:
                msg = await asyncio.to_thread(self.read_message, stream)
                if msg is None:
                    break
                if msg.get("method") in _INLINE_METHODS:
                    await self.handle_message(msg)
                else:
                    self.submit(msg)
        finally:
            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)


async def run_stdio(config: BridgeConfig) -> None:
    async with AsyncRagClient(config) as client:
        server = McpServer(McpRouter(config, client))
        logger.info("MO5 RAG MCP server started on stdio (backend %s)", config.base_url)
        await server.serve(sys.stdin.buffer)
    logger.info("MO5 RAG MCP server stopped: stdin closed")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mo5-rag-mcp",
        description="MCP stdio bridge to the MO5 RAG search service.",
    )
    parser.add_argument("--base-url", default=None, help="RAG backend base URL (overrides RAG_BASE_URL)")
    parser.add_argument("--log-level", default=None, help="Diagnostics level (overrides MO5_RAG_LOG_LEVEL)")
    parser.add_argument("--log-file", default=None, help="Write diagnostics to this file instead of stderr")
    return parser


def load_config(argv: Optional[list] = None) -> BridgeConfig:
    args = _build_parser().parse_args(argv)
    config = BridgeConfig.from_env()
    overrides = {
        key: value
        for key, value in (
            ("base_url", args.base_url),
            ("log_level", args.log_level),
            ("log_file", args.log_file),
        )
        if value is not None
    }
    if not overrides:
        return config
    return BridgeConfig(**{**config.model_dump(), **overrides})


def main(argv: Optional[list] = None) -> None:
    try:
        config = load_config(argv)
        configure_logging(config)
    except Exception as exc:
        logging.basicConfig(stream=sys.stderr, format=LOG_FORMAT)
        logger.critical("Fatal startup error: %s", exc)
        sys.exit(1)

    try:
        asyncio.run(run_stdio(config))
    except KeyboardInterrupt:
        logger.info("MO5 RAG MCP server interrupted")
    except Exception:
        logger.critical("Fatal error in MCP stdio transport", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
