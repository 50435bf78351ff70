import io
import json

import httpx
import pytest

from mo5_rag.core.config import BridgeConfig
from mo5_rag.mcp.handlers import McpRouter
from mo5_rag.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    RESOURCE_NOT_FOUND,
    SUPPORTED_PROTOCOL_VERSIONS,
    negotiate_protocol_version,
)
from mo5_rag.mcp.server import McpServer
from mo5_rag.sdk.client import AsyncRagClient


def _search_backend(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/api/Search":
        return httpx.Response(
            200,
            json={"results": [{"content": "48 KB RAM", "document": {"fileName": "specs.pdf"}, "similarityScore": 0.9}]},
        )
    return httpx.Response(404, text="missing")


def _server(http_client: httpx.AsyncClient):
    config = BridgeConfig(base_url="http://nas:8080", backoff_base_sec=0.0)
    output = io.StringIO()
    router = McpRouter(config, AsyncRagClient(config, http_client=http_client))
    return McpServer(router, output=output), output


def _replies(output: io.StringIO):
    return [json.loads(line) for line in output.getvalue().splitlines() if line.strip()]


def _frame(message: dict) -> bytes:
    body = json.dumps(message).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


# ── framing ────────────────────────────────────────────────────────────────


def test_negotiate_protocol_supported():
    assert negotiate_protocol_version("2025-06-18") == "2025-06-18"
    assert negotiate_protocol_version("2024-11-05") == "2024-11-05"


def test_negotiate_protocol_unsupported():
    assert negotiate_protocol_version("2023-01-01") is None


def test_negotiate_protocol_default():
    assert negotiate_protocol_version(None) == SUPPORTED_PROTOCOL_VERSIONS[0]


def test_read_message_supports_json_line():
    stream = io.BytesIO(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')
    msg = McpServer.read_message(stream)
    assert msg is not None
    assert msg["method"] == "ping"


def test_read_message_supports_content_length_framing():
    stream = io.BytesIO(_frame({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}))
    msg = McpServer.read_message(stream)
    assert msg == {"jsonrpc": "2.0", "id": 2, "method": "tools/list"}


def test_read_message_accepts_extra_frame_headers():
    body = json.dumps({"jsonrpc": "2.0", "id": 5, "method": "ping"}).encode("utf-8")
    stream = io.BytesIO(
        b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
        + f"content-length: {len(body)}\r\n\r\n".encode("ascii")
        + body
    )
    assert McpServer.read_message(stream)["id"] == 5


def test_read_message_header_block_cut_by_eof_returns_none():
    assert McpServer.read_message(io.BytesIO(b"Content-Length: 20\r\n")) is None


def test_read_message_skips_noise_lines():
    stream = io.BytesIO(b"\n   \nnot json\n[1, 2]\n" + b'{"jsonrpc":"2.0","id":3,"method":"ping"}\n')
    msg = McpServer.read_message(stream)
    assert msg["id"] == 3


def test_read_message_recovers_after_invalid_content_length():
    stream = io.BytesIO(b"Content-Length: nope\r\n\r\n" + b'{"jsonrpc":"2.0","id":4,"method":"ping"}\n')
    msg = McpServer.read_message(stream)
    assert msg["id"] == 4


def test_read_message_truncated_frame_returns_none():
    stream = io.BytesIO(b'Content-Length: 100\r\n\r\n{"jsonrpc":"2.0"}')
    assert McpServer.read_message(stream) is None


def test_read_message_eof_returns_none():
    assert McpServer.read_message(io.BytesIO(b"")) is None


def test_send_rpc_marks_transport_closed_on_broken_pipe():
    class _BrokenOutput:
        def write(self, data):
            raise BrokenPipeError("peer gone")

        def flush(self):
            pass

    server = McpServer(router=None, output=_BrokenOutput())
    server.send_result(1, {})
    assert server.transport_closed is True
    # Later sends are dropped silently.
    server.send_result(2, {})


# ── dispatch ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_initialize_advertises_capabilities():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.handle_message({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": "2025-03-26", "clientInfo": {"name": "test-host"}},
        })
        await server.handle_message({"jsonrpc": "2.0", "method": "notifications/initialized"})

    (reply,) = _replies(output)
    result = reply["result"]
    assert result["protocolVersion"] == "2025-03-26"
    assert set(result["capabilities"]) == {"tools", "resources", "prompts"}
    assert result["serverInfo"]["name"] == "mo5-rag-mcp"
    assert "http://nas:8080" in result["instructions"]
    assert server.protocol_version == "2025-03-26"


@pytest.mark.asyncio
async def test_initialize_rejects_unsupported_version():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.handle_message({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": "1999-01-01"},
        })

    (reply,) = _replies(output)
    assert reply["error"]["code"] == INVALID_PARAMS
    assert "1999-01-01" in reply["error"]["message"]
    assert server.protocol_version is None


@pytest.mark.asyncio
async def test_ping_and_unknown_method():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.handle_message({"jsonrpc": "2.0", "id": "p", "method": "ping"})
        await server.handle_message({"jsonrpc": "2.0", "id": 9, "method": "sampling/createMessage"})
        await server.handle_message({"jsonrpc": "2.0", "method": "notifications/cancelled"})

    ping, unknown = _replies(output)
    assert ping == {"jsonrpc": "2.0", "id": "p", "result": {}}
    assert unknown["id"] == 9
    assert unknown["error"]["code"] == METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_malformed_requests_get_protocol_errors():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.handle_message({"jsonrpc": "2.0", "id": 1})
        await server.handle_message({"jsonrpc": "2.0", "id": 2, "method": "tools/call", "params": [1]})
        await server.handle_message({"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": ""}})
        await server.handle_message({"jsonrpc": "2.0", "id": 4, "method": "prompts/get", "params": {"name": 7}})

    codes = [(reply["id"], reply["error"]["code"]) for reply in _replies(output)]
    assert codes == [(1, INVALID_REQUEST), (2, INVALID_PARAMS), (3, INVALID_PARAMS), (4, INVALID_PARAMS)]


@pytest.mark.asyncio
async def test_tools_call_result_and_resource_error_code():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.handle_message({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "semantic_search", "arguments": {"query": "ram"}},
        })
        await server.handle_message({
            "jsonrpc": "2.0",
            "id": 2,
            "method": "resources/read",
            "params": {"uri": "documents://99"},
        })

    call, read = _replies(output)
    assert call["result"]["content"][0]["text"] == "48 KB RAM\n(Source: specs.pdf, score: 0.9)"
    assert read["error"]["code"] == RESOURCE_NOT_FOUND
    assert "documents://99" in read["error"]["message"]


@pytest.mark.asyncio
async def test_unexpected_handler_failure_is_internal_error(monkeypatch, caplog):
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)

        async def _boom(category, params=None):
            raise RuntimeError("handler bug")

        monkeypatch.setattr(server.router, "dispatch", _boom)
        await server.handle_message({"jsonrpc": "2.0", "id": 5, "method": "tools/list"})

    (reply,) = _replies(output)
    assert reply["error"]["code"] == INTERNAL_ERROR
    assert "handler bug" not in reply["error"]["message"]
    assert any("Unexpected error during tools/list" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_serve_answers_every_request_before_returning():
    stream = io.BytesIO(
        b'{"jsonrpc":"2.0","id":1,"method":"initialize","params":{"protocolVersion":"2025-06-18"}}\n'
        b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n'
        + _frame({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        + b'{"jsonrpc":"2.0","id":3,"method":"tools/call","params":{"name":"semantic_search","arguments":{"query":"ram"}}}\n'
        b'{"jsonrpc":"2.0","id":4,"method":"prompts/get","params":{"name":"mo5_expert"}}\n'
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(_search_backend)) as http_client:
        server, output = _server(http_client)
        await server.serve(stream)

    replies = {reply["id"]: reply for reply in _replies(output)}
    assert set(replies) == {1, 2, 3, 4}
    assert replies[1]["result"]["protocolVersion"] == "2025-06-18"
    assert replies[2]["result"]["tools"][0]["name"] == "semantic_search"
    assert "isError" not in replies[3]["result"]
    assert replies[4]["result"]["messages"][0]["role"] == "user"
