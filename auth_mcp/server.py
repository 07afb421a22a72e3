"""
Auth MCP server: stdio transport.

Exposes the auth service's HTTP API as MCP tools to an AI assistant running
this process as a stdio MCP server. The tools are generated from the
service's OpenAPI description (see auth_mcp.tools); the server holds the
user's access token between calls (see auth_mcp.auth) and decides per call
whether a token is needed, created or destroyed (see auth_mcp.router).

Architecture:
    Each request line is handled in its own task:

    1. Decode the JSON-RPC envelope (bad line -> parse error, id null)
    2. initialize / ping        -> answered directly
       tools/list               -> waits for the one-shot catalog load
       tools/call               -> catalog lookup, then CallRouter
       notifications/*          -> no response
    3. Encode the response as one line on stdout

    Responses are written under a lock so concurrent tasks never interleave
    partial lines. Diagnostics go to stderr only.

Running the server:
    auth-mcp
    python -m auth_mcp.server

    Claude Code:
        claude mcp add auth -e AUTH_MCP_DESCRIPTION_URL=https://auth.example.com/api-json -- auth-mcp
"""

import asyncio
import contextlib
import functools
import json
import logging
import signal
import sys
import threading
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Protocol

from mcp.types import (
    LATEST_PROTOCOL_VERSION,
    CallToolResult,
    Implementation,
    InitializeResult,
    ListToolsResult,
    ServerCapabilities,
    TextContent,
    ToolsCapability,
)

from auth_mcp.api_client import ApiClient, fetch_document
from auth_mcp.auth import CredentialSession, FileTokenStore
from auth_mcp.config import Settings, settings
from auth_mcp.errors import AuthMCPError, ProtocolDecodeFailure, UnknownMethod, UnknownTool
from auth_mcp.log import LOGGER_NAME, configure_logging
from auth_mcp.protocol import RpcRequest, RpcResponse, decode_request, failure, success
from auth_mcp.router import CallRouter
from auth_mcp.tools import CatalogLoader

logger = logging.getLogger(f"{LOGGER_NAME}.server")

SERVER_NAME = "auth-mcp"

try:
    SERVER_VERSION = version("auth-mcp")
except PackageNotFoundError:
    SERVER_VERSION = "0.0.0"


class LineTransport(Protocol):
    """Duplex line stream: one JSON document per line."""

    async def read_line(self) -> str | None:
        """Next line without its terminator, or None at end of stream."""
        ...

    async def write_line(self, text: str) -> None: ...


class StdioTransport:
    """
    Lines over the process's stdin/stdout.

    stdin is read by a daemon thread that feeds a queue. Blocking reads stay
    off the event loop, and a pending read never holds up process exit on a
    termination signal.

    Input is read as bytes and decoded leniently: a line that is not valid
    UTF-8 reaches the decoder with replacement characters and is answered
    with a parse error like any other malformed line.
    """

    def __init__(self, stdin=None, stdout=None):
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._lines: asyncio.Queue[str | None] | None = None

    def _start_reader(self) -> "asyncio.Queue[str | None]":
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str | None] = asyncio.Queue()

        source = getattr(self._stdin, "buffer", self._stdin)

        def pump() -> None:
            # RuntimeError: the loop closed under us during shutdown.
            with contextlib.suppress(RuntimeError):
                try:
                    for raw in source:
                        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
                        loop.call_soon_threadsafe(lines.put_nowait, line)
                finally:
                    loop.call_soon_threadsafe(lines.put_nowait, None)

        threading.Thread(target=pump, name="auth-mcp-stdin", daemon=True).start()
        return lines

    async def read_line(self) -> str | None:
        if self._lines is None:
            self._lines = self._start_reader()
        line = await self._lines.get()
        if line is None:
            return None
        return line.rstrip("\r\n")

    async def write_line(self, text: str) -> None:
        self._stdout.write(text + "\n")
        self._stdout.flush()


class ProtocolServer:
    """
    The request loop.

    Collaborators are injected so tests can drive the server with an
    in-memory transport and a fake auth service.
    """

    def __init__(self, catalog: CatalogLoader, router: CallRouter, transport: LineTransport):
        self.catalog = catalog
        self.router = router
        self.transport = transport
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def serve(self) -> None:
        """Process lines until end of input, then wait for in-flight requests."""
        self.catalog.start()
        logger.info("Auth MCP server started (stdio mode)")
        try:
            while True:
                line = await self.transport.read_line()
                if line is None:
                    break
                if not line.strip():
                    continue
                task = asyncio.create_task(self._handle_line(line))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
            if self._pending:
                await asyncio.gather(*self._pending)
        finally:
            for task in list(self._pending):
                task.cancel()
        logger.info("Input closed, server stopping")

    async def _handle_line(self, line: str) -> None:
        response = await self.handle_line(line)
        if response is not None:
            async with self._write_lock:
                await self.transport.write_line(response.to_line())

    async def handle_line(self, line: str) -> RpcResponse | None:
        """Turn one input line into its response (None for notifications)."""
        try:
            request = decode_request(line)
        except ProtocolDecodeFailure as exc:
            logger.warning("Undecodable request line", extra={"auth_data": {"error": exc.detail}})
            return failure(None, exc)
        return await self.handle_request(request)

    async def handle_request(self, request: RpcRequest) -> RpcResponse | None:
        try:
            result = await self._dispatch(request)
            response = success(request.id, result)
        except AuthMCPError as exc:
            logger.info(
                "Request failed",
                extra={"auth_data": {"method": request.method, "error": exc.message}},
            )
            response = failure(request.id, exc)
        except Exception as exc:
            logger.exception("Error handling request", extra={"auth_data": {"method": request.method}})
            response = failure(request.id, AuthMCPError(f"Internal error: {exc}"))

        if request.is_notification:
            return None
        return response

    async def _dispatch(self, request: RpcRequest) -> Any:
        method = request.method
        params = request.params or {}

        if method == "initialize":
            return self.initialize()
        if method == "ping":
            return {}
        if method == "tools/list":
            return await self.list_tools()
        if method == "tools/call":
            return await self.call_tool(params.get("name"), params.get("arguments"))
        if method.startswith("notifications/"):
            return {}
        raise UnknownMethod(method)

    def initialize(self) -> InitializeResult:
        return InitializeResult(
            protocolVersion=LATEST_PROTOCOL_VERSION,
            capabilities=ServerCapabilities(tools=ToolsCapability()),
            serverInfo=Implementation(name=SERVER_NAME, version=SERVER_VERSION),
        )

    async def list_tools(self) -> ListToolsResult:
        tools = await self.catalog.get()
        return ListToolsResult(tools=[tool.to_wire() for tool in tools])

    async def call_tool(self, name: Any, arguments: Any) -> CallToolResult:
        tool = await self.catalog.lookup(name) if isinstance(name, str) else None
        if tool is None:
            raise UnknownTool(str(name))
        if arguments is not None and not isinstance(arguments, dict):
            raise AuthMCPError(f"Invalid arguments for tool '{name}': expected an object")

        body = await self.router.call(tool, arguments)
        text = body if isinstance(body, str) else json.dumps(body, indent=2)
        return CallToolResult(content=[TextContent(type="text", text=text)])


async def run(config: Settings) -> None:
    """Wire the collaborators from configuration and serve stdio until EOF."""
    session = CredentialSession(FileTokenStore(config.session_file))
    await session.load()

    fetch = functools.partial(fetch_document, timeout=config.description_timeout)
    catalog = CatalogLoader(config.description_url, fetch)

    async with ApiClient(config.effective_base_url(), timeout=config.api_timeout) as api:
        router = CallRouter(session, api)
        server = ProtocolServer(catalog, router, StdioTransport())
        await server.serve()


async def _run_until_signalled(config: Settings) -> None:
    serve_task = asyncio.create_task(run(config))
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, serve_task.cancel)
    with contextlib.suppress(asyncio.CancelledError):
        await serve_task


def main() -> None:
    configure_logging(settings)
    logger.info(
        "Starting auth MCP server",
        extra={
            "auth_data": {
                "api_base_url": settings.effective_base_url(),
                "description_url": settings.description_url,
                "session_file": str(settings.session_file),
            }
        },
    )
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run_until_signalled(settings))
    logger.info("Auth MCP server stopped")


if __name__ == "__main__":
    main()
