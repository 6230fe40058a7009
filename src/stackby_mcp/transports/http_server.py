# Stackby MCP Server
# File: transports/http_server.py
# Version: v1

"""HTTP entrypoint for the Stackby MCP server (hosted mode).

Behind the ``stackby-mcp-http`` console command. Routes:

- ``GET /health``         plain-text liveness check
- ``POST /mcp``, ``GET /mcp``  MCP over stateless streamable HTTP

Every MCP request must carry its caller's key in ``X-Stackby-API-Key`` or
``Authorization: Bearer <key>`` (plus optional ``X-Stackby-API-Url``). The
tools read those headers from their own request, so concurrent callers
never share credentials.
"""

from __future__ import annotations

import contextlib
import json
import logging
import traceback
from typing import Any, Dict, Optional
from urllib.parse import quote

import uvicorn
from mcp.server.fastmcp import FastMCP
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from mcp.server.transport_security import TransportSecuritySettings
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from ..config import StackbyConfig
from ..context import api_key_from_headers
from ..log import configure_logging
from ..tools import tasks

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"
HEALTH_PATH = "/health"
ERROR_HEADER = "X-MCP-Error"

MISSING_KEY_MESSAGE = (
    "Missing API key. Send X-Stackby-API-Key or Authorization: Bearer <key>."
)


def _parse_error(message: str) -> JSONResponse:
    return JSONResponse(
        {"jsonrpc": "2.0", "error": {"code": -32700, "message": message}, "id": None},
        status_code=400,
    )


def _expects_no_reply(message: Any) -> bool:
    if not isinstance(message, dict):
        return False
    if "method" in message:
        return "id" not in message
    # A client-sent response to a server request.
    return "result" in message or "error" in message


def _only_notifications(payload: Any) -> bool:
    """True when no message in the payload expects a reply."""
    if isinstance(payload, list):
        return bool(payload) and all(_expects_no_reply(m) for m in payload)
    return _expects_no_reply(payload)


def serialize_error(exc: BaseException) -> Dict[str, Any]:
    """JSON-safe description of an exception for the 500 body."""
    payload: Dict[str, Any] = {
        "error": "MCP handler error",
        "name": type(exc).__name__,
        "message": str(exc) or type(exc).__name__,
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        payload["code"] = code
    return payload


def _replay(body: bytes, receive: Receive) -> Receive:
    """A receive callable that yields an already-read body once."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class StackbyMCPEndpoint:
    """ASGI app in front of the MCP session manager.

    Rejects requests without credentials, answers malformed and
    notification-only POST bodies itself, and turns any exception raised
    while reading the body or dispatching into a diagnostic 500.
    """

    def __init__(self, session_manager: StreamableHTTPSessionManager) -> None:
        self._session_manager = session_manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)

        if not api_key_from_headers(request.headers):
            response = JSONResponse({"error": MISSING_KEY_MESSAGE}, status_code=401)
            await response(scope, receive, send)
            return

        started = False

        async def tracking_send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self._handle(request, scope, receive, tracking_send)
        except Exception as exc:
            payload = serialize_error(exc)
            logger.exception("Error handling MCP request: %s", payload["message"])

            if started:
                # Headers are already on the wire; the log line is all we can add.
                return

            response = JSONResponse(
                payload,
                status_code=500,
                headers={ERROR_HEADER: quote(payload["message"][:200], safe="")},
                media_type="application/json; charset=utf-8",
            )
            await response(scope, receive, send)

    async def _handle(
        self, request: Request, scope: Scope, receive: Receive, send: Send
    ) -> None:
        if request.method == "POST":
            raw = await request.body()
            text = raw.decode("utf-8", errors="replace")
            if not text.strip():
                logger.warning("POST %s with empty body", MCP_PATH)
                await _parse_error("Parse error: Request body is empty")(scope, receive, send)
                return
            try:
                payload = json.loads(text)
            except ValueError:
                logger.warning("POST %s with invalid JSON (%d bytes)", MCP_PATH, len(raw))
                await _parse_error("Parse error: Invalid JSON")(scope, receive, send)
                return

            if _only_notifications(payload):
                await Response(status_code=202)(scope, receive, send)
                return

            # The body stream is consumed; hand the bytes to the SDK again.
            receive = _replay(raw, receive)

        await self._session_manager.handle_request(scope, receive, send)


async def health(request: Request) -> Response:
    return PlainTextResponse("OK")


def create_app(config: Optional[StackbyConfig] = None) -> Starlette:
    """Build the hosted ASGI app.

    A fresh FastMCP instance is created per app because a session manager
    can only be run once.
    """
    config = config or StackbyConfig.from_env()

    mcp = FastMCP(
        "stackby-mcp-server",
        stateless_http=True,
        json_response=True,
        # Hosted behind a load balancer; Host headers vary per deployment.
        transport_security=TransportSecuritySettings(enable_dns_rebinding_protection=False),
    )
    tasks.register_tools(mcp, config)

    # Builds the session manager that backs mcp.session_manager.
    mcp.streamable_http_app()
    session_manager = mcp.session_manager

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with session_manager.run():
            yield

    return Starlette(
        routes=[
            Route(HEALTH_PATH, health, methods=["GET"]),
            Route(MCP_PATH, endpoint=StackbyMCPEndpoint(session_manager), methods=["GET", "POST"]),
        ],
        lifespan=lifespan,
    )


def main() -> None:
    """Synchronous entrypoint for console_scripts."""
    config = StackbyConfig.from_env()
    configure_logging(config.log_level)

    app = create_app(config)

    logger.info("Stackby MCP HTTP server listening on %s:%d", config.host, config.port)
    logger.info("  GET  %s - health check", HEALTH_PATH)
    logger.info("  POST %s - MCP (send X-Stackby-API-Key or Authorization: Bearer <key>)", MCP_PATH)

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
