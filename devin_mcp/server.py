"""
MCP stdio server exposing Devin session tools.

Protocol:
- One JSON-RPC 2.0 message per line on stdin, one response per line on stdout
- Requests are handled one at a time, each to completion
- Supported methods:
    - "initialize"                → protocol version, capabilities, server info
    - "tools/list"                → the fixed Devin tool catalog
    - "tools/call"                → runs a tool, errors come back as tool results
    - "ping"                      → empty result
    - "notifications/initialized" → no reply (as for every message without an id)

Launch:
    devin-mcp
    python -m devin_mcp.server
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from .core.config import PROTOCOL_VERSION, SERVER_NAME, SERVER_VERSION, ConfigLoaderError
from .core.dependencies import get_credential_store, get_settings, get_tool_service
from .core.errors import MISSING_CREDENTIALS_MESSAGE
from .core.logging import configure_logging
from .services.tools import ToolService

_JSONRPC_VERSION = "2.0"

METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603


logger = logging.getLogger("devin_mcp.server")


class StdioServer:
    def __init__(self, tools: ToolService) -> None:
        self.tools = tools

    async def handle_line(self, line: str) -> Optional[Dict[str, Any]]:
        """Handle one input line; returns the response or None when nothing is owed."""
        line = line.strip()
        if not line:
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.debug("Dropping malformed input line: %s", exc)
            return None
        if not isinstance(message, dict):
            logger.debug("Dropping non-object JSON-RPC message")
            return None
        return await self.handle_message(message)

    async def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        method = message.get("method", "")
        params = message.get("params") or {}

        if "id" not in message:
            logger.debug("Notification received: %s", method)
            return None
        request_id = message["id"]

        try:
            if method == "initialize":
                return _result(request_id, {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                })
            if method == "ping":
                return _result(request_id, {})
            if method == "tools/list":
                return _result(request_id, {"tools": self.tools.list_tools()})
            if method == "tools/call":
                return _result(request_id, await self._call_tool(params))
            return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        except Exception as exc:
            logger.exception("Failed to handle %s", method)
            return _error(request_id, INTERNAL_ERROR, str(exc))

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        arguments = params.get("arguments") or {}
        try:
            result = await self.tools.call(name, arguments)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return {"content": [{"type": "text", "text": f"Error: {exc}"}], "isError": True}
        return {"content": [{"type": "text", "text": json.dumps(result, indent=2)}]}

    async def run(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> None:
        """Serve until stdin is closed."""
        logger.info("started")
        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            response = await self.handle_line(line)
            if response is not None:
                stdout.write(json.dumps(response, separators=(",", ":")) + "\n")
                stdout.flush()
        logger.info("stdin closed; exiting")


def _result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": _JSONRPC_VERSION, "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": _JSONRPC_VERSION, "id": request_id, "error": {"code": code, "message": message}}


def main() -> None:
    try:
        settings = get_settings()
    except ConfigLoaderError as exc:
        raise SystemExit(f"[{SERVER_NAME}] invalid configuration: {exc}") from exc
    configure_logging(settings.log_level)

    if settings.resolved_backend == "env" and not get_credential_store().load().complete:
        raise SystemExit(
            f"[{SERVER_NAME}] DEVIN_API_TOKEN and DEVIN_ORG_ID must be set. {MISSING_CREDENTIALS_MESSAGE}"
        )

    server = StdioServer(get_tool_service())
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
