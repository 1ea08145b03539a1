from __future__ import annotations

import asyncio
import io
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List

from devin_api_stub import DevinAPIStub, MemoryCredentialStore
from devin_mcp.core.config import Settings
from devin_mcp.core.errors import MISSING_CREDENTIALS_MESSAGE
from devin_mcp.server import INTERNAL_ERROR, METHOD_NOT_FOUND, StdioServer
from devin_mcp.services.credentials import Credentials
from devin_mcp.services.devin import DevinService
from devin_mcp.services.tools import ToolService

ROOT_DIR = Path(__file__).resolve().parents[1]


def _server(store=None) -> StdioServer:
    tools = ToolService(
        settings=Settings(),
        store=store if store is not None else MemoryCredentialStore(),
        devin=DevinService("https://api.devin.test", transport=DevinAPIStub().transport()),
        launcher=lambda s: s.setup_url,
    )
    return StdioServer(tools)


def _handle(server: StdioServer, message: Any) -> Any:
    line = message if isinstance(message, str) else json.dumps(message)
    return asyncio.run(server.handle_line(line))


def _tool_text(response: Dict[str, Any]) -> str:
    return response["result"]["content"][0]["text"]


def test_initialize_handshake():
    response = _handle(_server(), {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})

    assert response["id"] == 1
    assert response["result"]["protocolVersion"] == "2024-11-05"
    assert response["result"]["capabilities"] == {"tools": {}}
    assert response["result"]["serverInfo"]["name"] == "devin-mcp"


def test_initialized_notification_gets_no_reply():
    assert _handle(_server(), {"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


def test_requests_without_id_are_not_executed():
    store = MemoryCredentialStore()
    server = _server(store)

    response = _handle(
        server,
        {
            "jsonrpc": "2.0",
            "method": "tools/call",
            "params": {"name": "setup_devin", "arguments": {"token": "good-token", "org_id": "org_good"}},
        },
    )

    assert response is None
    assert store.save_calls == 0


def test_ping_and_tools_list():
    server = _server()

    assert _handle(server, {"jsonrpc": "2.0", "id": "p", "method": "ping"}) == {
        "jsonrpc": "2.0",
        "id": "p",
        "result": {},
    }
    listing = _handle(server, {"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    assert len(listing["result"]["tools"]) == 5


def test_unknown_method_is_method_not_found():
    response = _handle(_server(), {"jsonrpc": "2.0", "id": 7, "method": "resources/list"})

    assert response["id"] == 7
    assert response["error"]["code"] == METHOD_NOT_FOUND
    assert "resources/list" in response["error"]["message"]


def test_malformed_lines_are_dropped():
    server = _server()

    assert _handle(server, "{not json") is None
    assert _handle(server, "[1, 2]") is None
    assert _handle(server, "   ") is None


def test_unknown_tool_is_reported_as_tool_error():
    response = _handle(
        _server(),
        {"jsonrpc": "2.0", "id": 3, "method": "tools/call", "params": {"name": "bogus", "arguments": {}}},
    )

    assert "error" not in response
    assert response["result"]["isError"] is True
    assert _tool_text(response) == "Error: Unknown tool: bogus"


def test_session_tool_without_credentials_returns_guidance():
    response = _handle(
        _server(),
        {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {"name": "list_devin_sessions"}},
    )

    assert json.loads(_tool_text(response)) == {"error": MISSING_CREDENTIALS_MESSAGE}


def test_setup_with_missing_arguments_mentions_required():
    response = _handle(
        _server(),
        {
            "jsonrpc": "2.0",
            "id": 5,
            "method": "tools/call",
            "params": {"name": "setup_devin", "arguments": {"token": "good-token"}},
        },
    )

    assert "required" in _tool_text(response)


def test_session_tool_result_is_pretty_printed_json():
    server = _server(MemoryCredentialStore(Credentials("good-token", "org_good")))

    response = _handle(
        server,
        {
            "jsonrpc": "2.0",
            "id": 6,
            "method": "tools/call",
            "params": {"name": "get_devin_session", "arguments": {"session_id": "devin-1"}},
        },
    )

    text = _tool_text(response)
    assert "\n  " in text
    assert json.loads(text)["status"] == "running"


def test_failures_outside_tools_become_internal_errors():
    class ExplodingTools:
        def list_tools(self) -> List[Dict[str, Any]]:
            raise RuntimeError("catalog unavailable")

    response = _handle(StdioServer(ExplodingTools()), {"jsonrpc": "2.0", "id": 8, "method": "tools/list"})

    assert response["error"] == {"code": INTERNAL_ERROR, "message": "catalog unavailable"}


def test_run_writes_one_line_per_response():
    stdin = io.StringIO(
        "\n".join(
            [
                json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize"}),
                json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
                "garbage",
                json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
            ]
        )
        + "\n"
    )
    stdout = io.StringIO()

    asyncio.run(_server().run(stdin, stdout))

    lines = stdout.getvalue().splitlines()
    assert [json.loads(line)["id"] for line in lines] == [1, 2]


def _subprocess_env(tmp_path, **overrides: str) -> Dict[str, str]:
    env = {
        key: value
        for key, value in os.environ.items()
        if not key.startswith("DEVIN_")
    }
    env.update(
        {
            "PYTHONPATH": str(ROOT_DIR),
            "DEVIN_CREDENTIAL_BACKEND": "file",
            "DEVIN_CONFIG_PATH": str(tmp_path / "config.json"),
        }
    )
    env.update(overrides)
    return env


def test_server_process_speaks_newline_delimited_json(tmp_path):
    requests = [
        {"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "method": "notifications/initialized"},
        {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
    ]
    proc = subprocess.run(
        [sys.executable, "-m", "devin_mcp.server"],
        input="".join(json.dumps(request) + "\n" for request in requests),
        capture_output=True,
        text=True,
        cwd=ROOT_DIR,
        env=_subprocess_env(tmp_path),
        timeout=30,
    )

    assert proc.returncode == 0, proc.stderr
    responses = [json.loads(line) for line in proc.stdout.splitlines()]
    assert [response["id"] for response in responses] == [1, 2]
    assert "[devin-mcp] started" in proc.stderr


def test_env_backend_without_variables_exits_at_startup(tmp_path):
    proc = subprocess.run(
        [sys.executable, "-m", "devin_mcp.server"],
        input="",
        capture_output=True,
        text=True,
        cwd=ROOT_DIR,
        env=_subprocess_env(tmp_path, DEVIN_CREDENTIAL_BACKEND="env"),
        timeout=30,
    )

    assert proc.returncode != 0
    assert "DEVIN_API_TOKEN and DEVIN_ORG_ID must be set" in proc.stderr
    assert proc.stdout == ""
