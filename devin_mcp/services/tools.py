from __future__ import annotations

import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..core.config import Settings
from ..core.errors import ERROR_BODY_LIMIT, CredentialsMissingError, CredentialStoreError, DevinAPIError
from ..core.logging import redact
from .credentials import Credentials, CredentialStore
from .devin import DEFAULT_LIST_LIMIT, DevinService
from .launcher import launch_setup_ui

SETUP_TOOL = "setup_devin"

_SETUP_INLINE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "token": {
            "type": "string",
            "description": "Devin API token from app.devin.ai/settings/api-keys",
        },
        "org_id": {
            "type": "string",
            "description": "Devin Organization ID from app.devin.ai/settings/organization",
        },
    },
    "required": ["token", "org_id"],
}

_SESSION_TOOLS: List[Dict[str, Any]] = [
    {
        "name": "list_devin_sessions",
        "description": "List recent Devin sessions with their statuses.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": f"Max sessions to return (default {DEFAULT_LIST_LIMIT})",
                }
            },
        },
    },
    {
        "name": "create_devin_session",
        "description": "Start a new Devin AI session with a task. Returns session_id and URL to watch live.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "prompt": {
                    "type": "string",
                    "description": "The task for Devin. Be specific: include repo, files and expected outcome.",
                },
                "idempotent_client_id": {
                    "type": "string",
                    "description": "Optional dedup ID",
                },
            },
            "required": ["prompt"],
        },
    },
    {
        "name": "get_devin_session",
        "description": "Get status and details of a Devin session.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "Devin session ID"},
            },
            "required": ["session_id"],
        },
    },
    {
        "name": "send_devin_message",
        "description": "Send a follow-up message to an active Devin session.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "session_id": {"type": "string", "description": "Devin session ID"},
                "message": {"type": "string", "description": "Message to send to Devin"},
            },
            "required": ["session_id", "message"],
        },
    },
]


logger = logging.getLogger(__name__)


class ToolService:
    """Maps MCP tool calls onto Devin API requests."""

    def __init__(
        self,
        *,
        settings: Settings,
        store: CredentialStore,
        devin: DevinService,
        launcher: Callable[[Settings], str] = launch_setup_ui,
    ) -> None:
        self.settings = settings
        self.store = store
        self.devin = devin
        self.launcher = launcher
        self._credentials = store.load()
        self._handlers: Dict[str, Callable[[Credentials, Dict[str, Any]], Awaitable[Any]]] = {
            "list_devin_sessions": self._list_sessions,
            "create_devin_session": self._create_session,
            "get_devin_session": self._get_session,
            "send_devin_message": self._send_message,
        }

    def reload(self) -> Credentials:
        self._credentials = self.store.load()
        return self._credentials

    def list_tools(self) -> List[Dict[str, Any]]:
        return [self._setup_tool_definition(), *_SESSION_TOOLS]

    def _setup_tool_definition(self) -> Dict[str, Any]:
        if self.settings.setup_mode == "browser":
            return {
                "name": SETUP_TOOL,
                "description": (
                    "Open a local setup page in the browser where the user enters "
                    "their Devin API token and organization ID."
                ),
                "inputSchema": {"type": "object", "properties": {}},
            }
        return {
            "name": SETUP_TOOL,
            "description": (
                f"Save Devin API credentials (token and org ID) to the {self.store.describe()}. "
                "Call this with the token and org_id provided by the user to complete setup."
            ),
            "inputSchema": _SETUP_INLINE_SCHEMA,
        }

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Any:
        arguments = arguments or {}
        logger.info("Tool call %s arguments=%s", name, redact(arguments))

        if name == SETUP_TOOL:
            if self.settings.setup_mode == "browser":
                return self._launch_setup()
            return await self.setup(arguments.get("token"), arguments.get("org_id"))

        handler = self._handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        try:
            credentials = self._require_credentials()
        except CredentialsMissingError as exc:
            return {"error": str(exc)}

        return await handler(credentials, arguments)

    def _require_credentials(self) -> Credentials:
        # The setup UI may have replaced the pair from another process.
        credentials = self.reload()
        if not credentials.complete:
            raise CredentialsMissingError()
        return credentials

    async def setup(self, token: Optional[str], org_id: Optional[str]) -> Dict[str, Any]:
        """Verify a credential pair against the API and persist it on success."""
        if not token or not org_id:
            return {"error": "Both token and org_id are required."}

        candidate = Credentials(token=token, org_id=org_id)
        try:
            session_count = await self.devin.verify(candidate)
        except DevinAPIError as exc:
            return {
                "error": f"API verification failed (HTTP {exc.status_code}): {exc.body[:ERROR_BODY_LIMIT]}"
            }
        except httpx.HTTPError as exc:
            return {"error": f"Connection failed: {exc}"}

        try:
            self.store.save(candidate)
        except CredentialStoreError as exc:
            return {"error": f"Failed to save credentials: {exc}"}

        self.reload()
        return {
            "ok": True,
            "message": (
                f"Credentials saved to {self.store.describe()} and verified. "
                f"Found {session_count} session(s). You're ready to use Devin."
            ),
        }

    def _launch_setup(self) -> Dict[str, Any]:
        url = self.launcher(self.settings)
        return {
            "ok": True,
            "url": url,
            "message": (
                f"Setup page opened at {url}. Enter your Devin API token and organization ID there; "
                "the page verifies them before saving."
            ),
        }

    async def _list_sessions(self, credentials: Credentials, arguments: Dict[str, Any]) -> Any:
        return await self.devin.list_sessions(credentials, limit=_limit(arguments))

    async def _create_session(self, credentials: Credentials, arguments: Dict[str, Any]) -> Any:
        prompt = _require(arguments, "prompt")
        return await self.devin.create_session(
            credentials,
            prompt,
            idempotent_client_id=arguments.get("idempotent_client_id"),
        )

    async def _get_session(self, credentials: Credentials, arguments: Dict[str, Any]) -> Any:
        return await self.devin.get_session(credentials, _require(arguments, "session_id"))

    async def _send_message(self, credentials: Credentials, arguments: Dict[str, Any]) -> Any:
        return await self.devin.send_message(
            credentials,
            _require(arguments, "session_id"),
            _require(arguments, "message"),
        )


def _require(arguments: Dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if value is None or value == "":
        raise ValueError(f"'{key}' is required")
    return str(value)


def _limit(arguments: Dict[str, Any]) -> int:
    value = arguments.get("limit")
    if value is None or value == "":
        return DEFAULT_LIST_LIMIT
    if isinstance(value, bool):
        raise ValueError("'limit' must be a number")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValueError("'limit' must be a number") from None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError("'limit' must be a number")
    if value != int(value) or value < 1:
        raise ValueError("'limit' must be a positive whole number")
    return int(value)
