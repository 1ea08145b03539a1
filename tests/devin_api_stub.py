"""In-process fake of the Devin sessions API used by the test suite."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import httpx

from devin_mcp.services.credentials import Credentials, CredentialStore

_V3_SESSIONS = re.compile(r"^/v3beta1/organizations/(?P<org>[^/]+)/sessions$")
_V3_SESSION = re.compile(r"^/v3beta1/organizations/(?P<org>[^/]+)/sessions/(?P<sid>[^/]+)$")
_V3_MESSAGES = re.compile(r"^/v3beta1/organizations/(?P<org>[^/]+)/sessions/(?P<sid>[^/]+)/messages$")
_V1_SESSIONS = re.compile(r"^/v1/sessions$")
_V1_SESSION = re.compile(r"^/v1/session/(?P<sid>[^/]+)$")
_V1_MESSAGE = re.compile(r"^/v1/session/(?P<sid>[^/]+)/message$")


class DevinAPIStub:
    def __init__(self, tokens: Optional[Dict[str, str]] = None) -> None:
        # token -> org id it is valid for
        self.tokens = tokens if tokens is not None else {"good-token": "org_good"}
        self.requests: List[httpx.Request] = []
        self.sessions: Dict[str, Dict[str, Any]] = {
            "devin-1": {"session_id": "devin-1", "status": "running", "org": "org_good"},
            "devin-2": {"session_id": "devin-2", "status": "finished", "org": "org_good"},
        }

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        auth = request.headers.get("Authorization", "")
        token = auth[len("Bearer "):] if auth.startswith("Bearer ") else ""
        if token not in self.tokens:
            return httpx.Response(401, text="Unauthorized: invalid API key")

        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        match = _V3_SESSIONS.match(path) or _V1_SESSIONS.match(path)
        if match:
            org = match.groupdict().get("org", self.tokens[token])
            if org != self.tokens[token]:
                return httpx.Response(403, text="Forbidden")
            if request.method == "GET":
                limit = int(request.url.params.get("limit", "100"))
                sessions = [s for s in self.sessions.values() if s["org"] == org][:limit]
                return httpx.Response(200, json={"sessions": sessions})
            session_id = f"devin-{len(self.sessions) + 1}"
            session = {"session_id": session_id, "status": "running", "org": org, "request": body}
            self.sessions[session_id] = session
            return httpx.Response(200, json={"session_id": session_id, "url": f"https://app.devin.ai/sessions/{session_id}"})

        match = _V3_SESSION.match(path) or _V1_SESSION.match(path)
        if match and request.method == "GET":
            session = self.sessions.get(match.group("sid"))
            if session is None:
                return httpx.Response(404, text="Session not found")
            return httpx.Response(200, json=session)

        match = _V3_MESSAGES.match(path) or _V1_MESSAGE.match(path)
        if match and request.method == "POST":
            if match.group("sid") not in self.sessions:
                return httpx.Response(404, text="Session not found")
            return httpx.Response(204)

        return httpx.Response(404, text=f"No route for {request.method} {path}")


class MemoryCredentialStore(CredentialStore):
    def __init__(self, credentials: Optional[Credentials] = None) -> None:
        self.credentials = credentials or Credentials()
        self.save_calls = 0

    def load(self) -> Credentials:
        return self.credentials

    def save(self, credentials: Credentials) -> None:
        self.save_calls += 1
        self.credentials = credentials

    def describe(self) -> str:
        return "memory store"
