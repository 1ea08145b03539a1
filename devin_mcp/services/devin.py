from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..core.errors import DevinAPIError
from .credentials import Credentials

DEFAULT_LIST_LIMIT = 10


logger = logging.getLogger(__name__)


class DevinService:
    """Thin client for the Devin sessions REST API."""

    def __init__(
        self,
        base_url: str,
        api_version: str = "v3beta1",
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _sessions_path(self, credentials: Credentials) -> str:
        if self.api_version == "v1":
            return "/v1/sessions"
        return f"/v3beta1/organizations/{quote(credentials.org_id or '', safe='')}/sessions"

    def _session_path(self, credentials: Credentials, session_id: str) -> str:
        encoded = quote(session_id, safe="")
        if self.api_version == "v1":
            return f"/v1/session/{encoded}"
        return f"{self._sessions_path(credentials)}/{encoded}"

    def _messages_path(self, credentials: Credentials, session_id: str) -> str:
        suffix = "message" if self.api_version == "v1" else "messages"
        return f"{self._session_path(credentials, session_id)}/{suffix}"

    async def request(
        self,
        credentials: Credentials,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {credentials.token}",
            "Content-Type": "application/json",
        }
        timeout = httpx.Timeout(self.timeout_seconds)
        logger.debug("Devin API %s %s", method, path)
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, params=params, json=body)
        if response.is_error:
            raise DevinAPIError(response.status_code, response.text)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Devin API %s %s returned a non-JSON body", method, path)
            raise DevinAPIError(response.status_code, response.text) from exc

    async def list_sessions(self, credentials: Credentials, limit: int = DEFAULT_LIST_LIMIT) -> Dict[str, Any]:
        return await self.request(
            credentials, "GET", self._sessions_path(credentials), params={"limit": limit}
        )

    async def create_session(
        self,
        credentials: Credentials,
        prompt: str,
        idempotent_client_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"prompt": prompt}
        if idempotent_client_id:
            body["idempotent_client_id"] = idempotent_client_id
        return await self.request(credentials, "POST", self._sessions_path(credentials), body=body)

    async def get_session(self, credentials: Credentials, session_id: str) -> Dict[str, Any]:
        return await self.request(credentials, "GET", self._session_path(credentials, session_id))

    async def send_message(self, credentials: Credentials, session_id: str, message: str) -> Dict[str, Any]:
        return await self.request(
            credentials,
            "POST",
            self._messages_path(credentials, session_id),
            body={"message": message},
        )

    async def verify(self, credentials: Credentials) -> int:
        """Issue one authenticated list call and return how many sessions came back."""
        data = await self.list_sessions(credentials, limit=1)
        return self._count_sessions(data)

    @staticmethod
    def _count_sessions(data: Any) -> int:
        if not isinstance(data, dict):
            return 0
        for key in ("sessions", "data", "items"):
            value = data.get(key)
            if isinstance(value, list):
                return len(value)
        return 0
