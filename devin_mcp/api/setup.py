from __future__ import annotations

import asyncio
import html
import json
import logging
from pathlib import Path
from string import Template

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import ValidationError

from ..core.config import Settings
from ..core.dependencies import get_credential_store, get_devin_service, get_settings
from ..core.errors import ERROR_BODY_LIMIT, CredentialStoreError, DevinAPIError
from ..schemas import SetupRequest, SetupResponse
from ..services.credentials import Credentials, CredentialStore
from ..services.devin import DevinService

router = APIRouter(tags=["setup"])

logger = logging.getLogger(__name__)

_TEMPLATE_PATH = Path(__file__).resolve().parents[1] / "templates" / "setup.html"
_ALREADY_SET = '<span class="already-set">&#10003; already set</span>'


def _respond(payload: SetupResponse, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(by_alias=True, exclude_none=True),
    )


def render_form(existing: Credentials, storage_label: str) -> str:
    template = Template(_TEMPLATE_PATH.read_text("utf-8"))
    return template.substitute(
        token_marker=_ALREADY_SET if existing.token else "",
        token_placeholder="&#8226;" * 16 if existing.token else "devin_api_...",
        org_marker=_ALREADY_SET if existing.org_id else "",
        org_placeholder=html.escape(existing.org_id or "org_xxxxxxxxxxxxxxxxxx"),
        org_value=html.escape(existing.org_id or ""),
        has_existing_token="true" if existing.token else "false",
        storage_label=html.escape(storage_label),
    )


async def _schedule_shutdown(request: Request, delay: float) -> None:
    shutdown = getattr(request.app.state, "shutdown", None)
    if shutdown is None:
        return
    asyncio.get_running_loop().call_later(delay, shutdown)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def setup_form(store: CredentialStore = Depends(get_credential_store)) -> HTMLResponse:
    return HTMLResponse(render_form(store.load(), store.describe()))


@router.post("/setup")
async def submit_setup(
    request: Request,
    background_tasks: BackgroundTasks,
    store: CredentialStore = Depends(get_credential_store),
    devin: DevinService = Depends(get_devin_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    try:
        payload = SetupRequest.model_validate(await request.json())
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
        return _respond(SetupResponse(ok=False, error=str(exc)), status.HTTP_400_BAD_REQUEST)

    existing = store.load()
    candidate = Credentials(
        token=payload.token or existing.token,
        org_id=payload.org_id or existing.org_id,
    )
    if not candidate.complete:
        return _respond(SetupResponse(ok=False, error="Missing token or org ID."))

    try:
        session_count = await devin.verify(candidate)
    except DevinAPIError as exc:
        logger.warning("Setup verification rejected with HTTP %s", exc.status_code)
        return _respond(SetupResponse(ok=False, error=f"HTTP {exc.status_code}: {exc.body[:ERROR_BODY_LIMIT]}"))
    except httpx.HTTPError as exc:
        return _respond(SetupResponse(ok=False, error=f"Connection failed: {exc}"))

    try:
        store.save(candidate)
    except CredentialStoreError as exc:
        return _respond(SetupResponse(ok=False, error=f"Failed to save credentials: {exc}"))

    logger.info("Credentials verified (%d session(s)) and saved to %s", session_count, store.describe())
    background_tasks.add_task(_schedule_shutdown, request, settings.setup_shutdown_delay_seconds)
    return _respond(SetupResponse(ok=True, session_count=session_count))
