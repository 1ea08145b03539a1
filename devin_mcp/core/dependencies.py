from __future__ import annotations

from functools import lru_cache

from ..services.credentials import CredentialStore, create_credential_store
from ..services.devin import DevinService
from ..services.tools import ToolService
from .config import Settings, load_settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_credential_store() -> CredentialStore:
    return create_credential_store(get_settings())


@lru_cache(maxsize=1)
def get_devin_service() -> DevinService:
    settings = get_settings()
    return DevinService(
        base_url=settings.api_base_url,
        api_version=settings.api_version,
        timeout_seconds=settings.request_timeout_seconds,
    )


def get_tool_service() -> ToolService:
    return ToolService(
        settings=get_settings(),
        store=get_credential_store(),
        devin=get_devin_service(),
    )
