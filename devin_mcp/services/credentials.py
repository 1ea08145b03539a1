from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, MutableMapping, Optional

from ..core.config import Settings
from ..core.errors import CredentialStoreError

TOKEN_KEY = "DEVIN_API_TOKEN"
ORG_KEY = "DEVIN_ORG_ID"

KEYCHAIN_ACCOUNT = "devin"
KEYCHAIN_TOKEN_SERVICE = "claude-devin-token"
KEYCHAIN_ORG_SERVICE = "claude-devin-orgid"


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credentials:
    token: Optional[str] = None
    org_id: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.token) and bool(self.org_id)


class CredentialStore(ABC):
    """Persists the Devin token and organization ID as a single pair."""

    @abstractmethod
    def load(self) -> Credentials:
        ...

    @abstractmethod
    def save(self, credentials: Credentials) -> None:
        ...

    @abstractmethod
    def describe(self) -> str:
        """Human readable location, used in setup messages."""
        ...


class FileCredentialStore(CredentialStore):
    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text("utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable credentials file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> Credentials:
        data = self._read()
        return Credentials(token=data.get(TOKEN_KEY) or None, org_id=data.get(ORG_KEY) or None)

    def save(self, credentials: Credentials) -> None:
        payload = json.dumps({TOKEN_KEY: credentials.token, ORG_KEY: credentials.org_id}, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            # O_CREAT only applies the mode to new files.
            os.chmod(self.path, 0o600)
        except OSError as exc:
            raise CredentialStoreError(f"Could not write {self.path}: {exc}") from exc
        logger.info("Saved Devin credentials to %s", self.path)

    def describe(self) -> str:
        return f"config file ({self.path}, mode 0600)"


class KeychainCredentialStore(CredentialStore):
    """macOS Keychain access through the ``security`` command line tool."""

    def __init__(self, account: str = KEYCHAIN_ACCOUNT) -> None:
        self.account = account

    def _run(self, args: List[str]) -> str:
        completed = subprocess.run(
            ["security", *args],
            capture_output=True,
            text=True,
            check=True,
        )
        return completed.stdout.strip()

    def _get(self, service: str) -> Optional[str]:
        try:
            value = self._run(["find-generic-password", "-a", self.account, "-s", service, "-w"])
        except (OSError, subprocess.CalledProcessError):
            return None
        return value or None

    def _set(self, service: str, value: str) -> None:
        try:
            self._run(["add-generic-password", "-U", "-a", self.account, "-s", service, "-w", value])
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
            raise CredentialStoreError(f"Keychain write for '{service}' failed: {detail}") from exc
        except OSError as exc:
            raise CredentialStoreError(f"Keychain is unavailable: {exc}") from exc

    def load(self) -> Credentials:
        return Credentials(
            token=self._get(KEYCHAIN_TOKEN_SERVICE),
            org_id=self._get(KEYCHAIN_ORG_SERVICE),
        )

    def save(self, credentials: Credentials) -> None:
        """Write both items, restoring the previous org ID if the token write fails."""
        previous_org = self._get(KEYCHAIN_ORG_SERVICE)
        self._set(KEYCHAIN_ORG_SERVICE, credentials.org_id or "")
        try:
            self._set(KEYCHAIN_TOKEN_SERVICE, credentials.token or "")
        except CredentialStoreError:
            if previous_org is not None:
                try:
                    self._set(KEYCHAIN_ORG_SERVICE, previous_org)
                except CredentialStoreError as exc:
                    logger.warning("Could not restore the previous Keychain org ID: %s", exc)
            raise
        logger.info("Saved Devin credentials to the macOS Keychain")

    def describe(self) -> str:
        return "macOS Keychain"


class EnvCredentialStore(CredentialStore):
    """Reads credentials from environment variables.

    Saving only affects the running process, plus the launchd session
    environment on macOS so newly launched apps pick the values up.
    """

    def __init__(self, environ: MutableMapping[str, str] | None = None) -> None:
        self.environ = os.environ if environ is None else environ

    def load(self) -> Credentials:
        return Credentials(
            token=self.environ.get(TOKEN_KEY) or None,
            org_id=self.environ.get(ORG_KEY) or None,
        )

    def save(self, credentials: Credentials) -> None:
        self.environ[TOKEN_KEY] = credentials.token or ""
        self.environ[ORG_KEY] = credentials.org_id or ""
        if sys.platform == "darwin":
            self._launchctl_setenv({TOKEN_KEY: credentials.token or "", ORG_KEY: credentials.org_id or ""})

    def _launchctl_setenv(self, values: Mapping[str, str]) -> None:
        for name, value in values.items():
            try:
                subprocess.run(["launchctl", "setenv", name, value], capture_output=True, check=True)
            except (OSError, subprocess.CalledProcessError) as exc:
                logger.warning("launchctl setenv %s failed: %s", name, exc)

    def describe(self) -> str:
        return f"environment ({TOKEN_KEY}, {ORG_KEY})"


def create_credential_store(settings: Settings) -> CredentialStore:
    backend = settings.resolved_backend
    if backend == "keychain":
        return KeychainCredentialStore()
    if backend == "file":
        return FileCredentialStore(settings.config_path)
    if backend == "env":
        return EnvCredentialStore()
    raise ValueError(f"Unknown credential backend '{backend}'")
