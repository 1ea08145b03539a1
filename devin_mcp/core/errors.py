from __future__ import annotations

MISSING_CREDENTIALS_MESSAGE = "Devin credentials not configured. Run /devin-setup to configure."

ERROR_BODY_LIMIT = 200


class CredentialsMissingError(RuntimeError):
    def __init__(self, message: str = MISSING_CREDENTIALS_MESSAGE) -> None:
        super().__init__(message)


class CredentialStoreError(RuntimeError):
    pass


class DevinAPIError(RuntimeError):
    """Raised when the Devin API answers with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Devin API {status_code}: {body[:ERROR_BODY_LIMIT]}")
