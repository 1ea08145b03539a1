from .setup import SetupRequest, SetupResponse

__all__ = [
    "SetupRequest",
    "SetupResponse",
]
