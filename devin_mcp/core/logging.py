from __future__ import annotations

import logging
import sys
from typing import Any, Dict

_LOG_FORMAT = "[devin-mcp] %(message)s"
_SENSITIVE_KEYS = {"token", "api_key", "password", "devin_api_token"}


def configure_logging(level: str = "INFO") -> None:
    """Route package logging to stderr; stdout carries JSON-RPC only."""
    root = logging.getLogger("devin_mcp")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    root.propagate = False


def redact(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of tool arguments that is safe to log."""
    return {
        key: "[REDACTED]" if key.lower() in _SENSITIVE_KEYS else value
        for key, value in arguments.items()
    }
