from __future__ import annotations

import logging
import subprocess
import sys

from ..core.config import Settings

logger = logging.getLogger(__name__)


def launch_setup_ui(settings: Settings) -> str:
    """Start the setup web UI as a detached process and return its URL.

    The child outlives this call; it serves the form, opens the browser
    and exits on its own after a successful save.
    """
    command = [sys.executable, "-m", "devin_mcp.main"]
    logger.info("Launching setup UI: %s", " ".join(command))
    subprocess.Popen(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    return settings.setup_url
