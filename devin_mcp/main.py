from __future__ import annotations

import logging
import webbrowser

import uvicorn
from fastapi import FastAPI

from .api import setup as setup_router
from .core.config import SERVER_VERSION, ConfigLoaderError
from .core.dependencies import get_settings
from .core.logging import configure_logging

app = FastAPI(
    title="Devin Plugin Setup",
    version=SERVER_VERSION,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

logger = logging.getLogger("devin_mcp.setup")

app.include_router(setup_router.router)


@app.on_event("startup")
async def open_browser() -> None:
    url = getattr(app.state, "browser_url", None)
    if url and not webbrowser.open(url):
        logger.info("Could not open a browser; visit %s manually", url)


@app.get("/health")
async def health():
    return {"status": "ok"}


def main() -> None:
    """Serve the setup form until credentials are saved, then exit."""
    try:
        settings = get_settings()
    except ConfigLoaderError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc
    configure_logging(settings.log_level)

    config = uvicorn.Config(
        app,
        host=settings.setup_host,
        port=settings.setup_port,
        log_level="warning",
    )
    server = uvicorn.Server(config)

    def request_shutdown() -> None:
        logger.info("Setup complete; stopping setup server")
        server.should_exit = True

    app.state.shutdown = request_shutdown
    app.state.browser_url = settings.setup_url

    print(f"\nDevin Setup UI: {settings.setup_url}\n", flush=True)
    server.run()


if __name__ == "__main__":
    main()
