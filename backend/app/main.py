"""FastAPI application entry point for the in-environment execution server."""

import logging
import sys
from pathlib import Path

from fastapi import FastAPI

from app.config import settings
from app.routes import bash, files, health

# ── Logging configuration ────────────────────────────────────────────

def _configure_logging() -> None:
    """Set up root logger with a console handler and an optional file handler."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level)
    console.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(log_level)
    # Avoid duplicate handlers on reload
    root.handlers.clear()
    root.addHandler(console)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    for noisy in ("asyncio", "watchfiles"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


_configure_logging()
_logger = logging.getLogger(__name__)

# ── FastAPI application ──────────────────────────────────────────────

app = FastAPI(
    title="Skill Sandbox Execution Server",
    description="Runs shell commands inside a skill environment with timeouts and captured output.",
    version="0.1.0",
)

app.include_router(health.router, tags=["health"])

# POST /bash/exec, POST /bash
app.include_router(bash.router, tags=["bash"])

# POST /file/read, POST /file/write, POST /cleanup
app.include_router(files.router, tags=["files"])


@app.on_event("startup")
async def startup_event():
    _logger.info(
        "Execution server starting | workspace=%s | default_timeout=%dms | log_level=%s",
        settings.WORKSPACE, settings.DEFAULT_TIMEOUT_MS, settings.LOG_LEVEL,
    )


def run(host: str | None = None, port: int | None = None) -> None:
    """Serve the app with uvicorn (blocking)."""
    import uvicorn

    uvicorn.run(
        app,
        host=host or settings.SERVER_HOST,
        port=port or settings.SERVER_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
