"""Command execution endpoints.

POST /bash/exec   – run a command, return the complete result as JSON
POST /bash        – run a command, stream newline-delimited JSON events
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from app.config import settings
from app.services.runner import CommandRunner, get_runner
from shared.schemas import ExecutionEvent

router = APIRouter()
logger = logging.getLogger(__name__)


class BashRequest(BaseModel):
    command: str = ""
    timeout: int | None = None  # milliseconds
    cwd: str | None = None


def _invalid(request: BashRequest) -> JSONResponse | None:
    if not request.command:
        return JSONResponse({"success": False, "error": "Command is required"}, status_code=400)
    if request.timeout is not None and request.timeout <= 0:
        return JSONResponse(
            {"success": False, "error": "Timeout must be a positive number of milliseconds"},
            status_code=400,
        )
    return None


# ── POST /bash/exec ──────────────────────────────────────────────────

@router.post("/bash/exec")
async def bash_exec(request: BashRequest, runner: CommandRunner = Depends(get_runner)):
    """Run the command to completion.  Non-zero exits are still HTTP 200."""
    if (error := _invalid(request)) is not None:
        return error

    cwd = request.cwd or settings.WORKSPACE
    timeout_ms = request.timeout or settings.DEFAULT_TIMEOUT_MS
    logger.info("exec (timeout=%dms, cwd=%s): %s", timeout_ms, cwd, request.command)

    result = await runner.run(request.command, cwd=cwd, timeout_ms=timeout_ms)
    return result.to_dict()


# ── POST /bash  (streaming) ──────────────────────────────────────────

@router.post("/bash")
async def bash_stream(request: BashRequest, runner: CommandRunner = Depends(get_runner)):
    """Stream ``start``, ``stdout``/``stderr`` chunks, ``timeout``, then ``exit`` or ``error``."""
    if (error := _invalid(request)) is not None:
        return error

    cwd = request.cwd or settings.WORKSPACE
    timeout_ms = request.timeout or settings.DEFAULT_TIMEOUT_MS
    logger.info("stream (timeout=%dms, cwd=%s): %s", timeout_ms, cwd, request.command)

    return StreamingResponse(
        _ndjson(runner.stream(request.command, cwd=cwd, timeout_ms=timeout_ms)),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _ndjson(events: AsyncIterator[ExecutionEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield json.dumps(event.to_dict()) + "\n"
