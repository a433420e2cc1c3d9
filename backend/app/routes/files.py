"""File helpers and workspace cleanup, built on plain shell redirections.

POST /file/read    – ``cat`` a file relative to the workspace
POST /file/write   – ``cat >`` a file, content fed through stdin
POST /cleanup      – remove ``<workspace>/tmp/*``
"""

from __future__ import annotations

import logging
import shlex

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.services.runner import CommandRunner, get_runner
from shared.schemas import ExecutionResult

router = APIRouter()
logger = logging.getLogger(__name__)


class FileReadRequest(BaseModel):
    path: str = ""


class FileWriteRequest(BaseModel):
    path: str = ""
    content: str | None = None


def _failure(result: ExecutionResult) -> JSONResponse:
    error = result.error_message or result.stderr.strip() or result.message
    return JSONResponse({"success": False, "error": error}, status_code=500)


@router.post("/file/read")
async def read_file(request: FileReadRequest, runner: CommandRunner = Depends(get_runner)):
    if not request.path:
        return JSONResponse({"success": False, "error": "Path is required"}, status_code=400)

    result = await runner.run(
        f"cat -- {shlex.quote(request.path)}",
        cwd=settings.WORKSPACE,
        timeout_ms=settings.DEFAULT_TIMEOUT_MS,
    )
    if not result.success:
        return _failure(result)
    return {"success": True, "path": request.path, "content": result.stdout}


@router.post("/file/write")
async def write_file(request: FileWriteRequest, runner: CommandRunner = Depends(get_runner)):
    if not request.path or request.content is None:
        return JSONResponse(
            {"success": False, "error": "Path and content are required"}, status_code=400
        )

    result = await runner.run(
        f"cat > {shlex.quote(request.path)}",
        cwd=settings.WORKSPACE,
        timeout_ms=settings.DEFAULT_TIMEOUT_MS,
        stdin_data=request.content,
    )
    if not result.success:
        return _failure(result)
    return {"success": True, "path": request.path, "message": "File written successfully"}


@router.post("/cleanup")
async def cleanup(runner: CommandRunner = Depends(get_runner)):
    """Best-effort removal of temporary files under the workspace."""
    tmp_dir = shlex.quote(f"{settings.WORKSPACE.rstrip('/')}/tmp")
    result = await runner.run(
        f"rm -rf {tmp_dir}/*",
        cwd=settings.WORKSPACE,
        timeout_ms=settings.DEFAULT_TIMEOUT_MS,
    )
    if not result.success:
        return _failure(result)
    logger.info("Cleanup completed for %s", tmp_dir)
    return {"success": True, "message": "Cleanup completed"}
