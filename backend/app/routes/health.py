"""Health check endpoint polled by the host before sending commands."""

from fastapi import APIRouter

from shared.schemas import utcnow_iso

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": utcnow_iso(), "service": "skill-sandbox-server"}
