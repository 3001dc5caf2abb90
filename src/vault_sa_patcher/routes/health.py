"""Health check routes."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

_OK_BODY = "Ok\n"


@router.get("/status", response_class=PlainTextResponse)
async def status_check() -> str:
    """Process status probe."""
    return _OK_BODY


@router.get("/readiness", response_class=PlainTextResponse)
async def readiness_check() -> str:
    """Readiness probe for Kubernetes."""
    return _OK_BODY


@router.get("/liveness", response_class=PlainTextResponse)
async def liveness_check() -> str:
    """Liveness probe for Kubernetes."""
    return _OK_BODY
