"""Health check endpoint."""
import logging
from fastapi import APIRouter, Depends, Request

from voicedesk.core.dependencies import get_call_registry
from voicedesk.services.call_session.registry import CallStateRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(
    request: Request,
    registry: CallStateRegistry = Depends(get_call_registry),
):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {"status": "healthy", "active_calls": len(registry)}
