"""Twilio media stream WebSocket endpoint."""
import logging

from fastapi import APIRouter, Depends, WebSocket

from voicedesk.core.dependencies import get_call_session_manager
from voicedesk.services.call_session.manager import CallSessionManager

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/media-stream")
async def media_stream(
    websocket: WebSocket,
    session_manager: CallSessionManager = Depends(get_call_session_manager),
):
    """Bidirectional carrier audio for one call."""
    logger.info(
        f"[MEDIA STREAM] Connection opened - "
        f"Client: {websocket.client.host if websocket.client else 'unknown'}"
    )
    try:
        await session_manager.handle_media_stream(websocket)
    except Exception as e:
        logger.error(
            f"[MEDIA STREAM] Unhandled error in media stream - "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
    logger.info("[MEDIA STREAM] Connection finished")
