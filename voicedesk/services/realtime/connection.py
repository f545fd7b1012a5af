"""Realtime AI provider connection."""
import json
import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI
from websockets.exceptions import ConnectionClosed

from voicedesk.core.config import settings
from voicedesk.core.exceptions import RealtimeConnectError

logger = logging.getLogger(__name__)


class RealtimeConnection:
    """Thin JSON-event wrapper over an OpenAI realtime connection."""

    def __init__(self, connection: Any):
        self._connection = connection
        self.closed = False

    async def send(self, event: Dict[str, Any]) -> None:
        await self._connection.send(event)

    async def recv(self) -> Optional[Dict[str, Any]]:
        """Next server event, or None once the provider has closed the connection."""
        if self.closed:
            return None
        try:
            raw = await self._connection.recv_bytes()
        except ConnectionClosed as e:
            logger.info(f"[REALTIME] Provider connection closed - Code: {e.rcvd.code if e.rcvd else None}")
            self.closed = True
            return None
        return json.loads(raw)

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._connection.close()


class RealtimeConnector:
    """Opens realtime connections to the OpenAI Realtime API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.client = AsyncOpenAI(api_key=api_key or settings.openai_api_key)
        self.model = model or settings.realtime_model

    async def connect(self) -> RealtimeConnection:
        """
        Open a realtime connection.

        Raises:
            RealtimeConnectError: if the provider cannot be reached
        """
        try:
            connection = await self.client.realtime.connect(model=self.model).enter()
        except Exception as e:
            logger.error(
                f"[REALTIME] Failed to connect to provider - Model: {self.model}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            raise RealtimeConnectError(f"Could not connect to realtime provider: {e}") from e
        logger.info(f"[REALTIME] Connected to provider - Model: {self.model}")
        return RealtimeConnection(connection)
