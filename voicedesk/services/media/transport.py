"""Media transport adapter for the carrier media stream WebSocket."""
import asyncio
import json
import logging
import time
from collections import deque
from enum import Enum
from typing import AsyncIterator, Callable, Deque, Optional, Union

from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect

from voicedesk.core.exceptions import MediaProtocolError, SocketUnavailableError
from voicedesk.services.media.frames import (
    FRAME_MODELS,
    IGNORED_EVENTS,
    AudioReceived,
    Mark,
    MediaStarted,
    MediaStopped,
    StartFrame,
)

logger = logging.getLogger(__name__)

MediaEvent = Union[MediaStarted, AudioReceived, Mark, MediaStopped]

PROTOCOL_ERROR_CLOSE_CODE = 1002


class SocketState(str, Enum):
    """Lifecycle of the media socket. Moves forward only."""

    UNSET = "unset"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class MediaTransport:
    """
    Wraps one carrier media WebSocket.

    Inbound carrier frames are parsed into notifications (MediaStarted,
    AudioReceived, Mark, MediaStopped). Outbound audio, marks and clears are
    framed for the carrier. Nothing is buffered: once the socket is closing,
    inbound audio is discarded and outbound sends are dropped.
    """

    def __init__(
        self,
        websocket: WebSocket,
        malformed_frame_limit: int = 3,
        malformed_frame_window_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.websocket = websocket
        self.malformed_frame_limit = malformed_frame_limit
        self.malformed_frame_window_seconds = malformed_frame_window_seconds
        self._clock = clock
        self.state = SocketState.UNSET
        self.media_stream_id: Optional[str] = None
        self.call_id: Optional[str] = None
        self._malformed_run: Deque[float] = deque()
        self._closed = asyncio.Event()

    @property
    def is_open(self) -> bool:
        return self.state == SocketState.OPEN

    async def accept(self) -> None:
        await self.websocket.accept()
        self.state = SocketState.OPEN
        logger.info("[MEDIA] Media stream socket accepted")

    async def events(self) -> AsyncIterator[MediaEvent]:
        """
        Yield notifications until the carrier stops the stream or the socket
        goes away.

        Raises:
            MediaProtocolError: after too many consecutive malformed frames
                (the socket is force-closed first)
        """
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                self._mark_closed()
                logger.info(
                    f"[MEDIA] Media socket disconnected - CallSid: {self.call_id}, "
                    f"Code: {message.get('code')}"
                )
                yield MediaStopped(reason="disconnect")
                return

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")

            event = await self._parse(raw)
            if event is None:
                continue
            if isinstance(event, AudioReceived) and not self.is_open:
                continue
            yield event
            if isinstance(event, MediaStopped):
                return

    async def _parse(self, raw: Optional[str]) -> Optional[MediaEvent]:
        try:
            data = json.loads(raw) if raw else None
            if not isinstance(data, dict) or not isinstance(data.get("event"), str):
                raise ValueError("frame has no event name")

            event_name = data["event"]
            model = FRAME_MODELS.get(event_name)
            if model is None:
                if event_name not in IGNORED_EVENTS:
                    logger.debug(f"[MEDIA] Ignoring unknown event: {event_name}")
                self._malformed_run.clear()
                return None
            frame = model.model_validate(data)
        except (ValueError, ValidationError) as e:
            await self._record_malformed(raw, e)
            return None

        self._malformed_run.clear()

        if isinstance(frame, StartFrame):
            self.media_stream_id = frame.streamSid
            self.call_id = frame.start.callSid
            logger.info(
                f"[MEDIA] Stream started - CallSid: {self.call_id}, "
                f"StreamSid: {self.media_stream_id}"
            )
            return MediaStarted(
                media_stream_id=frame.streamSid,
                call_id=frame.start.callSid,
                custom_parameters=frame.start.customParameters,
            )
        if event_name == "media":
            return AudioReceived(payload=frame.media.payload)
        if event_name == "mark":
            return Mark(name=frame.mark.name)
        logger.info(f"[MEDIA] Stream stopped by carrier - CallSid: {self.call_id}")
        return MediaStopped(reason="stop")

    async def _record_malformed(self, raw: Optional[str], error: Exception) -> None:
        now = self._clock()
        # Sliding window over the current unbroken run of malformed frames
        self._malformed_run.append(now)
        while now - self._malformed_run[0] > self.malformed_frame_window_seconds:
            self._malformed_run.popleft()
        count = len(self._malformed_run)

        logger.warning(
            f"[MEDIA] Dropped malformed frame ({count}/"
            f"{self.malformed_frame_limit}) - CallSid: {self.call_id}, "
            f"Error: {type(error).__name__}: {str(error)[:200]}, Frame: {str(raw)[:100]!r}"
        )

        if count >= self.malformed_frame_limit:
            logger.error(
                f"[MEDIA] Too many malformed frames, closing socket - CallSid: {self.call_id}"
            )
            if self.is_open:
                await self.force_close(PROTOCOL_ERROR_CLOSE_CODE, "Malformed media frames")
            raise MediaProtocolError(
                f"{count} consecutive malformed frames on {self.call_id}"
            )

    async def _send(self, message: dict) -> bool:
        if not self.is_open:
            return False
        try:
            await self.websocket.send_text(json.dumps(message))
            return True
        except (RuntimeError, WebSocketDisconnect) as e:
            logger.debug(f"[MEDIA] Send failed, socket gone - CallSid: {self.call_id}, Error: {e}")
            self._mark_closed()
            return False

    async def send_audio(self, payload: str) -> bool:
        """Forward base64 mu-law audio to the caller."""
        return await self._send(
            {"event": "media", "streamSid": self.media_stream_id, "media": {"payload": payload}}
        )

    async def send_mark(self, name: str) -> bool:
        return await self._send(
            {"event": "mark", "streamSid": self.media_stream_id, "mark": {"name": name}}
        )

    async def clear(self) -> bool:
        """Flush audio the carrier has buffered but not yet played."""
        return await self._send({"event": "clear", "streamSid": self.media_stream_id})

    async def force_close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the underlying socket from our side.

        Raises:
            SocketUnavailableError: if the socket is not open
        """
        if not self.is_open:
            raise SocketUnavailableError(
                f"Media socket for {self.call_id} is {self.state.value}"
            )
        self.state = SocketState.CLOSING
        logger.info(
            f"[MEDIA] Closing media socket - CallSid: {self.call_id}, Code: {code}, "
            f"Reason: {reason}"
        )
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError as e:
            logger.debug(f"[MEDIA] Socket already closed - CallSid: {self.call_id}, Error: {e}")
            self._mark_closed()

    async def wait_closed(self, timeout: float) -> bool:
        """Wait for the carrier to acknowledge the close. False on timeout."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def _mark_closed(self) -> None:
        self.state = SocketState.CLOSED
        self._closed.set()
