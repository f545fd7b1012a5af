"""Carrier media stream frame models."""
from typing import Dict, Optional

from pydantic import BaseModel, Field


class StreamStart(BaseModel):
    """Payload of a carrier ``start`` event."""

    callSid: str
    streamSid: Optional[str] = None
    customParameters: Dict[str, str] = Field(default_factory=dict)


class StartFrame(BaseModel):
    event: str
    streamSid: str
    start: StreamStart


class MediaPayload(BaseModel):
    payload: str
    track: Optional[str] = None
    timestamp: Optional[str] = None


class MediaFrame(BaseModel):
    event: str
    streamSid: Optional[str] = None
    media: MediaPayload


class MarkPayload(BaseModel):
    name: str


class MarkFrame(BaseModel):
    event: str
    streamSid: Optional[str] = None
    mark: MarkPayload


class StopFrame(BaseModel):
    event: str
    streamSid: Optional[str] = None


# Known events and the model that validates them. Anything else is ignored.
FRAME_MODELS = {
    "start": StartFrame,
    "media": MediaFrame,
    "mark": MarkFrame,
    "stop": StopFrame,
}
IGNORED_EVENTS = {"connected", "dtmf"}


# Notifications yielded by MediaTransport.events()


class MediaStarted(BaseModel):
    media_stream_id: str
    call_id: str
    custom_parameters: Dict[str, str] = Field(default_factory=dict)


class AudioReceived(BaseModel):
    payload: str  # base64 mu-law, forwarded as-is


class Mark(BaseModel):
    name: str


class MediaStopped(BaseModel):
    reason: str = "stop"  # "stop" for carrier stop event, "disconnect" for socket loss
