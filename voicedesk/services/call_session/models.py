"""Call state models."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from voicedesk.services.transfer.states import TransferPhase, TransferStateMachine


class PendingTransfer(BaseModel):
    """Transfer armed by the coordinator and awaiting the carrier callback."""

    target_address: str
    reason: Optional[str] = None
    armed_at: datetime = Field(default_factory=datetime.utcnow)


class CallState:
    """Live state of one in-progress call."""

    def __init__(
        self,
        call_id: str,
        caller_address: Optional[str] = None,
        called_address: Optional[str] = None,
    ):
        self._call_id = call_id
        self._caller_address = caller_address
        self._called_address = called_address
        self.media_stream_id: Optional[str] = None
        self.socket_handle: Optional[Any] = None  # MediaTransport
        self.session_handle: Optional[Any] = None  # RealtimeSession
        self.pending_transfer: Optional[PendingTransfer] = None
        self.transfer = TransferStateMachine(call_id)
        self.financial_access_verified = False
        self.end_reason: Optional[str] = None
        self.created_at = datetime.utcnow()

    @property
    def call_id(self) -> str:
        return self._call_id

    @property
    def caller_address(self) -> Optional[str]:
        return self._caller_address

    @property
    def called_address(self) -> Optional[str]:
        return self._called_address

    @property
    def transfer_phase(self) -> TransferPhase:
        return self.transfer.phase

    def fill_addresses(
        self, caller_address: Optional[str], called_address: Optional[str]
    ) -> None:
        """Set caller/called addresses if they were unknown at registration."""
        if self._caller_address is None:
            self._caller_address = caller_address
        if self._called_address is None:
            self._called_address = called_address

    def __repr__(self) -> str:
        return (
            f"CallState(call_id={self._call_id!r}, media_stream_id={self.media_stream_id!r}, "
            f"phase={self.transfer.phase.value!r}, pending={self.pending_transfer is not None})"
        )
