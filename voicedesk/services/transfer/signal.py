"""Carrier transfer signalling.

The carrier follows a <Connect action="..."> URL once its media stream ends,
so closing the media socket is what tells the carrier to ask us where the
call goes next.
"""
import logging
from abc import ABC, abstractmethod

from voicedesk.core.exceptions import SocketUnavailableError
from voicedesk.services.call_session.models import CallState

logger = logging.getLogger(__name__)

TRANSFER_CLOSE_CODE = 1000
TRANSFER_CLOSE_REASON = "Call transfer initiated"


class TransferSignal(ABC):
    """Tells the carrier that a call should leave the media stream."""

    @abstractmethod
    async def request_transfer_signal(self, call: CallState) -> None:
        """
        Signal the carrier.

        Raises:
            SocketUnavailableError: if there is no open media socket
        """
        pass

    @abstractmethod
    async def wait_for_release(self, call: CallState, timeout: float) -> bool:
        """Wait until the carrier has released the media leg. False on timeout."""
        pass


class SocketCloseSignal(TransferSignal):
    """Signals a transfer by closing the media socket normally."""

    async def request_transfer_signal(self, call: CallState) -> None:
        transport = call.socket_handle
        if transport is None or not transport.is_open:
            raise SocketUnavailableError(f"No open media socket for {call.call_id}")
        await transport.force_close(TRANSFER_CLOSE_CODE, TRANSFER_CLOSE_REASON)

    async def wait_for_release(self, call: CallState, timeout: float) -> bool:
        transport = call.socket_handle
        if transport is None:
            return True
        return await transport.wait_closed(timeout)
