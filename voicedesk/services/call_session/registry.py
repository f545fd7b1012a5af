"""Call state registry.

Process-wide store of live calls keyed by carrier call identifier. Every
operation is synchronous so that, on a single event loop, no two handlers can
interleave inside one mutation. Waiting happens between registry calls, never
during one.
"""
import logging
from typing import Any, Dict, List, Optional

from voicedesk.core.exceptions import (
    CallNotFoundError,
    CallStateError,
    TransferAlreadyPendingError,
)
from voicedesk.services.call_session.models import CallState, PendingTransfer

logger = logging.getLogger(__name__)


class CallStateRegistry:
    """Keyed store mapping call_id -> CallState."""

    def __init__(self):
        self._calls: Dict[str, CallState] = {}

    def register(
        self,
        call_id: str,
        caller_address: Optional[str] = None,
        called_address: Optional[str] = None,
    ) -> CallState:
        """
        Insert an empty entry for a call.

        A second registration for the same call is a no-op and returns the
        existing entry unchanged.
        """
        existing = self._calls.get(call_id)
        if existing is not None:
            logger.warning(
                f"[CALL REGISTRY] Call already registered, ignoring - CallSid: {call_id}"
            )
            return existing

        call = CallState(
            call_id=call_id,
            caller_address=caller_address,
            called_address=called_address,
        )
        self._calls[call_id] = call
        logger.info(
            f"[CALL REGISTRY] Registered call - CallSid: {call_id}, "
            f"From: {caller_address}, To: {called_address}, Active calls: {len(self._calls)}"
        )
        return call

    def get(self, call_id: Optional[str]) -> Optional[CallState]:
        """Get call state, or None if the call is unknown."""
        if call_id is None:
            return None
        return self._calls.get(call_id)

    def _require(self, call_id: str) -> CallState:
        call = self._calls.get(call_id)
        if call is None:
            raise CallNotFoundError(call_id)
        return call

    def attach_media(self, call_id: str, media_stream_id: str, socket_handle: Any) -> CallState:
        """
        Record the media stream and its socket for a call.

        Raises:
            CallNotFoundError: if the call is not registered
            CallStateError: if a different socket is already attached
        """
        call = self._require(call_id)
        if call.socket_handle is not None and call.socket_handle is not socket_handle:
            raise CallStateError(f"Media socket already attached for {call_id}")
        call.media_stream_id = media_stream_id
        call.socket_handle = socket_handle
        logger.info(
            f"[CALL REGISTRY] Media attached - CallSid: {call_id}, StreamSid: {media_stream_id}"
        )
        return call

    def detach_media(self, call_id: str, socket_handle: Any) -> None:
        """Forget a closed socket. Ignored unless socket_handle is the attached one."""
        call = self._calls.get(call_id)
        if call is None or call.socket_handle is not socket_handle:
            return
        call.socket_handle = None
        logger.info(f"[CALL REGISTRY] Media detached - CallSid: {call_id}")

    def attach_session(self, call_id: str, session_handle: Any) -> CallState:
        """
        Record the realtime session bound to a call.

        Raises:
            CallNotFoundError: if the call is not registered
        """
        call = self._require(call_id)
        call.session_handle = session_handle
        logger.info(f"[CALL REGISTRY] Realtime session attached - CallSid: {call_id}")
        return call

    def arm_transfer(
        self, call_id: str, target_address: str, reason: Optional[str] = None
    ) -> PendingTransfer:
        """
        Arm a pending transfer.

        Raises:
            CallNotFoundError: if the call is not registered
            TransferAlreadyPendingError: if a transfer is already armed
        """
        call = self._require(call_id)
        if call.pending_transfer is not None:
            raise TransferAlreadyPendingError(call_id, call.pending_transfer.target_address)
        call.pending_transfer = PendingTransfer(target_address=target_address, reason=reason)
        logger.info(
            f"[CALL REGISTRY] Transfer armed - CallSid: {call_id}, Target: {target_address}"
        )
        return call.pending_transfer

    def consume_transfer(self, call_id: str) -> Optional[PendingTransfer]:
        """Read and clear the pending transfer; None if never armed or call unknown."""
        call = self._calls.get(call_id)
        if call is None:
            return None
        pending = call.pending_transfer
        call.pending_transfer = None
        if pending is not None:
            logger.info(
                f"[CALL REGISTRY] Transfer consumed - CallSid: {call_id}, "
                f"Target: {pending.target_address}"
            )
        return pending

    def withdraw_transfer(self, call_id: str) -> Optional[PendingTransfer]:
        """Clear an armed transfer that was never signalled to the carrier."""
        call = self._calls.get(call_id)
        if call is None or call.pending_transfer is None:
            return None
        pending = call.pending_transfer
        call.pending_transfer = None
        logger.warning(
            f"[CALL REGISTRY] Transfer withdrawn - CallSid: {call_id}, "
            f"Target: {pending.target_address}"
        )
        return pending

    def remove(self, call_id: str) -> Optional[CallState]:
        """Delete the entry; missing keys are ignored."""
        call = self._calls.pop(call_id, None)
        if call is not None:
            logger.info(
                f"[CALL REGISTRY] Removed call - CallSid: {call_id}, "
                f"Active calls: {len(self._calls)}"
            )
        return call

    def active_call_ids(self) -> List[str]:
        return list(self._calls)

    def clear(self) -> None:
        """Drop every entry (process shutdown)."""
        if self._calls:
            logger.info(f"[CALL REGISTRY] Clearing {len(self._calls)} active call(s)")
        self._calls.clear()

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)
