"""Transfer coordinator."""
import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from voicedesk.core.exceptions import (
    CallNotFoundError,
    SocketUnavailableError,
    TransferAlreadyPendingError,
    TransferNotReadyError,
)
from voicedesk.services.call_session.models import CallState, PendingTransfer
from voicedesk.services.call_session.registry import CallStateRegistry
from voicedesk.services.transfer.signal import TransferSignal
from voicedesk.services.transfer.states import TransferPhase

logger = logging.getLogger(__name__)

FALLBACK_INSTRUCTION = (
    "Apologise to the caller, explain the transfer could not be completed right now, "
    "and offer to take a message or schedule a callback."
)


def _failure(error: str, message: str, reason: Optional[str] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "error": error,
        "message": f"{message} {FALLBACK_INSTRUCTION}",
        "reason": reason,
    }


def _success(target_address: str, reason: Optional[str]) -> Dict[str, Any]:
    return {
        "success": True,
        "message": f"Transfer to {target_address} initiated.",
        "reason": reason,
    }


class TransferCoordinator:
    """
    Drives one call's transfer from the agent's decision to the carrier
    callback.

    request_transfer() runs inside the agent's tool call: it arms the pending
    transfer, lets the spoken announcement drain, then signals the carrier
    and waits (bounded) for the media leg to be released. retire() runs in
    the carrier's transfer-complete callback and consumes what was armed.
    """

    def __init__(
        self,
        registry: CallStateRegistry,
        signal: TransferSignal,
        grace_period_seconds: float = 3.0,
        close_timeout_seconds: float = 3.0,
    ):
        self.registry = registry
        self.signal = signal
        self.grace_period_seconds = grace_period_seconds
        self.close_timeout_seconds = close_timeout_seconds

    async def request_transfer(
        self, call_id: str, target_address: str, reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Transfer the call to target_address.

        Returns:
            Tool result dict: {"success", "message", "error" (on failure), "reason"}
        """
        logger.info(
            f"[TRANSFER] Transfer requested - CallSid: {call_id}, Target: {target_address}, "
            f"Reason: {reason}"
        )

        try:
            call = self._ready_call(call_id)
        except (CallNotFoundError, TransferNotReadyError) as e:
            logger.warning(f"[TRANSFER] Call not ready for transfer - {e}")
            return _failure("not_ready", "The call is not ready to be transferred.", reason)

        if call.transfer.phase != TransferPhase.ACTIVE:
            if call.transfer.in_flight:
                logger.warning(
                    f"[TRANSFER] Transfer already in progress - CallSid: {call_id}, "
                    f"Phase: {call.transfer.phase}"
                )
                return _failure(
                    "already_pending", "A transfer is already in progress for this call.", reason
                )
            logger.warning(
                f"[TRANSFER] Transfer unavailable - CallSid: {call_id}, Phase: {call.transfer.phase}"
            )
            return _failure(
                "transfer_unavailable", "Transfers are no longer available on this call.", reason
            )

        try:
            self.registry.arm_transfer(call_id, target_address, reason)
        except TransferAlreadyPendingError as e:
            logger.warning(f"[TRANSFER] {e}")
            return _failure(
                "already_pending", "A transfer is already in progress for this call.", reason
            )

        call.transfer.advance(TransferPhase.DRAINING)

        try:
            # Let the agent finish announcing the transfer before the audio is cut
            await asyncio.sleep(self.grace_period_seconds)

            if self.registry.get(call_id) is not call:
                self._abort(call, "call ended during grace period")
                return _failure("call_ended", "The call ended before the transfer.", reason)

            await self.signal.request_transfer_signal(call)
            call.transfer.advance(TransferPhase.SOCKET_CLOSING)
        except asyncio.CancelledError:
            if call.transfer.phase == TransferPhase.DRAINING:
                self._abort(call, "cancelled while draining")
            raise
        except SocketUnavailableError as e:
            self._abort(call, str(e))
            return _failure("socket_unavailable", "The call audio channel is not available.", reason)
        except Exception as e:
            logger.error(
                f"[TRANSFER] Error signalling transfer - CallSid: {call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            if call.transfer.phase == TransferPhase.DRAINING:
                self._abort(call, f"{type(e).__name__}: {e}")
            return _failure("transfer_failed", "The transfer could not be started.", reason)

        if self.registry.get(call_id) is not call and call.pending_transfer is None:
            # The carrier callback consumed the transfer while the close was being sent
            self._await_callback(call)
            call.transfer.advance(TransferPhase.RETIRED)
            logger.info(
                f"[TRANSFER] Call retired before close completed - CallSid: {call_id}, "
                f"Target: {target_address}"
            )
            return _success(target_address, reason)

        try:
            released = await self.signal.wait_for_release(call, self.close_timeout_seconds)
        except asyncio.CancelledError:
            self._await_callback(call)
            raise

        if not released:
            logger.warning(
                f"[TRANSFER] Socket close not acknowledged within "
                f"{self.close_timeout_seconds}s, proceeding - CallSid: {call_id}"
            )
        self._await_callback(call)

        logger.info(
            f"[TRANSFER] Transfer handed to carrier - CallSid: {call_id}, Target: {target_address}"
        )
        return _success(target_address, reason)

    def retire(self, call_id: str) -> Tuple[Optional[PendingTransfer], Optional[CallState]]:
        """
        Consume the pending transfer for a carrier callback and forget the call.

        Returns:
            (pending transfer or None, call state or None)
        """
        call = self.registry.get(call_id)
        pending = self.registry.consume_transfer(call_id)

        if call is not None and pending is not None:
            # The callback can overtake the close acknowledgement
            self._await_callback(call)
            if call.transfer.can_advance(TransferPhase.RETIRED):
                call.transfer.advance(TransferPhase.RETIRED)

        self.registry.remove(call_id)
        logger.info(
            f"[TRANSFER] Call retired - CallSid: {call_id}, "
            f"Redirect: {pending.target_address if pending else None}"
        )
        return pending, call

    def _ready_call(self, call_id: str) -> CallState:
        call = self.registry.get(call_id)
        if call is None:
            raise CallNotFoundError(call_id)
        if call.media_stream_id is None:
            raise TransferNotReadyError(call_id)
        return call

    def _await_callback(self, call: CallState) -> None:
        if call.transfer.can_advance(TransferPhase.AWAITING_CARRIER_CALLBACK):
            call.transfer.advance(TransferPhase.AWAITING_CARRIER_CALLBACK)

    def _abort(self, call: CallState, why: str) -> None:
        logger.warning(f"[TRANSFER] Transfer aborted - CallSid: {call.call_id}, Reason: {why}")
        self.registry.withdraw_transfer(call.call_id)
        if call.transfer.can_advance(TransferPhase.ABORTED):
            call.transfer.advance(TransferPhase.ABORTED)
