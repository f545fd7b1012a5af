"""Transfer phase enumeration and transition table."""
import logging
from enum import Enum
from typing import Dict, FrozenSet

from voicedesk.core.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class TransferPhase(str, Enum):
    """Phases of a single call's transfer lifecycle."""

    ACTIVE = "active"  # Call is live, no transfer requested
    DRAINING = "draining"  # Transfer armed, letting the announcement finish
    SOCKET_CLOSING = "socket_closing"  # Media socket close sent to the carrier
    AWAITING_CARRIER_CALLBACK = "awaiting_carrier_callback"
    RETIRED = "retired"  # Carrier callback answered with redirect
    ABORTED = "aborted"  # Transfer failed, call stays with the agent

    def __str__(self) -> str:
        """Return the string value of the phase."""
        return self.value


TRANSITIONS: Dict[TransferPhase, FrozenSet[TransferPhase]] = {
    TransferPhase.ACTIVE: frozenset({TransferPhase.DRAINING, TransferPhase.ABORTED}),
    TransferPhase.DRAINING: frozenset(
        {TransferPhase.SOCKET_CLOSING, TransferPhase.ABORTED}
    ),
    TransferPhase.SOCKET_CLOSING: frozenset({TransferPhase.AWAITING_CARRIER_CALLBACK}),
    TransferPhase.AWAITING_CARRIER_CALLBACK: frozenset({TransferPhase.RETIRED}),
    TransferPhase.RETIRED: frozenset(),
    TransferPhase.ABORTED: frozenset(),
}


class TransferStateMachine:
    """Guarded transfer phase holder for one call."""

    def __init__(self, call_id: str):
        self.call_id = call_id
        self.phase = TransferPhase.ACTIVE

    def can_advance(self, target: TransferPhase) -> bool:
        """Check whether the transition to target is allowed."""
        return target in TRANSITIONS[self.phase]

    def advance(self, target: TransferPhase) -> None:
        """
        Move to the target phase.

        Raises:
            InvalidTransitionError: if the transition is not in the table
        """
        if not self.can_advance(target):
            raise InvalidTransitionError(
                f"Cannot move transfer for {self.call_id} from {self.phase} to {target}"
            )
        old_phase = self.phase
        self.phase = target
        logger.info(
            f"[TRANSFER STATE] Phase changed: {old_phase.value} -> {target.value} "
            f"- CallSid: {self.call_id}"
        )

    @property
    def is_terminal(self) -> bool:
        """True once no further transitions are possible."""
        return not TRANSITIONS[self.phase]

    @property
    def in_flight(self) -> bool:
        """True while a transfer has been requested and not yet finished."""
        return self.phase in (
            TransferPhase.DRAINING,
            TransferPhase.SOCKET_CLOSING,
            TransferPhase.AWAITING_CARRIER_CALLBACK,
        )
