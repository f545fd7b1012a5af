"""Domain exceptions for the call lifecycle."""


class VoiceDeskError(Exception):
    """Base class for all call lifecycle errors."""


class CallNotFoundError(VoiceDeskError):
    """No registry entry exists for the call."""

    def __init__(self, call_id: str):
        super().__init__(f"No active call state for {call_id}")
        self.call_id = call_id


class CallStateError(VoiceDeskError):
    """Registry entry cannot accept the requested change."""


class TransferNotReadyError(VoiceDeskError):
    """Transfer requested before the call and its media stream are known."""

    def __init__(self, call_id: str):
        super().__init__(f"Call {call_id} has no registered media stream")
        self.call_id = call_id


class TransferAlreadyPendingError(VoiceDeskError):
    """A transfer is already in flight for this call."""

    def __init__(self, call_id: str, target_address: str):
        super().__init__(
            f"Transfer to {target_address} already pending for {call_id}"
        )
        self.call_id = call_id
        self.target_address = target_address


class InvalidTransitionError(VoiceDeskError):
    """Transfer state machine refused a transition."""


class SocketUnavailableError(VoiceDeskError):
    """There is no live media socket to act on."""


class MediaProtocolError(VoiceDeskError):
    """Carrier media frames were malformed beyond tolerance."""


class RealtimeConnectError(VoiceDeskError):
    """The realtime AI provider could not be reached."""


class ProviderTransientError(VoiceDeskError):
    """Session-level provider error that does not end the call."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message
