"""Call session manager."""
import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocket

from voicedesk.core.config import settings
from voicedesk.core.exceptions import (
    CallStateError,
    MediaProtocolError,
    RealtimeConnectError,
)
from voicedesk.services.agent.personas import RECEPTIONIST, build_personas
from voicedesk.services.call_session.models import CallState
from voicedesk.services.call_session.registry import CallStateRegistry
from voicedesk.services.knowledge.repository import KnowledgeRepository
from voicedesk.services.media.frames import AudioReceived, Mark, MediaStarted, MediaStopped
from voicedesk.services.media.transport import MediaEvent, MediaTransport
from voicedesk.services.persistence.calls import CallPersistenceService
from voicedesk.services.realtime.orchestrator import RealtimeSessionOrchestrator
from voicedesk.services.realtime.session import RealtimeSession
from voicedesk.services.telephony.twiml import extract_phone_from_sip
from voicedesk.services.transfer.states import TransferPhase

logger = logging.getLogger(__name__)

PROVIDER_UNAVAILABLE = "provider_unavailable"
INTERNAL_ERROR_CLOSE_CODE = 1011


class CallSessionManager:
    """Runs one carrier media stream from its start event to its end."""

    def __init__(
        self,
        registry: CallStateRegistry,
        orchestrator: RealtimeSessionOrchestrator,
        knowledge: KnowledgeRepository,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.registry = registry
        self.orchestrator = orchestrator
        self.knowledge = knowledge
        self.session_factory = session_factory

    async def handle_media_stream(self, websocket: WebSocket) -> None:
        """Accept the media socket, bind a realtime session to it and pump audio both ways."""
        transport = MediaTransport(
            websocket,
            malformed_frame_limit=settings.malformed_frame_limit,
            malformed_frame_window_seconds=settings.malformed_frame_window_seconds,
        )
        await transport.accept()
        events = transport.events()

        try:
            started = await self._wait_for_start(events)
        except MediaProtocolError as e:
            logger.warning(f"[MEDIA STREAM] Carrier protocol error before start: {e}")
            return
        if started is None:
            logger.warning("[MEDIA STREAM] Media stream ended before start event")
            return

        call = self._bind_call(started, transport)
        if call is None:
            if transport.is_open:
                await transport.force_close(INTERNAL_ERROR_CLOSE_CODE, "Media already attached")
            return

        try:
            await self._run_call(events, call, transport)
        finally:
            self.registry.detach_media(call.call_id, transport)

    async def _run_call(
        self, events: AsyncIterator[MediaEvent], call: CallState, transport: MediaTransport
    ) -> None:
        await self._persist_call_start(call)

        personas = await build_personas(self.knowledge)
        initial = personas[RECEPTIONIST]
        targets = [p for name, p in personas.items() if name != RECEPTIONIST]

        try:
            session = await self.orchestrator.start(transport, call, initial, targets)
        except RealtimeConnectError as e:
            logger.error(f"[MEDIA STREAM] Realtime provider unreachable, ending call - CallSid: {call.call_id}, {e}")
            call.end_reason = PROVIDER_UNAVAILABLE
            await self._persist_status(call.call_id, "failed")
            if transport.is_open:
                await transport.force_close(INTERNAL_ERROR_CLOSE_CODE, "AI provider unavailable")
            return

        self.registry.attach_session(call.call_id, session)
        try:
            await self.orchestrator.trigger_initial_utterance(session)
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] Failed to trigger greeting - CallSid: {call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
        await self._run_pumps(events, session, call, transport)

    async def _wait_for_start(self, events: AsyncIterator[MediaEvent]) -> Optional[MediaStarted]:
        async for event in events:
            if isinstance(event, MediaStarted):
                return event
            if isinstance(event, MediaStopped):
                return None
        return None

    def _bind_call(self, started: MediaStarted, transport: MediaTransport) -> Optional[CallState]:
        caller = extract_phone_from_sip(started.custom_parameters.get("from"))
        called = extract_phone_from_sip(started.custom_parameters.get("to"))

        call = self.registry.get(started.call_id)
        if call is None:
            # Outbound calls and process restarts reach us without incoming-call
            call = self.registry.register(started.call_id, caller, called)
        else:
            call.fill_addresses(caller, called)

        try:
            self.registry.attach_media(started.call_id, started.media_stream_id, transport)
        except CallStateError as e:
            logger.error(f"[MEDIA STREAM] {e}")
            return None
        return call

    async def _run_pumps(
        self,
        events: AsyncIterator[MediaEvent],
        session: RealtimeSession,
        call: CallState,
        transport: MediaTransport,
    ) -> None:
        inbound = asyncio.create_task(self._pump_carrier_to_provider(events, session, call))
        outbound = asyncio.create_task(session.run())
        try:
            done, _pending = await asyncio.wait({inbound, outbound}, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.cancelled() or task.exception() is None:
                    continue
                error = task.exception()
                if isinstance(error, MediaProtocolError):
                    logger.warning(f"[MEDIA STREAM] Carrier protocol error - CallSid: {call.call_id}, {error}")
                else:
                    logger.error(
                        f"[MEDIA STREAM] Pump failed - CallSid: {call.call_id}, "
                        f"Error: {type(error).__name__}: {str(error)}",
                        exc_info=error,
                    )

            if outbound in done and transport.is_open:
                # Provider went away mid-call; the carrier will ask transfer-complete what next
                call.end_reason = PROVIDER_UNAVAILABLE
                await transport.force_close(INTERNAL_ERROR_CLOSE_CODE, "AI session ended")
        finally:
            for task in (inbound, outbound):
                if not task.done():
                    task.cancel()
            await asyncio.gather(inbound, outbound, return_exceptions=True)
            await session.close()
            logger.info(
                f"[MEDIA STREAM] Media session finished - CallSid: {call.call_id}, "
                f"Phase: {call.transfer.phase}"
            )

    async def _pump_carrier_to_provider(
        self, events: AsyncIterator[MediaEvent], session: RealtimeSession, call: CallState
    ) -> None:
        async for event in events:
            if isinstance(event, AudioReceived):
                await session.append_audio(event.payload)
            elif isinstance(event, Mark):
                logger.debug(f"[MEDIA STREAM] Mark played: {event.name} - CallSid: {call.call_id}")
            elif isinstance(event, MediaStopped):
                transferring = call.pending_transfer is not None or call.transfer.phase not in (
                    TransferPhase.ACTIVE,
                    TransferPhase.ABORTED,
                )
                if not transferring:
                    await self._persist_status(call.call_id, "completed")
                return

    async def _persist_call_start(self, call: CallState) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).create_call(
                    call.call_id,
                    from_number=call.caller_address,
                    to_number=call.called_address,
                    stream_sid=call.media_stream_id,
                )
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] Failed to store call record - CallSid: {call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    async def _persist_status(self, call_sid: str, status: str) -> None:
        if self.session_factory is None:
            return
        try:
            async with self.session_factory() as db:
                await CallPersistenceService(db).update_call_status(
                    call_sid, status, ended_at=datetime.utcnow()
                )
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] Failed to update call status - CallSid: {call_sid}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
