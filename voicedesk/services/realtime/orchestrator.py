"""Realtime session orchestrator."""
import logging
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.core.config import settings
from voicedesk.core.exceptions import RealtimeConnectError
from voicedesk.services.agent.personas import Persona
from voicedesk.services.call_session.models import CallState
from voicedesk.services.knowledge.repository import KnowledgeRepository
from voicedesk.services.media.transport import MediaTransport
from voicedesk.services.persistence.transcripts import TranscriptPersistenceService
from voicedesk.services.realtime.connection import RealtimeConnector
from voicedesk.services.realtime.session import RealtimeSession
from voicedesk.services.tools.base import ToolContext
from voicedesk.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class RealtimeSessionOrchestrator:
    """Creates one realtime session per call and binds it to the call's media socket."""

    def __init__(
        self,
        connector: RealtimeConnector,
        tools: ToolRegistry,
        knowledge: KnowledgeRepository,
        transfer_coordinator=None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.connector = connector
        self.tools = tools
        self.knowledge = knowledge
        self.transfer_coordinator = transfer_coordinator
        self.session_factory = session_factory

    async def start(
        self,
        transport: MediaTransport,
        call: CallState,
        initial_persona: Persona,
        handoff_targets: Iterable[Persona] = (),
    ) -> RealtimeSession:
        """
        Open and configure a realtime session for a call.

        Raises:
            RealtimeConnectError: if the provider cannot be reached or configured
        """
        connection = await self.connector.connect()

        personas = {p.name: p for p in handoff_targets}
        personas[initial_persona.name] = initial_persona

        session = RealtimeSession(
            connection=connection,
            transport=transport,
            call=call,
            persona=initial_persona,
            personas=personas,
            tools=self.tools,
            tool_context=ToolContext(
                call_id=call.call_id,
                call=call,
                knowledge=self.knowledge,
                transfer_coordinator=self.transfer_coordinator,
                session_factory=self.session_factory,
                persona_name=initial_persona.name,
            ),
            model=settings.realtime_model,
            voice=settings.realtime_voice,
            transcription_model=settings.transcription_model,
            on_transcript=self._transcript_writer(call.call_id),
        )

        try:
            await session.configure()
        except Exception as e:
            logger.error(
                f"[REALTIME] Failed to configure session - CallSid: {call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            await session.close()
            raise RealtimeConnectError(f"Could not configure realtime session: {e}") from e

        logger.info(
            f"[REALTIME] Session started - CallSid: {call.call_id}, Persona: {initial_persona.name}, "
            f"Handoff targets: {[p for p in personas if p != initial_persona.name]}"
        )
        return session

    async def trigger_initial_utterance(
        self, session: RealtimeSession, text: Optional[str] = None
    ) -> None:
        """Make the agent greet the caller first."""
        await session.trigger_initial_utterance(text or settings.initial_greeting_text)

    def _transcript_writer(self, call_sid: str):
        if self.session_factory is None:
            return None

        async def write(speaker: str, text: str, agent_name: Optional[str], event_type: Optional[str]) -> None:
            async with self.session_factory() as db:
                await TranscriptPersistenceService(db).add_entry(
                    call_sid, speaker, text, agent_name=agent_name, event_type=event_type
                )

        return write
