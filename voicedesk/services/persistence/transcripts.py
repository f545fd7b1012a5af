"""Transcript persistence service."""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from voicedesk.db.models import Transcript
from voicedesk.services.persistence.calls import CallPersistenceService


class TranscriptPersistenceService:
    """Service for persisting call transcripts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.calls = CallPersistenceService(db)

    async def add_entry(
        self,
        call_sid: str,
        speaker: str,
        text: str,
        agent_name: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> Optional[Transcript]:
        """
        Append an utterance to a call's transcript.

        Returns None if the call has no record yet.
        """
        call = await self.calls.get_call_by_sid(call_sid)
        if call is None:
            return None

        result = await self.db.execute(
            select(func.max(Transcript.sequence_number)).where(Transcript.call_id == call.id)
        )
        last_sequence = result.scalar_one_or_none() or 0

        entry = Transcript(
            call_id=call.id,
            speaker=speaker,
            agent_name=agent_name,
            text=text,
            sequence_number=last_sequence + 1,
            event_type=event_type,
        )
        self.db.add(entry)
        await self.db.commit()
        await self.db.refresh(entry)
        return entry

    async def get_transcript(self, call_sid: str) -> List[Transcript]:
        """Get a call's transcript in speaking order."""
        call = await self.calls.get_call_by_sid(call_sid)
        if call is None:
            return []
        result = await self.db.execute(
            select(Transcript)
            .where(Transcript.call_id == call.id)
            .order_by(Transcript.sequence_number)
        )
        return list(result.scalars().all())
