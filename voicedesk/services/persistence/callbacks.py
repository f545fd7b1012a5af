"""Callback and message persistence services."""
import uuid
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from voicedesk.db.models import Callback, Message
from voicedesk.services.persistence.calls import CallPersistenceService


def generate_reference(prefix: str) -> str:
    """Generate a short reference number read back to the caller."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


class CallbackPersistenceService:
    """Service for persisting callback requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.calls = CallPersistenceService(db)

    async def create_callback(
        self,
        caller_name: str,
        caller_phone: str,
        preferred_time: Optional[str] = None,
        reason: Optional[str] = None,
        call_sid: Optional[str] = None,
    ) -> Callback:
        """Create a new pending callback request."""
        call = await self.calls.get_call_by_sid(call_sid) if call_sid else None
        callback = Callback(
            reference_number=generate_reference("RIC"),
            call_id=call.id if call else None,
            caller_name=caller_name,
            caller_phone=caller_phone,
            preferred_time=preferred_time,
            reason=reason,
            status="pending",
        )
        self.db.add(callback)
        await self.db.commit()
        await self.db.refresh(callback)
        return callback

    async def get_by_reference(self, reference_number: str) -> Optional[Callback]:
        result = await self.db.execute(
            select(Callback).where(Callback.reference_number == reference_number)
        )
        return result.scalar_one_or_none()


class MessagePersistenceService:
    """Service for persisting messages left by callers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.calls = CallPersistenceService(db)

    async def create_message(
        self,
        recipient_name: str,
        caller_name: str,
        content: str,
        caller_phone: Optional[str] = None,
        urgent: bool = False,
        call_sid: Optional[str] = None,
    ) -> Message:
        """Create a new unread message."""
        call = await self.calls.get_call_by_sid(call_sid) if call_sid else None
        message = Message(
            reference_number=generate_reference("MSG"),
            call_id=call.id if call else None,
            recipient_name=recipient_name,
            caller_name=caller_name,
            caller_phone=caller_phone,
            content=content,
            urgent=urgent,
            priority="urgent" if urgent else "normal",
            status="unread",
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_by_reference(self, reference_number: str) -> Optional[Message]:
        result = await self.db.execute(
            select(Message).where(Message.reference_number == reference_number)
        )
        return result.scalar_one_or_none()
