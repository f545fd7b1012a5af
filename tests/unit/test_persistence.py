"""Unit tests for persistence services (calls, transcripts, callbacks and messages)."""
import pytest
from datetime import datetime

from voicedesk.services.persistence.callbacks import (
    CallbackPersistenceService,
    MessagePersistenceService,
    generate_reference,
)
from voicedesk.services.persistence.calls import CallPersistenceService
from voicedesk.services.persistence.transcripts import TranscriptPersistenceService


class TestCallPersistence:
    """Test call persistence service."""

    @pytest.mark.asyncio
    async def test_create_call(self, test_db):
        """Test creating a new call record."""
        service = CallPersistenceService(test_db)

        call = await service.create_call("CA123", "+15550001", "+15550002")

        assert call.id is not None
        assert call.call_sid == "CA123"
        assert call.from_number == "+15550001"
        assert call.status == "in_progress"
        assert call.started_at is not None

    @pytest.mark.asyncio
    async def test_create_call_idempotent(self, test_db):
        """Test that creating same call twice returns existing call and records the stream."""
        service = CallPersistenceService(test_db)

        call1 = await service.create_call("CA123")
        call2 = await service.create_call("CA123", stream_sid="MZ1")

        assert call1.id == call2.id
        assert call2.stream_sid == "MZ1"

    @pytest.mark.asyncio
    async def test_get_unknown_call(self, test_db):
        service = CallPersistenceService(test_db)

        assert await service.get_call_by_sid("CA404") is None

    @pytest.mark.asyncio
    async def test_update_call_status(self, test_db):
        """Test updating call status."""
        service = CallPersistenceService(test_db)
        await service.create_call("CA123")
        ended_at = datetime.utcnow()

        updated_call = await service.update_call_status("CA123", "completed", ended_at=ended_at, duration=42)

        assert updated_call.status == "completed"
        assert updated_call.ended_at == ended_at
        assert updated_call.duration == 42

    @pytest.mark.asyncio
    async def test_update_unknown_call(self, test_db):
        service = CallPersistenceService(test_db)

        assert await service.update_call_status("CA404", "completed") is None

    @pytest.mark.asyncio
    async def test_mark_transferred(self, test_db):
        service = CallPersistenceService(test_db)
        await service.create_call("CA123")

        call = await service.mark_transferred("CA123", "+390211111111")

        assert call.status == "transferred"
        assert call.transferred_to == "+390211111111"
        assert call.ended_at is not None


class TestTranscriptPersistence:
    """Test transcript persistence service."""

    @pytest.mark.asyncio
    async def test_entries_are_sequenced(self, test_db):
        await CallPersistenceService(test_db).create_call("CA123")
        service = TranscriptPersistenceService(test_db)

        await service.add_entry("CA123", "agent", "Good morning", agent_name="receptionist")
        await service.add_entry("CA123", "user", "I need the accounts team")
        await service.add_entry(
            "CA123", "system", "Handoff from receptionist to financial_specialist",
            agent_name="financial_specialist", event_type="handoff",
        )

        transcript = await service.get_transcript("CA123")

        assert [e.sequence_number for e in transcript] == [1, 2, 3]
        assert [e.speaker for e in transcript] == ["agent", "user", "system"]
        assert transcript[2].event_type == "handoff"

    @pytest.mark.asyncio
    async def test_entry_for_unknown_call_is_dropped(self, test_db):
        service = TranscriptPersistenceService(test_db)

        assert await service.add_entry("CA404", "user", "hello") is None
        assert await service.get_transcript("CA404") == []


class TestCallbackAndMessagePersistence:
    """Test callback and message persistence services."""

    def test_generate_reference(self):
        reference = generate_reference("RIC")

        assert reference.startswith("RIC-")
        assert len(reference) == len("RIC-") + 8
        assert reference == reference.upper()

    @pytest.mark.asyncio
    async def test_create_callback_linked_to_call(self, test_db):
        call = await CallPersistenceService(test_db).create_call("CA123")
        service = CallbackPersistenceService(test_db)

        callback = await service.create_callback(
            "Ada", "+15550001234", preferred_time="tomorrow morning", call_sid="CA123"
        )

        assert callback.call_id == call.id
        assert callback.status == "pending"
        assert (await service.get_by_reference(callback.reference_number)).id == callback.id

    @pytest.mark.asyncio
    async def test_create_callback_without_call(self, test_db):
        callback = await CallbackPersistenceService(test_db).create_callback("Ada", "+15550001234")

        assert callback.call_id is None

    @pytest.mark.asyncio
    async def test_create_message(self, test_db):
        service = MessagePersistenceService(test_db)

        message = await service.create_message("Mario Rossi", "Ada", "Call me back", urgent=True)

        assert message.reference_number.startswith("MSG-")
        assert message.priority == "urgent"
        assert message.status == "unread"
        assert (await service.get_by_reference(message.reference_number)).content == "Call me back"
