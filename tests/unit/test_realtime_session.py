"""Unit tests for the realtime session bound to a call."""
import asyncio
import json
from typing import Any, Dict

import pytest

from tests.fakes import FakeRealtimeConnection, wait_until
from voicedesk.services.agent.personas import Persona
from voicedesk.services.realtime.session import RealtimeSession
from voicedesk.services.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter
from voicedesk.services.tools.registry import ToolRegistry


class EchoTool(Tool):
    """Returns its arguments."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="echo",
            description="Echo the arguments",
            parameters=[ToolParameter("text", "string", "Text to echo", required=True)],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        return {"success": True, "echo": arguments.get("text"), "persona": context.persona_name}


class SlowTool(Tool):
    """Blocks until cancelled."""

    def __init__(self):
        self.cancelled = False

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(name="slow", description="Never finishes")

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return {"success": True}


@pytest.fixture
def personas():
    return {
        "receptionist": Persona(
            name="receptionist",
            instructions="You are the receptionist.",
            tool_names=["echo", "slow"],
            handoff_description="Back to reception.",
        ),
        "financial_specialist": Persona(
            name="financial_specialist",
            instructions="You are the financial specialist.",
            tool_names=["echo"],
            handoff_description="Financial questions.",
        ),
    }


@pytest.fixture
def slow_tool():
    return SlowTool()


@pytest.fixture
def transcripts():
    return []


@pytest.fixture
async def session(registry, open_transport, personas, slow_tool, transcripts, test_knowledge_repository):
    call = registry.register("CA123")
    open_transport.media_stream_id = "MZ1"

    async def on_transcript(speaker, text, agent_name, event_type):
        transcripts.append((speaker, text, agent_name, event_type))

    session = RealtimeSession(
        connection=FakeRealtimeConnection(),
        transport=open_transport,
        call=call,
        persona=personas["receptionist"],
        personas=personas,
        tools=ToolRegistry([EchoTool(), slow_tool]),
        tool_context=ToolContext(call_id="CA123", call=call, knowledge=test_knowledge_repository),
        model="gpt-realtime",
        voice="sage",
        transcription_model="gpt-4o-transcribe",
        on_transcript=on_transcript,
    )
    yield session
    await session.close()


async def run_events(session: RealtimeSession, *events):
    """Feed provider events and wait for the event loop to drain them."""
    for event in events:
        session.connection.push(event)
    session.connection.push(None)
    await session.run()


class TestConfiguration:
    """Test session configuration."""

    @pytest.mark.asyncio
    async def test_configure_sends_audio_formats_and_tools(self, session):
        await session.configure()

        update = session.connection.sent[0]
        assert update["type"] == "session.update"
        config = update["session"]
        assert config["instructions"] == "You are the receptionist."
        assert config["audio"]["input"]["format"] == {"type": "audio/pcmu"}
        assert config["audio"]["input"]["turn_detection"] == {"type": "server_vad"}
        assert config["audio"]["output"]["voice"] == "sage"

        tool_names = [t["name"] for t in config["tools"]]
        assert tool_names == ["echo", "slow", "transfer_to_financial_specialist"]

    @pytest.mark.asyncio
    async def test_initial_utterance(self, session):
        await session.trigger_initial_utterance("Hello")

        assert session.connection.sent_types() == ["conversation.item.create", "response.create"]
        assert session.connection.sent[0]["item"]["content"][0] == {"type": "input_text", "text": "Hello"}

    @pytest.mark.asyncio
    async def test_append_audio(self, session):
        await session.append_audio("AAAA")

        assert session.connection.sent == [{"type": "input_audio_buffer.append", "audio": "AAAA"}]


class TestProviderEvents:
    """Test handling of provider events."""

    @pytest.mark.asyncio
    async def test_audio_delta_forwarded_to_carrier(self, session, fake_websocket):
        await run_events(
            session,
            {"type": "response.output_audio.delta", "delta": "AQID"},
            {"type": "response.audio.delta", "delta": "BAUG"},
        )

        assert [m["media"]["payload"] for m in fake_websocket.sent_events("media")] == ["AQID", "BAUG"]

    @pytest.mark.asyncio
    async def test_barge_in_clears_and_cancels_active_response(self, session, fake_websocket):
        await run_events(
            session,
            {"type": "response.created"},
            {"type": "input_audio_buffer.speech_started"},
        )

        assert len(fake_websocket.sent_events("clear")) == 1
        assert session.connection.sent_types() == ["response.cancel"]

    @pytest.mark.asyncio
    async def test_barge_in_without_response_only_clears(self, session, fake_websocket):
        await run_events(
            session,
            {"type": "response.created"},
            {"type": "response.done"},
            {"type": "input_audio_buffer.speech_started"},
        )

        assert len(fake_websocket.sent_events("clear")) == 1
        assert session.connection.sent_types() == []

    @pytest.mark.asyncio
    async def test_transcripts_are_recorded(self, session, transcripts):
        await run_events(
            session,
            {"type": "conversation.item.input_audio_transcription.completed", "transcript": " Hi there "},
            {"type": "response.output_audio_transcript.done", "transcript": "Good morning"},
            {"type": "response.audio_transcript.done", "transcript": "   "},
        )

        assert transcripts == [
            ("user", "Hi there", "receptionist", None),
            ("agent", "Good morning", "receptionist", None),
        ]

    @pytest.mark.asyncio
    async def test_provider_error_does_not_end_session(self, session, fake_websocket):
        await run_events(
            session,
            {"type": "error", "error": {"code": "rate_limit_exceeded", "message": "slow down"}},
            {"type": "response.output_audio.delta", "delta": "AQID"},
        )

        assert len(fake_websocket.sent_events("media")) == 1
        assert not session.closed


class TestToolCalls:
    """Test function calls from the model."""

    @pytest.mark.asyncio
    async def test_tool_output_sent_back(self, session):
        session.connection.push({
            "type": "response.function_call_arguments.done",
            "call_id": "fc_1",
            "name": "echo",
            "arguments": json.dumps({"text": "ping"}),
        })
        runner = asyncio.create_task(session.run())

        await wait_until(lambda: "response.create" in session.connection.sent_types())
        output = session.connection.sent[0]["item"]
        assert output["type"] == "function_call_output"
        assert output["call_id"] == "fc_1"
        assert json.loads(output["output"]) == {"success": True, "echo": "ping", "persona": "receptionist"}

        await session.close()
        await runner

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, session):
        session.connection.push({
            "type": "response.function_call_arguments.done",
            "call_id": "fc_1",
            "name": "echo",
            "arguments": "{not json",
        })
        runner = asyncio.create_task(session.run())

        await wait_until(lambda: len(session.connection.sent) >= 1)
        result = json.loads(session.connection.sent[0]["item"]["output"])
        assert result["error"] == "invalid_arguments"

        await session.close()
        await runner

    @pytest.mark.asyncio
    async def test_tool_not_offered_to_active_persona_is_refused(self, session, personas):
        """Test that a registered tool outside the persona's list never runs."""
        session.persona = personas["financial_specialist"]

        await asyncio.wait_for(session._run_tool("fc_1", "slow", "{}"), timeout=1)

        result = json.loads(session.connection.sent[0]["item"]["output"])
        assert result["error"] == "unknown_tool"

    @pytest.mark.asyncio
    async def test_no_response_requested_once_socket_closed(self, session, open_transport):
        """Test that tool output after the socket closed is delivered without asking for a reply."""
        await open_transport.force_close(1000, "Call transfer initiated")

        await session._send_tool_output("fc_1", "echo", {"success": True})

        assert session.connection.sent_types() == ["conversation.item.create"]

    @pytest.mark.asyncio
    async def test_audio_keeps_flowing_while_tool_runs(self, session, fake_websocket, slow_tool):
        session.connection.push({
            "type": "response.function_call_arguments.done",
            "call_id": "fc_1",
            "name": "slow",
            "arguments": "{}",
        })
        session.connection.push({"type": "response.output_audio.delta", "delta": "AQID"})
        runner = asyncio.create_task(session.run())

        await wait_until(lambda: len(fake_websocket.sent_events("media")) == 1)
        await session.close()
        await runner

        assert slow_tool.cancelled


class TestHandoff:
    """Test persona handoff inside one session."""

    @pytest.mark.asyncio
    async def test_handoff_updates_session_in_place(self, session, open_transport, transcripts):
        session.connection.push({
            "type": "response.function_call_arguments.done",
            "call_id": "fc_1",
            "name": "transfer_to_financial_specialist",
            "arguments": "{}",
        })
        runner = asyncio.create_task(session.run())

        await wait_until(lambda: "response.create" in session.connection.sent_types())

        update = session.connection.sent[0]
        assert update["type"] == "session.update"
        assert update["session"]["instructions"] == "You are the financial specialist."
        assert "voice" not in update["session"]["audio"]["output"]
        tool_names = [t["name"] for t in update["session"]["tools"]]
        assert "transfer_to_receptionist" in tool_names
        assert "slow" not in tool_names

        assert session.persona.name == "financial_specialist"
        assert open_transport.is_open
        assert transcripts[-1] == (
            "system",
            "Handoff from receptionist to financial_specialist",
            "financial_specialist",
            "handoff",
        )

        await session.close()
        await runner

    @pytest.mark.asyncio
    async def test_handoff_to_unknown_persona(self, session):
        result = await session.handoff("janitor")

        assert result["success"] is False
        assert session.persona.name == "receptionist"
        assert session.connection.sent == []


class TestClose:
    """Test closing the session."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, session):
        await session.close()
        await session.close()

        assert session.closed
        assert session.connection.closed

    @pytest.mark.asyncio
    async def test_no_audio_after_close(self, session):
        await session.close()
        await session.append_audio("AAAA")

        assert session.connection.sent == []
