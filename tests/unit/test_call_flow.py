"""End-to-end call flows through the call session manager with fake carrier and provider."""
import asyncio
import json

import pytest
from sqlalchemy import select

from tests.fakes import FakeRealtimeConnector, FakeWebSocket, wait_until
from voicedesk.db.models import Call
from voicedesk.services.call_session.manager import PROVIDER_UNAVAILABLE, CallSessionManager
from voicedesk.services.realtime.orchestrator import RealtimeSessionOrchestrator
from voicedesk.services.tools.registry import create_default_registry
from voicedesk.services.transfer.states import TransferPhase

CALLER = "+390200000009"
COMPANY_LINE = "+390200000001"


@pytest.fixture
def connector():
    return FakeRealtimeConnector()


def build_manager(registry, connector, coordinator, knowledge, session_factory=None):
    orchestrator = RealtimeSessionOrchestrator(
        connector=connector,
        tools=create_default_registry(),
        knowledge=knowledge,
        transfer_coordinator=coordinator,
        session_factory=session_factory,
    )
    return CallSessionManager(registry, orchestrator, knowledge, session_factory=session_factory)


@pytest.fixture
def manager(registry, connector, coordinator, test_knowledge_repository):
    return build_manager(registry, connector, coordinator, test_knowledge_repository)


async def start_call(manager, registry, connector, websocket, call_sid="CA123"):
    """Run the manager and wait until the realtime session is bound to the call."""
    task = asyncio.create_task(manager.handle_media_stream(websocket))
    websocket.push_start(call_sid, "MZ1", **{"from": f"sip:{CALLER}@trunk.example.com", "to": COMPANY_LINE})
    await wait_until(
        lambda: registry.get(call_sid) is not None and registry.get(call_sid).session_handle is not None
    )
    return task, connector.connections[0]


def function_call(name, arguments, call_id="fc_1"):
    return {
        "type": "response.function_call_arguments.done",
        "call_id": call_id,
        "name": name,
        "arguments": json.dumps(arguments),
    }


class TestCallStart:
    """Test binding a media stream to a registered call."""

    @pytest.mark.asyncio
    async def test_start_attaches_media_and_greets(self, manager, registry, connector):
        websocket = FakeWebSocket()
        registry.register("CA123")

        task, connection = await start_call(manager, registry, connector, websocket)

        call = registry.get("CA123")
        assert call.media_stream_id == "MZ1"
        assert call.socket_handle.is_open
        assert call.caller_address == CALLER
        assert call.called_address == COMPANY_LINE
        assert connection.sent_types()[:3] == [
            "session.update",
            "conversation.item.create",
            "response.create",
        ]

        websocket.push_media("AAAA")
        await wait_until(lambda: "input_audio_buffer.append" in connection.sent_types())

        websocket.push_stop()
        await task
        assert connection.closed

    @pytest.mark.asyncio
    async def test_unregistered_call_is_registered_on_start(self, manager, registry, connector):
        task, _ = await start_call(manager, registry, connector, FakeWebSocket(), call_sid="CA777")

        assert registry.get("CA777").caller_address == CALLER

        registry.get("CA777").socket_handle.websocket.push_stop()
        await task

    @pytest.mark.asyncio
    async def test_second_media_stream_is_refused(self, manager, registry, connector):
        registry.register("CA123")
        registry.attach_media("CA123", "MZ0", object())
        websocket = FakeWebSocket()
        websocket.push_start("CA123", "MZ1")

        await manager.handle_media_stream(websocket)

        assert websocket.close_code == 1011
        assert registry.get("CA123").media_stream_id == "MZ0"
        assert connector.connections == []

    @pytest.mark.asyncio
    async def test_closed_socket_is_released_for_a_new_stream(self, manager, registry, connector):
        registry.register("CA123")
        first = FakeWebSocket()
        task, _ = await start_call(manager, registry, connector, first)

        first.disconnect()
        await task
        assert registry.get("CA123").socket_handle is None

        second = FakeWebSocket()
        task = asyncio.create_task(manager.handle_media_stream(second))
        second.push_start("CA123", "MZ2")
        await wait_until(lambda: len(connector.connections) == 2)

        assert registry.get("CA123").media_stream_id == "MZ2"
        assert registry.get("CA123").socket_handle.is_open
        assert second.close_code is None

        second.push_stop()
        await task
        assert registry.get("CA123").socket_handle is None

    @pytest.mark.asyncio
    async def test_stream_ending_before_start(self, manager, registry, connector):
        websocket = FakeWebSocket()
        websocket.push_stop()

        await manager.handle_media_stream(websocket)

        assert len(registry) == 0
        assert connector.connections == []

    @pytest.mark.asyncio
    async def test_stop_persists_completed_call(
        self, registry, connector, coordinator, test_knowledge_repository, test_session_factory
    ):
        manager = build_manager(
            registry, connector, coordinator, test_knowledge_repository, test_session_factory
        )
        websocket = FakeWebSocket()
        task, _ = await start_call(manager, registry, connector, websocket)

        websocket.push_stop()
        await task

        async with test_session_factory() as db:
            stored = (await db.execute(select(Call))).scalar_one()
        assert stored.call_sid == "CA123"
        assert stored.stream_sid == "MZ1"
        assert stored.from_number == CALLER
        assert stored.status == "completed"


class TestTransferFlow:
    """Test the transfer from tool call to carrier callback."""

    @pytest.mark.asyncio
    async def test_transfer_closes_socket_and_redirects_once(
        self, manager, registry, connector, coordinator
    ):
        websocket = FakeWebSocket()
        registry.register("CA123")
        task, connection = await start_call(manager, registry, connector, websocket)
        call = registry.get("CA123")

        connection.push(function_call("transfer_call", {"target_address": "support", "reason": "router"}))
        await task

        assert websocket.close_code == 1000
        assert websocket.close_reason == "Call transfer initiated"
        assert call.pending_transfer.target_address == "+15550000001"
        assert call.transfer_phase == TransferPhase.AWAITING_CARRIER_CALLBACK
        assert connection.closed

        pending, retired = coordinator.retire("CA123")

        assert pending.target_address == "+15550000001"
        assert retired.transfer_phase == TransferPhase.RETIRED
        assert "CA123" not in registry
        assert coordinator.retire("CA123") == (None, None)

    @pytest.mark.asyncio
    async def test_unknown_destination_keeps_call(self, manager, registry, connector):
        websocket = FakeWebSocket()
        task, connection = await start_call(manager, registry, connector, websocket)

        connection.push(function_call("transfer_call", {"target_address": "marketing"}))
        await wait_until(lambda: connection.sent_types().count("response.create") == 2)

        output = json.loads(connection.sent[-2]["item"]["output"])
        assert output["error"] == "unknown_destination"
        assert websocket.close_code is None
        assert registry.get("CA123").transfer_phase == TransferPhase.ACTIVE

        websocket.push_stop()
        await task

    @pytest.mark.asyncio
    async def test_caller_hangup_without_transfer(self, manager, registry, connector, coordinator):
        websocket = FakeWebSocket()
        task, _ = await start_call(manager, registry, connector, websocket)

        websocket.disconnect()
        await task

        pending, call = coordinator.retire("CA123")
        assert pending is None
        assert call.end_reason is None


class TestHandoff:
    """Test persona handoff inside a live call."""

    @pytest.mark.asyncio
    async def test_handoff_keeps_socket_and_session(self, manager, registry, connector):
        websocket = FakeWebSocket()
        task, connection = await start_call(manager, registry, connector, websocket)
        session = registry.get("CA123").session_handle

        connection.push(function_call("transfer_to_financial_specialist", {}))
        await wait_until(lambda: connection.sent_types().count("session.update") == 2)

        assert session.persona.name == "financial_specialist"
        assert registry.get("CA123").session_handle is session
        assert websocket.close_code is None
        assert registry.get("CA123").socket_handle.is_open

        websocket.push_stop()
        await task


class TestFailures:
    """Test provider and carrier failures."""

    @pytest.mark.asyncio
    async def test_provider_unreachable_ends_call_with_apology_reason(
        self, registry, coordinator, test_knowledge_repository
    ):
        connector = FakeRealtimeConnector(fail=True)
        manager = build_manager(registry, connector, coordinator, test_knowledge_repository)
        registry.register("CA123")
        websocket = FakeWebSocket()
        websocket.push_start("CA123", "MZ1")

        await manager.handle_media_stream(websocket)

        assert websocket.close_code == 1011
        assert registry.get("CA123").end_reason == PROVIDER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_provider_drop_mid_call(self, manager, registry, connector):
        websocket = FakeWebSocket()
        task, connection = await start_call(manager, registry, connector, websocket)

        connection.push(None)
        await task

        assert websocket.close_code == 1011
        assert registry.get("CA123").end_reason == PROVIDER_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_malformed_frames_close_with_protocol_error(self, manager, registry, connector):
        websocket = FakeWebSocket()
        task, connection = await start_call(manager, registry, connector, websocket)

        for _ in range(3):
            websocket.push_raw("{garbage")
        await task

        assert websocket.close_code == 1002
        assert connection.closed
        assert registry.get("CA123").pending_transfer is None
