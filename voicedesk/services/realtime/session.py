"""Realtime AI session bound to one call."""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from voicedesk.core.exceptions import ProviderTransientError
from voicedesk.services.agent.personas import Persona
from voicedesk.services.call_session.models import CallState
from voicedesk.services.media.transport import MediaTransport
from voicedesk.services.realtime.connection import RealtimeConnection
from voicedesk.services.tools.base import ToolContext, ToolDefinition
from voicedesk.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# (speaker, text, agent_name, event_type)
TranscriptCallback = Callable[[str, str, Optional[str], Optional[str]], Awaitable[None]]

HANDOFF_PREFIX = "transfer_to_"

# Event names differ between the GA and beta realtime APIs
AUDIO_DELTA_EVENTS = {"response.output_audio.delta", "response.audio.delta"}
AGENT_TRANSCRIPT_EVENTS = {
    "response.output_audio_transcript.done",
    "response.audio_transcript.done",
}
QUIET_ERROR_CODES = {"response_cancel_not_active"}


class RealtimeSession:
    """
    One realtime conversation for one call.

    Audio flows straight through: carrier mu-law in, provider mu-law out.
    Tool calls run as background tasks so audio keeps flowing while a tool
    (such as a transfer) waits. Handoff between personas happens in place by
    updating the session's instructions and tools.
    """

    def __init__(
        self,
        connection: RealtimeConnection,
        transport: MediaTransport,
        call: CallState,
        persona: Persona,
        personas: Dict[str, Persona],
        tools: ToolRegistry,
        tool_context: ToolContext,
        model: str,
        voice: str,
        transcription_model: str,
        on_transcript: Optional[TranscriptCallback] = None,
    ):
        self.connection = connection
        self.transport = transport
        self.call = call
        self.persona = persona
        self.personas = personas
        self.tools = tools
        self.tool_context = tool_context
        self.model = model
        self.voice = voice
        self.transcription_model = transcription_model
        self.on_transcript = on_transcript
        self._tool_tasks: Set[asyncio.Task] = set()
        self._response_active = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _tool_schemas(self) -> List[Dict[str, Any]]:
        schemas = self.tools.to_openai_realtime_schema(self.persona.tool_names)
        for other in self.personas.values():
            if other.name == self.persona.name:
                continue
            schemas.append(
                ToolDefinition(
                    name=other.handoff_tool_name,
                    description=other.handoff_description,
                ).to_openai_realtime_schema()
            )
        return schemas

    def build_session_config(self, include_voice: bool = True) -> Dict[str, Any]:
        """session.update payload for the current persona."""
        output: Dict[str, Any] = {"format": {"type": "audio/pcmu"}}
        if include_voice:
            output["voice"] = self.voice
        return {
            "type": "session.update",
            "session": {
                "type": "realtime",
                "model": self.model,
                "output_modalities": ["audio"],
                "instructions": self.persona.instructions,
                "audio": {
                    "input": {
                        "format": {"type": "audio/pcmu"},
                        "transcription": {"model": self.transcription_model},
                        "turn_detection": {"type": "server_vad"},
                    },
                    "output": output,
                },
                "tools": self._tool_schemas(),
                "tool_choice": "auto",
            },
        }

    async def configure(self) -> None:
        await self.connection.send(self.build_session_config(include_voice=True))
        logger.info(
            f"[REALTIME] Session configured - CallSid: {self.call.call_id}, "
            f"Persona: {self.persona.name}"
        )

    async def trigger_initial_utterance(self, text: str) -> None:
        """Inject a synthetic caller turn so the agent speaks first."""
        await self.connection.send({
            "type": "conversation.item.create",
            "item": {
                "type": "message",
                "role": "user",
                "content": [{"type": "input_text", "text": text}],
            },
        })
        await self.connection.send({"type": "response.create"})

    async def append_audio(self, payload: str) -> None:
        if self._closed:
            return
        await self.connection.send({"type": "input_audio_buffer.append", "audio": payload})

    async def run(self) -> None:
        """Pump provider events until the provider connection ends or the session closes."""
        while not self._closed:
            event = await self.connection.recv()
            if event is None:
                break
            try:
                await self._handle_event(event)
            except Exception as e:
                logger.error(
                    f"[REALTIME] Error handling provider event {event.get('type')} - "
                    f"CallSid: {self.call.call_id}, Error: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
        logger.info(f"[REALTIME] Provider event loop ended - CallSid: {self.call.call_id}")

    async def _handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("type", "")

        if event_type in AUDIO_DELTA_EVENTS:
            await self.transport.send_audio(event["delta"])

        elif event_type == "response.created":
            self._response_active = True

        elif event_type == "response.done":
            self._response_active = False

        elif event_type == "input_audio_buffer.speech_started":
            # Caller barged in: stop playback and the response being spoken
            await self.transport.clear()
            if self._response_active:
                await self.connection.send({"type": "response.cancel"})
                self._response_active = False

        elif event_type == "conversation.item.input_audio_transcription.completed":
            await self._record_transcript("user", event.get("transcript", ""))

        elif event_type in AGENT_TRANSCRIPT_EVENTS:
            await self._record_transcript("agent", event.get("transcript", ""))

        elif event_type == "response.function_call_arguments.done":
            task = asyncio.create_task(
                self._run_tool(event["call_id"], event["name"], event.get("arguments") or "{}")
            )
            self._tool_tasks.add(task)
            task.add_done_callback(self._tool_tasks.discard)

        elif event_type == "error":
            error = event.get("error") or {}
            err = ProviderTransientError(error.get("code") or "unknown", error.get("message", ""))
            if err.code in QUIET_ERROR_CODES:
                logger.debug(f"[REALTIME] Ignored provider error - CallSid: {self.call.call_id}, {err}")
            else:
                logger.warning(
                    f"[REALTIME] Provider error, call continues - CallSid: {self.call.call_id}, {err}"
                )

    async def _record_transcript(
        self, speaker: str, text: str, event_type: Optional[str] = None
    ) -> None:
        text = text.strip()
        if not text:
            return
        logger.info(f"[TRANSCRIPT] {speaker} ({self.persona.name}): {text[:200]} - CallSid: {self.call.call_id}")
        if self.on_transcript is None:
            return
        try:
            await self.on_transcript(speaker, text, self.persona.name, event_type)
        except Exception as e:
            logger.error(
                f"[TRANSCRIPT] Failed to store transcript - CallSid: {self.call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    async def _run_tool(self, call_id: str, name: str, raw_arguments: str) -> None:
        if name.startswith(HANDOFF_PREFIX):
            result = await self.handoff(name[len(HANDOFF_PREFIX):])
        elif name not in self.persona.tool_names:
            logger.warning(
                f"[REALTIME] Tool {name} not offered to {self.persona.name} - CallSid: {self.call.call_id}"
            )
            result = {"success": False, "error": "unknown_tool", "message": f"Tool {name} is not available."}
        else:
            try:
                arguments = json.loads(raw_arguments)
            except json.JSONDecodeError:
                logger.warning(
                    f"[REALTIME] Invalid tool arguments for {name} - CallSid: {self.call.call_id}, "
                    f"Arguments: {raw_arguments[:200]}"
                )
                result = {"success": False, "error": "invalid_arguments", "message": "Arguments were not valid JSON."}
            else:
                self.tool_context.persona_name = self.persona.name
                result = await self.tools.execute(name, arguments or {}, self.tool_context)

        await self._send_tool_output(call_id, name, result)

    async def _send_tool_output(self, call_id: str, name: str, result: Dict[str, Any]) -> None:
        if self._closed or self.connection.closed:
            logger.debug(
                f"[REALTIME] Session closed, dropping output of {name} - CallSid: {self.call.call_id}"
            )
            return
        try:
            await self.connection.send({
                "type": "conversation.item.create",
                "item": {
                    "type": "function_call_output",
                    "call_id": call_id,
                    "output": json.dumps(result, default=str),
                },
            })
            # Nobody is left to hear a reply once the media socket is gone
            if self.transport.is_open:
                await self.connection.send({"type": "response.create"})
        except Exception as e:
            logger.warning(
                f"[REALTIME] Could not send output of {name} - CallSid: {self.call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )

    async def handoff(self, target_name: str) -> Dict[str, Any]:
        """Switch the session to another persona, keeping the session and socket."""
        target = self.personas.get(target_name)
        if target is None or target.name == self.persona.name:
            logger.warning(
                f"[REALTIME] Invalid handoff target '{target_name}' - CallSid: {self.call.call_id}"
            )
            return {"success": False, "error": "unknown_persona", "message": f"No persona named {target_name}."}

        previous = self.persona.name
        self.persona = target
        # The provider refuses voice changes once audio has been produced
        await self.connection.send(self.build_session_config(include_voice=False))
        logger.info(
            f"[REALTIME] Handoff {previous} -> {target.name} - CallSid: {self.call.call_id}"
        )
        await self._record_transcript("system", f"Handoff from {previous} to {target.name}", "handoff")
        return {
            "success": True,
            "persona": target.name,
            "message": f"You are now the {target.name.replace('_', ' ')}. Continue helping the caller.",
        }

    async def close(self) -> None:
        """Cancel in-flight tools and close the provider connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._tool_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        try:
            await self.connection.close()
        except Exception as e:
            logger.warning(
                f"[REALTIME] Error closing provider connection - CallSid: {self.call.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}"
            )
        logger.info(f"[REALTIME] Session closed - CallSid: {self.call.call_id}")
