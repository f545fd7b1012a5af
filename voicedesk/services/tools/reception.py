"""Receptionist tools: company information, callbacks and messages."""
import logging
from typing import Any, Dict

from voicedesk.services.persistence.callbacks import (
    CallbackPersistenceService,
    MessagePersistenceService,
    generate_reference,
)
from voicedesk.services.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter

logger = logging.getLogger(__name__)


class GetCompanyInfoTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_company_info",
            description="Get general information about the company, its services and contact details.",
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        company = await context.knowledge.get_company_info()
        return company.model_dump()


class GetBusinessHoursTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_business_hours",
            description="Get the office opening hours.",
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        hours = await context.knowledge.get_business_hours()
        return hours.model_dump()


class GetLocationTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_location",
            description="Get the office address and directions.",
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        location = await context.knowledge.get_location()
        result = location.model_dump()
        result["full_address"] = ", ".join(
            part for part in (location.address, location.postal_code, location.city, location.country) if part
        )
        return result


class ScheduleCallbackTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="schedule_callback",
            description="Record a request for the company to call the caller back.",
            parameters=[
                ToolParameter("name", "string", "Caller's name", required=True),
                ToolParameter("phone_number", "string", "Number to call back", required=True),
                ToolParameter(
                    "preferred_time", "string",
                    "Preferred time for the callback, e.g. 'tomorrow morning'", required=True,
                ),
                ToolParameter("reason", "string", "What the callback is about"),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        name = arguments.get("name", "").strip()
        phone_number = arguments.get("phone_number", "").strip()
        preferred_time = arguments.get("preferred_time")
        if not name or not phone_number:
            return {
                "success": False,
                "error": "missing_details",
                "message": "Ask the caller for their name and a phone number first.",
            }

        if context.session_factory is None:
            reference = generate_reference("RIC")
            logger.warning(f"[TOOLS] Callback not persisted (no storage) - Ref: {reference}")
        else:
            async with context.session_factory() as db:
                callback = await CallbackPersistenceService(db).create_callback(
                    caller_name=name,
                    caller_phone=phone_number,
                    preferred_time=preferred_time,
                    reason=arguments.get("reason"),
                    call_sid=context.call_id,
                )
                reference = callback.reference_number

        logger.info(f"[TOOLS] Callback scheduled - CallSid: {context.call_id}, Ref: {reference}")
        when = f" {preferred_time}" if preferred_time else ""
        return {
            "success": True,
            "reference_number": reference,
            "message": f"Callback scheduled for {name}{when}. We will call back on {phone_number}.",
        }


class TakeMessageTool(Tool):

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="take_message",
            description="Take a message for an employee or department.",
            parameters=[
                ToolParameter("recipient_name", "string", "Person or department the message is for", required=True),
                ToolParameter("caller_name", "string", "Name of the person leaving the message", required=True),
                ToolParameter("caller_phone", "string", "Caller's phone number"),
                ToolParameter("message", "string", "The message itself", required=True),
                ToolParameter("urgent", "boolean", "Whether the message is urgent"),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        recipient = arguments.get("recipient_name", "").strip()
        caller_name = arguments.get("caller_name", "").strip()
        content = arguments.get("message", "").strip()
        urgent = bool(arguments.get("urgent") or False)
        if not recipient or not caller_name or not content:
            return {
                "success": False,
                "error": "missing_details",
                "message": "Ask who the message is for, the caller's name and the message.",
            }

        caller_phone = arguments.get("caller_phone") or (context.call.caller_address if context.call else None)

        if context.session_factory is None:
            reference = generate_reference("MSG")
            logger.warning(f"[TOOLS] Message not persisted (no storage) - Ref: {reference}")
        else:
            async with context.session_factory() as db:
                message = await MessagePersistenceService(db).create_message(
                    recipient_name=recipient,
                    caller_name=caller_name,
                    content=content,
                    caller_phone=caller_phone,
                    urgent=urgent,
                    call_sid=context.call_id,
                )
                reference = message.reference_number

        logger.info(
            f"[TOOLS] Message taken - CallSid: {context.call_id}, Ref: {reference}, Urgent: {urgent}"
        )
        follow_up = "It has been flagged as urgent." if urgent else "They will receive it shortly."
        return {
            "success": True,
            "reference_number": reference,
            "message": f"Message recorded for {recipient}. {follow_up}",
        }
