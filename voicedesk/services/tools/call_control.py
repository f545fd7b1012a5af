"""Call control tools."""
import logging
import re
from typing import Any, Dict, Optional

from voicedesk.services.knowledge.repository import KnowledgeRepository
from voicedesk.services.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter

logger = logging.getLogger(__name__)

PHONE_NUMBER_PATTERN = re.compile(r"^\+?\d{6,15}$")


async def resolve_target_address(target: str, knowledge: KnowledgeRepository) -> Optional[str]:
    """
    Turn what the model asked for into a dialable number.

    Accepts a phone number (spaces and dashes are ignored) or the name or
    alias of a configured transfer destination.
    """
    compact = re.sub(r"[\s\-().]", "", target)
    if PHONE_NUMBER_PATTERN.match(compact):
        return compact
    destination = await knowledge.resolve_destination(target)
    return destination.number if destination else None


class TransferCallTool(Tool):
    """Hand the caller over to a human-staffed number."""

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="transfer_call",
            description=(
                "Transfer the caller to another phone number or department. "
                "Tell the caller you are transferring them before calling this."
            ),
            parameters=[
                ToolParameter(
                    "target_address", "string",
                    "Number in international format (e.g. +390200000001) or a department name such as 'support' or 'sales'",
                    required=True,
                ),
                ToolParameter("reason", "string", "Why the caller is being transferred"),
            ],
        )

    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        requested = str(arguments.get("target_address", "")).strip()
        reason = arguments.get("reason")

        target = await resolve_target_address(requested, context.knowledge) if requested else None
        if target is None:
            logger.warning(
                f"[TOOLS] Unknown transfer destination '{requested}' - CallSid: {context.call_id}"
            )
            destinations = await context.knowledge.get_transfer_destinations()
            return {
                "success": False,
                "error": "unknown_destination",
                "message": (
                    f"'{requested}' is not a known destination. Available: "
                    f"{', '.join(d.name for d in destinations) or 'none'}."
                ),
            }

        if context.transfer_coordinator is None:
            return {
                "success": False,
                "error": "not_ready",
                "message": "Transfers are not available. Offer to take a message or schedule a callback.",
            }

        return await context.transfer_coordinator.request_transfer(context.call_id, target, reason)
