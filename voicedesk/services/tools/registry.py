"""Tool registry."""
import logging
from typing import Any, Dict, Iterable, List, Optional

from voicedesk.services.tools.base import Tool, ToolContext

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Lookup of tools by name and schema export for the realtime session."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning(f"[TOOLS] Tool {tool.name} already registered, overwriting")
        self._tools[tool.name] = tool
        logger.debug(f"[TOOLS] Registered tool: {tool.name}")

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def to_openai_realtime_schema(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        """
        Export tools in OpenAI Realtime API format.

        Args:
            names: Restrict export to these tools (unknown names are skipped)
        """
        selected = self._tools.values() if names is None else [
            self._tools[n] for n in names if n in self._tools
        ]
        return [tool.definition.to_openai_realtime_schema() for tool in selected]

    async def execute(
        self, name: str, arguments: Dict[str, Any], context: ToolContext
    ) -> Dict[str, Any]:
        """Run a tool, turning failures into an error result for the model."""
        tool = self.get(name)
        if tool is None:
            logger.warning(f"[TOOLS] Unknown tool requested: {name} - CallSid: {context.call_id}")
            return {"success": False, "error": "unknown_tool", "message": f"Tool {name} is not available."}

        logger.info(f"[TOOLS] Executing {name} - CallSid: {context.call_id}, Args: {arguments}")
        try:
            return await tool.execute(arguments, context)
        except Exception as e:
            logger.error(
                f"[TOOLS] Error executing {name} - CallSid: {context.call_id}, "
                f"Error: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return {
                "success": False,
                "error": "tool_failed",
                "message": "Something went wrong. Apologise and offer to take a message instead.",
            }


def create_default_registry() -> ToolRegistry:
    """Registry with every tool the personas can use."""
    from voicedesk.services.tools.call_control import TransferCallTool
    from voicedesk.services.tools.financial import (
        GetFinancialReportTool,
        GetFinancialSummaryTool,
        VerifyAccessCodeTool,
    )
    from voicedesk.services.tools.reception import (
        GetBusinessHoursTool,
        GetCompanyInfoTool,
        GetLocationTool,
        ScheduleCallbackTool,
        TakeMessageTool,
    )

    return ToolRegistry([
        GetCompanyInfoTool(),
        GetBusinessHoursTool(),
        GetLocationTool(),
        ScheduleCallbackTool(),
        TakeMessageTool(),
        TransferCallTool(),
        VerifyAccessCodeTool(),
        GetFinancialSummaryTool(),
        GetFinancialReportTool(),
    ])
