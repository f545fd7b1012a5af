"""
Base classes for agent tools.

Tools are exposed to the realtime model as functions. Each one receives the
parsed arguments plus a ToolContext describing the call it runs in, and
returns a JSON-serializable dict that is sent back to the model as the
function call output.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from voicedesk.services.call_session.models import CallState
from voicedesk.services.knowledge.repository import KnowledgeRepository


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description,
        }
        if self.enum:
            result["enum"] = self.enum
        return result


@dataclass
class ToolDefinition:
    """Provider-facing tool metadata."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)

    def to_openai_realtime_schema(self) -> Dict[str, Any]:
        """
        Convert to OpenAI Realtime API function format.

        Realtime tools are flat: name/description at the top level rather than
        nested under "function" as in Chat Completions.
        """
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.to_dict() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        }


@dataclass
class ToolContext:
    """Everything a tool may touch while handling one call."""
    call_id: str
    call: Optional[CallState]
    knowledge: KnowledgeRepository
    transfer_coordinator: Any = None  # TransferCoordinator
    session_factory: Optional[Callable[[], AsyncSession]] = None
    persona_name: Optional[str] = None


class Tool(ABC):
    """Abstract base class for all tools."""

    @property
    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return tool definition with metadata."""
        pass

    @property
    def name(self) -> str:
        return self.definition.name

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any], context: ToolContext) -> Dict[str, Any]:
        """
        Run the tool.

        Args:
            arguments: Parsed arguments from the model
            context: Call the tool runs in

        Returns:
            JSON-serializable result for the model
        """
        pass
