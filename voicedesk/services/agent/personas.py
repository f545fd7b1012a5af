"""AI personas a call can be handled by."""
from dataclasses import dataclass, field
from typing import Dict, List

from voicedesk.services.agent.prompt import (
    get_financial_specialist_prompt,
    get_receptionist_prompt,
)
from voicedesk.services.knowledge.repository import KnowledgeRepository

RECEPTIONIST = "receptionist"
FINANCIAL_SPECIALIST = "financial_specialist"


@dataclass
class Persona:
    """Instructions and tool set bound to a realtime session."""
    name: str
    instructions: str
    tool_names: List[str] = field(default_factory=list)
    handoff_description: str = ""

    @property
    def handoff_tool_name(self) -> str:
        return f"transfer_to_{self.name}"


async def build_personas(knowledge: KnowledgeRepository) -> Dict[str, Persona]:
    """Build every persona, keyed by name."""
    company_text = await knowledge.get_company_text()
    return {
        RECEPTIONIST: Persona(
            name=RECEPTIONIST,
            instructions=get_receptionist_prompt(company_text),
            tool_names=[
                "get_company_info",
                "get_business_hours",
                "get_location",
                "schedule_callback",
                "take_message",
                "transfer_call",
            ],
            handoff_description="Hand the caller back to the receptionist for anything that is not financial.",
        ),
        FINANCIAL_SPECIALIST: Persona(
            name=FINANCIAL_SPECIALIST,
            instructions=get_financial_specialist_prompt(),
            tool_names=[
                "verify_access_code",
                "get_financial_summary",
                "get_financial_report",
                "take_message",
            ],
            handoff_description="Hand the caller to the financial specialist for questions about financial results.",
        ),
    }

