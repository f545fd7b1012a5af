"""Company knowledge repository."""
from typing import Any, Dict, List, Optional

from voicedesk.services.knowledge.base import (
    BusinessHours,
    CompanyInfo,
    FinancialData,
    KnowledgeProvider,
    Location,
    TransferDestination,
)


class KnowledgeRepository:
    """Repository for company knowledge lookups."""

    def __init__(self, provider: KnowledgeProvider):
        self.provider = provider

    async def get_company_info(self) -> CompanyInfo:
        return (await self.provider.get_knowledge()).company

    async def get_business_hours(self) -> BusinessHours:
        return (await self.provider.get_knowledge()).hours

    async def get_location(self) -> Location:
        return (await self.provider.get_knowledge()).location

    async def get_transfer_destinations(self) -> List[TransferDestination]:
        return (await self.provider.get_knowledge()).transfer_destinations

    async def resolve_destination(self, name: str) -> Optional[TransferDestination]:
        """Find a transfer destination by name or alias (case-insensitive)."""
        wanted = name.lower().strip()
        for destination in await self.get_transfer_destinations():
            names = [destination.name.lower()] + [a.lower() for a in destination.aliases]
            if wanted in names:
                return destination
        return None

    async def verify_access_code(self, code: str) -> bool:
        """Check a spoken access code against the configured codes."""
        knowledge = await self.provider.get_knowledge()
        normalized = code.upper().strip()
        return any(normalized == c.upper() for c in knowledge.access_codes)

    async def get_financial_data(self) -> Optional[FinancialData]:
        return (await self.provider.get_knowledge()).financial

    async def get_financial_section(self, section: str) -> Optional[Dict[str, Any]]:
        """Get one section of the financial report, or None if unknown."""
        financial = await self.get_financial_data()
        if financial is None:
            return None
        return financial.sections.get(section.lower().strip())

    async def get_company_text(self) -> str:
        """Get company profile as formatted text for persona instructions."""
        company = await self.get_company_info()
        hours = await self.get_business_hours()
        destinations = await self.get_transfer_destinations()

        lines = [f"Company: {company.name}"]
        if company.description:
            lines.append(f"About: {company.description}")
        if company.services:
            lines.append(f"Services: {', '.join(company.services)}")
        lines.append(f"\nOpening hours ({hours.timezone}):")
        for days, times in hours.regular.items():
            lines.append(f"  - {days}: {times}")
        if destinations:
            lines.append("\nTransfer destinations:")
            for destination in destinations:
                desc_str = f" - {destination.description}" if destination.description else ""
                lines.append(f"  - {destination.name}{desc_str}")
        return "\n".join(lines)
