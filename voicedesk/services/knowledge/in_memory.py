"""In-memory company knowledge provider."""
import yaml
from pathlib import Path
from typing import Optional

from voicedesk.services.knowledge.base import (
    BusinessHours,
    CompanyInfo,
    CompanyKnowledge,
    KnowledgeProvider,
    Location,
)


class InMemoryKnowledgeProvider(KnowledgeProvider):
    """In-memory knowledge provider using YAML configuration."""

    def __init__(self, knowledge_file: Optional[str] = None):
        """Initialize with optional knowledge file path."""
        if knowledge_file is None:
            knowledge_file = Path(__file__).parent / "data" / "company.yaml"
        self.knowledge_file = Path(knowledge_file)
        self._knowledge: Optional[CompanyKnowledge] = None

    async def _load_knowledge(self) -> CompanyKnowledge:
        """Load knowledge from YAML file."""
        if self._knowledge is None:
            if not self.knowledge_file.exists():
                # Bare profile if the file doesn't exist
                self._knowledge = CompanyKnowledge(
                    company=CompanyInfo(name="VoiceDesk"),
                    hours=BusinessHours(
                        timezone="UTC",
                        regular={
                            "monday-friday": "09:00 - 18:00",
                            "saturday-sunday": "closed",
                        },
                    ),
                    location=Location(address="Unknown", city="Unknown"),
                )
            else:
                with open(self.knowledge_file, "r") as f:
                    data = yaml.safe_load(f) or {}
                    self._knowledge = CompanyKnowledge.model_validate(data)
        return self._knowledge

    async def get_knowledge(self) -> CompanyKnowledge:
        """Get all company knowledge."""
        return await self._load_knowledge()
