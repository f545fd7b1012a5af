"""Company knowledge provider interface."""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class CompanyInfo(BaseModel):
    """Company profile read out by the receptionist."""

    name: str
    tagline: Optional[str] = None
    description: Optional[str] = None
    services: List[str] = []
    contact: Dict[str, str] = {}


class BusinessHours(BaseModel):
    timezone: str
    regular: Dict[str, str] = {}
    notes: Optional[str] = None


class Location(BaseModel):
    address: str
    city: str
    postal_code: Optional[str] = None
    country: Optional[str] = None
    directions: Dict[str, str] = {}


class TransferDestination(BaseModel):
    """Named number a call can be transferred to."""

    name: str
    number: str
    aliases: List[str] = []
    description: Optional[str] = None


class FinancialData(BaseModel):
    """Restricted financial figures, only given out after access verification."""

    fiscal_year: int
    summary: Dict[str, Any] = {}
    sections: Dict[str, Dict[str, Any]] = {}


class CompanyKnowledge(BaseModel):
    company: CompanyInfo
    hours: BusinessHours
    location: Location
    transfer_destinations: List[TransferDestination] = []
    financial: Optional[FinancialData] = None
    access_codes: List[str] = []


class KnowledgeProvider(ABC):
    """Abstract base class for company knowledge providers."""

    @abstractmethod
    async def get_knowledge(self) -> CompanyKnowledge:
        """Get all company knowledge."""
        pass
