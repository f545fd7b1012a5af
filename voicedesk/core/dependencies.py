"""FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from voicedesk.core.config import settings
from voicedesk.db.database import AsyncSessionLocal, get_db
from voicedesk.services.call_session.manager import CallSessionManager
from voicedesk.services.call_session.registry import CallStateRegistry
from voicedesk.services.knowledge.in_memory import InMemoryKnowledgeProvider
from voicedesk.services.knowledge.repository import KnowledgeRepository
from voicedesk.services.persistence.calls import CallPersistenceService
from voicedesk.services.realtime.connection import RealtimeConnector
from voicedesk.services.realtime.orchestrator import RealtimeSessionOrchestrator
from voicedesk.services.tools.registry import create_default_registry
from voicedesk.services.transfer.coordinator import TransferCoordinator
from voicedesk.services.transfer.signal import SocketCloseSignal


def get_call_registry(connection: HTTPConnection) -> CallStateRegistry:
    """Get the process-wide call registry (created in the app lifespan)."""
    state = connection.app.state
    if getattr(state, "call_registry", None) is None:
        state.call_registry = CallStateRegistry()
    return state.call_registry


def get_knowledge_repository() -> KnowledgeRepository:
    """Get knowledge repository instance."""
    return KnowledgeRepository(provider=InMemoryKnowledgeProvider(settings.knowledge_file))


def get_transfer_coordinator(
    registry: CallStateRegistry = Depends(get_call_registry),
) -> TransferCoordinator:
    """Get transfer coordinator bound to the call registry."""
    return TransferCoordinator(
        registry,
        SocketCloseSignal(),
        grace_period_seconds=settings.transfer_grace_period_seconds,
        close_timeout_seconds=settings.transfer_close_timeout_seconds,
    )


def get_realtime_orchestrator(
    knowledge: KnowledgeRepository = Depends(get_knowledge_repository),
    coordinator: TransferCoordinator = Depends(get_transfer_coordinator),
) -> RealtimeSessionOrchestrator:
    """Get realtime session orchestrator."""
    return RealtimeSessionOrchestrator(
        connector=RealtimeConnector(),
        tools=create_default_registry(),
        knowledge=knowledge,
        transfer_coordinator=coordinator,
        session_factory=AsyncSessionLocal,
    )


def get_call_session_manager(
    registry: CallStateRegistry = Depends(get_call_registry),
    orchestrator: RealtimeSessionOrchestrator = Depends(get_realtime_orchestrator),
    knowledge: KnowledgeRepository = Depends(get_knowledge_repository),
) -> CallSessionManager:
    """Get call session manager for one media stream."""
    return CallSessionManager(registry, orchestrator, knowledge, session_factory=AsyncSessionLocal)


def get_call_persistence(db: AsyncSession = Depends(get_db)) -> CallPersistenceService:
    """Get call persistence service."""
    return CallPersistenceService(db)
