"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from voicedesk.core.logging import setup_logging
from voicedesk.db.database import init_db
from voicedesk.api import health, webhooks
from voicedesk.services.call_session.registry import CallStateRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    app.state.call_registry = CallStateRegistry()
    yield
    # Shutdown
    app.state.call_registry.clear()


app = FastAPI(
    title="VoiceDesk",
    description="AI voice receptionist with live call transfer",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(webhooks.voice.router, tags=["webhooks"])
app.include_router(webhooks.media.router, tags=["webhooks"])


@app.get("/")
async def root():
    return {
        "message": "VoiceDesk API",
        "version": "0.1.0",
    }
