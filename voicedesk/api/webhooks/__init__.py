"""Carrier webhook routers."""
from voicedesk.api.webhooks import media, voice

__all__ = ["media", "voice"]
