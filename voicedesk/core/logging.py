"""Logging configuration."""
import logging
import sys
from typing import Optional

from voicedesk.core.config import settings

# Chatty below WARNING on every request or provider frame
NOISY_LOGGERS = ("httpx", "openai", "websockets", "uvicorn.access")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure application logging. Level defaults to LOG_LEVEL."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
