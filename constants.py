"""
Project-wide constants.

Centralizes magic numbers and configuration values for maintainability.
"""

from __future__ import annotations

import os
from typing import Final

# =============================================================================
# LLM Configuration
# =============================================================================
LLM_TEMPERATURE_TUTOR: Final[float] = 0.7
LLM_MAX_TOKENS_TEXT: Final[int] = 500
LLM_MAX_TOKENS_IMAGE: Final[int] = 1000  # Image analysis needs more room
LLM_MAX_TOKENS_CREDENTIAL_CHECK: Final[int] = 5
LLM_TEXT_MODEL: Final[str] = os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini")
LLM_VISION_MODEL: Final[str] = os.getenv("OPENAI_VISION_MODEL", "gpt-4o")
LLM_CATALOG_PREFIX: Final[str] = "gpt-"  # Only chat models are listed

# =============================================================================
# Conversation
# =============================================================================
RECENT_CONTEXT_SIZE: Final[int] = 5  # Messages sent to prime each request
MAX_MESSAGE_LENGTH: Final[int] = 4000
IMAGE_MARKER: Final[str] = "[PHOTO]"
HISTORY_CACHE_MAX_ENTRIES: Final[int] = 50
HISTORY_CACHE_DIR: Final[str | None] = os.getenv("GLOBO_HISTORY_CACHE_DIR")

# =============================================================================
# Audio Playback
# =============================================================================
AUDIO_RELEASE_DELAY_SECONDS: Final[float] = 0.1  # Settling time after release
WELCOME_NARRATION_DELAY_SECONDS: Final[float] = 1.5
TTS_MODEL_ID: Final[str] = "eleven_multilingual_v2"
TTS_OUTPUT_FORMAT: Final[str] = "mp3_44100_128"

# =============================================================================
# Visualization
# =============================================================================
WOLFRAM_API_URL: Final[str] = "https://api.wolframalpha.com/v2/query"
WOLFRAM_TIMEOUT_SECONDS: Final[float] = 15.0

# =============================================================================
# Server Configuration
# =============================================================================
DEFAULT_SERVER_HOST: Final[str] = "0.0.0.0"
DEFAULT_SERVER_PORT: Final[int] = 8888

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL_PRODUCTION: Final[str] = "INFO"
LOG_LEVEL_DEVELOPMENT: Final[str] = "DEBUG"
LOG_FORMAT_JSON: Final[bool] = True  # Set to False for development readable format
