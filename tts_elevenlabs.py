"""
ElevenLabs Text-to-Speech Integration

Narrates tutor replies with the voice profile of the session's mode.
Audio is returned as MP3 bytes and shipped to the browser for playback.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from io import BytesIO
from typing import Any

from dotenv import load_dotenv
from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs

from constants import TTS_MODEL_ID, TTS_OUTPUT_FORMAT
from exceptions import AudioServiceError, EmptyInputError
from metrics import track_tts_call
from sessions.types import VoiceProfile

load_dotenv()

logger = logging.getLogger(__name__)

ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
ELEVENLABS_AVAILABLE = bool(ELEVENLABS_API_KEY) and ELEVENLABS_API_KEY != "your-elevenlabs-api-key-here"

if ELEVENLABS_AVAILABLE:
    logger.info("ElevenLabs TTS enabled")
else:
    logger.info("ElevenLabs TTS disabled (no API key configured)")


class TTSManager:
    """Manages text-to-speech synthesis using ElevenLabs."""

    def __init__(self, api_key: str | None = None, client: Any = None):
        self.client = client
        self.enabled = client is not None

        api_key = api_key or (ELEVENLABS_API_KEY if ELEVENLABS_AVAILABLE else None)
        if self.client is None and api_key:
            try:
                self.client = ElevenLabs(api_key=api_key)
                self.enabled = True
                logger.info("TTSManager initialized with ElevenLabs")
            except Exception as e:
                logger.error("Failed to initialize ElevenLabs client: %s", e)

    def is_enabled(self) -> bool:
        """Check if TTS is available and enabled."""
        return self.enabled and self.client is not None

    def clean_text_for_tts(self, text: str) -> str:
        """
        Clean reply text for speech.

        Drops markdown emphasis, headings, code fences and inline LaTeX
        delimiters. Step numbering stays so steps are read in order.
        """
        text = re.sub(r"```[a-z]*", "", text, flags=re.IGNORECASE)
        text = re.sub(r"[*_`#]+", "", text)
        text = re.sub(r"\\[()\[\]]", "", text)

        # Image payloads are never spoken
        text = re.sub(r"data:image/[^\s]+", "", text)

        text = re.sub(r"\.{4,}", "...", text)
        text = re.sub(r"\s+", " ", text)
        return text.strip()

    async def synthesize(self, text: str, profile: VoiceProfile) -> bytes:
        """
        Narrate ``text`` with ``profile``.

        Matches the narrator signature expected by AudioPlaybackController.

        Returns:
            Audio bytes (MP3 format)

        Raises:
            EmptyInputError: If nothing speakable remains after cleaning
            AudioServiceError: If TTS is disabled or the service fails
        """
        cleaned_text = self.clean_text_for_tts(text or "")
        if not cleaned_text:
            raise EmptyInputError()
        if not self.is_enabled():
            raise AudioServiceError("Text-to-speech is not configured")

        try:
            # Run synthesis in thread pool to avoid blocking
            loop = asyncio.get_event_loop()
            with track_tts_call():
                audio_bytes = await loop.run_in_executor(
                    None,
                    self._sync_synthesize,
                    cleaned_text,
                    profile.voice_id,
                    profile.synthesis_settings(),
                )
        except Exception as e:
            logger.error("TTS synthesis failed: %s", e)
            raise AudioServiceError(f"Speech synthesis failed: {e}") from e

        if not audio_bytes:
            raise AudioServiceError("Speech synthesis returned no audio")
        return audio_bytes

    def _sync_synthesize(
        self,
        text: str,
        voice_id: str,
        settings: dict[str, Any],
    ) -> bytes:
        """Synchronous synthesis (run in thread pool)."""
        voice_settings = VoiceSettings(
            stability=settings.get("stability", 0.5),
            similarity_boost=settings.get("similarity_boost", 0.5),
            style=settings.get("style", 0.0),
            use_speaker_boost=settings.get("use_speaker_boost", True),
        )

        response = self.client.text_to_speech.convert(
            text=text,
            voice_id=voice_id,
            model_id=TTS_MODEL_ID,
            output_format=TTS_OUTPUT_FORMAT,
            voice_settings=voice_settings,
        )

        # Collect audio bytes
        audio_buffer = BytesIO()
        for chunk in response:
            if chunk:
                audio_buffer.write(chunk)

        audio_buffer.seek(0)
        return audio_buffer.read()


# Global TTS manager instance
_tts_manager: TTSManager | None = None


def get_tts_manager() -> TTSManager:
    """Get the global TTS manager instance."""
    global _tts_manager
    if _tts_manager is None:
        _tts_manager = TTSManager()
    return _tts_manager
