"""
Tests for ElevenLabs narration.

The ElevenLabs client is mocked; these tests cover text cleaning, the
narrator contract and error translation.
"""

import pytest
from unittest.mock import Mock

from exceptions import AudioServiceError, EmptyInputError
from sessions.types import VoiceProfile
from tts_elevenlabs import TTSManager


@pytest.fixture
def client():
    client = Mock()
    client.text_to_speech.convert.return_value = iter([b"ID3", b"", b"audio"])
    return client


@pytest.fixture
def profile():
    return VoiceProfile(voice_id="iBGVhgcEZS6A5gTOjqSJ", stability=0.5, similarity_boost=0.5)


class TestCleanText:
    """Text cleaning for speech."""

    def setup_method(self):
        self.manager = TTSManager(client=Mock())

    def test_strips_markdown(self):
        assert self.manager.clean_text_for_tts("**Paso 1:** suma _los_ `números`") == "Paso 1: suma los números"

    def test_strips_latex_delimiters(self):
        assert self.manager.clean_text_for_tts(r"\(3/4\) es mayor") == "3/4 es mayor"

    def test_removes_image_payloads(self):
        assert self.manager.clean_text_for_tts("mira data:image/png;base64,AAAA esto") == "mira esto"

    def test_collapses_whitespace_and_ellipses(self):
        assert self.manager.clean_text_for_tts("uno\n\n  dos.....") == "uno dos..."

    def test_keeps_step_numbering(self):
        assert self.manager.clean_text_for_tts("1) Suma\n2) Divide") == "1) Suma 2) Divide"


class TestSynthesize:
    async def test_returns_joined_audio(self, client, profile):
        manager = TTSManager(client=client)

        audio = await manager.synthesize("Paso 1: suma", profile)

        assert audio == b"ID3audio"
        kwargs = client.text_to_speech.convert.call_args.kwargs
        assert kwargs["text"] == "Paso 1: suma"
        assert kwargs["voice_id"] == "iBGVhgcEZS6A5gTOjqSJ"
        assert kwargs["voice_settings"].stability == 0.5
        assert kwargs["voice_settings"].similarity_boost == 0.5

    @pytest.mark.parametrize("text", ["", "   ", "** __ **"])
    async def test_blank_text_is_empty_input(self, client, profile, text):
        manager = TTSManager(client=client)

        with pytest.raises(EmptyInputError):
            await manager.synthesize(text, profile)
        client.text_to_speech.convert.assert_not_called()

    async def test_disabled_manager_is_service_error(self, profile, monkeypatch):
        monkeypatch.setattr("tts_elevenlabs.ELEVENLABS_AVAILABLE", False)
        manager = TTSManager()

        assert manager.is_enabled() is False
        with pytest.raises(AudioServiceError, match="not configured"):
            await manager.synthesize("hola", profile)

    async def test_service_failure_is_service_error(self, client, profile):
        client.text_to_speech.convert.side_effect = RuntimeError("quota exceeded")
        manager = TTSManager(client=client)

        with pytest.raises(AudioServiceError, match="quota exceeded"):
            await manager.synthesize("hola", profile)

    async def test_no_audio_is_service_error(self, client, profile):
        client.text_to_speech.convert.return_value = iter([])
        manager = TTSManager(client=client)

        with pytest.raises(AudioServiceError, match="no audio"):
            await manager.synthesize("hola", profile)
