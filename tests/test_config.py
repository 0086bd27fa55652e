"""
Tests for the per-mode locale configuration.
"""

import pytest

from config import (
    get_diagnostic_template,
    get_error_message,
    get_locale,
    get_locale_config,
    get_voice_profile,
    get_welcome_message,
)
from sessions.types import Mode


class TestLocaleConfig:
    def test_both_modes_present(self):
        assert set(get_locale_config()["modes"]) == {"standard", "developer"}

    def test_locales(self):
        assert get_locale(Mode.STANDARD) == "es"
        assert get_locale("developer") == "en"

    def test_welcome_messages(self):
        assert get_welcome_message(Mode.STANDARD).startswith("¡Hola! Bienvenido a Proyecto: Globo")
        assert get_welcome_message(Mode.DEVELOPER).startswith("Hello RC - Project Globo Developer Mode")

    @pytest.mark.parametrize("mode", list(Mode))
    @pytest.mark.parametrize("kind", ["input_invalid", "rate_limited", "invalid_credential", "transient", "diagnostic"])
    def test_every_error_kind_has_a_message(self, mode, kind):
        assert get_error_message(mode, kind)

    def test_unknown_error_kind_falls_back_to_transient(self):
        assert get_error_message(Mode.STANDARD, "malformed") == get_error_message(Mode.STANDARD, "transient")

    def test_models_template_has_placeholder(self):
        template = get_diagnostic_template(Mode.DEVELOPER, "models")

        assert "gpt-4o" in template.format(models="gpt-4o")

    def test_unknown_mode_raises(self):
        with pytest.raises(ValueError):
            get_locale("klingon")


class TestVoiceProfile:
    def test_standard_voice(self, monkeypatch):
        monkeypatch.delenv("ELEVENLABS_VOICE_STANDARD", raising=False)

        profile = get_voice_profile(Mode.STANDARD)

        assert profile.voice_id == "iBGVhgcEZS6A5gTOjqSJ"
        assert profile.stability == 0.5
        assert profile.similarity_boost == 0.5
        assert profile.playback_rate == 0.95
        assert profile.volume == 0.9

    def test_developer_playback_tuning(self):
        profile = get_voice_profile(Mode.DEVELOPER)

        assert profile.playback_rate == 1.0
        assert profile.volume == 0.85

    def test_voice_id_env_override(self, monkeypatch):
        monkeypatch.setenv("ELEVENLABS_VOICE_DEVELOPER", "custom-voice")

        assert get_voice_profile(Mode.DEVELOPER).voice_id == "custom-voice"

    def test_synthesis_settings_exclude_playback(self):
        settings = get_voice_profile(Mode.STANDARD).synthesis_settings()

        assert set(settings) == {"stability", "similarity_boost", "style", "use_speaker_boost"}
