"""
Configuration loader module.

Provides centralized access to the per-mode locale configuration: welcome
messages, user-facing error messages, diagnostic report templates and voice
profiles. This is the single source of truth for mode-dependent text.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from sessions.types import Mode, VoiceProfile

load_dotenv()

_CONFIG_DIR = Path(__file__).parent
_LOCALES_PATH = _CONFIG_DIR / "locales.json"

# Cache for loaded config
_locales: dict[str, Any] | None = None


def get_locale_config() -> dict[str, Any]:
    """
    Load and return the locale configuration.

    Returns cached version after first load.
    """
    global _locales

    if _locales is None:
        if not _LOCALES_PATH.exists():
            raise FileNotFoundError(f"Locale configuration not found: {_LOCALES_PATH}")

        with open(_LOCALES_PATH, encoding="utf-8") as f:
            _locales = json.load(f)

    return _locales


def get_mode_config(mode: Mode | str) -> dict[str, Any]:
    """Get the configuration block for one mode."""
    mode = Mode(mode)
    return get_locale_config()["modes"][mode.value]


def get_locale(mode: Mode | str) -> str:
    """Get the language code for a mode ('es' or 'en')."""
    return get_mode_config(mode)["locale"]


def get_welcome_message(mode: Mode | str) -> str:
    return get_mode_config(mode)["welcome"]


def get_error_message(mode: Mode | str, kind: str) -> str:
    """
    Get the user-facing message for an error kind.

    Unknown kinds fall back to the generic 'transient' message.
    """
    errors = get_mode_config(mode)["errors"]
    return errors.get(kind, errors["transient"])


def get_diagnostic_template(mode: Mode | str, report: str) -> str:
    """Get the template for a diagnostic report ('models' or 'credentials')."""
    return get_mode_config(mode)["diagnostics"][report]


def get_voice_profile(mode: Mode | str) -> VoiceProfile:
    """
    Build the voice profile for a mode.

    The voice id can be overridden with the environment variable named in the
    profile's ``voice_env`` entry.
    """
    voice = dict(get_mode_config(mode)["voice"])
    voice_env = voice.pop("voice_env", None)
    if voice_env:
        voice["voice_id"] = os.getenv(voice_env, voice["voice_id"])
    return VoiceProfile(**voice)


__all__ = [
    "get_diagnostic_template",
    "get_error_message",
    "get_locale",
    "get_locale_config",
    "get_mode_config",
    "get_voice_profile",
    "get_welcome_message",
]
