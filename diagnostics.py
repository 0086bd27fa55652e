"""
Developer diagnostics: model catalog and credential check.

Neither is part of the conversational path; the developer page uses them to
confirm the backend is wired up.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

from constants import LLM_CATALOG_PREFIX, LLM_MAX_TOKENS_CREDENTIAL_CHECK, LLM_TEXT_MODEL
from exceptions import InvalidCredentialError
from llm_prompt_core.models.openai import OpenAIModel

logger = logging.getLogger(__name__)


class OpenAIDiagnostics:
    """ModelCatalog and CredentialCheck collaborators backed by OpenAI."""

    def __init__(self, model_factory: Optional[Callable[[], OpenAIModel]] = None) -> None:
        self._model_factory = model_factory or partial(OpenAIModel, model_name=LLM_TEXT_MODEL)

    async def list_models(self) -> list[str]:
        """Sorted ids of the chat models available to the configured key."""
        loop = asyncio.get_event_loop()
        model = self._model_factory()
        model_ids = await loop.run_in_executor(None, model.list_models)
        return sorted(model_id for model_id in model_ids if model_id.startswith(LLM_CATALOG_PREFIX))

    async def check_credentials(self) -> dict[str, Any]:
        """
        Make a tiny completion to prove the key works.

        Returns:
            {"valid": bool, "message": str}. Outages still raise.
        """
        loop = asyncio.get_event_loop()
        try:
            model = self._model_factory()
            await loop.run_in_executor(
                None,
                partial(
                    model.chat,
                    [{"role": "user", "content": "Hello"}],
                    max_tokens=LLM_MAX_TOKENS_CREDENTIAL_CHECK,
                ),
            )
        except InvalidCredentialError as e:
            logger.warning("Credential check failed: %s", e)
            return {"valid": False, "message": str(e)}
        return {"valid": True, "message": "OpenAI API key is valid and working"}
