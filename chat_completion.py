"""
Chat-completion client for the math tutor.

Builds the OpenAI message list (mode persona, recent conversation, the new
question or photographed exercise) and returns the model's raw reply for the
ResponseAssembler to normalize.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from constants import (
    LLM_MAX_TOKENS_IMAGE,
    LLM_MAX_TOKENS_TEXT,
    LLM_TEMPERATURE_TUTOR,
    LLM_TEXT_MODEL,
    LLM_VISION_MODEL,
)
from llm_prompt_core.models.openai import OpenAIModel
from llm_prompt_core.prompts import build_system_messages, image_instruction
from metrics import track_llm_call
from sessions.types import ImageContent, MessageContent, Mode

load_dotenv()

logger = logging.getLogger(__name__)


class TutorChatClient:
    """ChatCompletion collaborator backed by OpenAI."""

    def __init__(
        self,
        model: Optional[OpenAIModel] = None,
        text_model: str = LLM_TEXT_MODEL,
        vision_model: str = LLM_VISION_MODEL,
    ) -> None:
        """
        Args:
            model: Preconfigured wrapper; created on first use when omitted so
                   a missing key surfaces as an exchange error, not at startup
            text_model: Model used for typed questions
            vision_model: Model used for photographed exercises
        """
        self._model = model
        self.text_model = text_model
        self.vision_model = vision_model

    @property
    def model(self) -> OpenAIModel:
        if self._model is None:
            self._model = OpenAIModel(
                model_name=self.text_model,
                temperature=LLM_TEMPERATURE_TUTOR,
                max_tokens=LLM_MAX_TOKENS_TEXT,
            )
        return self._model

    def build_messages(
        self,
        content: MessageContent,
        mode: Mode,
        recent_context: Sequence[tuple[str, str]],
    ) -> list[dict[str, Any]]:
        mode = Mode(mode)
        messages: list[dict[str, Any]] = build_system_messages(mode.value)
        for role, text in recent_context:
            messages.append({"role": "user" if role == "user" else "assistant", "content": text})

        if isinstance(content, ImageContent):
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": image_instruction[mode.value]},
                    {"type": "image_url", "image_url": {"url": content.data, "detail": "auto"}},
                ],
            })
        else:
            messages.append({"role": "user", "content": content})
        return messages

    async def complete(
        self,
        content: MessageContent,
        mode: Mode,
        recent_context: Sequence[tuple[str, str]],
    ) -> dict[str, Any]:
        """
        Ask the tutor model.

        Returns:
            {"content": <raw model text>}

        Raises:
            RateLimitedError, InvalidCredentialError, BackendUnavailableError
        """
        is_image = isinstance(content, ImageContent)
        model_name = self.vision_model if is_image else self.text_model
        max_tokens = LLM_MAX_TOKENS_IMAGE if is_image else LLM_MAX_TOKENS_TEXT
        messages = self.build_messages(content, mode, recent_context)

        logger.debug(
            "Requesting completion: model=%s, image=%s, history=%d",
            model_name, is_image, len(recent_context),
        )
        # The OpenAI SDK call is blocking; keep it off the event loop
        loop = asyncio.get_event_loop()
        with track_llm_call("openai", model_name):
            text = await loop.run_in_executor(
                None,
                partial(self.model.chat, messages, model=model_name, max_tokens=max_tokens),
            )
        return {"content": text}
