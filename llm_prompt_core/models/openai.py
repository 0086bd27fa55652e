"""
OpenAI model wrapper.

This module provides a LangChain-compatible wrapper for OpenAI chat models,
with extra entry points for multi-turn (and image) conversations and for
listing the models the configured key can use.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional

from langchain_core.callbacks.manager import CallbackManagerForLLMRun
from pydantic import PrivateAttr

from exceptions import BackendUnavailableError
from llm_prompt_core.models.base import BaseLLMModel


class OpenAIModel(BaseLLMModel):
    """
    LangChain-compatible wrapper for OpenAI models.

    Attributes:
        model_name: Default OpenAI model (e.g., "gpt-4o-mini")
        temperature: Controls randomness in generation (0.0 to 2.0)
        max_tokens: Maximum number of tokens to generate
        api_key: Optional API key (defaults to OPENAI_API_KEY env variable)
    """

    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 500
    api_key: Optional[str] = None

    _client: Any = PrivateAttr()

    class Config:
        arbitrary_types_allowed = True

    def __init__(self, **data: Any):
        super().__init__(**data)
        resolved_api_key = self._get_api_key("OPENAI_API_KEY", "OpenAI")

        from openai import OpenAI

        self._client = self._initialize_client(OpenAI, resolved_api_key, "openai")

    def _call(
        self,
        prompt: str,
        stop: Optional[Sequence[str]] = None,
        run_manager: Optional[CallbackManagerForLLMRun] = None,
        **kwargs: Any,
    ) -> str:
        """Generate text for a single user prompt."""
        return self.chat([{"role": "user", "content": prompt}], stop=stop, **kwargs)

    def chat(
        self,
        messages: list[dict[str, Any]],
        stop: Optional[Sequence[str]] = None,
        **kwargs: Any,
    ) -> str:
        """
        Run a chat completion over a full message list.

        Args:
            messages: OpenAI-format messages (system, history, user; user
                      content may be a list of text/image_url parts)
            stop: Optional list of stop sequences
            **kwargs: Overrides (model, temperature, max_tokens, ...)

        Returns:
            The text of the first choice

        Raises:
            BackendError: Rate limits, bad credentials and outages, or a
                          response without any text
        """
        model = kwargs.pop("model", self.model_name)
        temperature = kwargs.pop("temperature", self.temperature)
        max_tokens = kwargs.pop("max_tokens", self.max_tokens)

        try:
            response = self._client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=messages,
                stop=list(stop) if stop else None,
                **kwargs,
            )
        except Exception as e:
            self._handle_api_error(e, "OpenAI")

        if not response.choices:
            raise BackendUnavailableError("No response from OpenAI")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise BackendUnavailableError("Empty response received")

        return content

    def list_models(self) -> list[str]:
        """Return the ids of all models visible to the configured key."""
        try:
            page = self._client.models.list()
        except Exception as e:
            self._handle_api_error(e, "OpenAI")
        return [model.id for model in page.data]

    @property
    def _llm_type(self) -> str:
        return "openai"

    @property
    def _identifying_params(self) -> dict[str, Any]:
        return {
            "model_name": self.model_name,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
