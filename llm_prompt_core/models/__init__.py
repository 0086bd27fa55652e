"""
Model wrappers for LLM providers.

The tutor talks to OpenAI chat models (text and vision).
"""

from llm_prompt_core.models.base import BaseLLMModel
from llm_prompt_core.models.openai import OpenAIModel

__all__ = [
    "BaseLLMModel",
    "OpenAIModel",
]
