"""
LLM Prompt Core - model wrappers and prompt templates for the math tutor.

Provides a LangChain-compatible OpenAI wrapper with chat, vision and model
listing support, and the per-mode system prompts.
"""

from llm_prompt_core.models.base import BaseLLMModel
from llm_prompt_core.models.openai import OpenAIModel
from llm_prompt_core.prompts import build_system_messages

__all__ = [
    "BaseLLMModel",
    "OpenAIModel",
    "build_system_messages",
]

__version__ = "0.2.0"
