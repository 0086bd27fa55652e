"""
Prompt templates and builders for the math tutor.

This module builds the system prompts sent ahead of every chat completion.
"""

from langchain_core.prompts import ChatPromptTemplate

from llm_prompt_core.prompts.templates import (
    context_guidance,
    developer_system_template,
    image_instruction,
    standard_system_template,
)

SYSTEM_TEMPLATES = {
    "standard": standard_system_template,
    "developer": developer_system_template,
}


def build_system_messages(mode: str) -> list[dict[str, str]]:
    """
    Render the system messages for a mode in OpenAI message format.

    Args:
        mode: "standard" or "developer"

    Returns:
        Persona message followed by the shared context guidance
    """
    prompt = ChatPromptTemplate.from_messages(
        [("system", SYSTEM_TEMPLATES[mode]), ("system", context_guidance)]
    )
    return [
        {"role": "system", "content": message.content}
        for message in prompt.format_messages()
    ]


__all__ = [
    "SYSTEM_TEMPLATES",
    "build_system_messages",
    "context_guidance",
    "developer_system_template",
    "image_instruction",
    "standard_system_template",
]
