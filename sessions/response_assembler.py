"""
Response Assembler Module

Turns a raw chat-completion reply into an assistant Message.

Replies arrive in two shapes:
- Structured: a dict (or a JSON string) carrying a ``steps`` list
- Unstructured: plain text, split into steps at "1)", "1." or "Step 1:" lines

Anything that looks structured but can't be read as steps is treated as
malformed and falls back to text splitting; malformed replies never reach
the user as errors.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from exceptions import MalformedResponseError
from sessions.types import Message, Role, Step

logger = logging.getLogger(__name__)

# A new step starts on a line beginning with "12)", "12." or "Step 12:".
# The number must be followed by whitespace so decimals like "0.75" stay intact.
STEP_BOUNDARY = re.compile(r"\n(?=[ \t]*(?:\d+[).](?=\s|$)|Step \d+:))")
STEP_TOKEN = re.compile(r"^\s*(?:\d+[).](?=\s|$)|Step \d+:)\s*")

VISUALIZATION_KEYS = ("visualizationQuery", "visualization_query", "wolfram_query")
AUTO_NARRATE_KEYS = ("autoNarrate", "auto_narrate", "send_to_voice")
STEP_TEXT_KEYS = ("text", "content")
STEP_NUMBER_KEYS = ("number", "step_number")


def _first_present(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def split_text_steps(text: str) -> list[Step]:
    """
    Split free text into numbered steps.

    Boundary tokens are stripped from the stored step text. Text without any
    boundary becomes a single step.
    """
    chunks = [chunk for chunk in STEP_BOUNDARY.split(text.strip()) if chunk.strip()]
    steps = []
    for chunk in chunks:
        step_text = STEP_TOKEN.sub("", chunk, count=1).strip()
        if step_text:
            steps.append(Step(number=len(steps) + 1, text=step_text))
    return steps


def parse_structured_steps(payload: dict[str, Any]) -> list[Step]:
    """
    Read the ``steps`` list of a structured payload.

    Raises:
        MalformedResponseError: If there is no usable steps list
    """
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list):
        raise MalformedResponseError("Structured reply has no steps list")

    steps = []
    for index, raw_step in enumerate(raw_steps, start=1):
        if isinstance(raw_step, str):
            number, text = index, raw_step
        elif isinstance(raw_step, dict):
            number = _first_present(raw_step, STEP_NUMBER_KEYS)
            text = _first_present(raw_step, STEP_TEXT_KEYS)
            if not isinstance(number, int) or isinstance(number, bool):
                number = index
        else:
            raise MalformedResponseError(f"Unreadable step at position {index}")
        if not isinstance(text, str):
            raise MalformedResponseError(f"Step {index} has no text")
        text = text.strip()
        if text:
            steps.append(Step(number=number, text=text))

    if not steps:
        raise MalformedResponseError("Structured reply has an empty steps list")
    return steps


class ResponseAssembler:
    """Normalizes raw replies into assistant Messages."""

    def normalize(self, raw: Any, auto_narrate_default: bool = False) -> Message:
        """
        Build an assistant Message from a raw reply.

        Args:
            raw: A reply dict ({"content", "steps"?, "visualizationQuery"?,
                 "autoNarrate"?}) or bare text
            auto_narrate_default: Value used when the reply doesn't say

        Returns:
            The assembled Message, ready to append
        """
        reply = raw if isinstance(raw, dict) else {"content": "" if raw is None else str(raw)}
        content = reply.get("content")
        text = content if isinstance(content, str) else ""

        steps: Optional[list[Step]] = None
        fields = dict(reply)
        try:
            if "steps" in reply:
                steps = parse_structured_steps(reply)
            else:
                embedded = self._parse_embedded_json(text)
                steps = parse_structured_steps(embedded)
                fields = {**embedded, **{k: v for k, v in reply.items() if k != "content"}}
        except MalformedResponseError as e:
            logger.debug("Falling back to text splitting: %s", e)
            steps = split_text_steps(text)

        visualization_query = _first_present(fields, VISUALIZATION_KEYS)
        if visualization_query is not None:
            visualization_query = str(visualization_query).strip() or None

        auto_narrate = _first_present(fields, AUTO_NARRATE_KEYS)
        if auto_narrate is None:
            auto_narrate = auto_narrate_default

        return Message(
            role=Role.ASSISTANT,
            content="\n".join(step.text for step in steps),
            steps=tuple(steps),
            visualization_query=visualization_query,
            auto_narrate=bool(auto_narrate),
        )

    def welcome(self, text: str) -> Message:
        """Build the session's opening message; it is always narrated."""
        return Message(role=Role.ASSISTANT, content=text, auto_narrate=True)

    @staticmethod
    def _parse_embedded_json(text: str) -> dict[str, Any]:
        candidate = text.strip()
        # Models often wrap JSON in a ```json fence
        if candidate.startswith("```"):
            candidate = candidate.strip("`")
            if candidate.lower().startswith("json"):
                candidate = candidate[4:]
        try:
            payload = json.loads(candidate)
        except (json.JSONDecodeError, ValueError) as e:
            raise MalformedResponseError(f"Reply is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedResponseError("Reply JSON is not an object")
        return payload
