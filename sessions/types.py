"""
Data types for tutoring sessions.

- Message: one immutable chat entry (text or photographed homework)
- Step: one numbered line of a worked solution
- SessionState: mode, loading flag and last error of a session
- VoiceProfile: voice identity and playback tuning for narration
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from constants import IMAGE_MARKER


class Mode(str, Enum):
    """Session mode. Standard is the Spanish parent/child tutor, developer is English."""

    STANDARD = "standard"
    DEVELOPER = "developer"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


@dataclass(frozen=True)
class Step:
    number: int
    text: str


@dataclass(frozen=True)
class ImageContent:
    """
    Encoded image payload submitted in place of text.

    Attributes:
        data: Data URL (or remote URL) of the photographed exercise
    """

    data: str

    @property
    def marker(self) -> str:
        return IMAGE_MARKER


MessageContent = Union[str, ImageContent]


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Message:
    """
    A single chat entry.

    Attributes:
        role: Who produced the message
        content: Plain text, or ImageContent for a photo submission
        steps: Ordered worked-solution steps when the reply was structured
        visualization_query: Math query the reply asked to have visualized
        visualization: Image reference attached after a visualization query
        auto_narrate: Whether the reply should be spoken without user action
        artifact: UI-only message (e.g. diagnostic report), never sent as context
        id: Opaque unique id, never reused
        timestamp: Creation time, used as the ordering key
    """

    role: Role
    content: MessageContent
    steps: tuple[Step, ...] = ()
    visualization_query: Optional[str] = None
    visualization: Optional[str] = None
    auto_narrate: bool = False
    artifact: bool = False
    id: str = field(default_factory=new_message_id)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_image(self) -> bool:
        return isinstance(self.content, ImageContent)

    @property
    def text(self) -> str:
        """Text form of the content; images collapse to the opaque marker."""
        if isinstance(self.content, ImageContent):
            return self.content.marker
        return self.content

    def to_dict(self, include_image_data: bool = True) -> dict[str, Any]:
        """Serialize for the wire or the history cache."""
        content: Any = self.content
        if isinstance(self.content, ImageContent):
            content = {"image": self.content.data if include_image_data else None}
        return {
            "id": self.id,
            "role": self.role.value,
            "content": content,
            "steps": [asdict(step) for step in self.steps],
            "visualization_query": self.visualization_query,
            "visualization": self.visualization,
            "auto_narrate": self.auto_narrate,
            "artifact": self.artifact,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        content = data["content"]
        if isinstance(content, dict):
            content = ImageContent(content.get("image") or "")
        return cls(
            role=Role(data["role"]),
            content=content,
            steps=tuple(Step(int(s["number"]), str(s["text"])) for s in data.get("steps", [])),
            visualization_query=data.get("visualization_query"),
            visualization=data.get("visualization"),
            auto_narrate=bool(data.get("auto_narrate", False)),
            artifact=bool(data.get("artifact", False)),
            id=data["id"],
            timestamp=float(data["timestamp"]),
        )


@dataclass(frozen=True)
class ErrorDescriptor:
    """User-facing error recorded on the session."""

    kind: str
    message: str


@dataclass
class SessionState:
    """
    Mutable session flags.

    Attributes:
        mode: Standard or developer; only changed by a hard reset
        loading: True while a submit is in flight (acts as the submit mutex)
        last_error: Error from the latest exchange, cleared on next submit
    """

    mode: Mode = Mode.STANDARD
    loading: bool = False
    last_error: Optional[ErrorDescriptor] = None


@dataclass(frozen=True)
class VoiceProfile:
    """
    Voice identity and tuning for narration.

    Synthesis parameters go to the TTS service; playback_rate and volume go
    to the audio sink.
    """

    voice_id: str
    stability: float = 0.5
    similarity_boost: float = 0.5
    style: float = 0.0
    use_speaker_boost: bool = True
    playback_rate: float = 1.0
    volume: float = 1.0

    def synthesis_settings(self) -> dict[str, Any]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }
