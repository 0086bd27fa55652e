"""
Session Controller Module

Orchestrates one tutoring conversation:
- submit(): user message → chat completion → assembled reply → history,
  then the optional visualization and narration that depend on it
- switch_mode(): hard reset to the other locale's welcome message
- audio controls and developer diagnostics

Only one submit can be in flight; ``state.loading`` is the mutex, so
replies are applied in submission order. A mode switch bumps the session
epoch, and replies that arrive for an older epoch are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from config import (
    get_diagnostic_template,
    get_error_message,
    get_locale,
    get_voice_profile,
    get_welcome_message,
)
from constants import (
    IMAGE_MARKER,
    MAX_MESSAGE_LENGTH,
    RECENT_CONTEXT_SIZE,
    WELCOME_NARRATION_DELAY_SECONDS,
)
from exceptions import (
    AudioServiceError,
    BackendUnavailableError,
    EmptyInputError,
    GloboError,
    InputInvalidError,
)
from logging_config import session_logger
from metrics import track_error, track_exchange
from sessions.audio_playback import AudioPlaybackController
from sessions.history_store import ConversationHistoryStore, HistoryCache
from sessions.response_assembler import ResponseAssembler
from sessions.types import (
    ErrorDescriptor,
    ImageContent,
    Message,
    MessageContent,
    Mode,
    Role,
    SessionState,
    VoiceProfile,
)

logger = logging.getLogger(__name__)

StateListener = Callable[["SessionController"], Awaitable[None]]


class ChatCompletion(Protocol):
    async def complete(
        self,
        content: MessageContent,
        mode: Mode,
        recent_context: Sequence[tuple[str, str]],
    ) -> dict[str, Any]: ...


class Visualizer(Protocol):
    async def fetch(self, query: str) -> str: ...


class Diagnostics(Protocol):
    async def list_models(self) -> list[str]: ...

    async def check_credentials(self) -> dict[str, Any]: ...


def history_cache_key(mode: Mode) -> str:
    return f"chat_history:{Mode(mode).value}"


class SessionController:
    """Conversation state machine for one chat session."""

    def __init__(
        self,
        chat: ChatCompletion,
        audio: Optional[AudioPlaybackController] = None,
        visualizer: Optional[Visualizer] = None,
        diagnostics: Optional[Diagnostics] = None,
        mode: Mode | str = Mode.STANDARD,
        cache: Optional[HistoryCache] = None,
        assembler: Optional[ResponseAssembler] = None,
        on_change: Optional[StateListener] = None,
        session_id: Optional[str] = None,
        welcome_delay: float = WELCOME_NARRATION_DELAY_SECONDS,
    ) -> None:
        """
        Initialize the session.

        Args:
            chat: Chat-completion collaborator
            audio: Playback controller; None disables narration
            visualizer: Visualization collaborator; None skips visualizations
            diagnostics: Model catalog / credential check collaborator
            mode: Initial mode
            cache: Best-effort history cache; cached history for the mode is
                   restored, otherwise the welcome message is seeded
            assembler: Reply normalizer
            on_change: Coroutine called after every state change
            session_id: Id used in logs; generated when omitted
            welcome_delay: Pause before narrating a fresh welcome message
        """
        self.session_id = session_id or secrets.token_urlsafe(16)
        self.state = SessionState(mode=Mode(mode))
        self.audio = audio
        self.audio_error: Optional[str] = None
        self._chat = chat
        self._visualizer = visualizer
        self._diagnostics = diagnostics
        self._assembler = assembler or ResponseAssembler()
        self._on_change = on_change
        self._welcome_delay = welcome_delay
        self._epoch = 0
        self._background_tasks: set[asyncio.Task] = set()

        self.logger = session_logger(__name__, self.session_id, self.state.mode.value)

        self.history = ConversationHistoryStore(cache=cache, cache_key=history_cache_key(self.mode))
        if not self.history.restore():
            self.history.reset(self._welcome_message())
        self.logger.info_event(
            "session_created", "Session created", messages=len(self.history)
        )

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self.state.mode

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def last_error(self) -> Optional[ErrorDescriptor]:
        return self.state.last_error

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.history.messages

    @property
    def voice_profile(self) -> VoiceProfile:
        return get_voice_profile(self.mode)

    def snapshot(self) -> dict[str, Any]:
        """Wire representation of the whole session state."""
        error = self.state.last_error
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "locale": get_locale(self.mode),
            "loading": self.state.loading,
            "error": {"kind": error.kind, "message": error.message} if error else None,
            "audio_state": self.audio.state.value if self.audio else "idle",
            "audio_error": self.audio_error,
            "messages": [message.to_dict() for message in self.history],
        }

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def begin(self) -> None:
        """Narrate a freshly seeded welcome message."""
        if len(self.history) != 1:
            return
        welcome = self.history.messages[0]
        if welcome.role is Role.ASSISTANT and welcome.auto_narrate:
            self._schedule_narration(welcome, delay=self._welcome_delay)

    async def submit(self, content: MessageContent) -> Optional[Message]:
        """
        Send user content and append the assistant's reply.

        Returns:
            The appended assistant message, or None if the submit was ignored
            (already loading), rejected (invalid input) or failed
        """
        if self.state.loading:
            self.logger.debug_event("submit_rejected", "Submit ignored while a request is in flight")
            return None

        self.state.last_error = None
        try:
            content = self._validate(content)
        except InputInvalidError as e:
            self._record_error(e)
            await self._notify()
            return None

        epoch = self._epoch
        recent_context = self.history.recent_context(RECENT_CONTEXT_SIZE)
        user_message = self.history.append(Message(role=Role.USER, content=content))
        self.state.loading = True
        self.logger.info_event(
            "message_submitted",
            "User message submitted",
            message_id=user_message.id,
            is_image=user_message.is_image,
            context_size=len(recent_context),
        )
        await self._notify()

        reply: Optional[Message] = None
        with track_exchange(self.mode.value) as outcome:
            try:
                raw = await self._chat.complete(content, self.mode, recent_context)
                assembled = self._assembler.normalize(raw)
                if not assembled.steps:
                    raise BackendUnavailableError("Empty response received")
            except Exception as e:
                outcome["status"] = "error"
                if epoch == self._epoch:
                    self.state.loading = False
                    self._record_error(e)
                    await self._notify()
                return None

            if epoch != self._epoch:
                outcome["status"] = "discarded"
                self.logger.info_event("reply_discarded", "Reply arrived after a session reset")
                return None

            try:
                reply = self.history.append(assembled)
                await self._notify()
                if reply.visualization_query:
                    reply = await self._attach_visualization(reply, epoch)
            finally:
                if epoch == self._epoch:
                    self.state.loading = False

            if epoch != self._epoch:
                outcome["status"] = "discarded"
                self.logger.info_event("reply_discarded", "Session reset while visualizing the reply")
                return None

        self.logger.info_event(
            "exchange_completed",
            "Assistant reply appended",
            message_id=reply.id,
            steps=len(reply.steps),
            has_visualization=reply.visualization is not None,
        )
        if reply.auto_narrate:
            self._schedule_narration(reply)
        await self._notify()
        return reply

    async def switch_mode(self, mode: Mode | str) -> Message:
        """
        Hard reset into ``mode``: one welcome message, no loading, no error.

        Returns:
            The new welcome message
        """
        mode = Mode(mode)
        self._epoch += 1
        self._cancel_background_tasks()
        if self.audio is not None:
            await self.audio.stop()

        self.state = SessionState(mode=mode)
        self.audio_error = None
        self.logger.bind(mode=mode.value)
        self.history.cache_key = history_cache_key(mode)
        welcome = self._welcome_message()
        self.history.reset(welcome)
        self.logger.info_event("mode_switched", "Session reset for new mode", locale=get_locale(mode))

        self._schedule_narration(welcome, delay=self._welcome_delay)
        await self._notify()
        return welcome

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------

    async def toggle_audio(self, message_id: str) -> bool:
        """
        Stop playback if something is playing, otherwise speak the message.

        Returns:
            True if playback of the message started
        """
        if self.audio is None:
            return False
        if self.audio.is_playing:
            await self.audio.stop()
            await self._notify()
            return False
        return await self.play_message(message_id)

    async def play_message(self, message_id: str) -> bool:
        """Speak an assistant message with the mode's voice."""
        message = self.history.get(message_id)
        if self.audio is None or message is None or message.role is not Role.ASSISTANT:
            return False
        return await self._play(message.text)

    async def stop_audio(self) -> None:
        if self.audio is not None:
            await self.audio.stop()
            await self._notify()

    async def _play(self, text: str) -> bool:
        try:
            started = await self.audio.play(text, self.voice_profile)
        except EmptyInputError:
            self.logger.debug_event("narration_skipped", "Nothing to narrate")
            return False
        except AudioServiceError as e:
            self.audio_error = str(e)
            self.logger.warning_event("narration_failed", "Narration failed", error=str(e))
            await self._notify()
            return False
        if started:
            self.audio_error = None
        await self._notify()
        return started

    def _schedule_narration(self, message: Message, delay: float = 0.0) -> None:
        if self.audio is None:
            return

        async def narrate() -> None:
            if delay:
                await asyncio.sleep(delay)
            await self._play(message.text)

        task = asyncio.create_task(narrate())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _cancel_background_tasks(self) -> None:
        for task in list(self._background_tasks):
            task.cancel()
        self._background_tasks.clear()

    async def close(self) -> None:
        """Cancel pending narration and release audio."""
        self._epoch += 1
        self._cancel_background_tasks()
        if self.audio is not None:
            await self.audio.stop()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def report_models(self) -> Optional[Message]:
        """Append a report of the available chat models."""
        if self._diagnostics is None:
            return None
        try:
            models = await self._diagnostics.list_models()
        except Exception as e:
            self.logger.warning_event("diagnostic_failed", "Model listing failed", error=str(e))
            self._set_error("diagnostic")
            await self._notify()
            return None
        text = get_diagnostic_template(self.mode, "models").format(models="\n".join(models))
        return await self._append_artifact(text)

    async def report_credentials(self) -> Optional[Message]:
        """Append a confirmation that the backend credential works."""
        if self._diagnostics is None:
            return None
        try:
            result = await self._diagnostics.check_credentials()
        except Exception as e:
            self.logger.warning_event("diagnostic_failed", "Credential check failed", error=str(e))
            result = {"valid": False}
        if not result.get("valid"):
            self._set_error("diagnostic")
            await self._notify()
            return None
        return await self._append_artifact(get_diagnostic_template(self.mode, "credentials"))

    async def _append_artifact(self, text: str) -> Message:
        message = self.history.append(Message(role=Role.ASSISTANT, content=text, artifact=True))
        await self._notify()
        return message

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _welcome_message(self) -> Message:
        return self._assembler.welcome(get_welcome_message(self.mode))

    def _validate(self, content: MessageContent) -> MessageContent:
        if isinstance(content, ImageContent):
            if not content.data.strip():
                raise InputInvalidError("Image payload is missing")
            return content
        if not isinstance(content, str):
            raise InputInvalidError("Message must be text or an image")

        text = content.strip()
        if text.startswith(IMAGE_MARKER):
            data = text[len(IMAGE_MARKER):].strip()
            if not data:
                raise InputInvalidError("Image payload is missing")
            return ImageContent(data)
        if not text:
            raise InputInvalidError("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise InputInvalidError(
                f"Message is too long. Please limit your message to {MAX_MESSAGE_LENGTH} characters."
            )
        return text

    async def _attach_visualization(self, reply: Message, epoch: int) -> Message:
        if self._visualizer is None:
            return reply
        try:
            image = await self._visualizer.fetch(reply.visualization_query)
        except Exception as e:
            track_error("visualization")
            self.logger.warning_event(
                "visualization_failed",
                "Visualization unavailable; keeping text reply",
                query=reply.visualization_query,
                error=str(e),
            )
            return reply
        if epoch != self._epoch or not image:
            return reply
        return self.history.attach_visualization(reply.id, image)

    def _record_error(self, error: Exception) -> None:
        kind = error.kind if isinstance(error, GloboError) else "transient"
        track_error(kind)
        if isinstance(error, GloboError):
            self.logger.warning_event("exchange_failed", "Exchange failed", kind=kind, error=str(error))
        else:
            self.logger.error_event(
                "exchange_failed", "Unexpected exchange failure", kind=kind, error=repr(error)
            )
        self._set_error(kind)

    def _set_error(self, kind: str) -> None:
        self.state.last_error = ErrorDescriptor(kind=kind, message=get_error_message(self.mode, kind))

    async def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            await self._on_change(self)
        except Exception as e:
            logger.warning("State listener failed: %s", e)
