"""
Audio Playback Module

Owns the single spoken-audio handle of a session.

States are IDLE and PLAYING. Every ``play`` hands ownership to a new handle:
the previous resource is released and given a short settling delay before
the next one is opened. A later ``play`` supersedes an earlier one that is
still waiting on narration; the earlier result is thrown away unplayed.

Collaborators:
- narrator: ``async (text, voice_profile) -> bytes`` (speech synthesis)
- sink: AudioSink that turns audio bytes into a playable AudioResource
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from constants import AUDIO_RELEASE_DELAY_SECONDS
from exceptions import AudioServiceError, EmptyInputError
from metrics import track_error, track_superseded_narration
from sessions.types import PlaybackState, VoiceProfile

logger = logging.getLogger(__name__)

Narrator = Callable[[str, VoiceProfile], Awaitable[bytes]]
EndedCallback = Callable[[], Awaitable[None]]
FinishedListener = Callable[[str], Awaitable[None]]


class AudioResource(ABC):
    """A playable audio resource created by an AudioSink."""

    @abstractmethod
    async def start(self) -> None:
        """Begin playback."""

    @abstractmethod
    async def release(self) -> None:
        """Stop playback (if any) and free the resource."""


class AudioSink(ABC):
    """Factory for audio resources (browser over WebSocket, local device, test fake)."""

    @abstractmethod
    async def open(
        self,
        audio: bytes,
        profile: VoiceProfile,
        on_ended: EndedCallback,
    ) -> AudioResource:
        """
        Create a resource for ``audio``.

        The resource must await ``on_ended`` when playback finishes on its own.
        """


@dataclass
class AudioHandle:
    """The one live playback: resource plus the text being spoken."""

    resource: AudioResource
    text: str
    generation: int
    state: PlaybackState = PlaybackState.PLAYING


class AudioPlaybackController:
    """Exclusive owner of the session's audio handle."""

    def __init__(
        self,
        narrator: Narrator,
        sink: AudioSink,
        release_delay: float = AUDIO_RELEASE_DELAY_SECONDS,
    ) -> None:
        self._narrator = narrator
        self._sink = sink
        self._release_delay = release_delay
        self._handle: Optional[AudioHandle] = None
        self._generation = 0
        self._lock = asyncio.Lock()
        self._finished_listeners: list[FinishedListener] = []

    @property
    def state(self) -> PlaybackState:
        return self._handle.state if self._handle is not None else PlaybackState.IDLE

    @property
    def is_playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

    @property
    def current_text(self) -> Optional[str]:
        return self._handle.text if self._handle is not None else None

    def add_finished_listener(self, listener: FinishedListener) -> None:
        """Register a coroutine called with the spoken text when playback ends naturally."""
        self._finished_listeners.append(listener)

    def remove_finished_listener(self, listener: FinishedListener) -> None:
        if listener in self._finished_listeners:
            self._finished_listeners.remove(listener)

    async def play(self, text: str, profile: VoiceProfile) -> bool:
        """
        Speak ``text`` with ``profile``, replacing any current playback.

        Returns:
            True if this request ended up playing, False if a newer request
            superseded it before its audio arrived

        Raises:
            EmptyInputError: If text is blank (nothing is requested)
            AudioServiceError: If narration or playback fails
        """
        if not text or not text.strip():
            raise EmptyInputError()

        self._generation += 1
        generation = self._generation

        async with self._lock:
            await self._release_current()

        try:
            audio = await self._narrator(text, profile)
        except EmptyInputError:
            raise
        except Exception as e:
            if generation != self._generation:
                logger.info("Superseded narration failed (generation %d): %s", generation, e)
                track_superseded_narration()
                return False
            track_error("audio_service")
            if isinstance(e, AudioServiceError):
                raise
            raise AudioServiceError(f"Narration failed: {e}") from e

        async with self._lock:
            if generation != self._generation:
                logger.info("Discarding superseded narration (generation %d)", generation)
                track_superseded_narration()
                return False

            await self._release_current()
            handle: Optional[AudioHandle] = None

            async def on_ended() -> None:
                if handle is not None:
                    await self._handle_finished(handle)

            try:
                resource = await self._sink.open(audio, profile, on_ended)
                handle = AudioHandle(resource=resource, text=text, generation=generation)
                self._handle = handle
                await resource.start()
            except Exception as e:
                track_error("audio_service")
                if handle is not None:
                    self._handle = None
                    await self._safe_release(handle.resource)
                raise AudioServiceError(f"Playback failed: {e}") from e

        logger.debug("Playback started (generation %d, %d chars)", generation, len(text))
        return True

    async def toggle(self, text: str, profile: VoiceProfile) -> bool:
        """Stop if something is playing, otherwise play ``text``."""
        if self.is_playing:
            await self.stop()
            return False
        return await self.play(text, profile)

    async def stop(self) -> None:
        """
        Stop and release the current playback. Safe to call when idle.

        Pending narration requests are invalidated so they never start.
        """
        self._generation += 1
        async with self._lock:
            await self._release_current()

    async def _release_current(self) -> None:
        """Release the current handle and wait out the settling delay. Caller holds the lock."""
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        handle.state = PlaybackState.IDLE
        await self._safe_release(handle.resource)
        await asyncio.sleep(self._release_delay)

    async def _safe_release(self, resource: AudioResource) -> None:
        try:
            await resource.release()
        except Exception as e:
            logger.warning("Audio resource release failed: %s", e)

    async def _handle_finished(self, handle: AudioHandle) -> None:
        if self._handle is not handle:
            return
        self._handle = None
        handle.state = PlaybackState.IDLE
        await self._safe_release(handle.resource)
        logger.debug("Playback finished (generation %d)", handle.generation)

        for listener in list(self._finished_listeners):
            try:
                await listener(handle.text)
            except Exception as e:
                logger.error("Playback-finished listener failed: %s", e, exc_info=True)
