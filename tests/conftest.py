"""
Shared fixtures: in-memory audio sink, narrators and session collaborators.

No fixture here touches the network.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from sessions.audio_playback import AudioPlaybackController, AudioResource, AudioSink
from sessions.history_store import InMemoryHistoryCache
from sessions.session_controller import SessionController
from sessions.types import VoiceProfile


class FakeAudioResource(AudioResource):
    def __init__(self, sink, audio, on_ended):
        self.sink = sink
        self.audio = audio
        self.on_ended = on_ended
        self.started = False
        self.released = False

    async def start(self):
        self.started = True
        self.sink.log.append(("start", self.audio))

    async def release(self):
        self.released = True
        self.sink.log.append(("release", self.audio))


class FakeAudioSink(AudioSink):
    """Records every resource it opens and the order of start/release calls."""

    def __init__(self):
        self.opened = []
        self.log = []

    async def open(self, audio, profile, on_ended):
        resource = FakeAudioResource(self, audio, on_ended)
        self.opened.append(resource)
        self.log.append(("open", audio))
        return resource

    @property
    def playing(self):
        return [r for r in self.opened if r.started and not r.released]


@pytest.fixture
def sink():
    return FakeAudioSink()


@pytest.fixture
def voice():
    return VoiceProfile(voice_id="test-voice", playback_rate=0.95, volume=0.9)


@pytest.fixture
def narrator():
    """Narrator that returns the text's bytes as the audio."""
    async def synthesize(text, profile):
        return text.encode("utf-8")

    return AsyncMock(side_effect=synthesize)


@pytest.fixture
def audio(narrator, sink):
    return AudioPlaybackController(narrator, sink, release_delay=0)


@pytest.fixture
def chat():
    client = Mock()
    client.complete = AsyncMock(return_value={"content": "1) first step\n2) second step"})
    return client


@pytest.fixture
def history_cache():
    return InMemoryHistoryCache()


@pytest.fixture
def make_controller(chat):
    """Factory for controllers with zero welcome delay."""
    def factory(**kwargs):
        kwargs.setdefault("chat", chat)
        kwargs.setdefault("welcome_delay", 0)
        return SessionController(**kwargs)

    return factory


@pytest.fixture
def drain():
    """Wait for narration tasks scheduled by a controller."""
    async def wait(controller):
        while controller._background_tasks:
            await asyncio.gather(*list(controller._background_tasks), return_exceptions=True)

    return wait
