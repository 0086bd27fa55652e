"""
Web server for the Proyecto Globo math tutor.

This server:
- Handles WebSocket connections for real-time chat (one SessionController
  per connection)
- Streams narration audio to the browser and relays playback-ended events
- Exposes developer diagnostics, the locale configuration and Prometheus
  metrics over HTTP
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Optional

import aiohttp
from aiohttp import web
from dotenv import load_dotenv
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

# Load environment variables from .env file
load_dotenv()

from chat_completion import TutorChatClient
from config import get_locale_config
from constants import DEFAULT_SERVER_HOST, DEFAULT_SERVER_PORT, HISTORY_CACHE_DIR
from diagnostics import OpenAIDiagnostics
from exceptions import GloboError
from logging_config import setup_logging
from metrics import track_error, update_active_sessions
from sessions.audio_playback import AudioPlaybackController, AudioResource, AudioSink, EndedCallback
from sessions.history_store import JsonFileHistoryCache
from sessions.session_controller import SessionController
from sessions.types import ImageContent, VoiceProfile
from tts_elevenlabs import get_tts_manager
from wolfram_client import WolframVisualizer

logger = logging.getLogger(__name__)

CHAT_KEY = web.AppKey("chat", TutorChatClient)
VISUALIZER_KEY = web.AppKey("visualizer", WolframVisualizer)
DIAGNOSTICS_KEY = web.AppKey("diagnostics", OpenAIDiagnostics)
NARRATOR_KEY = web.AppKey("narrator", object)
CACHE_DIR_KEY = web.AppKey("history_cache_dir", str)

_CLIENT_ID_PATTERN = re.compile(r"[^A-Za-z0-9_-]")


# ============================================================================
# AUDIO OVER WEBSOCKET
# ============================================================================


class WebSocketAudioResource(AudioResource):
    """One narration playing in the browser, addressed by ``playback_id``."""

    def __init__(
        self,
        sink: WebSocketAudioSink,
        playback_id: str,
        audio: bytes,
        profile: VoiceProfile,
        on_ended: EndedCallback,
    ) -> None:
        self.sink = sink
        self.playback_id = playback_id
        self.audio = audio
        self.profile = profile
        self.on_ended = on_ended
        self.ended = False
        self.released = False

    async def start(self) -> None:
        await self.sink.send({
            'type': 'audio_play',
            'playback_id': self.playback_id,
            'audio': base64.b64encode(self.audio).decode('utf-8'),
            'format': 'mp3',
            'playback_rate': self.profile.playback_rate,
            'volume': self.profile.volume,
        })

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.sink.forget(self.playback_id)
        # The browser already stopped on its own when playback ended
        if not self.ended:
            await self.sink.send({'type': 'audio_stop', 'playback_id': self.playback_id})


class WebSocketAudioSink(AudioSink):
    """Plays audio by handing it to the connected browser."""

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self.ws = ws
        self._resources: dict[str, WebSocketAudioResource] = {}

    async def open(
        self,
        audio: bytes,
        profile: VoiceProfile,
        on_ended: EndedCallback,
    ) -> AudioResource:
        playback_id = uuid.uuid4().hex
        resource = WebSocketAudioResource(self, playback_id, audio, profile, on_ended)
        self._resources[playback_id] = resource
        return resource

    def forget(self, playback_id: str) -> None:
        self._resources.pop(playback_id, None)

    async def finished(self, playback_id: str) -> None:
        """Browser reported that ``playback_id`` played to the end."""
        resource = self._resources.get(playback_id)
        if resource is None:
            logger.debug("Ignoring end of unknown playback %s", playback_id)
            return
        resource.ended = True
        await resource.on_ended()

    async def send(self, payload: dict[str, Any]) -> None:
        if self.ws.closed:
            return
        await self.ws.send_json(payload)


# ============================================================================
# CHAT CONNECTION
# ============================================================================


class ChatConnection:
    """Binds one WebSocket to one tutoring session."""

    def __init__(
        self,
        ws: web.WebSocketResponse,
        app: web.Application,
        cache: Optional[JsonFileHistoryCache] = None,
    ) -> None:
        self.ws = ws
        self.sink = WebSocketAudioSink(ws)
        self._last_audio_error: Optional[str] = None
        self._background_tasks: set[asyncio.Task] = set()

        narrator = app[NARRATOR_KEY]
        audio = AudioPlaybackController(narrator.synthesize, self.sink)
        audio.add_finished_listener(self._on_audio_finished)

        self.controller = SessionController(
            chat=app[CHAT_KEY],
            audio=audio,
            visualizer=app[VISUALIZER_KEY],
            diagnostics=app[DIAGNOSTICS_KEY],
            cache=cache,
            on_change=self.send_state,
        )

    async def send_state(self, controller: SessionController) -> None:
        """Push the session snapshot, plus an audio_error when narration just failed."""
        if controller.audio_error and controller.audio_error != self._last_audio_error:
            await self.sink.send({'type': 'audio_error', 'message': controller.audio_error})
        self._last_audio_error = controller.audio_error
        await self.sink.send({'type': 'state', **controller.snapshot()})

    async def _on_audio_finished(self, text: str) -> None:
        await self.sink.send({'type': 'audio_finished'})
        await self.send_state(self.controller)

    def _track(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def handle(self, data: dict[str, Any]) -> None:
        """Dispatch one client message."""
        msg_type = data.get('type')

        if msg_type == 'message':
            # Photos arrive as data URLs; text goes through as typed
            image = data.get('image')
            content = ImageContent(image) if image else data.get('content', '')
            # Submits run in the background so audio controls stay responsive
            self._track(self.controller.submit(content))

        elif msg_type == 'switch_mode':
            mode = data.get('mode', '')
            try:
                await self.controller.switch_mode(mode)
            except ValueError:
                await self.sink.send({'type': 'error', 'message': f'Unknown mode: {mode}'})

        elif msg_type == 'play_audio':
            message_id = data.get('message_id', '')
            if message_id:
                # Narration can take seconds; a stop_audio must still get through
                self._track(self.controller.toggle_audio(message_id))

        elif msg_type == 'stop_audio':
            await self.controller.stop_audio()

        elif msg_type == 'audio_ended':
            playback_id = data.get('playback_id', '')
            if playback_id:
                await self.sink.finished(playback_id)

        elif msg_type == 'list_models':
            await self.controller.report_models()

        elif msg_type == 'check_credentials':
            await self.controller.report_credentials()

        else:
            logger.debug("Ignoring unknown message type: %s", msg_type)

    async def close(self) -> None:
        for task in list(self._background_tasks):
            task.cancel()
        self._background_tasks.clear()
        await self.controller.close()


def history_cache_for(request: web.Request) -> Optional[JsonFileHistoryCache]:
    """
    History cache for a connection.

    Only clients that identify themselves with ``?client_id=`` get a cache,
    stored in their own subdirectory.
    """
    cache_dir = request.app.get(CACHE_DIR_KEY)
    client_id = _CLIENT_ID_PATTERN.sub('_', request.query.get('client_id', ''))
    if not cache_dir or not client_id:
        return None
    return JsonFileHistoryCache(Path(cache_dir) / client_id)


# ============================================================================
# HANDLERS
# ============================================================================


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    """Handle WebSocket connections."""
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    connection = ChatConnection(ws, request.app, cache=history_cache_for(request))
    session_id = connection.controller.session_id
    logger.info("Client connected (session %s)", session_id)
    update_active_sessions(1)

    try:
        await connection.send_state(connection.controller)
        await connection.controller.begin()

        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    data = json.loads(msg.data)
                    await connection.handle(data)
                except json.JSONDecodeError as e:
                    logger.warning("Invalid JSON received: %s", e)
                except Exception as e:
                    logger.exception("Error handling message: %s", e)
                    track_error("server")
                    await connection.sink.send({
                        'type': 'error',
                        'message': 'Server error. Please try again.'
                    })

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error("WebSocket error: %s", ws.exception())

    finally:
        await connection.close()
        update_active_sessions(-1)
        logger.info("Client disconnected (session %s)", session_id)

    return ws


def _error_response(error: Exception) -> web.Response:
    kind = error.kind if isinstance(error, GloboError) else "transient"
    status = 429 if kind == "rate_limited" else 502
    return web.json_response({'error': kind, 'message': str(error)}, status=status)


async def models_handler(request: web.Request) -> web.Response:
    """List the chat models available to the configured key."""
    try:
        models = await request.app[DIAGNOSTICS_KEY].list_models()
    except Exception as e:
        logger.warning("Model listing failed: %s", e)
        track_error("diagnostic")
        return _error_response(e)
    return web.json_response({'models': models})


async def credentials_handler(request: web.Request) -> web.Response:
    """Verify the backend credential."""
    try:
        result = await request.app[DIAGNOSTICS_KEY].check_credentials()
    except Exception as e:
        logger.warning("Credential check failed: %s", e)
        track_error("diagnostic")
        return _error_response(e)
    return web.json_response(result)


async def config_handler(request: web.Request) -> web.Response:
    """
    Serve the per-mode locale configuration to the frontend.

    Voice ids stay server-side; the client only needs playback tuning.
    """
    modes = {}
    for mode, block in get_locale_config()['modes'].items():
        modes[mode] = {
            'locale': block['locale'],
            'welcome': block['welcome'],
            'loading': block['loading'],
            'playback_rate': block['voice']['playback_rate'],
            'volume': block['voice']['volume'],
        }
    return web.json_response({'modes': modes})


async def metrics_handler(request: web.Request) -> web.Response:
    """Prometheus exposition."""
    return web.Response(body=generate_latest(), headers={'Content-Type': CONTENT_TYPE_LATEST})


# Create app
async def create_app(
    chat: Optional[TutorChatClient] = None,
    visualizer: Optional[WolframVisualizer] = None,
    diagnostics: Optional[OpenAIDiagnostics] = None,
    narrator: Any = None,
    history_cache_dir: Optional[str] = HISTORY_CACHE_DIR,
) -> web.Application:
    """Create and configure the web application."""
    app = web.Application()
    app[CHAT_KEY] = chat or TutorChatClient()
    app[VISUALIZER_KEY] = visualizer or WolframVisualizer()
    app[DIAGNOSTICS_KEY] = diagnostics or OpenAIDiagnostics()
    app[NARRATOR_KEY] = narrator or get_tts_manager()
    if history_cache_dir:
        app[CACHE_DIR_KEY] = history_cache_dir

    app.router.add_get('/api/models', models_handler)
    app.router.add_get('/api/credentials', credentials_handler)
    app.router.add_get('/api/config', config_handler)
    app.router.add_get('/metrics', metrics_handler)
    app.router.add_get('/ws', websocket_handler)

    return app


# Main entry point
def main() -> None:
    """Start the web server."""
    setup_logging()
    logger.info("=" * 60)
    logger.info("Proyecto Globo Tutor Server")
    logger.info("=" * 60)
    logger.info("Starting server on http://localhost:%d", DEFAULT_SERVER_PORT)
    logger.info("WebSocket endpoint: ws://localhost:%d/ws", DEFAULT_SERVER_PORT)
    logger.info("Press Ctrl+C to stop")
    logger.info("=" * 60)

    app = create_app()
    web.run_app(app, host=DEFAULT_SERVER_HOST, port=DEFAULT_SERVER_PORT)


if __name__ == '__main__':
    main()
