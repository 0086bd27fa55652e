"""
Sessions Package

This package contains the components of one tutoring chat session.

Components:
- SessionController: Orchestrates submit, mode switch, audio and diagnostics
- ResponseAssembler: Normalizes raw model replies into step-structured messages
- AudioPlaybackController: Owns the single narration handle of a session
- ConversationHistoryStore: Ordered message log with a best-effort cache

Usage:
    from sessions.session_controller import SessionController
    from sessions.response_assembler import ResponseAssembler
    from sessions.audio_playback import AudioPlaybackController
    from sessions.history_store import ConversationHistoryStore

Note: Import directly from submodules to avoid circular import issues.
"""

__all__ = [
    "AudioPlaybackController",
    "ConversationHistoryStore",
    "ResponseAssembler",
    "SessionController",
]
