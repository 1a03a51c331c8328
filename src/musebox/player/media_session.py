# player/media_session.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, Signal

from musebox.core.models import NowPlaying, QueueState, Track
from .queue import PlaybackQueue

logger = logging.getLogger(__name__)

NowPlayingSink = Callable[[Optional[NowPlaying]], None]


class MediaSession(QObject):
    """
    Bridge between the queue and platform media controls.

    Publishes NowPlaying on every track change and routes the platform's
    play/pause/next/previous requests back into the queue.
    """

    nowPlayingChanged = Signal(object)          # NowPlaying | None
    playbackStateChanged = Signal(str)          # "none" | "paused" | "playing"

    ACTIONS = ("play", "pause", "next", "previous")

    def __init__(self, queue: PlaybackQueue, parent=None):
        super().__init__(parent)
        self.queue = queue
        self.now_playing: Optional[NowPlaying] = None
        self._sinks: list[NowPlayingSink] = []

        queue.trackChanged.connect(self._on_track_changed)
        queue.stateChanged.connect(self._on_state_changed)

    def add_sink(self, sink: NowPlayingSink) -> None:
        self._sinks.append(sink)
        if self.now_playing is not None:
            sink(self.now_playing)

    def remove_sink(self, sink: NowPlayingSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def _on_track_changed(self, track: Optional[Track]) -> None:
        self.now_playing = NowPlaying.from_track(track) if track else None
        self.nowPlayingChanged.emit(self.now_playing)
        for sink in list(self._sinks):
            try:
                sink(self.now_playing)
            except Exception:
                logger.exception("Now-playing sink %r failed", sink)

    def _on_state_changed(self, state: QueueState) -> None:
        if state is QueueState.PLAYING:
            self.playbackStateChanged.emit("playing")
        elif state is QueueState.STOPPED:
            self.playbackStateChanged.emit("paused")
        else:
            self.playbackStateChanged.emit("none")

    def handle_action(self, action: str) -> bool:
        """Route a platform intent into the queue. Returns False for unknown actions."""
        action = (action or "").strip().lower()

        if action == "play":
            if not self.queue.play_intent:
                self.queue.toggle_play()
        elif action == "pause":
            if self.queue.play_intent:
                self.queue.toggle_play()
        elif action == "next":
            self.queue.next()
        elif action == "previous":
            self.queue.prev()
        else:
            logger.warning("Ignoring unknown media action %r", action)
            return False
        return True
