# player/queue.py
from __future__ import annotations

import logging
import random
import threading
from typing import Iterable, Optional

from PySide6.QtCore import QObject, Signal

from musebox.core.models import QueueState, RepeatMode, Track
from .backend import AudioBackend, PlaybackBackendError

logger = logging.getLogger(__name__)


class PlaybackQueue(QObject):
    """
    Owns the working track list, the current position, the shuffle/repeat
    modes and the play intent, and keeps the one AudioBackend it was given
    in line with them.

    Every public operation runs under a single lock, so the last call always
    defines what the backend is doing. On a track switch the previous source
    is detached before the next one is attached.
    """

    stateChanged = Signal(object)       # QueueState
    trackChanged = Signal(object)       # Track | None
    positionChanged = Signal(float)     # seconds
    playbackFailed = Signal(str)        # reason
    modesChanged = Signal(bool, object) # shuffle, RepeatMode
    volumeChanged = Signal(float)

    def __init__(
        self,
        backend: AudioBackend,
        volume: float = 1.0,
        rng: Optional[random.Random] = None,
        parent=None,
    ):
        super().__init__(parent)

        self._backend = backend
        self._lock = threading.RLock()
        self._rng = rng or random.Random()

        self._tracks: list[Track] = []
        self._index: Optional[int] = None
        self._play_intent = False
        self._shuffle = False
        self._repeat = RepeatMode.NONE
        self._volume = min(1.0, max(0.0, float(volume)))

        # handle of the source currently attached to the backend
        self._attached: Optional[str] = None

        self._backend.naturalCompletion.connect(self._on_natural_completion)
        self._backend.failed.connect(self._on_backend_failed)
        self._backend.timeUpdated.connect(self._on_time_updated)
        self._backend.set_volume(self._volume)

    # ----------------------------
    # Read-only view
    # ----------------------------

    @property
    def tracks(self) -> tuple[Track, ...]:
        with self._lock:
            return tuple(self._tracks)

    @property
    def current_index(self) -> Optional[int]:
        return self._index

    @property
    def current_track(self) -> Optional[Track]:
        with self._lock:
            if self._index is None:
                return None
            return self._tracks[self._index]

    @property
    def play_intent(self) -> bool:
        return self._play_intent

    @property
    def shuffle(self) -> bool:
        return self._shuffle

    @property
    def repeat(self) -> RepeatMode:
        return self._repeat

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def state(self) -> QueueState:
        if self._index is None:
            return QueueState.EMPTY
        return QueueState.PLAYING if self._play_intent else QueueState.STOPPED

    @property
    def attached_handle(self) -> Optional[str]:
        return self._attached

    # ----------------------------
    # Navigation
    # ----------------------------

    def set_queue(self, tracks: Iterable[Track]) -> None:
        with self._lock:
            before = self._snapshot()
            current = self.current_track

            self._tracks = list(tracks)
            self._index = None
            if current is not None:
                self._index = self._find(current.id)
                if self._index is None:
                    self._play_intent = False

            self._sync_backend()
            self._publish(before)

    def play(self, track: Track) -> None:
        with self._lock:
            before = self._snapshot()

            idx = self._find(track.id)
            if idx is None:
                # not in the working list: play it as a one-track ad hoc list
                self._tracks = [track]
                idx = 0

            self._index = idx
            self._play_intent = True
            self._sync_backend()
            self._publish(before)

    def toggle_play(self) -> None:
        with self._lock:
            if self._index is None:
                return
            before = self._snapshot()
            self._play_intent = not self._play_intent
            self._sync_backend()
            self._publish(before)

    def next(self) -> None:
        with self._lock:
            n = len(self._tracks)
            if n == 0:
                return
            before = self._snapshot()

            if self._repeat is RepeatMode.ONE and self._index is not None:
                idx = self._index
            elif self._shuffle:
                idx = self._rng.randrange(n)
            else:
                idx = 0 if self._index is None else self._index + 1
                if idx >= n:
                    if self._repeat is RepeatMode.ALL:
                        idx = 0
                    else:
                        # end of list: stop on the last track
                        self._play_intent = False
                        self._sync_backend()
                        self._publish(before)
                        return

            self._select(idx)
            self._publish(before)

    def prev(self) -> None:
        with self._lock:
            if not self._tracks:
                return
            before = self._snapshot()
            idx = 0 if self._index is None else max(0, self._index - 1)
            self._select(idx)
            self._publish(before)

    # ----------------------------
    # Modes
    # ----------------------------

    def set_volume(self, level: float) -> None:
        with self._lock:
            self._volume = min(1.0, max(0.0, float(level)))
            self._backend.set_volume(self._volume)
            self.volumeChanged.emit(self._volume)

    def toggle_shuffle(self) -> None:
        with self._lock:
            self._shuffle = not self._shuffle
            self.modesChanged.emit(self._shuffle, self._repeat)

    def toggle_repeat(self) -> None:
        with self._lock:
            self._repeat = self._repeat.cycled()
            self.modesChanged.emit(self._shuffle, self._repeat)

    def seek(self, seconds: float) -> None:
        with self._lock:
            if self._attached is None:
                return
            self._backend.seek(max(0.0, float(seconds)))

    # ----------------------------
    # Backend events
    # ----------------------------

    def _on_natural_completion(self, handle: str) -> None:
        with self._lock:
            if handle != self._attached:
                logger.debug("Ignoring completion of stale source %s", handle)
                return
            self.next()

    def _on_backend_failed(self, handle: str, reason: str) -> None:
        with self._lock:
            if handle != self._attached:
                logger.debug("Ignoring failure of stale source %s: %s", handle, reason)
                return
            before = self._snapshot()
            self._fail(reason)
            self._publish(before)

    def _on_time_updated(self, seconds: float) -> None:
        self.positionChanged.emit(seconds)

    # ----------------------------
    # Internals (lock held)
    # ----------------------------

    def _find(self, track_id: str) -> Optional[int]:
        for i, t in enumerate(self._tracks):
            if t.id == track_id:
                return i
        return None

    def _snapshot(self) -> tuple[Optional[str], QueueState]:
        current = self.current_track
        return (current.id if current else None, self.state)

    def _select(self, idx: int) -> None:
        restart = idx == self._index
        self._index = idx
        self._play_intent = True
        self._sync_backend(restart=restart)

    def _sync_backend(self, restart: bool = False) -> None:
        """Make the backend reflect the current track and play intent."""
        track = self.current_track

        if track is None:
            if self._attached is not None:
                self._backend.detach()
                self._attached = None
            return

        if track.audio_path != self._attached:
            if self._attached is not None:
                self._backend.detach()
                self._attached = None
            try:
                self._backend.attach(track.audio_path)
            except PlaybackBackendError as e:
                self._fail(str(e))
                return
            self._attached = track.audio_path
        elif restart:
            self._backend.seek(0.0)

        if not self._play_intent:
            self._backend.pause()
            return

        try:
            self._backend.resume()
        except PlaybackBackendError as e:
            self._fail(str(e))

    def _fail(self, reason: str) -> None:
        # keep the track selected; never auto-advance on failure
        track = self.current_track
        logger.error("Playback failed for %s: %s", track.title if track else "<none>", reason)
        self._play_intent = False
        if self._attached is not None:
            self._backend.pause()
        self.playbackFailed.emit(reason)

    def _publish(self, before: tuple[Optional[str], QueueState]) -> None:
        before_id, before_state = before
        current = self.current_track
        if (current.id if current else None) != before_id:
            self.trackChanged.emit(current)
        state = self.state
        if state != before_state:
            self.stateChanged.emit(state)
