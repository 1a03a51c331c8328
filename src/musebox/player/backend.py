# player/backend.py
from __future__ import annotations

import logging
import os
from typing import Optional

from PySide6.QtCore import QObject, QUrl, Signal
from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer

logger = logging.getLogger(__name__)


class PlaybackBackendError(Exception):
    pass


class AudioBackend(QObject):
    """
    Contract for the single audio device the queue drives.

    Completion and failure signals carry the handle they refer to, so the
    queue can drop events from a source it has already moved past.
    """

    naturalCompletion = Signal(str)     # handle
    timeUpdated = Signal(float)         # seconds, advisory
    failed = Signal(str, str)           # handle, reason

    def attach(self, handle: str) -> None:
        raise NotImplementedError

    def detach(self) -> None:
        raise NotImplementedError

    def resume(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def seek(self, seconds: float) -> None:
        raise NotImplementedError

    def set_volume(self, volume_0_to_1: float) -> None:
        raise NotImplementedError


class QtAudioBackend(AudioBackend):
    def __init__(self, volume_0_to_1: float = 0.8, parent=None):
        super().__init__(parent)

        self._handle: Optional[str] = None
        # QMediaPlayer reports a broken source through both status and error
        self._failure_reported = False

        self.audio = QAudioOutput()
        self.media = QMediaPlayer()
        self.media.setAudioOutput(self.audio)
        self.set_volume(volume_0_to_1)

        self.media.positionChanged.connect(self._on_position_changed)
        self.media.mediaStatusChanged.connect(self._on_media_status)
        self.media.errorOccurred.connect(self._on_error)

    # ----------------------------
    # Qt handlers
    # ----------------------------

    def _on_position_changed(self, ms: int) -> None:
        self.timeUpdated.emit(max(0, int(ms)) / 1000.0)

    def _on_media_status(self, status: QMediaPlayer.MediaStatus) -> None:
        if self._handle is None:
            return
        if status == QMediaPlayer.MediaStatus.EndOfMedia:
            self.naturalCompletion.emit(self._handle)
        elif status == QMediaPlayer.MediaStatus.InvalidMedia:
            self._report_failure("invalid media")

    def _on_error(self, error: QMediaPlayer.Error, error_string: str) -> None:
        if self._handle is None or error == QMediaPlayer.Error.NoError:
            return
        self._report_failure(error_string or str(error))

    def _report_failure(self, reason: str) -> None:
        if self._failure_reported:
            return
        self._failure_reported = True
        logger.warning("Playback error on %s: %s", self._handle, reason)
        self.failed.emit(self._handle, reason)

    # ----------------------------
    # Contract
    # ----------------------------

    def attach(self, handle: str) -> None:
        if not handle or not os.path.isfile(handle):
            raise PlaybackBackendError(f"Audio source not found: {handle}")
        self._handle = handle
        self._failure_reported = False
        self.media.setSource(QUrl.fromLocalFile(handle))

    def detach(self) -> None:
        self._handle = None
        self.media.stop()
        self.media.setSource(QUrl())

    def resume(self) -> None:
        if self._handle is None:
            raise PlaybackBackendError("No audio source attached")
        self.media.play()

    def pause(self) -> None:
        self.media.pause()

    def seek(self, seconds: float) -> None:
        self.media.setPosition(max(0, int(float(seconds) * 1000)))

    def set_volume(self, volume_0_to_1: float) -> None:
        v = min(1.0, max(0.0, float(volume_0_to_1)))
        self.audio.setVolume(v)
