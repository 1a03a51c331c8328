from __future__ import annotations
from dataclasses import dataclass
from PySide6.QtCore import QObject, Signal, Slot

@dataclass(frozen=True)
class Notify:
    message: str
    notify_type: str = "info"   # info/success/warn/error

class AppState(QObject):
    notification = Signal(object)       # emits Notify

    def __init__(self):
        super().__init__()
        self.app_data_dir: str | None = None
        self.db_path: str | None = None
        self.audio_dir: str | None = None
        self.db = None
        self.config = None
        self.queue = None
        self.media_session = None
        self.queued_notifications: list[Notify] = []

    @Slot(str, str)
    def notify(self, message: str, notify_type: str = "info"):
        self.notification.emit(Notify(message=message, notify_type=notify_type))

    @Slot(str)
    def on_playback_failed(self, reason: str):
        self.notify(f"Playback failed: {reason}", "error")

    def flush_queued_notifications(self) -> list[Notify]:
        pending = list(self.queued_notifications)
        self.queued_notifications.clear()
        for n in pending:
            self.notification.emit(n)
        return pending
