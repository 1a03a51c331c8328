from __future__ import annotations

import logging
import os
import shutil

logger = logging.getLogger(__name__)

AUDIO_EXTS = {".mp3", ".m4a", ".mp4", ".flac", ".ogg", ".oga", ".opus", ".wav", ".aiff", ".aif", ".wma"}


class AudioStore:
    """
    Content-addressed blob directory holding the playable bytes of catalog entries.
    Files are named <sha256><ext>, so writing the same content twice is idempotent.
    """

    def __init__(self, root: str):
        self.root = root
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, track_id: str, filename: str = "") -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        if ext not in AUDIO_EXTS:
            ext = ""
        return os.path.join(self.root, f"{track_id}{ext}")

    def write(self, track_id: str, filename: str, data: bytes) -> str:
        path = self.path_for(track_id, filename)
        if os.path.isfile(path) and os.path.getsize(path) == len(data):
            return path

        tmp_path = path + ".part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        return path

    def delete(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove audio blob %s: %s", path, e)

    def clear(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)
        os.makedirs(self.root, exist_ok=True)
