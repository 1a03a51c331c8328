"""Shared fixtures: temp catalog, generated WAV audio, a recording audio backend."""

import io
import math
import struct
import wave

import pytest
from PySide6.QtCore import QCoreApplication

from musebox.core.models import Artwork, Track
from musebox.db.database import initialize_database
from musebox.library.audio_store import AudioStore
from musebox.player.backend import AudioBackend, PlaybackBackendError

# smallest valid PNG header + IHDR is enough for mime round-tripping
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def make_wav_bytes(freq: float = 440.0, seconds: float = 0.25, rate: int = 8000) -> bytes:
    """Mono 16-bit PCM sine; different freq -> different bytes."""
    frames = int(rate * seconds)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(b"".join(
            struct.pack("<h", int(8000 * math.sin(2 * math.pi * freq * i / rate)))
            for i in range(frames)
        ))
    return buf.getvalue()


def make_tagged_wav_bytes(tmp_path, title, artist, album, artwork=None, freq=330.0) -> bytes:
    from mutagen.id3 import APIC, TALB, TIT2, TPE1
    from mutagen.wave import WAVE

    path = tmp_path / f"tagged-{freq}.wav"
    path.write_bytes(make_wav_bytes(freq=freq))

    audio = WAVE(str(path))
    audio.add_tags()
    audio.tags.add(TIT2(encoding=3, text=[title]))
    audio.tags.add(TPE1(encoding=3, text=[artist]))
    audio.tags.add(TALB(encoding=3, text=[album]))
    if artwork is not None:
        audio.tags.add(APIC(encoding=3, mime="image/png", type=3, desc="cover", data=artwork))
    audio.save()

    return path.read_bytes()


@pytest.fixture
def data_dir(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def db(data_dir):
    conn = initialize_database(str(data_dir))
    yield conn
    conn.close()


@pytest.fixture
def audio_store(data_dir):
    return AudioStore(str(data_dir / "audio"))


def make_track(track_id: str, title: str | None = None, artist: str = "Artist", album: str = "Album",
               added_at: int = 0, artwork: Artwork | None = None) -> Track:
    return Track(
        id=track_id,
        title=title or track_id.upper(),
        artist=artist,
        album=album,
        duration=120.0,
        audio_path=f"/audio/{track_id}.mp3",
        file_name=f"{track_id}.mp3",
        added_at=added_at,
        artwork=artwork,
    )


@pytest.fixture
def abc_tracks():
    return [make_track("a", added_at=1), make_track("b", added_at=2), make_track("c", added_at=3)]


class FakeBackend(AudioBackend):
    """Records every call and refuses to hold two sources at once."""

    def __init__(self):
        super().__init__()
        self.calls: list[tuple] = []
        self.attached: str | None = None
        self.playing = False
        self.volume = None
        self.fail_attach: set[str] = set()
        self.fail_resume = False

    def attach(self, handle):
        assert self.attached is None, f"{handle} attached while {self.attached} still attached"
        self.calls.append(("attach", handle))
        if handle in self.fail_attach:
            raise PlaybackBackendError(f"cannot decode {handle}")
        self.attached = handle

    def detach(self):
        self.calls.append(("detach", self.attached))
        self.attached = None
        self.playing = False

    def resume(self):
        self.calls.append(("resume", self.attached))
        if self.fail_resume:
            raise PlaybackBackendError("device busy")
        self.playing = True

    def pause(self):
        self.calls.append(("pause", self.attached))
        self.playing = False

    def seek(self, seconds):
        self.calls.append(("seek", seconds))

    def set_volume(self, volume_0_to_1):
        self.volume = volume_0_to_1

    def finish(self):
        """Simulate the attached source reaching its end."""
        self.playing = False
        self.naturalCompletion.emit(self.attached)

    def names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def backend():
    return FakeBackend()
