# core/models.py
from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


@dataclass(frozen=True)
class Artwork:
    data: bytes
    mime: str = "image/jpeg"

    def data_uri(self) -> str:
        return f"data:{self.mime};base64,{base64.b64encode(self.data).decode('ascii')}"


@dataclass(frozen=True)
class Track:
    id: str             # sha256 of the raw audio bytes
    title: str
    artist: str
    album: str
    duration: float     # seconds, 0.0 if unknown
    audio_path: str     # handle into the audio store
    file_name: str
    added_at: int       # ms, catalog ordering key
    artwork: Optional[Artwork] = None


@dataclass(frozen=True)
class RawFile:
    filename: str
    data: bytes


# ---- extraction job messages ----
@dataclass(frozen=True)
class ExtractionRequest:
    filename: str
    raw_bytes: bytes


@dataclass(frozen=True)
class ExtractedInfo:
    content_hash: str
    title: str
    artist: str
    album: str
    duration: float
    artwork: Optional[Artwork] = None


@dataclass(frozen=True)
class ExtractionFailure:
    filename: str
    error: str


ExtractionResult = Union[ExtractedInfo, ExtractionFailure]


# ---- import outcomes ----
@dataclass(frozen=True)
class Imported:
    track: Track


@dataclass(frozen=True)
class Duplicate:
    track_id: str
    filename: str


@dataclass(frozen=True)
class Failed:
    filename: str
    reason: str


ImportOutcome = Union[Imported, Duplicate, Failed]


@dataclass(frozen=True)
class ImportSummary:
    imported: int
    duplicates: int
    failed: list[Failed]

    @property
    def total(self) -> int:
        return self.imported + self.duplicates + len(self.failed)


# ---- playback ----
class RepeatMode(Enum):
    NONE = "none"
    ALL = "all"
    ONE = "one"

    def cycled(self) -> "RepeatMode":
        order = [RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class QueueState(Enum):
    EMPTY = "empty"
    STOPPED = "stopped"
    PLAYING = "playing"


@dataclass(frozen=True)
class NowPlaying:
    track_id: str
    title: str
    artist: str
    album: str
    artwork: Optional[Artwork] = None

    @property
    def artwork_ref(self) -> str | None:
        return self.artwork.data_uri() if self.artwork else None

    @staticmethod
    def from_track(track: Track) -> "NowPlaying":
        return NowPlaying(
            track_id=track.id,
            title=track.title,
            artist=track.artist,
            album=track.album,
            artwork=track.artwork,
        )
