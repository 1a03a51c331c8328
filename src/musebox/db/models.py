from __future__ import annotations

from dataclasses import dataclass
import sqlite3

from musebox.core.models import Artwork, Track


def track_from_row(row: sqlite3.Row) -> Track:
    artwork = None
    if row["artwork"] is not None:
        artwork = Artwork(data=bytes(row["artwork"]), mime=row["artwork_mime"] or "image/jpeg")

    return Track(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        duration=float(row["duration"] or 0.0),
        audio_path=row["audio_path"],
        file_name=row["file_name"],
        added_at=int(row["added_at"]),
        artwork=artwork,
    )


@dataclass
class AlbumRow:
    name: str
    artist: str
    track_count: int

    @staticmethod
    def from_row(row: sqlite3.Row) -> "AlbumRow":
        return AlbumRow(
            name=row["album"],
            artist=row["artist"],
            track_count=int(row["track_count"] or 0),
        )


@dataclass
class ArtistRow:
    name: str
    track_count: int
    album_count: int

    @staticmethod
    def from_row(row: sqlite3.Row) -> "ArtistRow":
        return ArtistRow(
            name=row["artist"],
            track_count=int(row["track_count"] or 0),
            album_count=int(row["album_count"] or 0),
        )


@dataclass
class Config:
    import_workers: int = 4
    import_timeout_s: float = 0.0   # 0 -> no deadline
    default_volume: float = 0.8
    use_process_pool: bool = False
