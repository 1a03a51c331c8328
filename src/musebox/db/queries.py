from __future__ import annotations

import sqlite3
from typing import List, Optional

from musebox.core.models import Track
from musebox.core.utils import prepare_input
from musebox.db.models import AlbumRow, ArtistRow, track_from_row

TRACK_COLUMNS = """
    id, title, artist, album, duration, audio_path,
    file_name, added_at, artwork, artwork_mime
"""


def _track_params(track: Track) -> tuple:
    return (
        track.id,
        track.title,
        prepare_input(track.title),
        track.artist,
        prepare_input(track.artist),
        track.album,
        track.duration,
        track.audio_path,
        track.file_name,
        track.added_at,
        track.artwork.data if track.artwork else None,
        track.artwork.mime if track.artwork else None,
    )


# -------------------------------
# TRACKS
# -------------------------------
def put_track(db: sqlite3.Connection, track: Track) -> None:
    """Insert or overwrite the catalog entry keyed by track.id."""
    db.execute("""
        INSERT OR REPLACE INTO tracks (
            id, title, title_lower, artist, artist_lower, album,
            duration, audio_path, file_name, added_at, artwork, artwork_mime
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, _track_params(track))
    db.commit()


def add_track_if_absent(db: sqlite3.Connection, track: Track) -> bool:
    """Insert unless the id is already catalogued. Returns True if a row was written."""
    cursor = db.execute("""
        INSERT OR IGNORE INTO tracks (
            id, title, title_lower, artist, artist_lower, album,
            duration, audio_path, file_name, added_at, artwork, artwork_mime
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, _track_params(track))
    db.commit()
    return cursor.rowcount == 1


def track_exists(db: sqlite3.Connection, track_id: str) -> bool:
    row = db.execute("SELECT 1 FROM tracks WHERE id = ? LIMIT 1", (track_id,)).fetchone()
    return row is not None


def get_track_by_id(db: sqlite3.Connection, track_id: str) -> Optional[Track]:
    row = db.execute(
        f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = ? LIMIT 1",
        (track_id,),
    ).fetchone()
    return track_from_row(row) if row else None


def get_tracks(db: sqlite3.Connection) -> List[Track]:
    cursor = db.execute(f"""
        SELECT {TRACK_COLUMNS}
        FROM tracks
        ORDER BY added_at ASC, rowid ASC
    """)
    return [track_from_row(row) for row in cursor.fetchall()]


def count_tracks(db: sqlite3.Connection) -> int:
    return int(db.execute("SELECT COUNT(*) FROM tracks").fetchone()[0])


def delete_track(db: sqlite3.Connection, track_id: str) -> Optional[Track]:
    track = get_track_by_id(db, track_id)
    if track is None:
        return None
    db.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
    db.commit()
    return track


def clear_tracks(db: sqlite3.Connection) -> None:
    with db:
        db.execute("DELETE FROM tracks")


# -------------------------------
# LIBRARY VIEWS
# -------------------------------
def search_tracks(db: sqlite3.Connection, search_query: str) -> List[Track]:
    q = prepare_input(search_query or "")
    if not q:
        return get_tracks(db)

    like = f"%{q}%"
    cursor = db.execute(f"""
        SELECT {TRACK_COLUMNS}
        FROM tracks
        WHERE title_lower LIKE ? OR artist_lower LIKE ?
        ORDER BY added_at ASC, rowid ASC
    """, (like, like))
    return [track_from_row(row) for row in cursor.fetchall()]


def get_album_rows(db: sqlite3.Connection) -> List[AlbumRow]:
    cursor = db.execute("""
        SELECT album, MIN(artist) AS artist, COUNT(id) AS track_count
        FROM tracks
        GROUP BY album
        ORDER BY album COLLATE NOCASE ASC
    """)
    return [AlbumRow.from_row(row) for row in cursor.fetchall()]


def get_artist_rows(db: sqlite3.Connection) -> List[ArtistRow]:
    cursor = db.execute("""
        SELECT
            artist,
            COUNT(id)             AS track_count,
            COUNT(DISTINCT album) AS album_count
        FROM tracks
        GROUP BY artist
        ORDER BY artist COLLATE NOCASE ASC
    """)
    return [ArtistRow.from_row(row) for row in cursor.fetchall()]


def get_album_tracks(db: sqlite3.Connection, album: str) -> List[Track]:
    cursor = db.execute(f"""
        SELECT {TRACK_COLUMNS}
        FROM tracks
        WHERE album = ?
        ORDER BY added_at ASC, rowid ASC
    """, (album,))
    return [track_from_row(row) for row in cursor.fetchall()]


def get_artist_tracks(db: sqlite3.Connection, artist: str) -> List[Track]:
    cursor = db.execute(f"""
        SELECT {TRACK_COLUMNS}
        FROM tracks
        WHERE artist = ?
        ORDER BY album COLLATE NOCASE ASC, added_at ASC
    """, (artist,))
    return [track_from_row(row) for row in cursor.fetchall()]
