# library/extractor.py
from __future__ import annotations

import base64
import hashlib
import io
import logging
from typing import Optional

from mutagen import File as MutagenFile
from mutagen.flac import Picture
from mutagen.mp4 import MP4Cover

from musebox.core.models import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    Artwork,
    ExtractedInfo,
    ExtractionFailure,
    ExtractionRequest,
    ExtractionResult,
)
from musebox.core.utils import title_from_filename

logger = logging.getLogger(__name__)

# ID3 / Vorbis / MP4 / ASF spellings of the same field
TITLE_KEYS = ("TIT2", "title", "\xa9nam", "Title")
ARTIST_KEYS = ("TPE1", "artist", "\xa9ART", "Author")
ALBUM_KEYS = ("TALB", "album", "\xa9alb", "WM/AlbumTitle")


class ExtractionError(Exception):
    def __init__(self, filename: str, reason: str):
        super().__init__(f"{filename}: {reason}")
        self.filename = filename
        self.reason = reason


def content_hash(raw_bytes: bytes) -> str:
    return hashlib.sha256(raw_bytes).hexdigest()


def _tag_text(tags, keys: tuple[str, ...]) -> str | None:
    if tags is None:
        return None
    for key in keys:
        try:
            v = tags.get(key)
        except (KeyError, ValueError, TypeError):
            continue
        if v is None:
            continue
        if hasattr(v, "text"):
            v = v.text
        if isinstance(v, (list, tuple)):
            v = v[0] if v else None
        s = str(v).strip() if v is not None else ""
        if s:
            return s
    return None


def _normalize_mime(mime: str | None) -> str:
    mime = (mime or "").strip().lower()
    if not mime or mime in ("jpg", "jpeg"):
        return "image/jpeg"
    if "/" not in mime:
        return f"image/{mime}"
    return mime


def _extract_artwork(audio) -> Optional[Artwork]:
    tags = getattr(audio, "tags", None)

    # ID3: APIC frames (mp3, wav, aiff)
    if tags is not None and hasattr(tags, "getall"):
        apics = tags.getall("APIC")
        if apics and apics[0].data:
            return Artwork(data=bytes(apics[0].data), mime=_normalize_mime(apics[0].mime))

    # FLAC picture blocks
    pictures = getattr(audio, "pictures", None)
    if pictures:
        pic = pictures[0]
        return Artwork(data=bytes(pic.data), mime=_normalize_mime(pic.mime))

    if tags is None:
        return None

    # MP4 'covr' atom
    try:
        covers = tags.get("covr")
    except (KeyError, ValueError, TypeError):
        covers = None
    if isinstance(covers, (list, tuple)) and covers:
        cover = covers[0]
        fmt = getattr(cover, "imageformat", MP4Cover.FORMAT_JPEG)
        mime = "image/png" if fmt == MP4Cover.FORMAT_PNG else "image/jpeg"
        return Artwork(data=bytes(cover), mime=mime)

    # Ogg: base64 FLAC picture in a vorbis comment
    try:
        blocks = tags.get("metadata_block_picture")
    except (KeyError, ValueError, TypeError):
        blocks = None
    if isinstance(blocks, (list, tuple)) and blocks:
        try:
            pic = Picture(base64.b64decode(blocks[0]))
            return Artwork(data=bytes(pic.data), mime=_normalize_mime(pic.mime))
        except Exception as e:
            logger.debug("Ignoring unreadable embedded picture: %s", e)

    return None


def extract(raw_bytes: bytes, filename: str) -> ExtractedInfo:
    """
    Hash the exact bytes and parse tags/duration/artwork from them.

    The hash depends only on raw_bytes; the filename is used solely as the
    title fallback. Raises ExtractionError for empty, unsupported or corrupt input.
    """
    if not raw_bytes:
        raise ExtractionError(filename, "empty file")

    digest = content_hash(raw_bytes)

    try:
        audio = MutagenFile(io.BytesIO(raw_bytes), easy=False)
    except Exception as e:
        raise ExtractionError(filename, f"cannot parse audio: {e}") from e

    if audio is None:
        raise ExtractionError(filename, "unsupported audio format")

    tags = getattr(audio, "tags", None)
    title = _tag_text(tags, TITLE_KEYS) or title_from_filename(filename)
    artist = _tag_text(tags, ARTIST_KEYS) or UNKNOWN_ARTIST
    album = _tag_text(tags, ALBUM_KEYS) or UNKNOWN_ALBUM

    duration = 0.0
    try:
        if getattr(audio, "info", None) and getattr(audio.info, "length", None):
            duration = max(0.0, float(audio.info.length))
    except (TypeError, ValueError):
        duration = 0.0

    return ExtractedInfo(
        content_hash=digest,
        title=title,
        artist=artist,
        album=album,
        duration=duration,
        artwork=_extract_artwork(audio),
    )


def run_extraction_job(request: ExtractionRequest) -> ExtractionResult:
    """Worker entry point: request message in, result or failure message out. Never raises."""
    try:
        return extract(request.raw_bytes, request.filename)
    except ExtractionError as e:
        return ExtractionFailure(filename=request.filename, error=e.reason)
    except Exception as e:
        logger.exception("Unexpected extraction failure for %s", request.filename)
        return ExtractionFailure(filename=request.filename, error=str(e) or e.__class__.__name__)
