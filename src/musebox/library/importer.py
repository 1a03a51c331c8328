# library/importer.py
from __future__ import annotations

import logging
import os
import sqlite3
import time
from concurrent.futures import (
    FIRST_COMPLETED,
    Future,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    wait,
)
from typing import Callable, Iterable, Iterator, Optional

from musebox.core.models import (
    Duplicate,
    ExtractedInfo,
    ExtractionRequest,
    Failed,
    Imported,
    ImportOutcome,
    ImportSummary,
    RawFile,
    Track,
)
from musebox.db import queries
from musebox.library.audio_store import AudioStore
from musebox.library.extractor import run_extraction_job

logger = logging.getLogger(__name__)


def read_raw_file(path: str) -> RawFile:
    with open(path, "rb") as f:
        return RawFile(filename=os.path.basename(path), data=f.read())


def summarize(outcomes: Iterable[ImportOutcome]) -> ImportSummary:
    imported = 0
    duplicates = 0
    failed: list[Failed] = []
    for outcome in outcomes:
        if isinstance(outcome, Imported):
            imported += 1
        elif isinstance(outcome, Duplicate):
            duplicates += 1
        else:
            failed.append(outcome)
    return ImportSummary(imported=imported, duplicates=duplicates, failed=failed)


class ImportCoordinator:
    """
    Turns raw files into catalog entries.

    Extraction runs on a bounded executor (threads by default, processes on
    request); results are consumed here, on the caller's thread, which is the
    only one touching `db`. Entries are keyed by content hash and the first
    import of a given content wins.
    """

    def __init__(
        self,
        db: sqlite3.Connection,
        audio_store: AudioStore,
        max_workers: int = 4,
        timeout_s: Optional[float] = None,
        use_processes: bool = False,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.db = db
        self.audio_store = audio_store
        self.max_workers = max(1, int(max_workers))
        self.timeout_s = timeout_s if timeout_s and timeout_s > 0 else None
        self.use_processes = use_processes
        self._clock = clock or time.time
        self._last_added_at = 0

    def _next_added_at(self) -> int:
        ms = int(self._clock() * 1000)
        if ms <= self._last_added_at:
            ms = self._last_added_at + 1
        self._last_added_at = ms
        return ms

    def _make_executor(self, workers: int):
        if self.use_processes:
            return ProcessPoolExecutor(max_workers=workers)
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="musebox-extract")

    def import_batch(self, files: Iterable[RawFile]) -> Iterator[ImportOutcome]:
        """
        Yield one ImportOutcome per file, in completion order.

        With a timeout set, each job gets `timeout_s` from the moment a worker
        picks it up; time spent queued for a free worker does not count.
        The generator is lazy and single-use; closing it early cancels the
        jobs that have not started yet.
        """
        files = list(files)
        if not files:
            return

        start_time = time.time()
        workers = max(1, min(self.max_workers, len(files)))
        executor = self._make_executor(workers)
        try:
            futures: dict[Future, RawFile] = {
                executor.submit(run_extraction_job, ExtractionRequest(f.filename, f.data)): f
                for f in files
            }
            pending = set(futures)
            started: dict[Future, float] = {}
            # timed-out jobs still holding a worker
            stalled: set[Future] = set()
            poll = None if self.timeout_s is None else min(0.05, self.timeout_s / 4)

            while pending:
                done, _ = wait(pending, timeout=poll, return_when=FIRST_COMPLETED)
                for future in done:
                    pending.discard(future)
                    yield self._resolve(futures[future], future)

                if self.timeout_s is None:
                    continue

                now = time.monotonic()
                for future in list(pending):
                    if future.done() or not future.running():
                        continue
                    first_seen = started.setdefault(future, now)
                    if now - first_seen > self.timeout_s:
                        pending.discard(future)
                        stalled.add(future)
                        logger.warning("Extraction of %s exceeded %.1fs", futures[future].filename, self.timeout_s)
                        yield Failed(filename=futures[future].filename, reason="timed out")

                stalled = {f for f in stalled if not f.done()}
                if pending and len(stalled) >= workers and not any(f.running() or f.done() for f in pending):
                    logger.warning("All %d worker(s) stuck; giving up on %d queued file(s)", workers, len(pending))
                    for future in pending:
                        future.cancel()
                        yield Failed(filename=futures[future].filename, reason="no free worker")
                    pending.clear()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            logger.info(
                "Import batch of %d file(s) took %dms",
                len(files), int((time.time() - start_time) * 1000),
            )

    def _resolve(self, raw: RawFile, future: Future) -> ImportOutcome:
        try:
            result = future.result()
        except Exception as e:
            # only reachable through a broken pool or an unpicklable message
            logger.exception("Extraction job for %s did not complete", raw.filename)
            return Failed(filename=raw.filename, reason=str(e) or e.__class__.__name__)

        if not isinstance(result, ExtractedInfo):
            logger.warning("Failed to import %s: %s", result.filename, result.error)
            return Failed(filename=result.filename, reason=result.error)

        try:
            return self._store(raw, result)
        except (sqlite3.Error, OSError) as e:
            logger.exception("Failed to store %s", raw.filename)
            return Failed(filename=raw.filename, reason=f"storage error: {e}")

    def _store(self, raw: RawFile, info: ExtractedInfo) -> ImportOutcome:
        if queries.track_exists(self.db, info.content_hash):
            logger.info("Skipping duplicate %s (%s)", raw.filename, info.content_hash[:12])
            return Duplicate(track_id=info.content_hash, filename=raw.filename)

        audio_path = self.audio_store.write(info.content_hash, raw.filename, raw.data)
        track = Track(
            id=info.content_hash,
            title=info.title,
            artist=info.artist,
            album=info.album,
            duration=info.duration,
            audio_path=audio_path,
            file_name=raw.filename,
            added_at=self._next_added_at(),
            artwork=info.artwork,
        )

        if not queries.add_track_if_absent(self.db, track):
            return Duplicate(track_id=track.id, filename=raw.filename)

        logger.debug("Imported %s as %s", raw.filename, track.id[:12])
        return Imported(track=track)

    def remove(self, track_id: str) -> bool:
        track = queries.delete_track(self.db, track_id)
        if track is None:
            return False
        self.audio_store.delete(track.audio_path)
        return True

    def clear_all(self) -> None:
        queries.clear_tracks(self.db)
        self.audio_store.clear()
