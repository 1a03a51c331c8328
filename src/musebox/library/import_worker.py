# library/import_worker.py
from __future__ import annotations

import logging
import os

from PySide6.QtCore import QThread, Signal

from musebox.core.models import Failed, ImportOutcome, RawFile
from musebox.db.database import get_config, open_connection
from musebox.library.audio_store import AudioStore
from musebox.library.importer import ImportCoordinator, read_raw_file, summarize

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


class ImportWorker(QThread):
    progress_signal = Signal(int, int)     # processed, total
    outcome_signal = Signal(object)        # ImportOutcome
    finished_signal = Signal(bool, str)    # ok, message

    def __init__(self, db_path: str, audio_dir: str, paths: list[str], parent=None):
        super().__init__(parent)
        self.db_path = db_path
        self.audio_dir = audio_dir
        self.paths = list(paths)
        self.cancel_requested = False

    def _read_chunk(self, chunk: list[str]) -> tuple[list[RawFile], list[Failed]]:
        files: list[RawFile] = []
        unreadable: list[Failed] = []
        for path in chunk:
            try:
                files.append(read_raw_file(path))
            except OSError as e:
                logger.warning("Cannot read %s: %s", path, e)
                unreadable.append(Failed(filename=os.path.basename(path), reason=f"unreadable: {e.strerror or e}"))
        return files, unreadable

    def run(self):
        total = len(self.paths)
        processed = 0
        outcomes: list[ImportOutcome] = []

        try:
            # the connection belongs to this thread
            db = open_connection(self.db_path)
            try:
                config = get_config(db)
                coordinator = ImportCoordinator(
                    db,
                    AudioStore(self.audio_dir),
                    max_workers=config.import_workers,
                    timeout_s=config.import_timeout_s,
                    use_processes=config.use_process_pool,
                )

                for start in range(0, total, BATCH_SIZE):
                    if self.cancel_requested:
                        break

                    files, unreadable = self._read_chunk(self.paths[start:start + BATCH_SIZE])
                    for outcome in unreadable:
                        processed += 1
                        outcomes.append(outcome)
                        self.outcome_signal.emit(outcome)
                        self.progress_signal.emit(processed, total)

                    for outcome in coordinator.import_batch(files):
                        processed += 1
                        outcomes.append(outcome)
                        self.outcome_signal.emit(outcome)
                        self.progress_signal.emit(processed, total)
            finally:
                db.close()

            summary = summarize(outcomes)
            self.progress_signal.emit(processed, total)
            msg = (
                f"Imported {summary.imported}, "
                f"skipped {summary.duplicates} duplicate(s), "
                f"{len(summary.failed)} failed."
            )
            if self.cancel_requested:
                msg = "Import cancelled. " + msg
            self.finished_signal.emit(True, msg)
        except Exception as e:
            logger.exception("Import failed")
            self.finished_signal.emit(False, f"Import failed: {e}")
