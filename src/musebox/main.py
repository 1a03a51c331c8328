from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from contextlib import contextmanager

from PySide6.QtCore import QCoreApplication, QStandardPaths, QTimer

from musebox.core.models import Failed, NowPlaying, QueueState, RepeatMode
from musebox.core.state import AppState, Notify
from musebox.core.utils import format_duration
from musebox.db import queries
from musebox.db.database import (
    db_path_for,
    debug_print_schema,
    get_config,
    initialize_database,
    set_config,
)
from musebox.library.audio_store import AUDIO_EXTS, AudioStore
from musebox.library.import_worker import ImportWorker
from musebox.library.importer import ImportCoordinator
from musebox.player.backend import QtAudioBackend
from musebox.player.media_session import MediaSession
from musebox.player.queue import PlaybackQueue

logger = logging.getLogger("musebox")

APP_NAME = "musebox"


def get_app_data_dir() -> str:
    base = os.getenv("MUSEBOX_DATA_DIR")
    if not base:
        QCoreApplication.setApplicationName(APP_NAME)
        base = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.AppDataLocation)
    os.makedirs(base, exist_ok=True)
    return base


def iter_audio_paths(inputs: list[str]) -> list[str]:
    paths: list[str] = []
    for item in inputs:
        if os.path.isdir(item):
            for dirpath, _, filenames in os.walk(item):
                for fn in sorted(filenames):
                    if os.path.splitext(fn)[1].lower() in AUDIO_EXTS:
                        paths.append(os.path.join(dirpath, fn))
        else:
            paths.append(item)
    return paths


def init_app_state(with_player: bool = False) -> AppState:
    app_state = AppState()

    app_data_dir = get_app_data_dir()
    app_state.app_data_dir = app_data_dir
    app_state.db_path = db_path_for(app_data_dir)
    app_state.audio_dir = os.path.join(app_data_dir, "audio")

    app_state.db = initialize_database(app_data_dir)
    app_state.config = get_config(app_state.db)

    if os.getenv("MUSEBOX_DEBUG_SCHEMA") == "1":
        debug_print_schema(app_state.db)

    if with_player:
        try:
            backend = QtAudioBackend(app_state.config.default_volume)
        except Exception as e:
            logger.exception("Audio backend unavailable")
            app_state.queued_notifications.append(
                Notify(message=f"Failed to initialize audio player: {e}", notify_type="error")
            )
        else:
            app_state.queue = PlaybackQueue(backend, volume=app_state.config.default_volume)
            app_state.media_session = MediaSession(app_state.queue)
            app_state.queue.playbackFailed.connect(app_state.on_playback_failed)

    return app_state


def _print_notification(n: Notify) -> None:
    print(f"[{n.notify_type}] {n.message}", file=sys.stderr)


@contextmanager
def sigint_quits(app: QCoreApplication):
    previous = signal.signal(signal.SIGINT, lambda *_: app.quit())
    # wake the interpreter periodically so the handler can run
    timer = QTimer()
    timer.start(250)
    timer.timeout.connect(lambda: None)
    try:
        yield
    finally:
        timer.stop()
        signal.signal(signal.SIGINT, previous)


# -------------------------------
# COMMANDS
# -------------------------------
def cmd_import(app_state: AppState, args) -> int:
    paths = iter_audio_paths(args.paths)
    if not paths:
        print("No audio files found.")
        return 1

    app = QCoreApplication.instance()
    failures: list[Failed] = []
    result = {"ok": False}

    def on_outcome(outcome):
        if isinstance(outcome, Failed):
            failures.append(outcome)
            print(f"  failed: {outcome.filename}: {outcome.reason}")

    def on_progress(done: int, total: int):
        if total and (done == total or done % 25 == 0):
            print(f"Importing {done}/{total}")

    def on_finished(ok: bool, msg: str):
        result["ok"] = ok
        print(msg)

    worker = ImportWorker(app_state.db_path, app_state.audio_dir, paths)
    worker.outcome_signal.connect(on_outcome)
    worker.progress_signal.connect(on_progress)
    worker.finished_signal.connect(on_finished)
    # QThread.finished is delivered on the main thread, after run() returns
    worker.finished.connect(app.quit)

    with sigint_quits(app):
        # start once the loop is running so an early finish cannot be missed
        QTimer.singleShot(0, worker.start)
        app.exec()
    worker.cancel_requested = True
    worker.wait()

    if not result["ok"]:
        return 1
    return 2 if failures else 0


def cmd_list(app_state: AppState, args) -> int:
    db = app_state.db
    if args.albums:
        for row in queries.get_album_rows(db):
            print(f"{row.name} - {row.artist} ({row.track_count})")
        return 0
    if args.artists:
        for row in queries.get_artist_rows(db):
            print(f"{row.name} ({row.track_count} tracks, {row.album_count} albums)")
        return 0

    tracks = queries.search_tracks(db, args.search) if args.search else queries.get_tracks(db)
    for t in tracks:
        print(f"{t.id[:12]}  {format_duration(t.duration):>6}  {t.artist} - {t.title} [{t.album}]")
    return 0


def cmd_play(app_state: AppState, args) -> int:
    app = QCoreApplication.instance()
    app_state.flush_queued_notifications()

    queue = app_state.queue
    if queue is None:
        return 1

    db = app_state.db
    if args.album:
        tracks = queries.get_album_tracks(db, args.album)
    elif args.artist:
        tracks = queries.get_artist_tracks(db, args.artist)
    elif args.search:
        tracks = queries.search_tracks(db, args.search)
    else:
        tracks = queries.get_tracks(db)

    if not tracks:
        print("Nothing to play.")
        return 1

    queue.set_queue(tracks)
    if args.shuffle:
        queue.toggle_shuffle()
    target = RepeatMode(args.repeat)
    while queue.repeat is not target:
        queue.toggle_repeat()
    if args.volume is not None:
        queue.set_volume(args.volume)

    def on_now_playing(np: NowPlaying | None):
        if np:
            print(f"▶ {np.artist} - {np.title} [{np.album}]")

    failures: list[str] = []

    def on_state(state: QueueState):
        if state is not QueueState.PLAYING:
            app.quit()

    app_state.media_session.add_sink(on_now_playing)
    queue.stateChanged.connect(on_state)
    queue.playbackFailed.connect(failures.append)

    if args.shuffle:
        queue.next()
    else:
        queue.play(tracks[0])

    if queue.state is QueueState.PLAYING:
        with sigint_quits(app):
            app.exec()
    return 1 if failures else 0


def cmd_remove(app_state: AppState, args) -> int:
    coordinator = ImportCoordinator(app_state.db, AudioStore(app_state.audio_dir))
    if not coordinator.remove(args.track_id):
        print(f"No track with id {args.track_id}")
        return 1
    print("Removed.")
    return 0


def cmd_clear(app_state: AppState, args) -> int:
    if not args.yes:
        answer = input("Are you sure you want to clear your library? This cannot be undone. [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            return 1
    ImportCoordinator(app_state.db, AudioStore(app_state.audio_dir)).clear_all()
    print("Library cleared.")
    return 0


def cmd_config(app_state: AppState, args) -> int:
    config = app_state.config
    if args.workers is not None:
        config.import_workers = args.workers
    if args.timeout is not None:
        config.import_timeout_s = args.timeout
    if args.volume is not None:
        config.default_volume = args.volume
    if args.processes is not None:
        config.use_process_pool = args.processes

    set_config(app_state.db, config)
    config = get_config(app_state.db)
    print(f"import_workers   = {config.import_workers}")
    print(f"import_timeout_s = {config.import_timeout_s or 'none'}")
    print(f"default_volume   = {config.default_volume}")
    print(f"use_process_pool = {config.use_process_pool}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Personal audio library player")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="import audio files or folders")
    p.add_argument("paths", nargs="+")
    p.set_defaults(func=cmd_import, player=False)

    p = sub.add_parser("list", help="list the catalog")
    p.add_argument("--search", default="")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--albums", action="store_true")
    group.add_argument("--artists", action="store_true")
    p.set_defaults(func=cmd_list, player=False)

    p = sub.add_parser("play", help="play the catalog, an album or an artist")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--album")
    group.add_argument("--artist")
    group.add_argument("--search")
    p.add_argument("--shuffle", action="store_true")
    p.add_argument("--repeat", choices=[m.value for m in RepeatMode], default=RepeatMode.NONE.value)
    p.add_argument("--volume", type=float)
    p.set_defaults(func=cmd_play, player=True)

    p = sub.add_parser("remove", help="remove one track by id")
    p.add_argument("track_id")
    p.set_defaults(func=cmd_remove, player=False)

    p = sub.add_parser("clear", help="remove every track")
    p.add_argument("-y", "--yes", action="store_true")
    p.set_defaults(func=cmd_clear, player=False)

    p = sub.add_parser("config", help="show or change settings")
    p.add_argument("--workers", type=int)
    p.add_argument("--timeout", type=float, help="import batch deadline in seconds, 0 for none")
    p.add_argument("--volume", type=float)
    pool = p.add_mutually_exclusive_group()
    pool.add_argument("--processes", dest="processes", action="store_true", default=None)
    pool.add_argument("--threads", dest="processes", action="store_false")
    p.set_defaults(func=cmd_config, player=False)

    return parser


def resolve_log_level(verbose: bool) -> int:
    default = logging.DEBUG if verbose else logging.WARNING
    name = os.getenv("MUSEBOX_LOG_LEVEL")
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    if isinstance(level, int):
        return level
    print(f"Ignoring invalid MUSEBOX_LOG_LEVEL={name!r}", file=sys.stderr)
    return default


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=resolve_log_level(args.verbose), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # QMediaPlayer needs the application object before the backend is built
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    QCoreApplication.setApplicationName(APP_NAME)

    app_state = init_app_state(with_player=args.player)
    app_state.notification.connect(_print_notification)
    try:
        return args.func(app_state, args)
    finally:
        app_state.db.close()


if __name__ == "__main__":
    raise SystemExit(main())
