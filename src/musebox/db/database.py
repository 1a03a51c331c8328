import logging
import os
import sqlite3

from musebox.db.models import Config

logger = logging.getLogger(__name__)

CURRENT_DB_VERSION = 1
DB_FILE_NAME = "db.sqlite3"


def db_path_for(app_data_dir: str) -> str:
    return os.path.join(app_data_dir, DB_FILE_NAME)


def open_connection(sqlite_path: str) -> sqlite3.Connection:
    db = sqlite3.connect(sqlite_path)
    db.row_factory = sqlite3.Row
    return db


def initialize_database(app_data_dir: str) -> sqlite3.Connection:
    os.makedirs(app_data_dir, exist_ok=True)
    sqlite_path = db_path_for(app_data_dir)
    logger.info("Database file path: %s", sqlite_path)

    db = open_connection(sqlite_path)

    existing_version = int(db.execute("PRAGMA user_version").fetchone()[0])
    upgrade_database_if_needed(db, existing_version)

    return db


def upgrade_database_if_needed(db: sqlite3.Connection, existing_version: int) -> None:
    logger.debug("Existing database version: %s", existing_version)

    if existing_version >= CURRENT_DB_VERSION:
        return

    if existing_version <= 0:
        logger.info("Migrate database version 1...")
        db.execute("PRAGMA journal_mode=WAL")
        db.execute("PRAGMA user_version=1")
        db.executescript("""
            CREATE TABLE tracks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                title_lower TEXT,
                artist TEXT NOT NULL,
                artist_lower TEXT,
                album TEXT NOT NULL,
                duration FLOAT NOT NULL DEFAULT 0,
                audio_path TEXT NOT NULL,
                file_name TEXT,
                added_at INTEGER NOT NULL,
                artwork BLOB,
                artwork_mime TEXT
            );
            CREATE INDEX idx_tracks_added_at ON tracks(added_at);
            CREATE INDEX idx_tracks_artist ON tracks(artist);
            CREATE INDEX idx_tracks_album ON tracks(album);
            CREATE INDEX idx_tracks_title_lower ON tracks(title_lower);
            CREATE INDEX idx_tracks_artist_lower ON tracks(artist_lower);

            CREATE TABLE config_data (
                id INTEGER PRIMARY KEY,
                import_workers INTEGER,
                import_timeout_s FLOAT DEFAULT 0,
                default_volume FLOAT,
                use_process_pool BOOLEAN DEFAULT 0
            );
            INSERT INTO config_data (import_workers, import_timeout_s, default_volume, use_process_pool)
            VALUES (4, 0, 0.8, 0);
        """)
        db.commit()


# -------------------------------
# CONFIG
# -------------------------------
def get_config(db: sqlite3.Connection) -> Config:
    row = db.execute("""
        SELECT import_workers,
               import_timeout_s,
               default_volume,
               use_process_pool
        FROM config_data
        LIMIT 1
    """).fetchone()

    config = Config(
        import_workers=max(1, int(row["import_workers"] or 1)),
        import_timeout_s=float(row["import_timeout_s"] or 0.0),
        default_volume=float(row["default_volume"] if row["default_volume"] is not None else 0.8),
        use_process_pool=bool(row["use_process_pool"]),
    )

    env_workers = os.getenv("MUSEBOX_IMPORT_WORKERS")
    if env_workers:
        try:
            config.import_workers = max(1, int(env_workers))
        except ValueError:
            logger.warning("Ignoring invalid MUSEBOX_IMPORT_WORKERS=%r", env_workers)

    return config


def set_config(db: sqlite3.Connection, config: Config) -> None:
    db.execute("""
        UPDATE config_data
        SET import_workers = ?,
            import_timeout_s = ?,
            default_volume = ?,
            use_process_pool = ?
        WHERE 1
    """, (
        max(1, int(config.import_workers)),
        max(0.0, float(config.import_timeout_s)),
        min(1.0, max(0.0, float(config.default_volume))),
        bool(config.use_process_pool),
    ))
    db.commit()


def debug_print_schema(db: sqlite3.Connection) -> None:
    for table in ("tracks", "config_data"):
        cur = db.execute(f"PRAGMA table_info({table})")
        print(f"\n[{table} table schema]")
        for _cid, name, col_type, _notnull, _default, _pk in cur.fetchall():
            print(f"- {name} ({col_type})")
