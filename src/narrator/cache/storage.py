"""SQLite storage for content, voice cache, audio chunks and progress."""

import sqlite3
from datetime import datetime
from pathlib import Path

from ..tts.models import VoiceId
from .models import AudioChunk, ContentItem, PlaybackProgress, VoiceCacheRecord, VoiceEntry

SCHEMA = """
CREATE TABLE IF NOT EXISTS contents (
    id TEXT PRIMARY KEY,
    text TEXT NOT NULL,
    language TEXT NOT NULL,
    default_voice TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS voice_cache (
    content_id TEXT NOT NULL,
    voice TEXT NOT NULL,
    payload BLOB NOT NULL,
    ok INTEGER NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (content_id, voice)
);

CREATE TABLE IF NOT EXISTS audio_chunks (
    content_id TEXT NOT NULL,
    voice TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    payload BLOB NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (content_id, voice, chunk_index)
);

CREATE TABLE IF NOT EXISTS playback_progress (
    user_id TEXT NOT NULL,
    content_id TEXT NOT NULL,
    percentage REAL NOT NULL,
    position INTEGER NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT,
    PRIMARY KEY (user_id, content_id)
);

CREATE INDEX IF NOT EXISTS idx_contents_created ON contents(created_at);
"""


class NarrationStorage:
    """SQLite-based storage for the narration pipeline.

    Each operation opens its own connection so the daemon's background
    workers and request handlers never share a connection across tasks.
    """

    def __init__(self, db_path: Path):
        """Initialize storage with database at the given path.

        Args:
            db_path: SQLite database file (parent directory is created)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Initialize DB with WAL mode for concurrency
        conn = self._get_connection()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new database connection with WAL mode for concurrency."""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=30.0,  # 30 second timeout if locked
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    # === CONTENT ===

    def add_content(self, item: ContentItem) -> None:
        """Insert or replace a content item."""
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO contents (id, text, language, default_voice, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.text,
                    item.language,
                    str(item.default_voice) if item.default_voice else None,
                    item.created_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_content(self, content_id: str) -> ContentItem | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM contents WHERE id = ?", (content_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_content(row) if row else None

    def list_contents(self) -> list[ContentItem]:
        """All content items, most recently created first.

        Raises:
            sqlite3.Error: If the listing query fails
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM contents ORDER BY created_at DESC, id ASC"
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_content(row) for row in rows]

    @staticmethod
    def _row_to_content(row: sqlite3.Row) -> ContentItem:
        return ContentItem(
            id=row["id"],
            text=row["text"],
            language=row["language"],
            default_voice=VoiceId(row["default_voice"])
            if row["default_voice"]
            else None,
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # === VOICE CACHE ===

    def load_record(self, content_id: str) -> VoiceCacheRecord:
        """Load the voice cache record, empty if nothing is stored yet."""
        conn = self._get_connection()
        try:
            return self._read_record(conn, content_id)
        finally:
            conn.close()

    @staticmethod
    def _read_record(conn: sqlite3.Connection, content_id: str) -> VoiceCacheRecord:
        rows = conn.execute(
            "SELECT voice, payload, ok, updated_at FROM voice_cache WHERE content_id = ?",
            (content_id,),
        ).fetchall()
        entries = {}
        for row in rows:
            voice = VoiceId(row["voice"])
            entries[voice] = VoiceEntry(
                voice=voice,
                payload=bytes(row["payload"]),
                ok=bool(row["ok"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
        return VoiceCacheRecord(content_id=content_id, entries=entries)

    def merge_voice(self, content_id: str, entry: VoiceEntry) -> VoiceCacheRecord:
        """Merge one voice into the stored record and persist it.

        The current record is re-read inside a write transaction right
        before writing, so a voice written by a concurrent worker is
        carried into the merged record instead of being lost.

        Returns:
            The merged record as written
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            merged = self._read_record(conn, content_id).merge(entry)
            conn.executemany(
                """
                INSERT INTO voice_cache (content_id, voice, payload, ok, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(content_id, voice) DO UPDATE SET
                    payload = excluded.payload,
                    ok = excluded.ok,
                    updated_at = excluded.updated_at
                """,
                [
                    (
                        content_id,
                        str(e.voice),
                        e.payload,
                        int(e.ok),
                        e.updated_at.isoformat(),
                    )
                    for e in merged.entries.values()
                ],
            )
            conn.commit()
            return merged
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def valid_voices_by_content(self) -> dict[str, set[VoiceId]]:
        """Map content id to its voices with a successful, non-empty payload.

        Only metadata is read; payload blobs stay on disk.

        Raises:
            sqlite3.Error: If the listing query fails
        """
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT content_id, voice FROM voice_cache
                WHERE ok = 1 AND length(payload) > 0
                """
            ).fetchall()
        finally:
            conn.close()

        result: dict[str, set[VoiceId]] = {}
        for row in rows:
            result.setdefault(row["content_id"], set()).add(VoiceId(row["voice"]))
        return result

    # === AUDIO CHUNKS ===

    def save_chunk(self, content_id: str, voice: VoiceId, chunk: AudioChunk) -> bool:
        """Store a chunk unless one already exists at that index.

        Returns:
            True if the chunk was inserted, False if it already existed
        """
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO audio_chunks
                    (content_id, voice, chunk_index, payload, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    content_id,
                    str(voice),
                    chunk.index,
                    chunk.payload,
                    datetime.now().isoformat(),
                ),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_chunks(self, content_id: str, voice: VoiceId) -> list[AudioChunk]:
        """Stored chunks for one content/voice, ordered by index."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT chunk_index, payload FROM audio_chunks
                WHERE content_id = ? AND voice = ?
                ORDER BY chunk_index ASC
                """,
                (content_id, str(voice)),
            ).fetchall()
        finally:
            conn.close()
        return [AudioChunk(row["chunk_index"], bytes(row["payload"])) for row in rows]

    def chunk_indices(self, content_id: str, voice: VoiceId) -> set[int]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT chunk_index FROM audio_chunks WHERE content_id = ? AND voice = ?",
                (content_id, str(voice)),
            ).fetchall()
        finally:
            conn.close()
        return {row["chunk_index"] for row in rows}

    # === PLAYBACK PROGRESS ===

    def save_progress(self, progress: PlaybackProgress) -> None:
        """Upsert the progress row; repeating an identical write is a no-op."""
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO playback_progress
                    (user_id, content_id, percentage, position, updated_at, completed_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, content_id) DO UPDATE SET
                    percentage = excluded.percentage,
                    position = excluded.position,
                    updated_at = excluded.updated_at,
                    completed_at = excluded.completed_at
                """,
                (
                    progress.user_id,
                    progress.content_id,
                    progress.percentage,
                    progress.position,
                    progress.updated_at.isoformat(),
                    progress.completed_at.isoformat() if progress.completed_at else None,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_progress(self, user_id: str, content_id: str) -> PlaybackProgress | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT * FROM playback_progress
                WHERE user_id = ? AND content_id = ?
                """,
                (user_id, content_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return PlaybackProgress(
            user_id=row["user_id"],
            content_id=row["content_id"],
            percentage=row["percentage"],
            position=row["position"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"])
            if row["completed_at"]
            else None,
        )
