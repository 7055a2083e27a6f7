"""SQLite storage for chunks, meeting summaries and embeddings.

Similarity search is an exhaustive linear scan: every candidate row's vector is
deserialized and scored against the query. That is the intended trade-off for
a single-process store holding thousands of chunks, not millions.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import numpy as np

from src.ingestion.models import RawSegment, ScoredChunk, StoredChunk, SummaryMatch

if TYPE_CHECKING:
    from src.ingestion.models import Chunk

logger = logging.getLogger(__name__)

# Little-endian float32, independent of host byte order
EMBEDDING_DTYPE = np.dtype("<f4")

SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    speaker TEXT,
    start_ms INTEGER,
    end_ms INTEGER,
    text TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    embedding BLOB,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_chunks_meeting ON chunks(meeting_id);

CREATE TABLE IF NOT EXISTS meeting_summaries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id TEXT NOT NULL UNIQUE,
    summary_text TEXT NOT NULL,
    embedding BLOB,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS embedding_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    meeting_id TEXT NOT NULL,
    chunk_id INTEGER,
    status TEXT NOT NULL DEFAULT 'pending',
    retry_count INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    created_at TEXT NOT NULL,
    processed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_queue_status ON embedding_queue(status, retry_count);

CREATE TABLE IF NOT EXISTS meeting_transcripts (
    meeting_id TEXT PRIMARY KEY,
    segments_json TEXT NOT NULL,
    summary_text TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


def get_connection(database_path: str) -> sqlite3.Connection:
    """Open a SQLite connection and make sure the RAG schema exists.

    Args:
        database_path: File path, or ``":memory:"`` for an ephemeral database.
    """
    conn = sqlite3.connect(database_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA)
    return conn


def embedding_to_blob(embedding: Sequence[float]) -> bytes:
    """Serialize a vector as consecutive little-endian 32-bit floats."""
    return np.asarray(embedding, dtype=EMBEDDING_DTYPE).tobytes()


def blob_to_embedding(blob: bytes) -> list[float]:
    """Inverse of :func:`embedding_to_blob`."""
    return np.frombuffer(blob, dtype=EMBEDDING_DTYPE).astype(float).tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Returns 0.0 when either vector has zero norm or the lengths differ.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        return 0.0

    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


class VectorStore:
    """Chunk and summary persistence with brute-force cosine search."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def save_chunks(self, chunks: list[Chunk]) -> list[int]:
        """Insert *chunks* (without embeddings) in a single transaction.

        Readers never observe a partial chunk set; any ``sqlite3.Error``
        rolls the whole batch back and propagates.

        Returns:
            Row ids, in the order of *chunks*.
        """
        ids: list[int] = []
        with self.conn:
            for chunk in chunks:
                cursor = self.conn.execute(
                    """
                    INSERT INTO chunks
                        (meeting_id, chunk_index, speaker, start_ms, end_ms, text, token_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.meeting_id,
                        chunk.chunk_index,
                        chunk.speaker,
                        chunk.start_ms,
                        chunk.end_ms,
                        chunk.text,
                        chunk.token_count,
                    ),
                )
                ids.append(int(cursor.lastrowid or 0))
        logger.debug("Saved %d chunks", len(ids))
        return ids

    def store_embedding(self, chunk_id: int, embedding: Sequence[float]) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE chunks SET embedding = ? WHERE id = ?",
                (embedding_to_blob(embedding), chunk_id),
            )

    def get_chunk(self, chunk_id: int) -> StoredChunk | None:
        row = self.conn.execute("SELECT * FROM chunks WHERE id = ?", (chunk_id,)).fetchone()
        return self._row_to_chunk(row) if row else None

    def get_chunks_for_meeting(self, meeting_id: str) -> list[StoredChunk]:
        rows = self.conn.execute(
            "SELECT * FROM chunks WHERE meeting_id = ? ORDER BY chunk_index ASC",
            (meeting_id,),
        ).fetchall()
        return [self._row_to_chunk(r) for r in rows]

    def get_chunks_without_embeddings(self, meeting_id: str) -> list[StoredChunk]:
        rows = self.conn.execute(
            """
            SELECT * FROM chunks
            WHERE meeting_id = ? AND embedding IS NULL
            ORDER BY chunk_index ASC
            """,
            (meeting_id,),
        ).fetchall()
        return [self._row_to_chunk(r) for r in rows]

    def search_similar(
        self,
        query_embedding: Sequence[float],
        meeting_id: str | None = None,
        limit: int = 8,
        min_similarity: float = 0.25,
    ) -> list[ScoredChunk]:
        """Rank embedded chunks by cosine similarity to *query_embedding*.

        Args:
            query_embedding: Query vector.
            meeting_id: Restrict the scan to one meeting.
            limit: Maximum number of results.
            min_similarity: Candidates scoring below this are discarded.

        Returns:
            At most *limit* chunks, most similar first.
        """
        sql = "SELECT * FROM chunks WHERE embedding IS NOT NULL"
        params: list[Any] = []
        if meeting_id:
            sql += " AND meeting_id = ?"
            params.append(meeting_id)

        scored: list[ScoredChunk] = []
        for row in self.conn.execute(sql, params).fetchall():
            embedding = blob_to_embedding(row["embedding"])
            similarity = cosine_similarity(query_embedding, embedding)
            if similarity < min_similarity:
                continue
            stored = self._row_to_chunk(row, embedding)
            scored.append(ScoredChunk(**vars(stored), similarity=similarity))

        scored.sort(key=lambda c: c.similarity, reverse=True)
        return scored[:limit]

    def delete_chunks_for_meeting(self, meeting_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM chunks WHERE meeting_id = ?", (meeting_id,))

    def has_embeddings(self, meeting_id: str) -> bool:
        row = self.conn.execute(
            """
            SELECT COUNT(*) AS count FROM chunks
            WHERE meeting_id = ? AND embedding IS NOT NULL
            """,
            (meeting_id,),
        ).fetchone()
        return bool(row["count"])

    # ------------------------------------------------------------------
    # Summaries (global search)
    # ------------------------------------------------------------------

    def save_summary(self, meeting_id: str, summary_text: str) -> None:
        """Insert or replace the meeting's summary; any previous embedding is dropped."""
        with self.conn:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO meeting_summaries (meeting_id, summary_text)
                VALUES (?, ?)
                """,
                (meeting_id, summary_text),
            )

    def get_summary(self, meeting_id: str) -> str | None:
        row = self.conn.execute(
            "SELECT summary_text FROM meeting_summaries WHERE meeting_id = ?", (meeting_id,)
        ).fetchone()
        return row["summary_text"] if row else None

    def store_summary_embedding(self, meeting_id: str, embedding: Sequence[float]) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE meeting_summaries SET embedding = ? WHERE meeting_id = ?",
                (embedding_to_blob(embedding), meeting_id),
            )

    def search_summaries(
        self, query_embedding: Sequence[float], limit: int = 5
    ) -> list[SummaryMatch]:
        """Rank embedded summaries by similarity; no minimum threshold is applied."""
        rows = self.conn.execute(
            "SELECT * FROM meeting_summaries WHERE embedding IS NOT NULL"
        ).fetchall()

        matches = [
            SummaryMatch(
                meeting_id=row["meeting_id"],
                summary_text=row["summary_text"],
                similarity=cosine_similarity(query_embedding, blob_to_embedding(row["embedding"])),
            )
            for row in rows
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

    def delete_summary(self, meeting_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM meeting_summaries WHERE meeting_id = ?", (meeting_id,))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row, embedding: list[float] | None = None) -> StoredChunk:
        if embedding is None and row["embedding"] is not None:
            embedding = blob_to_embedding(row["embedding"])
        return StoredChunk(
            id=row["id"],
            meeting_id=row["meeting_id"],
            chunk_index=row["chunk_index"],
            speaker=row["speaker"],
            start_ms=row["start_ms"],
            end_ms=row["end_ms"],
            text=row["text"],
            token_count=row["token_count"],
            embedding=embedding,
        )


class TranscriptRepository:
    """Keeps the raw transcript handed to ingestion so a meeting can be reprocessed."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def save(
        self, meeting_id: str, segments: list[RawSegment], summary: str | None = None
    ) -> None:
        payload = json.dumps(
            [
                {"speaker": s.speaker, "text": s.text, "timestamp_ms": s.timestamp_ms}
                for s in segments
            ]
        )
        with self.conn:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO meeting_transcripts
                    (meeting_id, segments_json, summary_text, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                """,
                (meeting_id, payload, summary),
            )

    def get(self, meeting_id: str) -> tuple[list[RawSegment], str | None] | None:
        """Return ``(segments, summary)`` for *meeting_id*, or None if never stored."""
        row = self.conn.execute(
            "SELECT segments_json, summary_text FROM meeting_transcripts WHERE meeting_id = ?",
            (meeting_id,),
        ).fetchone()
        if row is None:
            return None

        segments = [
            RawSegment(
                speaker=item["speaker"],
                text=item["text"],
                timestamp_ms=item["timestamp_ms"],
            )
            for item in json.loads(row["segments_json"])
        ]
        return segments, row["summary_text"]

    def delete(self, meeting_id: str) -> None:
        with self.conn:
            self.conn.execute(
                "DELETE FROM meeting_transcripts WHERE meeting_id = ?", (meeting_id,)
            )
