"""Durable, retryable embedding queue backed by the ``embedding_queue`` table.

Embeddings are generated after a meeting ends, not in real time. Each chunk of
the meeting plus its summary becomes one queue row; a single background run
drains the rows one by one. A failed call puts the row back to ``pending``
with ``retry_count + 1`` so the work survives restarts and transient outages.
Rows that reach ``max_retries`` are parked: never selected again, but still
reported as ``failed`` by :meth:`EmbeddingPipeline.get_queue_status`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import sqlite3

    from src.ingestion.embeddings import Embedder
    from src.ingestion.storage import VectorStore

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_BASE_SECONDS = 2.0


class QueueItemStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ChunkTarget:
    """Queue row that embeds one chunk."""

    chunk_id: int


@dataclass(frozen=True)
class SummaryTarget:
    """Queue row that embeds the meeting summary."""


QueueTarget = ChunkTarget | SummaryTarget


@dataclass
class QueueItem:
    id: int
    meeting_id: str
    target: QueueTarget
    status: QueueItemStatus
    retry_count: int
    error_message: str | None
    created_at: str
    processed_at: str | None


@dataclass
class QueueStatus:
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class EmbeddingPipeline:
    """Turns queued chunks and summaries into stored embeddings."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        vector_store: VectorStore,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = RETRY_DELAY_BASE_SECONDS,
    ) -> None:
        self.conn = conn
        self.vector_store = vector_store
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.embedder: Embedder | None = None
        self._is_processing = False
        self._task: asyncio.Task[None] | None = None

    def initialize(self, embedder: Embedder | None) -> None:
        """Attach the embedding service; ``None`` leaves embeddings disabled."""
        if embedder is None:
            logger.info("No embedder provided, embeddings disabled")
            return
        self.embedder = embedder
        self.recover_stale_items()
        logger.info("Embedding pipeline initialized with %s", type(embedder).__name__)

    def is_ready(self) -> bool:
        return self.embedder is not None

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    async def get_embedding(self, text: str) -> list[float]:
        """Embed *text* directly, bypassing the queue (used for queries)."""
        if self.embedder is None:
            raise RuntimeError("Embedding client not initialized")
        return await self.embedder.embed(text)

    # ------------------------------------------------------------------
    # Enqueueing
    # ------------------------------------------------------------------

    async def queue_meeting(self, meeting_id: str) -> int:
        """Queue every unembedded chunk of *meeting_id* plus its summary.

        Processing starts in the background; use :meth:`wait_until_idle` to
        await it.

        Returns:
            Number of queue rows created.
        """
        chunks = self.vector_store.get_chunks_without_embeddings(meeting_id)
        if not chunks:
            logger.info("No chunks to embed for meeting %s", meeting_id)
            return 0

        targets: list[QueueTarget] = [ChunkTarget(c.id) for c in chunks]
        targets.append(SummaryTarget())

        created_at = _now()
        with self.conn:
            self.conn.executemany(
                """
                INSERT INTO embedding_queue (meeting_id, chunk_id, status, created_at)
                VALUES (?, ?, 'pending', ?)
                """,
                [
                    (
                        meeting_id,
                        t.chunk_id if isinstance(t, ChunkTarget) else None,
                        created_at,
                    )
                    for t in targets
                ],
            )

        logger.info("Queued %d chunks + 1 summary for meeting %s", len(chunks), meeting_id)
        self.start_background_processing()
        return len(targets)

    def start_background_processing(self) -> None:
        """Schedule :meth:`process_queue` on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self.process_queue())
        self._task.add_done_callback(self._log_task_failure)

    async def wait_until_idle(self) -> None:
        if self._task is not None:
            await self._task

    @staticmethod
    def _log_task_failure(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Queue processing error", exc_info=exc)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_queue(self) -> None:
        """Drain pending rows one at a time until none are eligible.

        Only one run executes per pipeline; a concurrent call returns
        immediately. Storage errors propagate and end the run.
        """
        if self._is_processing:
            logger.info("Already processing queue")
            return
        if self.embedder is None:
            logger.info("No embedder, skipping queue processing")
            return

        self._is_processing = True
        try:
            while True:
                item = self._next_pending()
                if item is None:
                    logger.info("Queue empty")
                    break

                self._set_status(item.id, QueueItemStatus.PROCESSING)

                text = self._target_text(item)
                if text is None:
                    # Row was deleted or reprocessed since queueing
                    self._mark_completed(item.id)
                    continue

                try:
                    embedding = await self.embedder.embed(text)
                except Exception as exc:
                    logger.warning(
                        "Error processing queue item %d (attempt %d): %s",
                        item.id,
                        item.retry_count + 1,
                        exc,
                    )
                    self._mark_retry(item.id, str(exc))
                    await asyncio.sleep(self.retry_base_delay * 2**item.retry_count)
                    continue

                if isinstance(item.target, ChunkTarget):
                    self.vector_store.store_embedding(item.target.chunk_id, embedding)
                    logger.debug("Embedded chunk %d", item.target.chunk_id)
                else:
                    self.vector_store.store_summary_embedding(item.meeting_id, embedding)
                    logger.debug("Embedded summary for meeting %s", item.meeting_id)

                self._mark_completed(item.id)
        finally:
            self._is_processing = False

    def _next_pending(self) -> QueueItem | None:
        row = self.conn.execute(
            """
            SELECT * FROM embedding_queue
            WHERE status = 'pending' AND retry_count < ?
            ORDER BY created_at ASC, id ASC
            LIMIT 1
            """,
            (self.max_retries,),
        ).fetchone()
        return self._row_to_item(row) if row else None

    def _target_text(self, item: QueueItem) -> str | None:
        if isinstance(item.target, ChunkTarget):
            chunk = self.vector_store.get_chunk(item.target.chunk_id)
            return chunk.text if chunk else None
        return self.vector_store.get_summary(item.meeting_id)

    def _set_status(self, item_id: int, status: QueueItemStatus) -> None:
        with self.conn:
            self.conn.execute(
                "UPDATE embedding_queue SET status = ? WHERE id = ?", (status.value, item_id)
            )

    def _mark_completed(self, item_id: int) -> None:
        with self.conn:
            self.conn.execute(
                """
                UPDATE embedding_queue
                SET status = 'completed', processed_at = ?
                WHERE id = ?
                """,
                (_now(), item_id),
            )

    def _mark_retry(self, item_id: int, error_message: str) -> None:
        with self.conn:
            self.conn.execute(
                """
                UPDATE embedding_queue
                SET status = 'pending', retry_count = retry_count + 1, error_message = ?
                WHERE id = ?
                """,
                (error_message, item_id),
            )

    # ------------------------------------------------------------------
    # Inspection and maintenance
    # ------------------------------------------------------------------

    def get_items(self, meeting_id: str | None = None) -> list[QueueItem]:
        sql = "SELECT * FROM embedding_queue"
        params: tuple[str, ...] = ()
        if meeting_id:
            sql += " WHERE meeting_id = ?"
            params = (meeting_id,)
        rows = self.conn.execute(sql + " ORDER BY id ASC", params).fetchall()
        return [self._row_to_item(r) for r in rows]

    def get_queue_status(self) -> QueueStatus:
        """Count rows per state; parked rows are reported as ``failed``, not ``pending``."""
        row = self.conn.execute(
            """
            SELECT
                SUM(CASE WHEN status = 'pending' AND retry_count < :cap THEN 1 ELSE 0 END),
                SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END),
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END),
                SUM(CASE WHEN status = 'pending' AND retry_count >= :cap THEN 1 ELSE 0 END)
            FROM embedding_queue
            """,
            {"cap": self.max_retries},
        ).fetchone()
        pending, processing, completed, failed = (int(v or 0) for v in tuple(row))
        return QueueStatus(
            pending=pending, processing=processing, completed=completed, failed=failed
        )

    def recover_stale_items(self) -> int:
        """Return rows left ``processing`` by an interrupted run to ``pending``."""
        if self._is_processing:
            return 0
        with self.conn:
            cursor = self.conn.execute(
                "UPDATE embedding_queue SET status = 'pending' WHERE status = 'processing'"
            )
        if cursor.rowcount:
            logger.info("Recovered %d interrupted queue items", cursor.rowcount)
        return cursor.rowcount

    def clear_meeting(self, meeting_id: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM embedding_queue WHERE meeting_id = ?", (meeting_id,))

    def cleanup_queue(self, days_old: int = 7) -> int:
        """Delete completed rows processed more than *days_old* days ago."""
        cutoff = (datetime.now(UTC) - timedelta(days=days_old)).isoformat()
        with self.conn:
            cursor = self.conn.execute(
                """
                DELETE FROM embedding_queue
                WHERE status = 'completed' AND processed_at < ?
                """,
                (cutoff,),
            )
        return cursor.rowcount

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> QueueItem:
        chunk_id = row["chunk_id"]
        target: QueueTarget = SummaryTarget() if chunk_id is None else ChunkTarget(chunk_id)
        return QueueItem(
            id=row["id"],
            meeting_id=row["meeting_id"],
            target=target,
            status=QueueItemStatus(row["status"]),
            retry_count=row["retry_count"],
            error_message=row["error_message"],
            created_at=row["created_at"],
            processed_at=row["processed_at"],
        )
