"""End-to-end ingestion pipeline: preprocess -> chunk -> store -> queue embeddings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from src.ingestion.chunking import MAX_CHUNK_TOKENS, chunk_transcript
from src.ingestion.preprocessing import preprocess_transcript

if TYPE_CHECKING:
    from src.ingestion.embedding_queue import EmbeddingPipeline
    from src.ingestion.models import RawSegment
    from src.ingestion.storage import VectorStore

logger = logging.getLogger(__name__)


async def ingest_transcript(
    meeting_id: str,
    segments: list[RawSegment],
    vector_store: VectorStore,
    embedding_pipeline: EmbeddingPipeline,
    summary: str | None = None,
    max_chunk_tokens: int = MAX_CHUNK_TOKENS,
) -> int:
    """Full ingestion pipeline for a finished meeting.

    Args:
        meeting_id: The meeting to ingest.
        segments: Raw transcript segments in order.
        vector_store: Destination for chunks and the summary.
        embedding_pipeline: Queue that will embed the stored rows.
        summary: Optional meeting summary, used for cross-meeting search.
        max_chunk_tokens: Hard per-chunk token ceiling.

    Returns:
        The number of chunks stored (0 for empty or degenerate transcripts).
    """
    logger.info("Processing meeting %s with %d segments", meeting_id, len(segments))

    # 1. Preprocess
    cleaned = preprocess_transcript(segments)
    logger.info("Preprocessed to %d cleaned segments", len(cleaned))

    # 2. Chunk
    chunks = chunk_transcript(meeting_id, cleaned, max_tokens=max_chunk_tokens)
    if not chunks:
        logger.info("No chunks to save for meeting %s", meeting_id)
        return 0

    # 3. Store
    vector_store.save_chunks(chunks)
    if summary:
        vector_store.save_summary(meeting_id, summary)

    # 4. Queue embeddings (background)
    if embedding_pipeline.is_ready():
        await embedding_pipeline.queue_meeting(meeting_id)
    else:
        logger.info("Embeddings not ready, chunks saved without embeddings")

    logger.info("Stored %d chunks for meeting %s", len(chunks), meeting_id)
    return len(chunks)
