"""RAGManager: the single entry point for meeting ingestion and grounded queries.

Lifecycle:

1. Build with a SQLite connection (or :meth:`RAGManager.from_settings`).
2. When a meeting ends: :meth:`RAGManager.process_meeting` chunks the
   transcript and queues embeddings in the background.
3. When the user asks something: :meth:`RAGManager.query` retrieves context
   and streams an answer from the generation service.

Callers must check :meth:`RAGManager.is_ready` and fall back to a non-RAG
path (e.g. the raw transcript window) when it is False or when a query
raises :class:`NoGroundingError`.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import replace
from typing import TYPE_CHECKING

from src.config import Settings, get_settings
from src.ingestion.embedding_queue import EmbeddingPipeline, QueueStatus
from src.ingestion.embeddings import OpenAIEmbedder
from src.ingestion.pipeline import ingest_transcript
from src.ingestion.storage import TranscriptRepository, VectorStore, get_connection
from src.pipeline_config import QueryScope, RetrievalOptions
from src.retrieval.generation import AnthropicGenerator
from src.retrieval.prompts import NO_GLOBAL_CONTEXT_FALLBACK, build_rag_prompt
from src.retrieval.retriever import MIN_SIMILARITY, RAGRetriever, RetrievedContext

if TYPE_CHECKING:
    from src.ingestion.embeddings import Embedder
    from src.ingestion.models import RawSegment
    from src.retrieval.generation import Generator

logger = logging.getLogger(__name__)


class NoGroundingError(Exception):
    """No transcript evidence is available for a query; callers should fall back."""

    code = "NO_GROUNDING"

    def __init__(self, meeting_id: str | None = None) -> None:
        super().__init__(self.code)
        self.meeting_id = meeting_id


class NoMeetingEmbeddingsError(NoGroundingError):
    code = "NO_MEETING_EMBEDDINGS"


class NoRelevantContextError(NoGroundingError):
    code = "NO_RELEVANT_CONTEXT_FOUND"


class GeneratorNotConfiguredError(RuntimeError):
    """Raised when a query is streamed before a generation client is attached."""


class RAGManager:
    """Facade over preprocessing, chunking, storage, the embedding queue and retrieval."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        embedder: Embedder | None = None,
        generator: Generator | None = None,
        *,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        max_chunk_tokens: int = 400,
        min_similarity: float = MIN_SIMILARITY,
        retrieval_defaults: RetrievalOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.conn = conn
        self.vector_store = VectorStore(conn)
        self.transcripts = TranscriptRepository(conn)
        self.embedding_pipeline = EmbeddingPipeline(
            conn,
            self.vector_store,
            max_retries=max_retries,
            retry_base_delay=retry_base_delay,
        )
        self.retriever = RAGRetriever(
            self.vector_store,
            self.embedding_pipeline,
            min_similarity=min_similarity,
            clock=clock,
        )
        self.max_chunk_tokens = max_chunk_tokens
        self.retrieval_defaults = retrieval_defaults or RetrievalOptions()
        self.generator: Generator | None = None

        if embedder is not None:
            self.initialize_embeddings(embedder)
        if generator is not None:
            self.set_generator(generator)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RAGManager:
        """Build a manager wired to OpenAI embeddings and Claude generation.

        Missing API keys leave the corresponding service unattached, so
        :meth:`is_ready` reports False instead of failing at startup.
        """
        settings = settings or get_settings()

        manager = cls(
            get_connection(settings.database_path),
            max_retries=settings.embedding_max_retries,
            retry_base_delay=settings.embedding_retry_base_delay,
            max_chunk_tokens=settings.chunk_max_tokens,
            min_similarity=settings.retrieval_min_similarity,
            retrieval_defaults=RetrievalOptions(
                max_tokens=settings.retrieval_max_tokens,
                top_k=settings.retrieval_top_k,
                recency_weight=settings.retrieval_recency_weight,
            ),
        )

        if settings.openai_api_key:
            manager.initialize_embeddings(
                OpenAIEmbedder(
                    api_key=settings.openai_api_key,
                    model=settings.embedding_model,
                    dimensions=settings.embedding_dimensions,
                    timeout=settings.embedding_timeout_seconds,
                )
            )
        if settings.anthropic_api_key:
            manager.set_generator(
                AnthropicGenerator(
                    api_key=settings.anthropic_api_key,
                    model=settings.llm_model,
                    max_tokens=settings.generation_max_tokens,
                    timeout=settings.generation_timeout_seconds,
                )
            )
        return manager

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def initialize_embeddings(self, embedder: Embedder) -> None:
        self.embedding_pipeline.initialize(embedder)

    def set_generator(self, generator: Generator) -> None:
        self.generator = generator

    def is_ready(self) -> bool:
        """True when both embeddings and generation are available."""
        return self.embedding_pipeline.is_ready() and self.generator is not None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def process_meeting(
        self,
        meeting_id: str,
        transcript: list[RawSegment],
        summary: str | None = None,
    ) -> int:
        """Chunk and store a finished meeting, then queue its embeddings.

        Returns:
            Number of chunks stored; 0 for empty or too-short transcripts.
        """
        self.transcripts.save(meeting_id, transcript, summary)
        return await ingest_transcript(
            meeting_id,
            transcript,
            self.vector_store,
            self.embedding_pipeline,
            summary=summary,
            max_chunk_tokens=self.max_chunk_tokens,
        )

    async def reprocess_meeting(
        self,
        meeting_id: str,
        transcript: list[RawSegment] | None = None,
        summary: str | None = None,
    ) -> int:
        """Replace a meeting's chunks, summary and queue rows from scratch.

        Uses *transcript* / *summary* when given, otherwise whatever was
        recorded by the last :meth:`process_meeting` call.
        """
        logger.info("Reprocessing meeting %s", meeting_id)
        stored = self.transcripts.get(meeting_id)
        self._clear_derived_data(meeting_id)

        if transcript is None:
            if stored is None:
                logger.error("Meeting %s not found for reprocessing", meeting_id)
                return 0
            transcript = stored[0]
            if summary is None:
                summary = stored[1]

        if not transcript:
            logger.info("Meeting %s has no transcript, skipping", meeting_id)
            return 0

        return await self.process_meeting(meeting_id, transcript, summary)

    def delete_meeting_data(self, meeting_id: str) -> None:
        """Remove everything stored for *meeting_id*, including its transcript."""
        self._clear_derived_data(meeting_id)
        self.transcripts.delete(meeting_id)

    def _clear_derived_data(self, meeting_id: str) -> None:
        self.vector_store.delete_chunks_for_meeting(meeting_id)
        self.vector_store.delete_summary(meeting_id)
        self.embedding_pipeline.clear_meeting(meeting_id)

    def is_meeting_processed(self, meeting_id: str) -> bool:
        return self.vector_store.has_embeddings(meeting_id)

    def has_meeting_data(self, meeting_id: str) -> bool:
        """True if a transcript or any chunk is stored for *meeting_id*."""
        return (
            self.transcripts.get(meeting_id) is not None
            or bool(self.vector_store.get_chunks_for_meeting(meeting_id))
        )

    def get_queue_status(self) -> QueueStatus:
        return self.embedding_pipeline.get_queue_status()

    async def retry_pending_embeddings(self) -> None:
        await self.embedding_pipeline.process_queue()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def retrieve_context(
        self, query: str, meeting_id: str | None = None
    ) -> RetrievedContext:
        """Assembled context + intent without calling the generation service."""
        if meeting_id:
            return await self.retriever.retrieve(
                query, replace(self.retrieval_defaults, meeting_id=meeting_id)
            )
        return await self.retriever.retrieve_global(query, self.retrieval_defaults)

    async def query_meeting(
        self,
        meeting_id: str,
        query: str,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Stream an answer grounded in one meeting.

        Raises:
            NoMeetingEmbeddingsError: The meeting has no embedded chunks yet.
            NoRelevantContextError: Nothing in the meeting matched the query.
        """
        generator = self._require_generator()

        if not self.vector_store.has_embeddings(meeting_id):
            raise NoMeetingEmbeddingsError(meeting_id)

        context = await self.retriever.retrieve(
            query, replace(self.retrieval_defaults, meeting_id=meeting_id)
        )
        if context.is_empty:
            raise NoRelevantContextError(meeting_id)

        prompt = build_rag_prompt(
            query, context.formatted_context, QueryScope.MEETING, context.intent
        )
        async for text in self._stream(generator, prompt, cancel_event):
            yield text

    async def query_global(
        self,
        query: str,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Stream an answer searched across all meetings.

        Yields a fixed "nothing found" message instead of raising when no
        context is retrieved.
        """
        generator = self._require_generator()

        context = await self.retriever.retrieve_global(query, self.retrieval_defaults)
        if context.is_empty:
            yield NO_GLOBAL_CONTEXT_FALLBACK
            return

        prompt = build_rag_prompt(
            query, context.formatted_context, QueryScope.GLOBAL, context.intent
        )
        async for text in self._stream(generator, prompt, cancel_event):
            yield text

    async def query(
        self,
        query: str,
        current_meeting_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Route to :meth:`query_meeting` or :meth:`query_global` by detected scope."""
        scope = self.retriever.detect_scope(query, current_meeting_id)

        if scope is QueryScope.MEETING and current_meeting_id:
            stream = self.query_meeting(current_meeting_id, query, cancel_event)
        else:
            stream = self.query_global(query, cancel_event)

        async for text in stream:
            yield text

    def _require_generator(self) -> Generator:
        if self.generator is None:
            raise GeneratorNotConfiguredError("Generation client not initialized")
        return self.generator

    @staticmethod
    async def _stream(
        generator: Generator,
        prompt: str,
        cancel_event: asyncio.Event | None,
    ) -> AsyncGenerator[str, None]:
        # Cancellation is checked once per generated piece of text
        async with aclosing(generator.stream(prompt)) as stream:
            async for text in stream:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Query stream cancelled")
                    break
                yield text
