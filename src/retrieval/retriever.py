"""Retrieval: embed the query, search, re-rank by relevance + recency, assemble context."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from src.ingestion.chunking import format_chunk_for_context
from src.pipeline_config import QueryIntent, QueryScope, RetrievalOptions
from src.retrieval.router import classify_intent, detect_scope

if TYPE_CHECKING:
    from src.ingestion.embedding_queue import EmbeddingPipeline
    from src.ingestion.models import ScoredChunk
    from src.ingestion.storage import VectorStore

logger = logging.getLogger(__name__)

# Candidates below this cosine similarity are never considered
MIN_SIMILARITY = 0.25

# Recency decays with a 7-day time constant
RECENCY_DECAY_HOURS = 168

# Similarity multiplier for chunks whose meeting summary also matched
SUMMARY_MATCH_BOOST = 1.2
SUMMARY_MATCH_LIMIT = 5


@dataclass
class RetrievedContext:
    """Grounding context for a generation call, plus the detected intent."""

    intent: QueryIntent
    chunks: list[ScoredChunk] = field(default_factory=list)
    formatted_context: str = ""
    total_tokens: int = 0
    meeting_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chunks


def compute_final_score(
    similarity: float, start_ms: int, now_ms: float, recency_weight: float
) -> float:
    """Blend similarity with an exponential recency score.

    ``(1 - w) * similarity + w * exp(-age_hours / 168)``; timestamps in the
    future count as age zero.
    """
    age_hours = max(0.0, now_ms - start_ms) / (1000 * 60 * 60)
    recency = math.exp(-age_hours / RECENCY_DECAY_HOURS)
    return (1 - recency_weight) * similarity + recency_weight * recency


def select_within_budget(
    ranked: list[ScoredChunk], max_tokens: int, top_k: int
) -> tuple[list[ScoredChunk], int]:
    """Greedily take ranked chunks until the token budget or ``top_k`` is reached.

    A chunk that would overflow the budget is skipped while fewer than
    ``top_k / 2`` chunks are selected, and ends selection after that.
    """
    selected: list[ScoredChunk] = []
    total_tokens = 0

    for chunk in ranked:
        if total_tokens + chunk.token_count > max_tokens:
            if len(selected) >= top_k / 2:
                break
            continue

        selected.append(chunk)
        total_tokens += chunk.token_count
        if len(selected) >= top_k:
            break

    return selected, total_tokens


class RAGRetriever:
    """Orchestrates query embedding, candidate search, re-ranking and context assembly."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_pipeline: EmbeddingPipeline,
        min_similarity: float = MIN_SIMILARITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.vector_store = vector_store
        self.embedding_pipeline = embedding_pipeline
        self.min_similarity = min_similarity
        self._clock = clock

    async def retrieve(
        self, query: str, options: RetrievalOptions | None = None
    ) -> RetrievedContext:
        """Retrieve context for *query*, optionally scoped to ``options.meeting_id``.

        Returns an empty context (never raises) when the query cannot be
        embedded or nothing clears the similarity floor.
        """
        options = options or RetrievalOptions()
        intent = options.intent or classify_intent(query)

        query_embedding = await self._embed_query(query)
        if query_embedding is None:
            return RetrievedContext(intent=intent)

        candidates = self.vector_store.search_similar(
            query_embedding,
            meeting_id=options.meeting_id,
            limit=options.top_k * 2,
            min_similarity=self.min_similarity,
        )
        if not candidates:
            logger.info("No similar chunks found")
            return RetrievedContext(intent=intent)

        selected, total_tokens = select_within_budget(
            self._rerank(candidates, options.recency_weight),
            options.max_tokens,
            options.top_k,
        )

        # Timeline order reads better than score order
        selected.sort(key=lambda c: c.start_ms)

        return RetrievedContext(
            intent=intent,
            chunks=selected,
            formatted_context="\n\n".join(format_chunk_for_context(c) for c in selected),
            total_tokens=total_tokens,
            meeting_ids=list(dict.fromkeys(c.meeting_id for c in selected)),
        )

    async def retrieve_global(
        self, query: str, options: RetrievalOptions | None = None
    ) -> RetrievedContext:
        """Retrieve across all meetings, favouring meetings whose summary matches.

        ``options.meeting_id`` is ignored. Output is grouped per meeting.
        """
        options = options or RetrievalOptions()
        intent = options.intent or classify_intent(query)

        query_embedding = await self._embed_query(query)
        if query_embedding is None:
            return RetrievedContext(intent=intent)

        chunk_results = self.vector_store.search_similar(
            query_embedding,
            limit=options.top_k * 2,
            min_similarity=self.min_similarity,
        )
        summary_results = self.vector_store.search_summaries(
            query_embedding, limit=SUMMARY_MATCH_LIMIT
        )
        matched_meetings = {s.meeting_id for s in summary_results}

        boosted = [
            replace(c, similarity=c.similarity * SUMMARY_MATCH_BOOST)
            if c.meeting_id in matched_meetings
            else c
            for c in chunk_results
        ]

        selected, total_tokens = select_within_budget(
            self._rerank(boosted, options.recency_weight),
            options.max_tokens,
            options.top_k,
        )

        by_meeting: dict[str, list[ScoredChunk]] = {}
        for chunk in selected:
            by_meeting.setdefault(chunk.meeting_id, []).append(chunk)

        parts: list[str] = []
        for meeting_id, chunks in by_meeting.items():
            chunks.sort(key=lambda c: c.start_ms)
            body = "\n".join(format_chunk_for_context(c) for c in chunks)
            parts.append(f"--- Meeting {meeting_id} ---\n{body}")

        return RetrievedContext(
            intent=intent,
            chunks=selected,
            formatted_context="\n\n".join(parts),
            total_tokens=total_tokens,
            meeting_ids=list(by_meeting),
        )

    def detect_scope(self, query: str, current_meeting_id: str | None = None) -> QueryScope:
        return detect_scope(query, current_meeting_id)

    def detect_intent(self, query: str) -> QueryIntent:
        return classify_intent(query)

    async def _embed_query(self, query: str) -> list[float] | None:
        try:
            return await self.embedding_pipeline.get_embedding(query)
        except Exception:
            logger.exception("Failed to embed query")
            return None

    def _rerank(self, candidates: list[ScoredChunk], recency_weight: float) -> list[ScoredChunk]:
        now_ms = self._clock() * 1000
        ranked = [
            replace(
                c,
                final_score=compute_final_score(c.similarity, c.start_ms, now_ms, recency_weight),
            )
            for c in candidates
        ]
        ranked.sort(key=lambda c: c.final_score, reverse=True)
        return ranked
