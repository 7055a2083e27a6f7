"""Tests for the SQLite vector store, blob encoding and transcript repository."""

from __future__ import annotations

import sqlite3

import pytest

from src.ingestion.models import Chunk, RawSegment
from src.ingestion.storage import (
    TranscriptRepository,
    VectorStore,
    blob_to_embedding,
    cosine_similarity,
    embedding_to_blob,
)


def _chunk(meeting_id: str, index: int, text: str = "some chunk text", start_ms: int = 0) -> Chunk:
    return Chunk(
        meeting_id=meeting_id,
        chunk_index=index,
        speaker="Alice",
        start_ms=start_ms,
        end_ms=start_ms + 1000,
        text=text,
        token_count=4,
    )


class TestCosineSimilarity:
    def test_identical(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite(self) -> None:
        assert cosine_similarity([1.0, 2.0, 3.0], [-1.0, -2.0, -3.0]) == pytest.approx(-1.0)

    def test_zero_vector(self) -> None:
        assert cosine_similarity([1.0, 2.0], [0.0, 0.0]) == 0.0

    def test_length_mismatch(self) -> None:
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0

    def test_orthogonal(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0


class TestEmbeddingBlob:
    def test_little_endian_float32(self) -> None:
        assert embedding_to_blob([1.0]) == b"\x00\x00\x80\x3f"
        assert len(embedding_to_blob([0.5] * 1536)) == 1536 * 4

    def test_round_trip_within_float32_precision(self) -> None:
        vector = [0.1, -2.5, 3.14159, 1e-3]
        assert blob_to_embedding(embedding_to_blob(vector)) == pytest.approx(vector, rel=1e-6)


class TestChunks:
    def test_save_and_read_back(self, vector_store: VectorStore) -> None:
        ids = vector_store.save_chunks([_chunk("m1", 0), _chunk("m1", 1)])
        assert len(ids) == 2

        stored = vector_store.get_chunks_for_meeting("m1")
        assert [c.chunk_index for c in stored] == [0, 1]
        assert [c.id for c in stored] == ids
        assert all(c.embedding is None for c in stored)

    def test_save_is_atomic(self, vector_store: VectorStore) -> None:
        bad = _chunk("m1", 1)
        bad.text = None  # type: ignore[assignment]
        with pytest.raises(sqlite3.IntegrityError):
            vector_store.save_chunks([_chunk("m1", 0), bad])
        assert vector_store.get_chunks_for_meeting("m1") == []

    def test_store_embedding(self, vector_store: VectorStore) -> None:
        (chunk_id,) = vector_store.save_chunks([_chunk("m1", 0)])
        assert not vector_store.has_embeddings("m1")

        vector_store.store_embedding(chunk_id, [0.5, 0.25])

        chunk = vector_store.get_chunk(chunk_id)
        assert chunk is not None
        assert chunk.embedding == [0.5, 0.25]
        assert vector_store.has_embeddings("m1")
        assert vector_store.get_chunks_without_embeddings("m1") == []

    def test_get_missing_chunk(self, vector_store: VectorStore) -> None:
        assert vector_store.get_chunk(999) is None

    def test_delete_for_meeting(self, vector_store: VectorStore) -> None:
        vector_store.save_chunks([_chunk("m1", 0), _chunk("m2", 0)])
        vector_store.delete_chunks_for_meeting("m1")
        assert vector_store.get_chunks_for_meeting("m1") == []
        assert len(vector_store.get_chunks_for_meeting("m2")) == 1


class TestSearchSimilar:
    @pytest.fixture
    def populated(self, vector_store: VectorStore) -> VectorStore:
        ids = vector_store.save_chunks(
            [_chunk("m1", 0, "exact"), _chunk("m1", 1, "close"), _chunk("m2", 0, "far"),
             _chunk("m2", 1, "unembedded")]
        )
        vector_store.store_embedding(ids[0], [1.0, 0.0])
        vector_store.store_embedding(ids[1], [1.0, 1.0])
        vector_store.store_embedding(ids[2], [0.1, 1.0])
        return vector_store

    def test_ranked_by_similarity(self, populated: VectorStore) -> None:
        results = populated.search_similar([1.0, 0.0], min_similarity=0.0)
        assert [r.text for r in results] == ["exact", "close", "far"]
        assert results[0].similarity == pytest.approx(1.0)

    def test_unembedded_rows_excluded(self, populated: VectorStore) -> None:
        results = populated.search_similar([1.0, 0.0], min_similarity=-1.0)
        assert "unembedded" not in [r.text for r in results]

    def test_meeting_filter(self, populated: VectorStore) -> None:
        results = populated.search_similar([1.0, 0.0], meeting_id="m2", min_similarity=0.0)
        assert [r.meeting_id for r in results] == ["m2"]

    def test_limit(self, populated: VectorStore) -> None:
        assert len(populated.search_similar([1.0, 0.0], limit=1, min_similarity=0.0)) == 1

    def test_higher_threshold_never_returns_more(self, populated: VectorStore) -> None:
        counts = [
            len(populated.search_similar([1.0, 0.0], min_similarity=t))
            for t in (0.0, 0.25, 0.5, 0.75, 0.99)
        ]
        assert counts == sorted(counts, reverse=True)
        assert counts[-1] == 1


class TestSummaries:
    def test_save_replaces(self, vector_store: VectorStore) -> None:
        vector_store.save_summary("m1", "first summary")
        vector_store.store_summary_embedding("m1", [1.0, 0.0])
        vector_store.save_summary("m1", "second summary")

        assert vector_store.get_summary("m1") == "second summary"
        # Replacing drops the stale embedding
        assert vector_store.search_summaries([1.0, 0.0]) == []

    def test_search_summaries(self, vector_store: VectorStore) -> None:
        vector_store.save_summary("m1", "budget")
        vector_store.save_summary("m2", "hiring")
        vector_store.store_summary_embedding("m1", [1.0, 0.0])
        vector_store.store_summary_embedding("m2", [0.0, 1.0])

        matches = vector_store.search_summaries([1.0, 0.2], limit=5)
        assert [m.meeting_id for m in matches] == ["m1", "m2"]
        assert len(vector_store.search_summaries([1.0, 0.2], limit=1)) == 1

    def test_delete(self, vector_store: VectorStore) -> None:
        vector_store.save_summary("m1", "budget")
        vector_store.delete_summary("m1")
        assert vector_store.get_summary("m1") is None


class TestTranscriptRepository:
    def test_save_get_delete(self, conn: sqlite3.Connection) -> None:
        repo = TranscriptRepository(conn)
        segments = [RawSegment("Alice", "hello there everyone", 0), RawSegment("Bob", "hi", 500)]

        repo.save("m1", segments, "a summary")
        assert repo.get("m1") == (segments, "a summary")

        repo.save("m1", segments[:1])
        assert repo.get("m1") == (segments[:1], None)

        repo.delete("m1")
        assert repo.get("m1") is None
