"""Shared fixtures: in-memory SQLite store and deterministic service fakes."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterator

import pytest

from src.ingestion.embedding_queue import EmbeddingPipeline
from src.ingestion.models import RawSegment
from src.ingestion.storage import VectorStore, get_connection
from src.rag_manager import RAGManager
from tests.fakes import FakeGenerator, KeywordEmbedder
from tests.meeting_data import PLANNING_MEETING_SUMMARY, planning_meeting


@pytest.fixture
def segments() -> list[RawSegment]:
    return planning_meeting()


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    connection = get_connection(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def vector_store(conn: sqlite3.Connection) -> VectorStore:
    return VectorStore(conn)


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def pipeline(conn: sqlite3.Connection, vector_store: VectorStore) -> EmbeddingPipeline:
    return EmbeddingPipeline(conn, vector_store, retry_base_delay=0)


@pytest.fixture
def manager(
    conn: sqlite3.Connection, embedder: KeywordEmbedder, generator: FakeGenerator
) -> RAGManager:
    return RAGManager(conn, embedder, generator, retry_base_delay=0)


@pytest.fixture
def processed_manager(manager: RAGManager, segments: list[RawSegment]) -> RAGManager:
    """Manager with meeting "m1" chunked and fully embedded."""

    async def run() -> None:
        await manager.process_meeting("m1", segments, PLANNING_MEETING_SUMMARY)
        await manager.embedding_pipeline.wait_until_idle()

    asyncio.run(run())
    return manager
