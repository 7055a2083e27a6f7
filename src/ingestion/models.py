"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class RawSegment:
    """A speech segment as delivered by the transcription layer."""

    speaker: str
    text: str
    timestamp_ms: int


@dataclass
class CleanedSegment:
    """A merged, filler-free segment annotated with semantic markers."""

    speaker: str
    text: str
    start_ms: int
    end_ms: int
    is_question: bool = False
    is_decision: bool = False
    is_action_item: bool = False


@dataclass
class Chunk:
    """A token-bounded, speaker-coherent transcript fragment ready for storage."""

    meeting_id: str
    chunk_index: int
    speaker: str
    start_ms: int
    end_ms: int
    text: str
    token_count: int


@dataclass
class StoredChunk(Chunk):
    """A chunk row read back from the vector store."""

    id: int = 0
    embedding: list[float] | None = field(default=None, repr=False)


@dataclass
class ScoredChunk(StoredChunk):
    """A stored chunk with its similarity to a query and its re-ranked score."""

    similarity: float = 0.0
    final_score: float = 0.0


@dataclass
class SummaryMatch:
    """A meeting summary ranked against a query embedding."""

    meeting_id: str
    summary_text: str
    similarity: float
