"""Pydantic request/response schemas for the meeting RAG API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.ingestion.models import RawSegment
from src.pipeline_config import QueryScope


class TranscriptSegment(BaseModel):
    """One raw transcript segment as sent by the recorder."""

    speaker: str
    text: str
    timestamp_ms: int = Field(ge=0)

    def to_raw(self) -> RawSegment:
        return RawSegment(speaker=self.speaker, text=self.text, timestamp_ms=self.timestamp_ms)


class ProcessMeetingRequest(BaseModel):
    """Request body for POST /api/meetings/{id}/process."""

    transcript: list[TranscriptSegment]
    summary: str | None = None


class ReprocessMeetingRequest(BaseModel):
    """Optional body for POST /api/meetings/{id}/reprocess.

    Without a transcript the one recorded at processing time is reused.
    """

    transcript: list[TranscriptSegment] | None = None
    summary: str | None = None


class ProcessMeetingResponse(BaseModel):
    meeting_id: str
    chunk_count: int


class QueryRequest(BaseModel):
    """Request body for the /api/query endpoint.

    ``meeting_id`` is the meeting currently open in the client, if any; the
    query itself decides whether it is answered from that meeting or globally
    unless ``scope`` forces one.
    """

    question: str
    meeting_id: str | None = None
    scope: QueryScope | None = None
    query_id: str | None = None


class FallbackResponse(BaseModel):
    """Returned instead of a stream when the answer cannot be grounded."""

    fallback: bool = True
    reason: str


class CancelRequest(BaseModel):
    query_id: str | None = None


class CancelResponse(BaseModel):
    cancelled: int


class ProcessedResponse(BaseModel):
    meeting_id: str
    processed: bool


class QueueStatusResponse(BaseModel):
    pending: int
    processing: int
    completed: int
    failed: int
