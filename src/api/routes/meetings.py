"""Meeting endpoints: process, reprocess, inspect and delete RAG data."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response

from src.api.dependencies import get_rag_manager
from src.api.models import (
    ProcessedResponse,
    ProcessMeetingRequest,
    ProcessMeetingResponse,
    ReprocessMeetingRequest,
)
from src.rag_manager import RAGManager

router = APIRouter()

Manager = Annotated[RAGManager, Depends(get_rag_manager)]


@router.post("/api/meetings/{meeting_id}/process", response_model=ProcessMeetingResponse)
async def process_meeting(
    meeting_id: str, request: ProcessMeetingRequest, manager: Manager
) -> ProcessMeetingResponse:
    """Chunk a finished meeting and queue its embeddings.

    Returns as soon as the chunks are stored; embeddings are generated in
    the background (see GET /api/embeddings/queue).
    """
    chunk_count = await manager.process_meeting(
        meeting_id,
        [segment.to_raw() for segment in request.transcript],
        request.summary,
    )
    return ProcessMeetingResponse(meeting_id=meeting_id, chunk_count=chunk_count)


@router.post("/api/meetings/{meeting_id}/reprocess", response_model=ProcessMeetingResponse)
async def reprocess_meeting(
    meeting_id: str,
    manager: Manager,
    request: ReprocessMeetingRequest | None = None,
) -> ProcessMeetingResponse:
    """Rebuild all RAG data for a meeting from its (stored or supplied) transcript."""
    transcript = None
    summary = None
    if request is not None:
        summary = request.summary
        if request.transcript is not None:
            transcript = [segment.to_raw() for segment in request.transcript]

    if transcript is None and manager.transcripts.get(meeting_id) is None:
        raise HTTPException(status_code=404, detail="Meeting not found")

    chunk_count = await manager.reprocess_meeting(meeting_id, transcript, summary)
    return ProcessMeetingResponse(meeting_id=meeting_id, chunk_count=chunk_count)


@router.get("/api/meetings/{meeting_id}/processed", response_model=ProcessedResponse)
async def meeting_processed(meeting_id: str, manager: Manager) -> ProcessedResponse:
    """Whether at least one chunk of the meeting has an embedding."""
    return ProcessedResponse(
        meeting_id=meeting_id, processed=manager.is_meeting_processed(meeting_id)
    )


@router.delete("/api/meetings/{meeting_id}", status_code=204)
async def delete_meeting(meeting_id: str, manager: Manager) -> Response:
    """Delete a meeting's chunks, summary, queue rows and stored transcript.

    Returns 204 No Content on success, 404 if nothing is stored for the meeting.
    """
    if not manager.has_meeting_data(meeting_id):
        raise HTTPException(status_code=404, detail="Meeting not found")

    manager.delete_meeting_data(meeting_id)
    return Response(status_code=204)
