"""Embedding queue endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from src.api.dependencies import get_rag_manager
from src.api.models import QueueStatusResponse
from src.rag_manager import RAGManager

router = APIRouter()


@router.get("/api/embeddings/queue", response_model=QueueStatusResponse)
async def queue_status(
    manager: Annotated[RAGManager, Depends(get_rag_manager)],
) -> QueueStatusResponse:
    return QueueStatusResponse(**manager.get_queue_status().as_dict())


@router.post("/api/embeddings/retry", response_model=QueueStatusResponse)
async def retry_embeddings(
    manager: Annotated[RAGManager, Depends(get_rag_manager)],
) -> QueueStatusResponse:
    """Drain pending embedding work now and report the resulting queue state.

    Items that already hit the retry cap stay failed.
    """
    if not manager.embedding_pipeline.is_ready():
        raise HTTPException(status_code=503, detail="Embedding service not configured")

    await manager.retry_pending_embeddings()
    return QueueStatusResponse(**manager.get_queue_status().as_dict())
