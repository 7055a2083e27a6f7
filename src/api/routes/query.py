"""Query endpoints: stream grounded answers and cancel in-flight streams."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Annotated

from anthropic import APIError
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from src.api.dependencies import get_rag_manager
from src.api.models import CancelRequest, CancelResponse, FallbackResponse, QueryRequest
from src.pipeline_config import QueryScope
from src.rag_manager import NoGroundingError, RAGManager

logger = logging.getLogger(__name__)

router = APIRouter()

# Cancel signals of streams that are still being sent, keyed by query id
_active_queries: dict[str, asyncio.Event] = {}


def _open_stream(
    manager: RAGManager, request: QueryRequest, cancel_event: asyncio.Event
) -> AsyncIterator[str]:
    if request.scope is QueryScope.GLOBAL:
        return manager.query_global(request.question, cancel_event)
    if request.scope is QueryScope.MEETING:
        if not request.meeting_id:
            raise HTTPException(status_code=422, detail="meeting scope requires meeting_id")
        return manager.query_meeting(request.meeting_id, request.question, cancel_event)
    return manager.query(request.question, request.meeting_id, cancel_event)


@router.post("/api/query", response_model=None)
async def query(
    request: QueryRequest,
    manager: Annotated[RAGManager, Depends(get_rag_manager)],
) -> StreamingResponse | FallbackResponse:
    """Stream an answer as plain text chunks.

    When the answer cannot be grounded in stored transcripts the endpoint
    returns ``{"fallback": true, "reason": <code>}`` instead, so the client
    can answer from its live transcript window.
    """
    if not manager.is_ready():
        return FallbackResponse(reason="RAG_NOT_READY")

    query_id = request.query_id or uuid.uuid4().hex
    if query_id in _active_queries:
        raise HTTPException(status_code=409, detail=f"Query {query_id} is already active")

    cancel_event = asyncio.Event()
    stream = _open_stream(manager, request, cancel_event)
    _active_queries[query_id] = cancel_event

    # Pull the first piece eagerly: grounding failures surface before any
    # response bytes are sent.
    first: str | None = None
    try:
        first = await anext(stream, "")
    except NoGroundingError as exc:
        logger.info("Query %s fell back: %s", query_id, exc.code)
        return FallbackResponse(reason=exc.code)
    except APIError as exc:
        logger.warning("Generation failed for query %s: %s", query_id, exc.message)
        raise HTTPException(status_code=503, detail=f"LLM unavailable: {exc.message}") from exc
    finally:
        if first is None:
            _active_queries.pop(query_id, None)

    async def body() -> AsyncIterator[str]:
        try:
            if first:
                yield first
            async for text in stream:
                yield text
        except APIError:
            # Headers are already sent; the client sees a truncated answer
            logger.exception("Generation failed mid-stream for query %s", query_id)
        finally:
            _active_queries.pop(query_id, None)

    return StreamingResponse(
        body(),
        media_type="text/plain; charset=utf-8",
        headers={"X-Query-Id": query_id},
    )


@router.post("/api/query/cancel", response_model=CancelResponse)
async def cancel_query(request: CancelRequest | None = None) -> CancelResponse:
    """Cancel one active stream by id, or every active stream when no id is given."""
    query_id = request.query_id if request else None

    if query_id is not None:
        event = _active_queries.get(query_id)
        events = [event] if event is not None else []
    else:
        events = list(_active_queries.values())

    for event in events:
        event.set()
    return CancelResponse(cancelled=len(events))
