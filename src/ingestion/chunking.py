"""Turn-based chunking of cleaned transcript segments."""

from __future__ import annotations

from src.ingestion.models import Chunk, CleanedSegment
from src.ingestion.preprocessing import estimate_tokens

MAX_CHUNK_TOKENS = 400


def _join(segments: list[CleanedSegment]) -> str:
    return " ".join(s.text for s in segments)


def _build_chunk(meeting_id: str, index: int, segments: list[CleanedSegment]) -> Chunk:
    text = _join(segments)
    return Chunk(
        meeting_id=meeting_id,
        chunk_index=index,
        speaker=segments[0].speaker,
        start_ms=segments[0].start_ms,
        end_ms=segments[-1].end_ms,
        text=text,
        token_count=estimate_tokens(text),
    )


def chunk_transcript(
    meeting_id: str,
    segments: list[CleanedSegment],
    max_tokens: int = MAX_CHUNK_TOKENS,
) -> list[Chunk]:
    """Group consecutive segments into speaker-coherent chunks.

    A new chunk starts when the speaker changes or when appending the next
    segment would push the joined text past *max_tokens*. A single segment
    larger than the maximum becomes its own chunk and is never split.

    Token counts use :func:`estimate_tokens` on the joined chunk text, so
    boundaries are deterministic for a given input.

    Args:
        meeting_id: Meeting the chunks belong to.
        segments: Cleaned segments in transcript order.
        max_tokens: Hard per-chunk ceiling.

    Returns:
        Chunks with ``chunk_index`` values ``0..N-1``.
    """
    chunks: list[Chunk] = []
    current: list[CleanedSegment] = []

    for seg in segments:
        if current:
            speaker_changed = seg.speaker != current[0].speaker
            over_budget = estimate_tokens(f"{_join(current)} {seg.text}") > max_tokens
            if speaker_changed or over_budget:
                chunks.append(_build_chunk(meeting_id, len(chunks), current))
                current = []

        current.append(seg)

        # Oversized lone segment: emit as-is
        if len(current) == 1 and estimate_tokens(seg.text) > max_tokens:
            chunks.append(_build_chunk(meeting_id, len(chunks), current))
            current = []

    if current:
        chunks.append(_build_chunk(meeting_id, len(chunks), current))

    return chunks


def format_chunk_for_context(chunk: Chunk) -> str:
    """Render a chunk as ``[m:ss] Speaker: text`` for prompt context."""
    start_ms = int(chunk.start_ms)
    minutes = start_ms // 60000
    seconds = (start_ms % 60000) // 1000
    return f"[{minutes}:{seconds:02d}] {chunk.speaker}: {chunk.text}"
