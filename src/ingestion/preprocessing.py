"""Transcript cleaning: merge fragments, drop fillers, tag semantic markers."""

from __future__ import annotations

import math
import re

from src.ingestion.models import CleanedSegment, RawSegment

# Same-speaker fragments closer than this are merged into one segment
MERGE_GAP_MS = 5000

# Segments with fewer cleaned words than this are dropped
MIN_WORDS = 3

FILLERS: frozenset[str] = frozenset(
    {
        "uh", "um", "ah", "hmm", "hm", "er", "erm",
        "like", "you know", "i mean", "basically", "actually",
        "so", "well", "anyway", "anyways",
    }
)

ACKNOWLEDGEMENTS: frozenset[str] = frozenset(
    {
        "okay", "ok", "yeah", "yes", "right", "sure", "got it",
        "gotcha", "uh-huh", "uh huh", "mm-hmm", "mm hmm", "mhm",
        "cool", "great", "nice", "perfect", "alright", "all right",
    }
)

_QUESTION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\?$"),
    re.compile(
        r"^(what|who|when|where|why|how|can|could|would|should|is|are|do|does|did)\b",
        re.IGNORECASE,
    ),
]

_DECISION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"\b(decided|agreed|confirmed|approved|let's go with|we'll do|going with)\b",
        re.IGNORECASE,
    ),
]

_ACTION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(
        r"\b(will|going to|need to|should|must|action item|todo|follow up|follow-up)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(by|before|deadline|next week|tomorrow|end of day|eod)\b", re.IGNORECASE),
]

_SPEAKER_ALIASES: dict[str, str] = {
    "interviewer": "Speaker",
    "speaker": "Speaker",
    "user": "You",
    "me": "You",
    "assistant": "Assistant",
}

_REPEATED_WORD_RE = re.compile(r"\b(\w+)(\s+\1)+\b", re.IGNORECASE)
_PUNCT_CHARS_RE = re.compile(r"[.,!?;:]")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?;:])")
_PUNCT_RUN_RE = re.compile(r"([.,!?;:])+")
_WHITESPACE_RE = re.compile(r"\s+")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters of English text."""
    return math.ceil(len(text) / 4)


def clean_text(text: str) -> str:
    """Collapse stutters, drop fillers/acknowledgements and tidy punctuation."""
    result = _REPEATED_WORD_RE.sub(r"\1", text.strip())

    kept = [
        word
        for word in result.split()
        if _PUNCT_CHARS_RE.sub("", word.lower()) not in FILLERS
        and _PUNCT_CHARS_RE.sub("", word.lower()) not in ACKNOWLEDGEMENTS
    ]
    result = " ".join(kept).strip()

    result = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", result)
    result = _PUNCT_RUN_RE.sub(r"\1", result)
    return _WHITESPACE_RE.sub(" ", result)


def normalize_speaker(speaker: str) -> str:
    """Map generic role labels onto canonical names; keep real names unchanged."""
    return _SPEAKER_ALIASES.get(speaker.lower(), speaker)


def detect_question(text: str) -> bool:
    return any(p.search(text) for p in _QUESTION_PATTERNS)


def detect_decision(text: str) -> bool:
    return any(p.search(text) for p in _DECISION_PATTERNS)


def detect_action_item(text: str) -> bool:
    return any(p.search(text) for p in _ACTION_PATTERNS)


def merge_consecutive_segments(segments: list[RawSegment]) -> list[CleanedSegment]:
    """Merge same-speaker fragments separated by less than ``MERGE_GAP_MS``.

    Real-time transcription emits many short fragments per utterance; the gap
    is measured from the timestamp of the last fragment already merged.
    """
    if not segments:
        return []

    first = segments[0]
    current = CleanedSegment(
        speaker=first.speaker,
        text=first.text,
        start_ms=first.timestamp_ms,
        end_ms=first.timestamp_ms,
    )
    merged: list[CleanedSegment] = []

    for seg in segments[1:]:
        gap = seg.timestamp_ms - current.end_ms
        if seg.speaker == current.speaker and gap < MERGE_GAP_MS:
            current.text = f"{current.text} {seg.text}"
            current.end_ms = seg.timestamp_ms
        else:
            merged.append(current)
            current = CleanedSegment(
                speaker=seg.speaker,
                text=seg.text,
                start_ms=seg.timestamp_ms,
                end_ms=seg.timestamp_ms,
            )

    merged.append(current)
    return merged


def preprocess_transcript(segments: list[RawSegment]) -> list[CleanedSegment]:
    """Turn raw transcription output into cleaned, annotated segments.

    Args:
        segments: Raw segments in transcript order.

    Returns:
        Cleaned segments; empty when nothing meaningful survives cleaning.
    """
    cleaned: list[CleanedSegment] = []

    for seg in merge_consecutive_segments(segments):
        text = clean_text(seg.text or "")
        if len(text.split()) < MIN_WORDS:
            continue

        cleaned.append(
            CleanedSegment(
                speaker=normalize_speaker(seg.speaker or ""),
                text=text,
                start_ms=seg.start_ms,
                end_ms=seg.end_ms,
                is_question=detect_question(text),
                is_decision=detect_decision(text),
                is_action_item=detect_action_item(text),
            )
        )

    return cleaned
