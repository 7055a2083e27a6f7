"""Pipeline configuration: query intent/scope enums and RetrievalOptions dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class QueryIntent(StrEnum):
    """Coarse category of a user query, used to bias retrieval and answer shaping."""

    DECISION_RECALL = "decision_recall"
    SPEAKER_LOOKUP = "speaker_lookup"
    ACTION_ITEMS = "action_items"
    SUMMARY = "summary"
    OPEN_QUESTION = "open_question"


class QueryScope(StrEnum):
    """Whether a query is answered from one meeting or searched across all of them."""

    MEETING = "meeting"
    GLOBAL = "global"


@dataclass(frozen=True)
class RetrievalOptions:
    """Immutable knobs for a single retrieval call.

    Defaults mirror the production behaviour: a 1500-token context budget,
    eight chunks, and a 30% recency share of the final score.
    """

    meeting_id: str | None = None
    max_tokens: int = 1500
    top_k: int = 8
    recency_weight: float = 0.3
    intent: QueryIntent | None = None
