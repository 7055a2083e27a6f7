"""Tests for Settings, the intent/scope enums and RetrievalOptions."""

from __future__ import annotations

import dataclasses

import pytest

from src.config import Settings, get_settings
from src.pipeline_config import QueryIntent, QueryScope, RetrievalOptions

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestQueryIntent:
    def test_values(self) -> None:
        assert QueryIntent.DECISION_RECALL.value == "decision_recall"
        assert QueryIntent.SPEAKER_LOOKUP.value == "speaker_lookup"
        assert QueryIntent.ACTION_ITEMS.value == "action_items"
        assert QueryIntent.SUMMARY.value == "summary"
        assert QueryIntent.OPEN_QUESTION.value == "open_question"

    def test_from_string(self) -> None:
        assert QueryIntent("action_items") is QueryIntent.ACTION_ITEMS

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            QueryIntent("invalid")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(QueryIntent.SUMMARY, str)


class TestQueryScope:
    def test_values(self) -> None:
        assert QueryScope.MEETING.value == "meeting"
        assert QueryScope.GLOBAL.value == "global"

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            QueryScope("everywhere")


# ---------------------------------------------------------------------------
# RetrievalOptions tests
# ---------------------------------------------------------------------------


class TestRetrievalOptions:
    def test_defaults(self) -> None:
        opts = RetrievalOptions()
        assert opts.meeting_id is None
        assert opts.max_tokens == 1500
        assert opts.top_k == 8
        assert opts.recency_weight == 0.3
        assert opts.intent is None

    def test_immutable(self) -> None:
        opts = RetrievalOptions()
        with pytest.raises(dataclasses.FrozenInstanceError):
            opts.top_k = 3  # type: ignore[misc]

    def test_replace(self) -> None:
        opts = dataclasses.replace(RetrievalOptions(top_k=4), meeting_id="m1")
        assert opts.top_k == 4
        assert opts.meeting_id == "m1"


# ---------------------------------------------------------------------------
# Settings tests
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.embedding_model == "text-embedding-3-small"
        assert s.embedding_dimensions == 1536
        assert s.chunk_max_tokens == 400
        assert s.retrieval_max_tokens == 1500
        assert s.retrieval_top_k == 8
        assert s.retrieval_min_similarity == 0.25
        assert s.embedding_max_retries == 3

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RETRIEVAL_TOP_K", "12")
        monkeypatch.setenv("DATABASE_PATH", "/tmp/other.db")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.retrieval_top_k == 12
        assert s.database_path == "/tmp/other.db"

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
