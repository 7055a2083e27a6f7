"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from src.rag_manager import RAGManager


@lru_cache(maxsize=1)
def get_rag_manager() -> RAGManager:
    """Return the process-wide RAGManager, built from settings on first use."""
    return RAGManager.from_settings()
