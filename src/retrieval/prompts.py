"""Prompt templates for meeting-scoped and cross-meeting answers."""

from __future__ import annotations

from src.pipeline_config import QueryIntent, QueryScope

INTENT_HINTS: dict[QueryIntent, str] = {
    QueryIntent.DECISION_RECALL: (
        "\nFOCUS: Look for decisions, agreements, conclusions, or what was settled."
    ),
    QueryIntent.SPEAKER_LOOKUP: (
        "\nFOCUS: Identify who said what. Attribute statements clearly to speakers."
    ),
    QueryIntent.ACTION_ITEMS: (
        "\nFOCUS: List action items, tasks, next steps, or assignments. "
        "Be specific about who and what."
    ),
    QueryIntent.SUMMARY: "\nFOCUS: Provide a brief overview of the key points. Keep it high-level.",
    QueryIntent.OPEN_QUESTION: "",
}

MEETING_RAG_PROMPT = """You are a helpful meeting assistant. Answer questions based ONLY on the provided meeting excerpt.

Rules:
- Be concise: 1-3 sentences for simple questions, more only if explicitly asked.
- Speak naturally, as if talking to a colleague.
- If the answer isn't in the excerpt, say it wasn't discussed as far as you can tell.
- If you're unsure, say so.
- Never guess or infer information that is not present.
- Never mention "context", "retrieval", "chunks", or other technical details.
- Use speaker labels to attribute statements when relevant.
{intent_hint}

MEETING EXCERPT:
{context}

USER QUESTION: {query}"""

GLOBAL_RAG_PROMPT = """You are a meeting memory assistant. Answer questions by searching across multiple meetings.

Rules:
- Say which meeting the information came from.
- Be concise: summarize across meetings, don't repeat everything.
- If it came up in several meetings, synthesize.
- If it was not found anywhere, say you couldn't find any discussion about it.
- If the match is weak, say so honestly.
- Never invent meetings or conversations.
- Never mention "database", "search", or "retrieval".
{intent_hint}

MEETING EXCERPTS:
{context}

USER QUESTION: {query}"""

NO_CONTEXT_FALLBACK = (
    "I didn't find anything about that in this meeting. "
    "Could you rephrase, or maybe it was discussed at a different point?"
)

NO_GLOBAL_CONTEXT_FALLBACK = (
    "I couldn't find any discussion about that across your meetings. "
    "It might have been in a meeting I don't have access to."
)


def build_rag_prompt(
    query: str,
    context: str,
    scope: QueryScope,
    intent: QueryIntent = QueryIntent.OPEN_QUESTION,
) -> str:
    """Fill the scope's template with the retrieved context and an intent hint."""
    template = MEETING_RAG_PROMPT if scope is QueryScope.MEETING else GLOBAL_RAG_PROMPT
    return template.format(
        intent_hint=INTENT_HINTS.get(intent, ""),
        context=context,
        query=query,
    )
