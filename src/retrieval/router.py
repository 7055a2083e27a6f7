"""Query router: classify question intent and meeting-vs-global scope.

Both classifiers are ordered rule tables evaluated top to bottom; the first
matching rule wins. Keeping the rules as data lets them be tested and swapped
without touching retrieval code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from src.pipeline_config import QueryIntent, QueryScope


@dataclass(frozen=True)
class IntentRule:
    """Maps a set of patterns onto an intent.

    With ``require_all`` the rule matches only when every pattern matches;
    otherwise any single pattern is enough.
    """

    intent: QueryIntent
    patterns: tuple[re.Pattern[str], ...]
    require_all: bool = False

    def matches(self, text: str) -> bool:
        hits = (p.search(text) for p in self.patterns)
        return all(hits) if self.require_all else any(hits)


@dataclass(frozen=True)
class ScopeRule:
    """Maps literal phrases onto a scope (substring match on the lower-cased query)."""

    scope: QueryScope
    phrases: tuple[str, ...]

    def matches(self, text: str) -> bool:
        return any(phrase in text for phrase in self.phrases)


INTENT_RULES: tuple[IntentRule, ...] = (
    IntentRule(
        QueryIntent.DECISION_RECALL,
        (
            re.compile(r"\b(decide|decision|agreed|conclusion|settled|determined|resolved)\b"),
            re.compile(r"what did we (decide|agree|conclude)"),
            re.compile(r"did we (decide|agree|settle)"),
        ),
    ),
    IntentRule(
        QueryIntent.SPEAKER_LOOKUP,
        (
            re.compile(r"\b(said|mentioned|told|asked|suggested|proposed|pointed out)\b"),
            re.compile(r"\b(he|she|they|\w+)\s+(said|mentioned|told|asked)"),
        ),
        require_all=True,
    ),
    IntentRule(
        QueryIntent.SPEAKER_LOOKUP,
        (
            re.compile(r"what did (\w+|he|she|they) say"),
            re.compile(r"who said"),
        ),
    ),
    IntentRule(
        QueryIntent.ACTION_ITEMS,
        (
            re.compile(r"\b(action|task|todo|to-do|follow[- ]?up|next step|assigned|deadline)\b"),
            re.compile(r"what (are|were) (my|the|our) (action|task|todo)"),
            re.compile(r"what (do i|should i|need to) do"),
        ),
    ),
    IntentRule(
        QueryIntent.SUMMARY,
        (
            re.compile(r"\b(summar\w*|overview|recap|highlights?|key points?)\b"),
            re.compile(r"^(summarize|recap|give me a summary)"),
        ),
    ),
)

# Meeting rules come first: they take precedence over global phrases.
SCOPE_RULES: tuple[ScopeRule, ...] = (
    ScopeRule(
        QueryScope.MEETING,
        (
            "this meeting",
            "this call",
            "just now",
            "earlier",
            "they said",
            "he said",
            "she said",
            "did they",
            "did he",
            "did she",
            "what did",
        ),
    ),
    ScopeRule(
        QueryScope.GLOBAL,
        (
            "all meetings",
            "any meeting",
            "ever discuss",
            "find",
            "search",
            "when did we",
            "have we ever",
            "last time",
        ),
    ),
)


def classify_intent(
    query: str, rules: tuple[IntentRule, ...] = INTENT_RULES
) -> QueryIntent:
    """Classify *query* into a coarse intent; falls back to ``open_question``."""
    lower = query.lower()
    for rule in rules:
        if rule.matches(lower):
            return rule.intent
    return QueryIntent.OPEN_QUESTION


def detect_scope(
    query: str,
    current_meeting_id: str | None = None,
    rules: tuple[ScopeRule, ...] = SCOPE_RULES,
) -> QueryScope:
    """Decide whether *query* targets the current meeting or all meetings.

    Without an explicit phrase, a known current meeting means ``meeting``
    scope; otherwise the query is searched globally.
    """
    lower = query.lower()
    for rule in rules:
        if rule.matches(lower):
            return rule.scope
    return QueryScope.MEETING if current_meeting_id else QueryScope.GLOBAL
