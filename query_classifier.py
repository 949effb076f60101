# query_classifier.py
import re
from typing import Iterable

# Advice-seeking phrasing. Any hit routes the utterance to the conversational branch.
CONVERSATIONAL_PATTERNS = (
    "how can i", "how do i", "what are best practices", "best practices", "help me",
    "advice", "recommend", "should i", "what should", "how to", "tips for", "guide me",
    "explain how", "why is", "why are", "how can we", "what training", "how should i",
)

# Entity names, metrics and comparison words that signal a request for facts.
DATA_KEYWORDS = (
    "show", "list", "find", "get", "top", "most", "least", "how many", "count", "features",
    "opportunities", "accounts", "leads", "cases", "users", "sales", "revenue", "pipeline",
    "deals", "wins", "closed", "open", "conversion", "performance", "stats", "metrics",
    "reps", "customers", "prospects", "support", "tickets", "activity", "month", "year",
    "trend", "distribution", "by", "compare", "vs", "versus", "which", "what", "segment",
    "average time", "stuck in", "spend in", "renewals",
)

# too short to prefix-match safely
FULL_WORD_KEYWORDS = ("by", "vs", "get")


def _compile(words: Iterable[str], full_words: Iterable[str] = ()) -> re.Pattern:
    # prefix match so "monthly", "showing" and "recommendations" still hit;
    # short words in full_words must stand alone ("by" is not "nearby" or "bypass")
    full = set(full_words)
    parts = [re.escape(w) + (r"\b" if w in full else "")
             for w in sorted(words, key=len, reverse=True)]
    alternation = "|".join(parts)
    return re.compile(rf"\b(?:{alternation})", re.IGNORECASE)


_CONVERSATIONAL_RE = _compile(CONVERSATIONAL_PATTERNS)
_DATA_RE = _compile(DATA_KEYWORDS, full_words=FULL_WORD_KEYWORDS)


def is_data_query(text: str) -> bool:
    """
    Lexical routing only. Advice patterns win over data keywords; with neither
    present the utterance is treated as conversation.
    """
    if not text or not text.strip():
        return False
    if _CONVERSATIONAL_RE.search(text):
        return False
    return bool(_DATA_RE.search(text))
