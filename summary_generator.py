# summary_generator.py
import json
import logging
import re
from decimal import Decimal
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from llm_client import LLMClient
from schema_reference import display_name, normalize_partition_key
from transcript_search import TranscriptChunk

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_EXCERPTS = 10
EXCERPT_CHARS = 600
APOLOGY = "I found the data but had trouble analyzing it. Please try rephrasing your question."

_SCI_RE = re.compile(r"^-?\d+(?:\.\d+)?[eE][+-]?\d+$")


def build_summary_system_prompt(partition_key: str) -> str:
    """
    Exec-brief narrative for a single data answer. Tone is deliberately warm
    and achievement-forward; structure is capped at three short paragraphs.
    """
    return (
        f"You are a performance analyst for the {display_name(partition_key)} Salesforce sales team.\n"
        "You will receive the user's ORIGINAL QUESTION, DATA FROM DATABASE (JSON rows) and optional\n"
        "RELEVANT MEETING CONTEXT excerpts. Answer the question from that material.\n\n"
        "WRITING STYLE:\n"
        "- Short, focused paragraphs (2-4 sentences each), separated by a blank line.\n"
        "- Maximum 3 paragraphs total. No numbered lists, no bullet points, no headings.\n"
        "- Use bold markdown **like this** for key figures and achievements.\n\n"
        "TONE:\n"
        "- Warm, encouraging and professional; lead with accomplishments.\n"
        "- Frame challenges as opportunities for growth, never as weaknesses.\n"
        "- End on a forward-looking note.\n\n"
        "STRUCTURE:\n"
        "Paragraph 1: key metrics and what they show (use **bold** for numbers).\n"
        "Paragraph 2: meeting insights and notable contributions, if meeting context was provided.\n"
        "Paragraph 3: growth opportunity or forward-looking statement (1-2 sentences).\n\n"
        "HARD RULES:\n"
        "- Use ONLY the data provided. NEVER invent numbers, names or meetings.\n"
        "- If data is incomplete, say so neutrally.\n"
        "- Format money with $ and commas.\n"
        "- No SQL, no tables, no 'Note:' sections."
    )


# floats at or above this print in exponent form even after rounding
FLOAT_REPR_LIMIT = 1e16


def _two_places(value: Union[Decimal, float]) -> Union[float, str]:
    if abs(value) >= FLOAT_REPR_LIMIT:
        return format(value, ".2f")
    return round(float(value), 2)


def _fixed_point(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (Decimal, float)):
        return _two_places(value)
    if isinstance(value, str) and _SCI_RE.match(value.strip()):
        return _two_places(Decimal(value.strip()))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def normalize_numbers(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{k: _fixed_point(v) for k, v in row.items()} for row in rows]


def build_summary_user_prompt(user_query: str,
                              rows: Sequence[Dict[str, Any]],
                              transcript_chunks: Sequence[TranscriptChunk] = ()) -> str:
    parts = ["ORIGINAL QUESTION:", user_query, ""]
    parts.append("DATA FROM DATABASE:")
    parts.append(json.dumps(normalize_numbers(rows), indent=2, ensure_ascii=False, default=str))
    parts.append("")

    if transcript_chunks:
        parts.append("RELEVANT MEETING CONTEXT:")
        for i, chunk in enumerate(transcript_chunks[:MAX_TRANSCRIPT_EXCERPTS], start=1):
            when = f" ({chunk.meeting_date})" if chunk.meeting_date else ""
            parts.append(f"Meeting {i}{when}:")
            parts.append(chunk.text[:EXCERPT_CHARS])
            parts.append("")
    else:
        parts.append("MEETING CONTEXT: No relevant meeting transcripts available.")
        parts.append("")

    parts.append("Answer the original question using the data and meeting context above.")
    return "\n".join(parts)


_NOTE_RE = re.compile(r"\n\s*\n?\s*Note:", re.IGNORECASE)
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[•\-*]\s+", re.MULTILINE)


def clean_narrative(text: Optional[str]) -> str:
    if not text:
        return ""
    cleaned = text.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
        cleaned = cleaned[1:-1].strip()

    cleaned = _NOTE_RE.split(cleaned, maxsplit=1)[0].strip()

    if _NUMBERED_RE.search(cleaned):
        logger.warning("narrative came back as a numbered list; flattening")
        cleaned = _NUMBERED_RE.sub("", cleaned)
        cleaned = re.sub(r"\n+", " ", cleaned)
    if _BULLET_RE.search(cleaned):
        logger.warning("narrative came back as a bullet list; flattening")
        cleaned = _BULLET_RE.sub("", cleaned)
        cleaned = re.sub(r"\n+", " ", cleaned)
    return cleaned.strip()


_ENTITY_WORDS = (
    (r"sales rep|\brep\b|owner", ("sales rep", "sales reps")),
    (r"account|customer", ("account", "accounts")),
    (r"opportunit|deal", ("opportunity", "opportunities")),
    (r"lead|prospect", ("lead", "leads")),
    (r"case|ticket", ("case", "cases")),
)


def fallback_summary(rows: Sequence[Dict[str, Any]], description: str = "") -> str:
    count = len(rows)
    noun = "result" if count == 1 else "results"
    low = (description or "").lower()
    for pattern, (one, many) in _ENTITY_WORDS:
        if re.search(pattern, low):
            noun = one if count == 1 else many
            break
    return f"Found {count} {noun}. {description}".strip()


def summarize(user_query: str,
              rows: Sequence[Dict[str, Any]],
              transcript_chunks: Sequence[TranscriptChunk],
              partition_key: str,
              llm: LLMClient,
              description: str = "") -> Optional[str]:
    """
    Narrative for rows that were already fetched. Returns None for an empty
    result; any model failure turns into a fixed apology so the data still
    reaches the user.
    """
    if not rows:
        return None
    try:
        key = normalize_partition_key(partition_key)
        raw = llm.complete(
            build_summary_system_prompt(key),
            build_summary_user_prompt(user_query, rows, transcript_chunks),
            llm.config.synthesis,
        )
        narrative = clean_narrative(raw)
        return narrative or fallback_summary(rows, description)
    except Exception:
        logger.exception("summary generation failed")
        return APOLOGY
