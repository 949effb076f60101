# transcript_search.py
"""
Optional meeting-transcript grounding for the narrative stage.

Nothing in here is allowed to fail a turn: an embedding or database error
yields an empty list and a log line.
"""
import logging
import re
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

import psycopg2
import psycopg2.extras as extras

from db import get_conn
from errors import ModelTransportError
from llm_client import LLMClient
from sql_guard import STATEMENT_TIMEOUT_MS

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 15
FALLBACK_CHUNKS = 3

SEARCH_SQL = """
    SELECT doc_uid AS doc_id,
           chunk_idx AS chunk_index,
           source, title, text, author, meeting_date,
           (embedding <=> %(vec)s::vector) AS embedding_distance
    FROM doc_chunks
    WHERE (%(source)s IS NULL OR source = %(source)s)
      AND (%(date_floor)s::date IS NULL OR meeting_date >= %(date_floor)s::date)
    ORDER BY embedding <=> %(vec)s::vector
    LIMIT %(limit)s
"""

# capitalized words that show up in questions but are not people
NAME_STOPLIST = {
    "Salesforce", "Otter", "Legacy", "Pioneer", "Q1", "Q2", "Q3", "Q4",
    "January", "February", "March", "April", "May", "June", "July", "August",
    "September", "October", "November", "December",
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
    "How", "What", "Where", "When", "Which", "Who", "Why", "Show", "List", "Find",
    "Give", "Tell", "Compare", "Top", "Best", "Can", "Does", "Did", "Is", "Are",
    "The", "My", "Our", "Their", "Last", "This", "Next", "All", "Total", "I",
}
_NAME_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?\b")


@dataclass(frozen=True)
class TranscriptChunk:
    doc_id: str
    chunk_index: int
    source: Optional[str]
    title: Optional[str]
    text: str
    author: Optional[str]
    meeting_date: Optional[date]
    embedding_distance: Optional[float]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TranscriptChunk":
        md = row.get("meeting_date")
        if isinstance(md, datetime):
            md = md.date()
        dist = row.get("embedding_distance")
        return cls(
            doc_id=str(row.get("doc_id")),
            chunk_index=int(row.get("chunk_index") or 0),
            source=row.get("source"),
            title=row.get("title"),
            text=row.get("text") or "",
            author=row.get("author"),
            meeting_date=md,
            embedding_distance=float(dist) if dist is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def vector_literal(vec: List[float]) -> str:
    # Return ONLY the bracketed vector. Psycopg2 will add the single quotes;
    # the SQL itself will add the ::vector cast.
    return "[" + ",".join(f"{x:.6f}" for x in vec) + "]"


class TranscriptSearch:
    def __init__(self, llm: LLMClient, conn_factory: Callable = get_conn):
        self.llm = llm
        self.conn_factory = conn_factory

    def embed_query(self, text: str) -> Optional[List[float]]:
        try:
            return self.llm.embed(text.strip())
        except ModelTransportError as e:
            logger.error("transcript embedding failed: %s", e)
        except Exception:
            logger.exception("unexpected embedding failure")
        return None

    def search(self, query_text: str, limit: int = DEFAULT_LIMIT,
               source_filter: Optional[str] = None,
               date_floor: Optional[date] = None) -> List[TranscriptChunk]:
        if not query_text or not query_text.strip():
            return []

        vec = self.embed_query(query_text)
        if not vec:
            return []

        params = {
            "vec": vector_literal(vec),
            "source": source_filter,
            "date_floor": date_floor,
            "limit": int(limit),
        }
        try:
            conn = self.conn_factory(readonly=True)
            try:
                with conn:
                    with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                        cur.execute(f"SET LOCAL statement_timeout = {int(STATEMENT_TIMEOUT_MS)};")
                        cur.execute(SEARCH_SQL, params)
                        rows = cur.fetchall()
            finally:
                conn.close()
            chunks = [TranscriptChunk.from_row(dict(r)) for r in rows]
        except psycopg2.Error as e:
            logger.error("transcript search failed: %s", e)
            return []
        except Exception:
            logger.exception("unexpected transcript search failure")
            return []

        logger.info("transcript search '%s' -> %d chunks", query_text, len(chunks))
        return chunks


def date_floor_for(days: Optional[int], today: Optional[date] = None) -> Optional[date]:
    if days is None:
        return None
    return (today or date.today()) - timedelta(days=days)


def extract_person_name(text: str) -> Optional[str]:
    """
    Best-effort: first capitalized word or word pair that is not on the
    stoplist. Misses lowercase names and will happily pick up company names.
    """
    for candidate in _NAME_RE.findall(text or ""):
        words = [w for w in candidate.split() if w not in NAME_STOPLIST]
        if words:
            return " ".join(words)
    return None


def name_from_rows(rows: Sequence[Dict[str, Any]]) -> Optional[str]:
    if not rows or not isinstance(rows[0], dict):
        return None
    first = rows[0]
    for col in ("name", "sales_rep_name", "sales_rep", "rep_name"):
        if first.get(col):
            return str(first[col])
    return None


def name_variations(name: str) -> List[str]:
    parts = name.lower().split()
    out: List[str] = []
    for v in [name.lower()] + ([parts[0], parts[-1]] if parts else []):
        if v and v not in out:
            out.append(v)
    return out


def filter_chunks_by_person(chunks: Sequence[TranscriptChunk], name: Optional[str]) -> List[TranscriptChunk]:
    if not name:
        return list(chunks)
    variations = name_variations(name)
    matched = [c for c in chunks if any(v in c.text.lower() for v in variations)]
    logger.info("transcript filter for %r: %d -> %d chunks", name, len(chunks), len(matched))
    # partial relevance beats no context
    return matched if matched else list(chunks[:FALLBACK_CHUNKS])
