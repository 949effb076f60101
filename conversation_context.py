# conversation_context.py
"""
Short-term memory for one chat session.

Holds the last few exchanges plus names pulled from the most recent result
set, and renders them into the next prompt so follow-ups like "what about her
pipeline?" can be resolved. Everything here is ephemeral: the session layer
owns the object, and "New topic" wipes it.
"""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from response_parser import GeneratedQuerySpec

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXCHANGES = int(os.getenv("CONTEXT_MAX_EXCHANGES", "5"))
MAX_MENTIONS_PER_CATEGORY = 5
RECAP_EXCHANGES = 3
RECAP_REPLY_CHARS = 150

DATA_QUERY = "data_query"
CONVERSATIONAL = "conversational"

# category -> candidate result columns, in priority order; first present column wins
ENTITY_COLUMN_PRIORITY: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("sales_reps", ("name", "sales_rep", "sales_rep_name", "rep_name", "owner_name")),
    ("accounts", ("account_name", "account")),
    ("opportunities", ("opportunity_name", "opportunity")),
    ("leads", ("lead_name", "company")),
    ("cases", ("case_number", "case_id")),
)

CATEGORY_LABELS = {
    "sales_reps": "Sales reps in focus",
    "accounts": "Accounts in focus",
    "opportunities": "Opportunities in focus",
    "leads": "Recent leads",
    "cases": "Recent cases",
}


@dataclass
class ConversationExchange:
    user_query: str
    model_reply: Union[str, GeneratedQuerySpec]
    kind: str
    timestamp: datetime = field(default_factory=datetime.now)
    result_summary: Optional[str] = None

    def reply_text(self) -> str:
        if isinstance(self.model_reply, GeneratedQuerySpec):
            return self.result_summary or self.model_reply.description or self.model_reply.sql
        return self.model_reply or ""


def _entity_values(rows: Sequence[Dict[str, Any]], category: str, column: str) -> List[str]:
    values: List[str] = []
    for row in rows:
        v = row.get(column)
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        text = f"Case {v}" if category == "cases" and column == "case_id" else str(v).strip()
        if text not in values:
            values.append(text)
    return values


class ConversationContext:
    def __init__(self, max_exchanges: int = DEFAULT_MAX_EXCHANGES,
                 max_mentions: int = MAX_MENTIONS_PER_CATEGORY):
        self.max_exchanges = max_exchanges
        self.max_mentions = max_mentions
        self.exchanges: List[ConversationExchange] = []
        self.entity_mentions: Dict[str, List[str]] = {c: [] for c, _ in ENTITY_COLUMN_PRIORITY}
        self.partition_key: Optional[str] = None

    # ---------- state ----------
    def has_context(self) -> bool:
        return bool(self.exchanges) or any(self.entity_mentions.values())

    def reset(self) -> None:
        self.exchanges = []
        self.entity_mentions = {c: [] for c, _ in ENTITY_COLUMN_PRIORITY}
        logger.info("conversation context reset")

    def bind_partition(self, partition_key: str) -> None:
        """Names from one app type must not leak into the other's prompts."""
        if self.partition_key is not None and self.partition_key != partition_key:
            logger.info("app type changed %s -> %s", self.partition_key, partition_key)
            self.reset()
        self.partition_key = partition_key

    def _append(self, exchange: ConversationExchange) -> None:
        self.exchanges.append(exchange)
        if len(self.exchanges) > self.max_exchanges:
            self.exchanges = self.exchanges[-self.max_exchanges:]

    # ---------- recording ----------
    def record_data_exchange(self, user_query: str, sql_spec: GeneratedQuerySpec,
                             result_summary: Optional[str] = None,
                             rows: Optional[Sequence[Dict[str, Any]]] = None) -> None:
        self._append(ConversationExchange(
            user_query=user_query,
            model_reply=sql_spec,
            kind=DATA_QUERY,
            result_summary=result_summary,
        ))
        if rows:
            self._update_entity_mentions(rows)

    def record_conversational_exchange(self, user_query: str, reply_text: str) -> None:
        self._append(ConversationExchange(
            user_query=user_query,
            model_reply=reply_text or "",
            kind=CONVERSATIONAL,
        ))

    def _update_entity_mentions(self, rows: Sequence[Dict[str, Any]]) -> None:
        columns = set(rows[0].keys()) if rows and isinstance(rows[0], dict) else set()
        for category, candidates in ENTITY_COLUMN_PRIORITY:
            column = next((c for c in candidates if c in columns), None)
            if column is None:
                continue
            fresh = _entity_values(rows, category, column)[: self.max_mentions]
            if not fresh:
                continue
            kept = [v for v in self.entity_mentions[category] if v not in fresh]
            # most recent query wins; oldest entries fall off the front
            merged = kept + fresh
            self.entity_mentions[category] = merged[-self.max_mentions:]

    # ---------- rendering ----------
    def build_prompt_fragment(self, partition_key: str = "legacy") -> str:
        if not self.has_context():
            return ""

        parts = ["=== CONVERSATION CONTEXT ===", f"App Type: {partition_key}", ""]

        if self.exchanges:
            parts.append("Recent conversation:")
            for ex in self.exchanges[-RECAP_EXCHANGES:]:
                reply = ex.reply_text()
                if len(reply) > RECAP_REPLY_CHARS:
                    reply = reply[:RECAP_REPLY_CHARS] + "..."
                parts.append(f"User: {ex.user_query}")
                parts.append(f"Assistant: {reply}")
                parts.append("")

        for category, _ in ENTITY_COLUMN_PRIORITY:
            names = self.entity_mentions.get(category) or []
            if names:
                parts.append(f"{CATEGORY_LABELS[category]}: {', '.join(names)}")

        parts.append("")
        parts.append("When the user uses pronouns (he/she/they/their/it), they refer to the entities listed above.")
        parts.append("=== END CONTEXT ===")
        return "\n".join(parts)

    # ---------- session round trip ----------
    def to_session_data(self) -> Dict[str, Any]:
        return {
            "max_exchanges": self.max_exchanges,
            "partition_key": self.partition_key,
            "exchanges": [
                {
                    "user_query": ex.user_query,
                    "model_reply": ex.model_reply.to_dict()
                    if isinstance(ex.model_reply, GeneratedQuerySpec) else ex.model_reply,
                    "kind": ex.kind,
                    "timestamp": ex.timestamp.isoformat(),
                    "result_summary": ex.result_summary,
                }
                for ex in self.exchanges
            ],
            "entity_mentions": {k: list(v) for k, v in self.entity_mentions.items()},
        }

    @classmethod
    def from_session_data(cls, data: Optional[Dict[str, Any]]) -> "ConversationContext":
        ctx = cls(max_exchanges=(data or {}).get("max_exchanges", DEFAULT_MAX_EXCHANGES))
        if not isinstance(data, dict):
            return ctx
        ctx.partition_key = data.get("partition_key")
        for raw in data.get("exchanges") or []:
            reply = raw.get("model_reply")
            if isinstance(reply, dict):
                reply = GeneratedQuerySpec(**reply)
            ctx._append(ConversationExchange(
                user_query=raw.get("user_query", ""),
                model_reply=reply or "",
                kind=raw.get("kind", CONVERSATIONAL),
                timestamp=datetime.fromisoformat(raw["timestamp"]) if raw.get("timestamp") else datetime.now(),
                result_summary=raw.get("result_summary"),
            ))
        for category, names in (data.get("entity_mentions") or {}).items():
            if category in ctx.entity_mentions:
                ctx.entity_mentions[category] = list(names)[-ctx.max_mentions:]
        logger.info("restored context: %d exchanges", len(ctx.exchanges))
        return ctx
