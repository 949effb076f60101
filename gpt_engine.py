import os, logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from dotenv import load_dotenv

from chart_formatter import format_results
from conversation_context import ConversationContext
from errors import ExecutionError, ModelTransportError, RejectedQuery, ResponseParseFailure
from llm_client import LLMClient, ModelConfig
from query_classifier import is_data_query
from response_parser import GeneratedQuerySpec, parse_or_raise
from schema_reference import normalize_partition_key
from sql_generator import generate_conversational_reply, generate_sql
from sql_guard import execute_safe_query, safe_json
from summary_generator import summarize
from time_window import DEFAULT_TIME_WINDOW_RULES, TimeWindowRule, extract_days_window
from transcript_search import (
    TranscriptChunk,
    TranscriptSearch,
    date_floor_for,
    extract_person_name,
    filter_chunks_by_person,
    name_from_rows,
)

load_dotenv()
logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Sorry, I couldn't process your query. Please try rephrasing it."
NO_SQL_MESSAGE = "Could not generate a valid query from your request."
NO_DATA_MESSAGE = "No data found matching your query."


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class QueryRequest:
    raw_text: str
    partition_key: str = "legacy"


def _failure(user_query: str, message: str, **extra: Any) -> Dict[str, Any]:
    out = {"success": False, "user_query": user_query, "error": message}
    out.update(extra)
    return out


class QueryEngine:
    """
    Core controller:
      1) classify the utterance (data query vs conversation)
      2) data: generate SQL -> parse -> safety gate + execute
      3) optional transcript grounding
      4) narrative summary over the fetched rows
      5) exactly one append to the caller's ConversationContext
    Nothing raises past answer(); every path returns a result dict.
    """

    def __init__(self,
                 llm: Optional[LLMClient] = None,
                 executor: Callable[[str], List[Dict[str, Any]]] = execute_safe_query,
                 transcripts: Optional[TranscriptSearch] = None,
                 time_rules: Sequence[TimeWindowRule] = DEFAULT_TIME_WINDOW_RULES,
                 transcripts_enabled: Optional[bool] = None,
                 transcript_source: Optional[str] = None,
                 transcript_limit: int = 15):
        self.llm = llm or LLMClient(ModelConfig.from_env())
        self.executor = executor
        self.transcripts_enabled = (_env_flag("TRANSCRIPTS_ENABLED", "true")
                                    if transcripts_enabled is None else transcripts_enabled)
        self.transcripts = transcripts or (TranscriptSearch(self.llm) if self.transcripts_enabled else None)
        self.time_rules = tuple(time_rules)
        self.transcript_source = transcript_source or os.getenv("TRANSCRIPT_SOURCE", "salesforce")
        self.transcript_limit = transcript_limit

    # =========================================================
    # Entry point
    # =========================================================
    def answer(self, request: QueryRequest, context: Optional[ConversationContext] = None) -> Dict[str, Any]:
        user_query = (request.raw_text or "").strip()
        if not user_query:
            return _failure(user_query, "Query cannot be empty.")
        try:
            partition_key = normalize_partition_key(request.partition_key)
        except ValueError as e:
            logger.warning("bad partition key: %s", e)
            return _failure(user_query, GENERIC_FAILURE)

        if context is not None:
            context.bind_partition(partition_key)
        logger.info("=== QUERY [%s] has_context=%s: %s", partition_key,
                    bool(context and context.has_context()), user_query)
        try:
            if not is_data_query(user_query):
                return self._answer_conversational(user_query, partition_key, context)
            return self._answer_data(user_query, partition_key, context)
        except Exception:
            logger.exception("unhandled failure answering %r", user_query)
            return _failure(user_query, GENERIC_FAILURE)

    # =========================================================
    # Conversational branch
    # =========================================================
    def _answer_conversational(self, user_query: str, partition_key: str,
                               context: Optional[ConversationContext],
                               reply: Optional[str] = None,
                               description: str = "") -> Dict[str, Any]:
        if not reply:
            try:
                reply = generate_conversational_reply(user_query, partition_key, context, self.llm)
            except ModelTransportError as e:
                logger.error("conversational reply failed: %s", e)
                return _failure(user_query, GENERIC_FAILURE)

        result = {
            "success": True,
            "user_query": user_query,
            "description": description or "AI Assistant Response",
            "chart_type": "text",
            "data": None,
            "summary": reply,
            "processing_info": self._processing_info(context, query_type="conversational"),
        }
        if context is not None:
            context.record_conversational_exchange(user_query, reply)
        return result

    # =========================================================
    # Data branch
    # =========================================================
    def _answer_data(self, user_query: str, partition_key: str,
                     context: Optional[ConversationContext]) -> Dict[str, Any]:
        try:
            raw = generate_sql(user_query, partition_key, context, self.llm, self.time_rules)
        except ModelTransportError as e:
            logger.error("SQL generation failed: %s", e)
            return _failure(user_query, GENERIC_FAILURE)

        try:
            spec = parse_or_raise(raw)
        except ResponseParseFailure:
            logger.error("No SQL generated from model response: %s", (raw or "")[:300])
            return _failure(user_query, NO_SQL_MESSAGE)

        if not spec.sql:
            logger.info("model declined to write SQL (%s); answering conversationally", spec.description)
            return self._answer_conversational(user_query, partition_key, context,
                                               reply=spec.summary, description=spec.description)

        logger.info("Description: %s", spec.description)
        logger.info("Generated SQL: %s", spec.sql)

        try:
            rows = self.executor(spec.sql)
        except RejectedQuery as e:
            logger.warning("safety gate rejected query (%s): %s", e.reason, spec.sql)
            return _failure(user_query, GENERIC_FAILURE)
        except ExecutionError as e:
            logger.error("execution failed: %s | SQL: %s", e.cause or e, e.sql or spec.sql)
            return _failure(user_query, GENERIC_FAILURE)

        if not rows:
            if context is not None:
                context.record_data_exchange(user_query, spec, NO_DATA_MESSAGE)
            return _failure(user_query, NO_DATA_MESSAGE,
                            description=spec.description, chart_type=spec.chart_type)

        chunks = self._fetch_transcripts(user_query, spec, rows)

        result = format_results(rows, spec, user_query)
        summary = summarize(user_query, rows, chunks, partition_key, self.llm, spec.description)
        if summary:
            result["summary"] = summary
        result["raw_results"] = safe_json(rows)
        result["sql_executed"] = spec.sql
        result["transcript_chunks_used"] = len(chunks)
        result["processing_info"] = self._processing_info(context, query_type="data_query",
                                                          transcripts_used=bool(chunks))

        if context is not None:
            context.record_data_exchange(user_query, spec, summary, rows=rows)
        return result

    def _fetch_transcripts(self, user_query: str, spec: GeneratedQuerySpec,
                           rows: List[Dict[str, Any]]) -> List[TranscriptChunk]:
        if not self.transcripts_enabled or self.transcripts is None:
            return []
        terms = spec.transcript_search_terms or user_query
        floor = date_floor_for(extract_days_window(user_query))
        chunks = self.transcripts.search(terms, limit=self.transcript_limit,
                                         source_filter=self.transcript_source, date_floor=floor)
        if not chunks:
            return []
        person = extract_person_name(user_query) or name_from_rows(rows)
        return filter_chunks_by_person(chunks, person)

    def _processing_info(self, context: Optional[ConversationContext], **extra: Any) -> Dict[str, Any]:
        info = {
            "model_used": self.llm.config.model,
            "context_used": bool(context and context.has_context()),
        }
        info.update(extra)
        return info


_default_engine: Optional[QueryEngine] = None


def answer_question(question: str,
                    partition_key: str = "legacy",
                    context: Optional[ConversationContext] = None) -> Dict[str, Any]:
    global _default_engine
    if _default_engine is None:
        _default_engine = QueryEngine()
    return _default_engine.answer(QueryRequest(raw_text=question, partition_key=partition_key), context)
