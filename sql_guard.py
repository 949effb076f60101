# sql_guard.py
"""
Read-only gate in front of the mirrored Salesforce tables.

The checks are a textual blocklist, not a SQL parser: they catch the obvious
destructive shapes a model might emit but cannot prove a statement harmless.
The read-only session and statement timeout below are the second layer.
"""
import logging
import os
import re
from decimal import Decimal
from datetime import datetime, date, timedelta
from typing import Any, Callable, Dict, List, Optional

import psycopg2
import psycopg2.extras as extras
from dotenv import load_dotenv

from db import get_conn
from errors import ExecutionError, RejectedQuery

load_dotenv()
logger = logging.getLogger(__name__)

STATEMENT_TIMEOUT_MS = int(os.getenv("SQL_STATEMENT_TIMEOUT_MS", "15000"))

ALLOWED_PREFIX = re.compile(r"^(select|with)\b")
DESTRUCTIVE_VERBS = ("drop", "delete", "insert", "alter", "create", "truncate")
PROHIBITED_PATTERNS = (
    re.compile(r"\b(?:%s)\s+" % "|".join(DESTRUCTIVE_VERBS), re.IGNORECASE),
    re.compile(r";\s*(?:%s)\b" % "|".join(DESTRUCTIVE_VERBS), re.IGNORECASE),
    re.compile(r"\bupdate\s+[\w.\"]+\s+set\b", re.IGNORECASE),
)
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")


def _strip_literals(sql: str) -> str:
    # a ';' inside 'O''Brien; Co' is data, not a statement separator
    return _STRING_LITERAL_RE.sub("''", sql)


def validate_sql_safe(sql: str) -> str:
    """
    Accept or reject verbatim; never rewrites the statement beyond trimming
    whitespace and one trailing semicolon. Returns the statement to execute.
    """
    body = (sql or "").strip()
    if body.endswith(";"):
        body = body[:-1].rstrip()
    if not body:
        raise RejectedQuery("Empty statement.", sql)

    if not ALLOWED_PREFIX.match(body.lower()):
        raise RejectedQuery("Only SELECT statements are allowed.", sql)

    for pattern in PROHIBITED_PATTERNS:
        if pattern.search(body):
            raise RejectedQuery("Query contains prohibited SQL commands.", sql)

    if ";" in _strip_literals(body):
        raise RejectedQuery("Only a single statement is allowed.", sql)

    return body


def safe_json(obj):
    if isinstance(obj, list): return [safe_json(x) for x in obj]
    if isinstance(obj, tuple): return tuple(safe_json(x) for x in obj)
    if isinstance(obj, dict): return {k: safe_json(v) for k, v in obj.items()}
    if isinstance(obj, Decimal): return float(obj)
    if isinstance(obj, (datetime, date)): return obj.isoformat()
    if isinstance(obj, timedelta): return str(obj)
    return obj


def run_sql(sql: str, params=None, conn_factory: Callable = get_conn) -> List[Dict[str, Any]]:
    conn = conn_factory(readonly=True)
    try:
        with conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(f"SET LOCAL statement_timeout = {int(STATEMENT_TIMEOUT_MS)};")
                logger.debug("RUN_SQL: %s", sql)
                cur.execute(sql, params)
                if cur.description is None:
                    return []
                rows = [dict(r) for r in cur.fetchall()]
                logger.debug("ROWS: %d", len(rows))
                return rows
    finally:
        conn.close()


def execute_safe_query(sql: str, conn_factory: Optional[Callable] = None) -> List[Dict[str, Any]]:
    """
    Validate, then run one read-only round trip. An empty list is a valid
    result; failures raise RejectedQuery or ExecutionError.
    """
    try:
        statement = validate_sql_safe(sql)
    except RejectedQuery as e:
        logger.warning("rejected SQL (%s): %s", e.reason, sql)
        raise

    try:
        return run_sql(statement, conn_factory=conn_factory or get_conn)
    except psycopg2.Error as e:
        logger.error("SQL execution error: %s | SQL: %s", e, statement)
        raise ExecutionError("Query failed to execute.", sql=statement, cause=e) from e
