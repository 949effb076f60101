# schema_introspect.py
import logging
from typing import Dict, List, Optional

import psycopg2

from db import get_conn
from schema_reference import TABLE_COLUMNS

logger = logging.getLogger(__name__)


def get_live_schema() -> Dict[str, List[str]]:
    """
    Returns {'opportunities': [...cols], 'accounts': [...], ...} for the
    mirrored tables, straight from information_schema.
    """
    sql = """
    SELECT table_name, column_name
    FROM information_schema.columns
    WHERE table_schema = 'public' AND table_name = ANY(%s)
    ORDER BY table_name, ordinal_position;
    """
    out: Dict[str, List[str]] = {}
    conn = get_conn(readonly=True)
    try:
        with conn:
            with conn.cursor() as cur:
                cur.execute(sql, (list(TABLE_COLUMNS),))
                for t, c in cur.fetchall():
                    out.setdefault(t, []).append(c)
    finally:
        # the context manager only ends the transaction
        conn.close()
    return out


def schema_drift(live: Optional[Dict[str, List[str]]] = None) -> Dict[str, List[str]]:
    """Columns the prompt schema describes but the database does not have."""
    live = get_live_schema() if live is None else live
    missing: Dict[str, List[str]] = {}
    for table, cols in TABLE_COLUMNS.items():
        have = set(live.get(table, []))
        gone = [c for c in cols if c not in have]
        if gone:
            missing[table] = gone
    return missing


def database_status() -> str:
    try:
        conn = get_conn(readonly=True)
        try:
            with conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        finally:
            conn.close()
        return "connected"
    except psycopg2.Error as e:
        logger.error("database status check failed: %s", e)
        return "disconnected"
