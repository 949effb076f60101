from datetime import date
from unittest.mock import MagicMock

import psycopg2

from errors import ModelTransportError
from tests.conftest import FakeLLM, make_conn
from transcript_search import (
    TranscriptChunk,
    TranscriptSearch,
    date_floor_for,
    extract_person_name,
    filter_chunks_by_person,
    name_from_rows,
    vector_literal,
)


def _row(text, doc_id="d1", idx=0):
    return {
        "doc_id": doc_id, "chunk_index": idx, "source": "salesforce", "title": "Weekly sync",
        "text": text, "author": "otter", "meeting_date": date(2025, 10, 1),
        "embedding_distance": 0.12,
    }


def _chunk(text, idx=0):
    return TranscriptChunk.from_row(_row(text, idx=idx))


def test_embedding_failure_returns_empty():
    """A failed embedding never reaches the database."""
    factory = MagicMock()
    search = TranscriptSearch(FakeLLM(embedding=ModelTransportError("timeout")), conn_factory=factory)
    assert search.search("sarah pipeline") == []
    factory.assert_not_called()


def test_unexpected_embedding_error_returns_empty():
    search = TranscriptSearch(FakeLLM(embedding=RuntimeError("boom")), conn_factory=MagicMock())
    assert search.search("sarah") == []


def test_blank_query():
    factory = MagicMock()
    assert TranscriptSearch(FakeLLM(embedding=[0.1]), conn_factory=factory).search("  ") == []
    factory.assert_not_called()


def test_search_returns_chunks():
    conn, cur = make_conn(rows=[_row("Sarah closed the Acme deal")])
    factory = MagicMock(return_value=conn)
    search = TranscriptSearch(FakeLLM(embedding=[0.1, 0.25]), conn_factory=factory)

    chunks = search.search("sarah", limit=5, source_filter="salesforce", date_floor=date(2025, 9, 1))

    assert len(chunks) == 1
    timeout_sql, search_sql = (c[0][0] for c in cur.execute.call_args_list)
    assert timeout_sql.startswith("SET LOCAL statement_timeout")
    assert "FROM doc_chunks" in search_sql
    assert chunks[0].doc_id == "d1"
    assert chunks[0].meeting_date == date(2025, 10, 1)
    assert chunks[0].embedding_distance == 0.12
    params = cur.execute.call_args[0][1]
    assert params["vec"] == "[0.100000,0.250000]"
    assert params["source"] == "salesforce"
    assert params["date_floor"] == date(2025, 9, 1)
    assert params["limit"] == 5
    factory.assert_called_once_with(readonly=True)
    conn.close.assert_called_once()


def test_database_error_returns_empty():
    conn, _ = make_conn(execute_side_effect=psycopg2.OperationalError("server closed"))
    search = TranscriptSearch(FakeLLM(embedding=[0.1]), conn_factory=MagicMock(return_value=conn))
    assert search.search("sarah") == []


def test_vector_literal():
    assert vector_literal([1, 0.5]) == "[1.000000,0.500000]"


def test_date_floor_for():
    assert date_floor_for(30, today=date(2025, 10, 31)) == date(2025, 10, 1)
    assert date_floor_for(None) is None


def test_extract_person_name():
    assert extract_person_name("How is Sarah doing in October?") == "Sarah"
    assert extract_person_name("Show me Brent Smith deals") == "Brent Smith"
    assert extract_person_name("top 5 reps by revenue") is None


def test_name_from_rows():
    assert name_from_rows([{"sales_rep": "Ana", "total": 1}]) == "Ana"
    assert name_from_rows([{"industry": "Tech"}]) is None
    assert name_from_rows([]) is None


def test_filter_by_first_name():
    chunks = [_chunk("Brent talked pricing", 0), _chunk("sarah walked through the pipeline", 1)]
    out = filter_chunks_by_person(chunks, "Sarah Lee")
    assert [c.chunk_index for c in out] == [1]


def test_filter_falls_back_to_first_three():
    chunks = [_chunk(f"note {i}", i) for i in range(5)]
    out = filter_chunks_by_person(chunks, "Nobody")
    assert [c.chunk_index for c in out] == [0, 1, 2]


def test_filter_without_name_keeps_all():
    chunks = [_chunk("a"), _chunk("b", 1)]
    assert filter_chunks_by_person(chunks, None) == chunks


def test_connection_setup_error_returns_empty():
    """Non-driver failures (bad PG_PORT, say) degrade the same way."""
    factory = MagicMock(side_effect=ValueError("invalid literal for int() with base 10: 'abc'"))
    search = TranscriptSearch(FakeLLM(embedding=[0.1]), conn_factory=factory)
    assert search.search("sarah") == []


def test_bad_row_returns_empty():
    row = _row("Sarah on renewals")
    row["chunk_index"] = "first"
    conn, _ = make_conn(rows=[row])
    search = TranscriptSearch(FakeLLM(embedding=[0.1]), conn_factory=MagicMock(return_value=conn))
    assert search.search("sarah") == []
