from unittest.mock import patch

import psycopg2
import pytest

from schema_introspect import database_status, get_live_schema, schema_drift
from schema_reference import (
    PARTITION_KEYS,
    SCHEMA_VERSION,
    TABLE_COLUMNS,
    describe_schema,
    display_name,
    normalize_partition_key,
)
from tests.conftest import make_conn


def test_normalize_partition_key():
    assert normalize_partition_key(None) == "legacy"
    assert normalize_partition_key(" PIONEER ") == "pioneer"
    with pytest.raises(ValueError):
        normalize_partition_key("staging")


def test_display_name():
    assert [display_name(k) for k in PARTITION_KEYS] == ["Legacy", "Pioneer"]


def test_describe_schema():
    text = describe_schema("pioneer")
    assert SCHEMA_VERSION in text
    assert "Current app_type: pioneer" in text
    for table in TABLE_COLUMNS:
        assert table in text


def test_schema_drift():
    live = {t: list(cols) for t, cols in TABLE_COLUMNS.items()}
    assert schema_drift(live) == {}
    live["cases"].remove("priority")
    del live["leads"]
    drift = schema_drift(live)
    assert drift["cases"] == ["priority"]
    assert drift["leads"] == TABLE_COLUMNS["leads"]


@patch("schema_introspect.get_conn")
def test_database_status_connected(mock_get_conn):
    conn, cur = make_conn()
    mock_get_conn.return_value = conn
    assert database_status() == "connected"
    cur.execute.assert_called_once_with("SELECT 1")
    conn.close.assert_called_once()


@patch("schema_introspect.get_conn")
def test_database_status_disconnected(mock_get_conn):
    mock_get_conn.side_effect = psycopg2.OperationalError("could not connect")
    assert database_status() == "disconnected"


@patch("schema_introspect.get_conn")
def test_live_schema_closes_connection(mock_get_conn):
    conn, cur = make_conn(rows=[("cases", "priority"), ("cases", "status"), ("users", "name")])
    mock_get_conn.return_value = conn

    assert get_live_schema() == {"cases": ["priority", "status"], "users": ["name"]}
    mock_get_conn.assert_called_once_with(readonly=True)
    conn.close.assert_called_once()


@patch("schema_introspect.get_conn")
def test_connection_closed_when_query_fails(mock_get_conn):
    conn, _ = make_conn(execute_side_effect=psycopg2.OperationalError("terminated"))
    mock_get_conn.return_value = conn
    assert database_status() == "disconnected"
    conn.close.assert_called_once()
