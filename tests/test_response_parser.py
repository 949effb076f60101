import json

import pytest

from errors import ResponseParseFailure
from response_parser import GeneratedQuerySpec, clean_response, extract_with_regex, parse, parse_or_raise


def test_parse_valid_json():
    raw = '{"sql": "SELECT name FROM users", "description": "All reps", "chart_type": "table"}'
    spec = parse(raw)
    assert isinstance(spec, GeneratedQuerySpec)
    assert spec.sql == "SELECT name FROM users"
    assert spec.description == "All reps"
    assert spec.chart_type == "table"
    assert spec.transcript_search_terms is None


def test_round_trip():
    """Serialising then parsing gives back an equal value."""
    spec = GeneratedQuerySpec(
        sql="SELECT u.name FROM users u WHERE u.name ILIKE '%o''brien%' AND u.app_type = 'legacy'",
        description='Reps named "O\'Brien"',
        chart_type="bar",
        transcript_search_terms="obrien",
    )
    assert parse(spec.to_json()) == spec


def test_to_json_is_single_line():
    spec = GeneratedQuerySpec(sql="SELECT 1", description="one", chart_type="table", summary="s")
    out = spec.to_json()
    assert "\n" not in out
    assert json.loads(out)["summary"] == "s"


def test_trailing_semicolon_and_chart_normalised():
    spec = parse('{"sql": "SELECT 1;", "description": "d", "chart_type": "Histogram"}')
    assert spec.sql == "SELECT 1"
    assert spec.chart_type == "table"


def test_uppercase_chart_type():
    assert parse('{"sql": "SELECT 1", "chart_type": "PIE"}').chart_type == "pie"


def test_newlines_inside_sql_string():
    raw = '{"sql": "SELECT name\nFROM users", "description": "x", "chart_type": "bar"}'
    spec = parse(raw)
    assert spec.sql == "SELECT name FROM users"
    assert spec.chart_type == "bar"


def test_code_fence():
    raw = '```json\n{"sql": "SELECT 1", "description": "d", "chart_type": "line"}\n```'
    assert parse(raw).chart_type == "line"


def test_prose_around_object():
    raw = 'Here is the query: {"sql": "SELECT 1", "description": "d", "chart_type": "bar"} Hope it helps.'
    assert parse(raw).sql == "SELECT 1"


def test_quoted_and_escaped_wrapper():
    raw = '"{\\"sql\\": \\"SELECT 1\\", \\"description\\": \\"d\\", \\"chart_type\\": \\"pie\\"}"'
    spec = parse(raw)
    assert spec.sql == "SELECT 1"
    assert spec.chart_type == "pie"


def test_broken_wrapper_recovers_fields():
    """An unescaped quote in one field must not cost the others."""
    raw = ('{"sql": "SELECT u.name FROM users u WHERE u.app_type = \'legacy\'", '
           '"description": "Reps list", "chart_type": "bar", "note": "uses "quoted" word"}')
    spec = parse(raw)
    assert spec.sql == "SELECT u.name FROM users u WHERE u.app_type = 'legacy'"
    assert spec.description == "Reps list"
    assert spec.chart_type == "bar"


def test_missing_brace_and_comma():
    raw = ('{"sql": "SELECT name FROM users WHERE name ILIKE \\"%x%\\"", '
           '"description": "d" "chart_type": "bar"')
    spec = parse(raw)
    assert spec.sql == 'SELECT name FROM users WHERE name ILIKE "%x%"'
    assert spec.description == "d"
    assert spec.chart_type == "bar"


def test_transcript_query_field():
    spec = parse('{"sql": "SELECT 1", "description": "d", "chart_type": "bar", "transcript_query": "sarah"')
    assert spec.transcript_search_terms == "sarah"


def test_nothing_recoverable():
    assert parse("I cannot help with that.") == {}
    assert parse("") == {}
    assert parse(None) == {}
    assert parse("[1, 2, 3]") == {}


def test_clean_response_collapses_whitespace():
    assert clean_response('  {"sql":   "SELECT\n  1"}  ') == '{"sql": "SELECT 1"}'


def test_extract_with_regex_only_present_keys():
    found = extract_with_regex('"sql": "SELECT 1", "description": "d"')
    assert found == {"sql": "SELECT 1", "description": "d"}


def test_parse_or_raise():
    assert parse_or_raise('{"sql": "SELECT 1"}').sql == "SELECT 1"
    declined = parse_or_raise('{"sql": "", "description": "cannot answer", "chart_type": "text"}')
    assert declined.sql == ""
    assert declined.description == "cannot answer"
    with pytest.raises(ResponseParseFailure):
        parse_or_raise("no json here")


def test_round_trip_with_untidy_fields():
    """Fields are normalised on construction, so the round trip holds for any spec."""
    spec = GeneratedQuerySpec(sql="SELECT 1; ;", description=" d", chart_type=" PIE ",
                              transcript_search_terms="  ", summary=" ok ")
    assert spec.sql == "SELECT 1"
    assert spec.description == "d"
    assert spec.chart_type == "pie"
    assert spec.transcript_search_terms is None
    assert spec.summary == "ok"
    assert parse(spec.to_json()) == spec
