from datetime import date
from decimal import Decimal

from chart_formatter import (
    abbreviate_number,
    format_for_table,
    format_label,
    format_results,
    format_table_value,
)
from response_parser import GeneratedQuerySpec


def _spec(chart_type, description="d"):
    return GeneratedQuerySpec(sql="SELECT 1", description=description, chart_type=chart_type)


def test_bar_series():
    rows = [
        {"sales_rep": "Sarah", "total_revenue": Decimal("450000")},
        {"sales_rep": "Brent", "total_revenue": Decimal("300000")},
    ]
    out = format_results(rows, _spec("bar", "Top reps"), "top reps")
    assert out["success"] is True
    assert out["chart_type"] == "bar"
    assert out["description"] == "Top reps"
    assert out["data"]["labels"] == ["Sarah", "Brent"]
    assert out["data"]["datasets"] == [{"label": "Total Revenue", "data": [450000.0, 300000.0]}]


def test_pie():
    rows = [{"priority": "High", "cases": 4}, {"priority": "Low", "cases": 9}]
    out = format_results(rows, _spec("pie"), "q")
    assert out["data"]["labels"] == ["High", "Low"]
    assert out["data"]["datasets"][0]["data"] == [4.0, 9.0]


def test_chart_without_numbers_becomes_table():
    rows = [{"name": "Acme", "industry": "Tech"}]
    out = format_results(rows, _spec("bar"), "q")
    assert out["chart_type"] == "table"
    assert out["data"]["headers"] == ["Name", "Industry"]


def test_table_formatting():
    rows = [{"account_name": "Acme", "arr": 1500000.0, "employees": 45000, "created": date(2025, 3, 4),
             "owner": None, "active": True}]
    out = format_for_table(rows)
    assert out["raw_headers"] == ["account_name", "arr", "employees", "created", "owner", "active"]
    assert out["headers"][0] == "Account Name"
    assert out["rows"] == [["Acme", "$1.5M", "45.0K", "Mar 04, 2025", "-", "Yes"]]


def test_small_values_kept():
    assert format_table_value(12.3456) == 12.35
    assert format_table_value(7) == 7


def test_abbreviate_number():
    assert abbreviate_number(2_500_000, currency=True) == "$2.5M"
    assert abbreviate_number(-4500) == "-4.5K"
    assert abbreviate_number(12.5) == "12.5"


def test_format_label():
    assert format_label("closed_won") == "Closed Won"
    assert format_label("2025-10") == "2025-10"
    assert format_label(None) == "-"


def test_empty_rows():
    out = format_results([], _spec("bar"), "q")
    assert out["success"] is False
