# chart_formatter.py
"""
Shapes executed rows into what the dashboard renders: label/dataset pairs
for bar, line and pie charts, or pre-formatted headers/rows for tables.
"""
import re
from decimal import Decimal
from datetime import date, datetime
from typing import Any, Dict, Optional, Sequence, Union

from response_parser import GeneratedQuerySpec

VALUE_COLUMN_PRIORITY = (
    "total", "total_revenue", "total_amount", "count", "opportunity_count",
    "deal_count", "revenue", "amount", "opportunities", "leads", "cases",
    "accounts", "conversion_rate", "win_rate", "pipeline_value",
)
LABEL_COLUMN_PRIORITY = (
    "name", "sales_rep", "sales_rep_name", "owner_name", "account_name", "opportunity_name",
    "stage_name", "status", "lead_source", "industry", "period", "month",
)

_NUMERIC_STR_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


def humanize(column: str) -> str:
    return column.replace("_", " ").strip().title()


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_STR_RE.match(value))


def to_number(value: Any) -> float:
    return float(value) if _is_numeric(value) else 0.0


def abbreviate_number(value: Union[int, float, Decimal], currency: bool = False) -> str:
    v = float(value)
    prefix = "$" if currency else ""
    sign = "-" if v < 0 else ""
    a = abs(v)
    if a >= 1_000_000:
        return f"{sign}{prefix}{a / 1_000_000:.1f}M"
    if a >= 1_000:
        return f"{sign}{prefix}{a / 1_000:.1f}K"
    return f"{sign}{prefix}{round(a, 2)}"


def format_table_value(value: Any) -> Any:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.strftime("%b %d, %Y")
    if isinstance(value, (float, Decimal)):
        # money columns come back as numeric/decimal
        return abbreviate_number(value, currency=True) if abs(value) >= 1000 else round(float(value), 2)
    if isinstance(value, int):
        return abbreviate_number(value) if abs(value) >= 1000 else value
    return str(value)


def format_label(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (datetime, date)):
        return value.strftime("%b %d, %Y")
    label = str(value)
    if "_" in label or ("-" in label and not re.match(r"^\d{4}-\d{2}", label)):
        label = re.sub(r"[-_]", " ", label).title()
    return label


def detect_value_column(columns: Sequence[str], rows: Sequence[Dict[str, Any]]) -> Optional[str]:
    for col in VALUE_COLUMN_PRIORITY:
        if col in columns:
            return col
    numeric = [c for c in columns if _is_numeric(rows[0].get(c))]
    if not numeric:
        return None
    # first numeric column is often an id or a year; prefer the second when present
    return numeric[1] if len(numeric) > 1 else numeric[0]


def detect_label_column(columns: Sequence[str], value_column: Optional[str] = None) -> Optional[str]:
    for col in LABEL_COLUMN_PRIORITY:
        if col in columns:
            return col
    for col in columns:
        if col != value_column:
            return col
    return None


def format_for_table(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    headers = list(rows[0].keys()) if rows else []
    return {
        "headers": [humanize(h) for h in headers],
        "rows": [[format_table_value(row.get(h)) for h in headers] for row in rows],
        "raw_headers": headers,
    }


def format_for_series(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    columns = list(rows[0].keys())
    value_col = detect_value_column(columns, rows)
    label_col = detect_label_column(columns, value_col)
    if not value_col or not label_col or value_col == label_col:
        return format_for_table(rows)
    return {
        "labels": [format_label(row.get(label_col)) for row in rows],
        "datasets": [{
            "label": humanize(value_col),
            "data": [to_number(row.get(value_col)) for row in rows],
        }],
    }


def format_for_pie(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    columns = list(rows[0].keys())
    if len(columns) < 2:
        return format_for_table(rows)
    return {
        "labels": [format_label(row.get(columns[0])) for row in rows],
        "datasets": [{"data": [to_number(row.get(columns[1])) for row in rows]}],
    }


def format_results(rows: Sequence[Dict[str, Any]], spec: GeneratedQuerySpec, user_query: str) -> Dict[str, Any]:
    if not rows:
        return {"success": False, "error": "No results found", "user_query": user_query}

    chart_type = spec.chart_type or "table"
    if chart_type in ("bar", "line"):
        data = format_for_series(rows)
    elif chart_type == "pie":
        data = format_for_pie(rows)
    else:
        data = format_for_table(rows)

    # a chart that degraded to table shape is rendered as a table
    if "headers" in data:
        chart_type = "table"

    return {
        "success": True,
        "user_query": user_query,
        "description": spec.description or "Query Results",
        "chart_type": chart_type,
        "data": data,
    }
