# response_parser.py
"""
Turns the generation model's near-JSON into a GeneratedQuerySpec.

Tier one cleans the text and tries a strict json.loads. Tier two pulls each
expected key out independently with a regex that tolerates escaped quotes, so
one broken field does not cost the others.
"""
import json
import logging
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union

from errors import ResponseParseFailure

logger = logging.getLogger(__name__)

CHART_TYPES = ("bar", "pie", "line", "table", "text")
DEFAULT_CHART_TYPE = "table"


_TRAILING_TERMINATORS_RE = re.compile(r"[\s;]+$")


def _optional_text(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ""
    return text or None


@dataclass(frozen=True)
class GeneratedQuerySpec:
    sql: str = ""
    description: str = ""
    chart_type: str = DEFAULT_CHART_TYPE
    transcript_search_terms: Optional[str] = None
    summary: Optional[str] = None

    def __post_init__(self):
        # normalised at construction so parse(spec.to_json()) == spec for any spec
        chart = str(self.chart_type or DEFAULT_CHART_TYPE).strip().lower()
        object.__setattr__(self, "sql", _TRAILING_TERMINATORS_RE.sub("", str(self.sql or "").strip()))
        object.__setattr__(self, "description", str(self.description or "").strip())
        object.__setattr__(self, "chart_type", chart if chart in CHART_TYPES else DEFAULT_CHART_TYPE)
        object.__setattr__(self, "transcript_search_terms", _optional_text(self.transcript_search_terms))
        object.__setattr__(self, "summary", _optional_text(self.summary))

    def to_json(self) -> str:
        """Single-line JSON in the shape the model is told to produce."""
        out: Dict[str, Any] = {
            "sql": self.sql,
            "description": self.description,
            "chart_type": self.chart_type,
        }
        if self.transcript_search_terms is not None:
            out["transcript_query"] = self.transcript_search_terms
        if self.summary is not None:
            out["summary"] = self.summary
        return json.dumps(out, ensure_ascii=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_fields(cls, fields: Dict[str, Any]) -> "GeneratedQuerySpec":
        return cls(
            sql=fields.get("sql") or "",
            description=fields.get("description") or "",
            chart_type=fields.get("chart_type") or DEFAULT_CHART_TYPE,
            transcript_search_terms=fields.get("transcript_query"),
            summary=fields.get("summary"),
        )


_NEWLINES_RE = re.compile(r"\r\n|\r|\n")
_SPACES_RE = re.compile(r"\s+")

FIELD_PATTERNS = {
    key: re.compile(rf'"{key}"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
    for key in ("sql", "description", "chart_type", "summary", "transcript_query")
}


def _strip_wrapping(raw_text: str) -> str:
    cleaned = raw_text.strip()
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'":
        cleaned = cleaned[1:-1]
    return _strip_code_fence(cleaned).strip()


def clean_response(raw_text: str) -> str:
    cleaned = _strip_wrapping(raw_text)
    # models are told to keep SQL on one line; embedded newlines break json.loads
    cleaned = _NEWLINES_RE.sub(" ", cleaned)
    cleaned = _SPACES_RE.sub(" ", cleaned)
    return cleaned.strip()


def unescape_response(cleaned: str) -> str:
    return cleaned.replace('\\"', '"').replace("\\\\", "\\")


def _strip_code_fence(text: str) -> str:
    m = re.match(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", text, re.DOTALL | re.IGNORECASE)
    return m.group(1) if m else text


def extract_with_regex(text: str) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for key, pattern in FIELD_PATTERNS.items():
        m = pattern.search(text)
        if m:
            found[key] = unescape_response(m.group(1))
    return found


def _first_json_object(text: str) -> str:
    t = text.strip()
    if t.startswith("{") and t.endswith("}"):
        return t
    start = t.find("{")
    end = t.rfind("}")
    if start != -1 and end > start:
        return t[start:end + 1]
    return t


def _strict_candidates(raw_text: str):
    # valid JSON is taken as-is; cleanup only runs when that fails
    stripped = _strip_wrapping(raw_text)
    cleaned = clean_response(raw_text)
    yield stripped
    if cleaned != stripped:
        yield cleaned
    if '\\"' in cleaned:
        yield unescape_response(cleaned)


def parse(raw_text: Optional[str]) -> Union[GeneratedQuerySpec, Dict]:
    """
    GeneratedQuerySpec on success, {} when neither the strict parse nor any
    regex field recovers anything.
    """
    if raw_text is None or not raw_text.strip():
        return {}

    for candidate in _strict_candidates(raw_text):
        try:
            js = json.loads(_first_json_object(candidate))
        except json.JSONDecodeError:
            continue
        if isinstance(js, dict):
            return GeneratedQuerySpec.from_fields(js)

    logger.warning("strict JSON parse failed; trying field extraction")
    fields = extract_with_regex(clean_response(raw_text))
    if not fields:
        logger.error("could not recover any field from model output: %s", raw_text[:300])
        return {}
    logger.info("recovered fields via regex: %s", sorted(fields))
    return GeneratedQuerySpec.from_fields(fields)


def parse_or_raise(raw_text: Optional[str]) -> GeneratedQuerySpec:
    """
    parse() that raises ResponseParseFailure when nothing at all was recovered.
    A spec with an empty sql field is returned: the model declined to write SQL.
    """
    spec = parse(raw_text)
    if not isinstance(spec, GeneratedQuerySpec):
        raise ResponseParseFailure("no field recovered from model output")
    return spec
