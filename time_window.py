# time_window.py
"""
Default time-window policy for generated SQL.

The policy is a heuristic: "recent / created / new" questions get a one-month
floor on the creation timestamp, all-time rankings and distributions get no
filter at all. Borderline phrasings ("best reps this quarter") hit more than
one rule; matching_rules() reports all of them instead of picking a winner,
and the model receives the whole rule set as instructions.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class TimeWindowRule:
    name: str
    triggers: Tuple[str, ...]
    apply_filter: bool
    column: Optional[str] = None
    interval: Optional[str] = None
    note: str = ""

    def matches(self, text: str) -> bool:
        low = (text or "").lower()
        return any(re.search(rf"\b{re.escape(t)}\b", low) for t in self.triggers)

    def render(self) -> str:
        words = ", ".join(f'"{t}"' for t in self.triggers)
        if self.apply_filter:
            line = f"- APPLY a time filter ({self.column} >= NOW() - INTERVAL '{self.interval}') for: {words}"
        else:
            line = f"- DO NOT apply a time filter for: {words}"
        return f"{line}. {self.note}".rstrip(". ") + "."


DEFAULT_TIME_WINDOW_RULES: Tuple[TimeWindowRule, ...] = (
    TimeWindowRule(
        name="recent_activity",
        triggers=("recent", "recently", "lately", "new", "created", "generated", "opened",
                  "this month"),
        apply_filter=True,
        column="salesforce_created_date",
        interval="1 month",
        note="Questions about recent activity or creation default to the last month",
    ),
    TimeWindowRule(
        name="closed_performance",
        triggers=("last month", "this quarter", "last quarter", "this year", "last week",
                  "this week"),
        apply_filter=True,
        column="close_date",
        interval="1 month",
        note="Performance, revenue and won deals filter on close_date, never on salesforce_created_date; "
             "use the period the user named, default 1 month",
    ),
    TimeWindowRule(
        name="all_time_ranking",
        triggers=("top", "best", "most", "highest", "lowest", "by industry", "by segment",
                  "distribution", "all", "total", "pipeline"),
        apply_filter=False,
        note="Rankings, distributions and open pipeline cover all existing data",
    ),
)


def matching_rules(text: str, rules: Sequence[TimeWindowRule] = DEFAULT_TIME_WINDOW_RULES) -> List[TimeWindowRule]:
    return [r for r in rules if r.matches(text)]


def render_time_window_rules(rules: Sequence[TimeWindowRule] = DEFAULT_TIME_WINDOW_RULES) -> str:
    lines = ["DEFAULT TIME FRAME RULES (heuristic, explicit user dates always win):"]
    lines.extend(r.render() for r in rules)
    lines.append("- When a question mixes signals (e.g. \"best reps this quarter\"), "
                 "honour the explicit period and rank within it.")
    return "\n".join(lines)


_UNIT_DAYS = {"day": 1, "week": 7, "month": 30, "quarter": 90, "year": 365}
_LAST_N_RE = re.compile(r"\b(?:last|past|previous)\s+(\d{1,4})\s+(day|week|month|quarter|year)s?\b")
_NAMED_RE = re.compile(r"\b(?:this|last|past|previous)\s+(day|week|month|quarter|year)\b")


def extract_days_window(text: str) -> Optional[int]:
    """
    Lexical period -> days for the transcript date floor.
    "last 45 days" -> 45, "last week" -> 7, "this quarter" -> 90,
    "all time" or no period at all -> None.
    """
    low = (text or "").lower()
    if "all time" in low or "all-time" in low:
        return None
    m = _LAST_N_RE.search(low)
    if m:
        return int(m.group(1)) * _UNIT_DAYS[m.group(2)]
    m = _NAMED_RE.search(low)
    if m:
        return _UNIT_DAYS[m.group(1)]
    if "yesterday" in low or "today" in low:
        return 1
    return None
