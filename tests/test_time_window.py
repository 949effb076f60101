from datetime import date

from time_window import (
    DEFAULT_TIME_WINDOW_RULES,
    TimeWindowRule,
    extract_days_window,
    matching_rules,
    render_time_window_rules,
)


def _names(text):
    return [r.name for r in matching_rules(text)]


def test_recent_activity_rule():
    assert _names("recent opportunities") == ["recent_activity"]


def test_ranking_has_no_filter():
    rules = matching_rules("top 5 sales reps by revenue")
    assert [r.name for r in rules] == ["all_time_ranking"]
    assert rules[0].apply_filter is False


def test_mixed_signals_report_every_rule():
    """'best reps this quarter' is ambiguous; both rules come back."""
    names = _names("best reps this quarter")
    assert "closed_performance" in names
    assert "all_time_ranking" in names


def test_triggers_are_whole_words():
    assert _names("renewed contracts") == []


def test_render_defaults():
    text = render_time_window_rules()
    assert "salesforce_created_date >= NOW() - INTERVAL '1 month'" in text
    assert "DO NOT apply a time filter" in text
    assert '"distribution"' in text


def test_render_custom_rules():
    custom = (TimeWindowRule(name="fiscal", triggers=("fiscal",), apply_filter=True,
                             column="close_date", interval="1 year"),)
    text = render_time_window_rules(custom)
    assert "close_date >= NOW() - INTERVAL '1 year'" in text
    for rule in DEFAULT_TIME_WINDOW_RULES:
        assert rule.render() not in text


def test_extract_days_window():
    assert extract_days_window("revenue in the last 45 days") == 45
    assert extract_days_window("deals closed last 2 weeks") == 14
    assert extract_days_window("how did Sarah do last month") == 30
    assert extract_days_window("pipeline this quarter") == 90
    assert extract_days_window("cases opened yesterday") == 1
    assert extract_days_window("top reps of all time") is None
    assert extract_days_window("top reps") is None
    assert extract_days_window("") is None
