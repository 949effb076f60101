# sql_generator.py
import logging
from typing import Optional, Sequence

from conversation_context import ConversationContext
from llm_client import LLMClient
from schema_reference import describe_schema, display_name, normalize_partition_key
from time_window import DEFAULT_TIME_WINDOW_RULES, TimeWindowRule, render_time_window_rules

logger = logging.getLogger(__name__)


def build_rules(partition_key: str, time_rules: Sequence[TimeWindowRule]) -> str:
    k = partition_key
    return f"""
You are a SQL query generator for the {display_name(k)} Salesforce sales analytics database (PostgreSQL).

OUTPUT FORMAT (HARD RULE):
- Respond with EXACTLY ONE JSON object and nothing else. Nothing before {{, nothing after }}.
- Shape: {{"sql": "SELECT ...", "description": "Brief description", "chart_type": "bar", "transcript_query": "search terms"}}
- chart_type is one of: bar, pie, line, table.
- transcript_query is optional: the person's FIRST NAME ONLY for person-specific questions
  (e.g. "sarah"), otherwise 1-2 topic keywords (e.g. "pipeline").
- The SQL must be on a SINGLE LINE. Replace every newline with a space.
- Use single quotes for string values. Never use double-quoted aliases; write name AS sales_rep_name.

SQL RULES (controller-level, violations are rejected before execution):
1. Exactly ONE SELECT statement. No semicolons.
2. FORBIDDEN: WITH clauses, CTEs, nested subqueries, window functions (LAG, LEAD, ROW_NUMBER, OVER ...).
3. NEVER emit INSERT/UPDATE/DELETE/DROP/ALTER/CREATE/TRUNCATE.
4. ALWAYS filter EVERY referenced table by app_type = '{k}'.
5. ORDER BY must use column positions (ORDER BY 2 DESC), never column aliases.
6. UNION is allowed ONLY to combine two period-comparison aggregates with identical columns,
   e.g. SELECT 'This Quarter' AS period, SUM(...) AS total ... UNION ALL SELECT 'Last Quarter' AS period, SUM(...) AS total ...
7. ALWAYS exclude test data with is_test_opportunity = false when querying opportunities.
8. For won/closed revenue ALWAYS use is_closed = true AND is_won = true.
9. JOIN users to show names instead of IDs (owner_salesforce_id = users.salesforce_id).
10. Use ILIKE for case-insensitive name and stage matching.
11. Cast money to numeric to avoid scientific notation: SUM(o.amount)::numeric. Use ROUND(x, 2) for rates.
12. LIMIT 5 for top/most questions, LIMIT 10 for lists, no LIMIT for counts or comparisons.
13. Use TO_CHAR(date, 'YYYY-MM') for monthly buckets.

{render_time_window_rules(time_rules)}

TERMINOLOGY:
- "revenue" = opportunities.amount on closed won deals (or accounts.annual_revenue for account size)
- "deals" = opportunities; "reps"/"salespeople" = users; "clients"/"customers" = accounts
- "prospects" = leads; "tickets" = cases
- "pipeline" = open opportunities (is_closed = false)
- "lost deals" = is_closed = true AND is_won = false
- "conversion" = leads.is_converted = true (do not infer from opportunities)
- "renewals" / "new business" / "upgrades" = record_type_name 'Renewal' / 'New Business' / 'Upgrade'

CHART TYPE:
- bar: rankings, top lists, comparisons between categories
- pie: distributions, parts of a whole
- line: trends over time (ANY question with trend, over time, monthly, quarterly, by month)
- table: detailed lists with several columns

If the request cannot be answered with SQL against this schema, return
{{"sql": "", "description": "why it cannot be answered", "chart_type": "text", "summary": "a short conversational reply"}}.
""".strip()


def build_examples(partition_key: str) -> str:
    k = partition_key
    return f"""
EXAMPLE RESPONSES:

Top reps by revenue (all-time ranking, no time filter):
{{"sql": "SELECT u.name AS sales_rep, SUM(o.amount)::numeric AS total_revenue FROM users u JOIN opportunities o ON o.owner_salesforce_id = u.salesforce_id WHERE u.app_type = '{k}' AND o.app_type = '{k}' AND o.is_closed = true AND o.is_won = true AND o.is_test_opportunity = false GROUP BY u.name ORDER BY 2 DESC LIMIT 5", "description": "Top 5 sales reps by total revenue (all-time)", "chart_type": "bar", "transcript_query": "sales revenue"}}

New opportunities created recently (creation activity, 1-month floor):
{{"sql": "SELECT u.name AS sales_rep, COUNT(o.id) AS new_opportunities FROM users u JOIN opportunities o ON o.owner_salesforce_id = u.salesforce_id WHERE u.app_type = '{k}' AND o.app_type = '{k}' AND o.is_test_opportunity = false AND o.salesforce_created_date >= NOW() - INTERVAL '1 month' GROUP BY u.name ORDER BY 2 DESC LIMIT 10", "description": "Reps by new opportunities created in the last month", "chart_type": "bar", "transcript_query": "new opportunities"}}

One rep's performance last month (close_date filter):
{{"sql": "SELECT u.name AS sales_rep, COUNT(o.id) AS won_deals, SUM(o.amount)::numeric AS won_revenue FROM users u JOIN opportunities o ON o.owner_salesforce_id = u.salesforce_id WHERE u.app_type = '{k}' AND o.app_type = '{k}' AND o.is_test_opportunity = false AND o.is_closed = true AND o.is_won = true AND o.close_date >= NOW() - INTERVAL '1 month' AND u.name ILIKE '%brent%' GROUP BY u.name", "description": "Brent's won deals and revenue for last month", "chart_type": "table", "transcript_query": "brent"}}

Case distribution by priority:
{{"sql": "SELECT c.priority, COUNT(*) AS cases FROM cases c WHERE c.app_type = '{k}' GROUP BY c.priority ORDER BY 2 DESC", "description": "Support cases by priority", "chart_type": "pie"}}

Monthly revenue trend:
{{"sql": "SELECT TO_CHAR(o.close_date, 'YYYY-MM') AS month, SUM(o.amount)::numeric AS revenue FROM opportunities o WHERE o.app_type = '{k}' AND o.is_closed = true AND o.is_won = true AND o.is_test_opportunity = false AND o.close_date >= NOW() - INTERVAL '6 months' GROUP BY 1 ORDER BY 1", "description": "Monthly won revenue over the last 6 months", "chart_type": "line", "transcript_query": "revenue"}}

Period comparison (UNION of two identically-shaped aggregates):
{{"sql": "SELECT 'This Quarter' AS period, SUM(o.amount)::numeric AS revenue FROM opportunities o WHERE o.app_type = '{k}' AND o.is_closed = true AND o.is_won = true AND o.is_test_opportunity = false AND o.close_date >= DATE_TRUNC('quarter', CURRENT_DATE) UNION ALL SELECT 'Last Quarter' AS period, SUM(o.amount)::numeric AS revenue FROM opportunities o WHERE o.app_type = '{k}' AND o.is_closed = true AND o.is_won = true AND o.is_test_opportunity = false AND o.close_date >= DATE_TRUNC('quarter', CURRENT_DATE) - INTERVAL '3 months' AND o.close_date < DATE_TRUNC('quarter', CURRENT_DATE)", "description": "Won revenue this quarter vs last quarter", "chart_type": "bar"}}
""".strip()


def build_sql_system_prompt(partition_key: str,
                            conversation_context: Optional[ConversationContext] = None,
                            time_rules: Sequence[TimeWindowRule] = DEFAULT_TIME_WINDOW_RULES) -> str:
    key = normalize_partition_key(partition_key)
    parts = []
    fragment = conversation_context.build_prompt_fragment(key) if conversation_context else ""
    if fragment:
        parts.append(fragment)
    parts.append(build_rules(key, time_rules))
    parts.append(describe_schema(key))
    parts.append(build_examples(key))
    parts.append("Remember: one JSON object, one single-line SELECT, ORDER BY positions, "
                 f"app_type = '{key}' on every table.")
    return "\n\n".join(parts)


def generate_sql(user_query: str,
                 partition_key: str,
                 conversation_context: Optional[ConversationContext],
                 llm: LLMClient,
                 time_rules: Sequence[TimeWindowRule] = DEFAULT_TIME_WINDOW_RULES) -> str:
    """
    One generation call; returns the model's raw text. ModelTransportError is
    left to propagate, retries are the transport's business.
    """
    system_prompt = build_sql_system_prompt(partition_key, conversation_context, time_rules)
    raw = llm.complete(system_prompt, user_query, llm.config.generation)
    logger.debug("RAW SQL GENERATION OUTPUT: %s", raw)
    return raw


# =========================================================
# Conversational branch
# =========================================================
def build_conversational_prompt(partition_key: str,
                                conversation_context: Optional[ConversationContext] = None) -> str:
    key = normalize_partition_key(partition_key)
    parts = []
    fragment = conversation_context.build_prompt_fragment(key) if conversation_context else ""
    if fragment:
        parts.append(fragment)
    parts.append(
        f"You are an AI assistant for a Salesforce analytics dashboard used by the {display_name(key)} sales team.\n"
        "The user is asking for advice or chatting about sales team management and Salesforce processes.\n"
        "Give helpful, actionable advice grounded in sales and CRM best practices.\n"
        "Keep it concise (2-4 sentences), practical and encouraging.\n"
        "Do not invent figures about this team; if numbers would help, suggest a question the dashboard can answer."
    )
    return "\n\n".join(parts)


def generate_conversational_reply(user_query: str,
                                  partition_key: str,
                                  conversation_context: Optional[ConversationContext],
                                  llm: LLMClient) -> str:
    system_prompt = build_conversational_prompt(partition_key, conversation_context)
    return llm.complete(system_prompt, user_query, llm.config.conversational)
