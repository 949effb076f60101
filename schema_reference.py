# schema_reference.py
from typing import Optional

SCHEMA_VERSION = "2025-10-26"

PARTITION_KEYS = ("legacy", "pioneer")
DEFAULT_PARTITION_KEY = "legacy"

# table -> business meaning, as referred to in prompts and entity tracking
QUERYABLE_TABLES = {
    "users": "sales representatives",
    "accounts": "customer organizations",
    "opportunities": "deals",
    "leads": "prospects",
    "cases": "support tickets",
}


def normalize_partition_key(partition_key: Optional[str]) -> str:
    """
    None falls back to the default partition. Anything outside the allow-list
    is refused, since the key is interpolated into prompts and examples.
    """
    if partition_key is None:
        return DEFAULT_PARTITION_KEY
    key = str(partition_key).strip().lower()
    if key not in PARTITION_KEYS:
        raise ValueError(f"Unknown partition key: {partition_key!r}")
    return key


def display_name(partition_key: str) -> str:
    return "Pioneer" if partition_key == "pioneer" else "Legacy"


SCHEMA_DESCRIPTION = """
=== SALESFORCE DATABASE SCHEMA (version {version}) ===

users  (sales representatives)
  - id (internal primary key, never join on it)
  - salesforce_id (Salesforce User ID, business key)
  - name (sales rep display name)
  - email, role, is_active
  - manager_salesforce_id (references users.salesforce_id)
  - app_type

accounts  (customer organizations)
  - id, salesforce_id, name
  - owner_salesforce_id (references users.salesforce_id)
  - salesforce_created_date (timestamp)
  - arr, annual_revenue, mrr, amount_paid (revenue fields, numeric)
  - status, industry, segment, employee_count
  - app_type

opportunities  (deals)
  - id, salesforce_id, name, stage_name
  - account_salesforce_id (references accounts.salesforce_id)
  - owner_salesforce_id (references users.salesforce_id)
  - amount, close_date, salesforce_created_date
  - is_closed, is_won (boolean flags)
  - opportunity_type, lead_source, probability, expected_revenue, forecast_category
  - renewal_date (date the renewal is due)
  - is_test_opportunity (boolean, exclude test data)
  - record_type_name ('New Business', 'Renewal', 'Upgrade', ...)
  - app_type

leads  (prospects)
  - id, salesforce_id, name, company, email, status
  - lead_source, owner_salesforce_id (references users.salesforce_id)
  - salesforce_created_date, is_converted, conversion_date
  - industry, app_type

cases  (support tickets)
  - id, salesforce_id
  - account_salesforce_id (references accounts.salesforce_id)
  - owner_salesforce_id (references users.salesforce_id)
  - status, priority, case_type
  - salesforce_created_date, closed_date
  - app_type

=== RELATIONSHIPS ===
- Every table has an app_type column; it partitions the data set.
- users.salesforce_id joins to accounts, opportunities, leads and cases via owner_salesforce_id.
- accounts.salesforce_id joins to opportunities and cases via account_salesforce_id.
- Join on salesforce_id business keys only, and JOIN users to show names instead of IDs.

Current app_type: {partition_key}
"""


def describe_schema(partition_key: Optional[str] = None) -> str:
    key = normalize_partition_key(partition_key)
    return SCHEMA_DESCRIPTION.format(version=SCHEMA_VERSION, partition_key=key).strip()

# columns the description above promises; schema_introspect checks them live
TABLE_COLUMNS = {
    "users": ["salesforce_id", "name", "email", "role", "is_active",
              "manager_salesforce_id", "app_type"],
    "accounts": ["salesforce_id", "name", "owner_salesforce_id", "salesforce_created_date",
                 "arr", "annual_revenue", "mrr", "amount_paid", "status", "industry",
                 "segment", "employee_count", "app_type"],
    "opportunities": ["salesforce_id", "name", "stage_name", "account_salesforce_id",
                      "owner_salesforce_id", "amount", "close_date", "salesforce_created_date",
                      "is_closed", "is_won", "opportunity_type", "lead_source", "probability",
                      "expected_revenue", "forecast_category", "renewal_date",
                      "is_test_opportunity", "record_type_name", "app_type"],
    "leads": ["salesforce_id", "name", "company", "email", "status", "lead_source",
              "owner_salesforce_id", "salesforce_created_date", "is_converted",
              "conversion_date", "industry", "app_type"],
    "cases": ["salesforce_id", "account_salesforce_id", "owner_salesforce_id", "status",
              "priority", "case_type", "salesforce_created_date", "closed_date", "app_type"],
}
