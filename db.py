import os
import psycopg2
from dotenv import load_dotenv

load_dotenv()


def conn_params() -> dict:
    """psycopg2.connect kwargs for the Salesforce mirror, from PG_* env vars."""
    return {
        "host": os.getenv("PG_HOST"),
        "port": int(os.getenv("PG_PORT", "5432")),
        "dbname": os.getenv("PG_DB", "postgres"),
        "user": os.getenv("PG_USER"),
        "password": os.getenv("PG_PASSWORD"),
        "sslmode": os.getenv("PG_SSLMODE", "require"),
        "connect_timeout": int(os.getenv("PG_CONNECT_TIMEOUT", "10")),
    }


def get_conn(readonly: bool = False):
    conn = psycopg2.connect(**conn_params())
    if readonly:
        # mirrored tables belong to the sync jobs; this side only reads
        conn.set_session(readonly=True)
    return conn
