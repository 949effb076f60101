"""Shared fakes for the model and database boundaries."""
from unittest.mock import MagicMock

import pytest

from llm_client import ModelConfig


class FakeLLM:
    """Scripted stand-in for LLMClient; replies are consumed in order."""

    def __init__(self, replies=None, embedding=None):
        self.config = ModelConfig()
        self.replies = list(replies or [])
        self.embedding = embedding
        self.calls = []

    def complete(self, system_prompt, user_message, preset):
        self.calls.append({"system": system_prompt, "user": user_message, "preset": preset})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def embed(self, text):
        if isinstance(self.embedding, Exception):
            raise self.embedding
        return self.embedding


def make_conn(rows=None, description=(("col",),), execute_side_effect=None):
    """MagicMock psycopg2 connection whose cursor returns `rows`."""
    cur = MagicMock()
    cur.description = description
    cur.fetchall.return_value = rows or []
    if execute_side_effect is not None:
        cur.execute.side_effect = execute_side_effect
    conn = MagicMock()
    conn.__enter__.return_value = conn
    conn.cursor.return_value.__enter__.return_value = cur
    return conn, cur


@pytest.fixture
def fake_llm():
    return FakeLLM()
