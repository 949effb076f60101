# errors.py
from typing import Optional


class ModelTransportError(RuntimeError):
    """Network, timeout or auth failure talking to the hosted model."""


class ResponseParseFailure(ValueError):
    """Model output could not be turned into a query spec by either parse tier."""


class RejectedQuery(ValueError):
    """SQL vetoed by the safety gate. Never executed."""

    def __init__(self, reason: str, sql: str = ""):
        super().__init__(reason)
        self.reason = reason
        self.sql = sql


class ExecutionError(RuntimeError):
    """Database failure on a query that passed validation."""

    def __init__(self, message: str, sql: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.sql = sql
        self.cause = cause
