from __future__ import annotations

from typing import Any


class SchedulerError(RuntimeError):
    """Base class for errors that end a solve.

    `code` is stable and is what the worker reports as `error_type`.
    """

    code = "SCHEDULER_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(SchedulerError):
    """An input Activity is malformed or incomplete. Never retried."""

    code = "VALIDATION_FAILED"


class InfeasibleError(SchedulerError):
    """The retry budget was exhausted without a feasible schedule."""

    code = "INFEASIBLE"


class SolveTimeoutError(SchedulerError, TimeoutError):
    """The worker ran past its maximum runtime."""

    code = "TIMEOUT"


class PersistenceError(SchedulerError):
    """Writing schedule entries failed; the stored schedule may be inconsistent."""

    code = "PERSISTENCE_FAILED"


class SearchBudgetExhausted(Exception):
    """Internal: one search attempt explored more nodes than allowed."""
