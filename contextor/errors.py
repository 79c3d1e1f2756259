"""Exception hierarchy for the context selection engine."""

from __future__ import annotations


class ContextorError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(ContextorError):
    """Raised at construction time for invalid weights, budgets or ratios."""


class BudgetInfeasible(ContextorError):
    """Raised when no file fits and the caller refused an empty selection."""

    def __init__(self, max_tokens: int, smallest_file_tokens: int | None) -> None:
        self.max_tokens = max_tokens
        self.smallest_file_tokens = smallest_file_tokens
        if smallest_file_tokens is None:
            detail = "the snapshot has no eligible files"
        else:
            detail = f"the smallest eligible file needs {smallest_file_tokens} tokens"
        super().__init__(
            f"No file fits a budget of {max_tokens} tokens: {detail}"
        )


class PartialAnalysisFailure(ContextorError):
    """A single file's scoring or dependency analysis failed.

    Never escapes a selection call: the failing file is logged and treated
    as a zero-contribution node while the rest of the snapshot is processed.
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Analysis failed for {path}: {reason}")
