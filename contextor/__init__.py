"""Contextor — budgeted context selection for coding tasks.

``ContextEngine`` is the entry point. Analyzers that build snapshots can
use ``classify_kind`` and ``detect_language`` (or
``FileRecord.from_path``) to tag files from their paths alone.
"""

__version__ = "0.1.0"

from contextor.engine import ContextEngine
from contextor.errors import (
    BudgetInfeasible,
    ConfigurationError,
    ContextorError,
    PartialAnalysisFailure,
)
from contextor.paths import classify_kind, detect_language

__all__ = [
    "BudgetInfeasible",
    "ConfigurationError",
    "ContextEngine",
    "ContextorError",
    "PartialAnalysisFailure",
    "classify_kind",
    "detect_language",
]
