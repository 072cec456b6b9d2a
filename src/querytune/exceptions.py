"""
Package-level exception hierarchy for QueryTune.

All exceptions inherit from QueryTuneError, enabling:
- Catching all QueryTune errors with a single except clause
- Rich context fields for debugging (column, operator, limit, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    QueryTuneError
    ├── ClassificationError      – A single predicate could not be classified
    │   └── UnknownOperatorError – Operator symbol outside the known vocabulary
    ├── UnknownColumnError       – Column known to neither predicates nor statistics
    ├── InputTooLargeError       – Structural bound violated; aborts the call
    ├── PlanParseError           – EXPLAIN snapshot could not be normalized
    └── ConfigurationError       – Invalid advisor configuration

Missing statistics are deliberately not an exception: they degrade
confidence instead of failing.
"""

from __future__ import annotations

from typing import Any


class QueryTuneError(Exception):
    """
    Base exception for all QueryTune errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Classification Errors ────────────────────────────────────────────────


class ClassificationError(QueryTuneError):
    """A predicate could not be classified. Recovered locally by the classifier."""
    pass


class UnknownOperatorError(ClassificationError):
    """
    Operator symbol is not part of the supported vocabulary.

    Attributes:
        column: Column the predicate applies to.
        operator: The raw operator symbol as supplied.
    """

    def __init__(self, column: str, operator: str) -> None:
        self.column = column
        self.operator = operator
        super().__init__(f"Unknown operator {operator!r} on column '{column}'")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["column"] = self.column
        result["operator"] = self.operator
        return result


class UnknownColumnError(QueryTuneError):
    """
    Column is absent from both the predicate set and the statistics.

    Analysis degrades (LOW confidence) rather than aborting.
    """

    def __init__(self, column: str, table: str | None = None) -> None:
        self.column = column
        self.table = table
        where = f" on table '{table}'" if table else ""
        super().__init__(
            f"Column '{column}'{where} appears in neither predicates nor statistics"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["column"] = self.column
        result["table"] = self.table
        return result


# ── Bound Violations ─────────────────────────────────────────────────────


class InputTooLargeError(QueryTuneError):
    """
    Input exceeds a structural bound.

    This is the only error that aborts a whole analysis call; no partial
    report is produced.

    Attributes:
        what: Which bound was violated ("predicates", "wrap_depth", ...).
        size: Observed size.
        limit: Configured maximum.
    """

    def __init__(self, what: str, size: int, limit: int) -> None:
        self.what = what
        self.size = size
        self.limit = limit
        super().__init__(f"Input too large: {what}={size} exceeds limit {limit}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update({"what": self.what, "size": self.size, "limit": self.limit})
        return result


# ── Plan Errors ──────────────────────────────────────────────────────────


class PlanParseError(QueryTuneError):
    """
    Failed to normalize an EXPLAIN snapshot into plan rows.

    Attributes:
        source: Description of the offending input (row index, JSON path, ...).
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["source"] = self.source
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(QueryTuneError):
    """
    Error in advisor configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
