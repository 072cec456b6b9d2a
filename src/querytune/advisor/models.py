"""
Data models for the advisor.

Every entity is constructed fresh per analysis call and discarded once the
caller has consumed the report. The models are:
- Immutable (frozen=True): nothing is reclassified or rescored after creation
- Serializable: model_dump(mode="json") gives the report shape for callers
- Hashable where they need to be (Predicate, Advisory) for set membership
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── Enumerations ─────────────────────────────────────────────────────────


class OperatorKind(str, Enum):
    """
    Tag assigned to every classified predicate.

    EQUALITY: point lookup (=, IN, IS NULL)
    RANGE: bounded scan (<, >, BETWEEN, prefix LIKE)
    NEGATION: negated comparison (!=, <>, NOT IN), never seekable
    NON_SARGABLE: shape that cannot drive an index seek at all
    """

    EQUALITY = "EQUALITY"
    RANGE = "RANGE"
    NEGATION = "NEGATION"
    NON_SARGABLE = "NON_SARGABLE"


class NonSargableReason(str, Enum):
    """Why a predicate was excluded from the index key."""

    WRAPPED_COLUMN = "WRAPPED_COLUMN"
    IMPLICIT_CAST = "IMPLICIT_CAST"
    NEGATION = "NEGATION"
    LEADING_WILDCARD = "LEADING_WILDCARD"
    UNRESOLVED_PATTERN = "UNRESOLVED_PATTERN"
    OR_GROUP = "OR_GROUP"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class Confidence(str, Enum):
    """
    Confidence in a score or recommendation, driven by statistics completeness.

    HIGH: every scored column had usable statistics
    MEDIUM: some scored columns fell back to the default selectivity
    LOW: no statistics, an ordering conflict, or nothing to recommend
    """

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Severity(str, Enum):
    """
    Severity levels for advisories.

    CRITICAL: plan shape with severe performance impact
    WARNING: significant issue that should be addressed
    INFO: informational or positive signal
    """

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"

    def __lt__(self, other: object) -> bool:
        """Enable sorting by severity (CRITICAL first)."""
        if not isinstance(other, Severity):
            return NotImplemented
        order = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}
        return order[self] < order[other]


class AdvisoryCode(str, Enum):
    """Stable machine-readable advisory identifiers."""

    # Plan risk
    FULL_TABLE_SCAN = "FULL_TABLE_SCAN"
    FULL_INDEX_SCAN = "FULL_INDEX_SCAN"
    EXPLICIT_SORT = "EXPLICIT_SORT"
    TEMP_TABLE = "TEMP_TABLE"
    NO_INDEX_USED = "NO_INDEX_USED"
    HIGH_ROW_SCAN_RATIO = "HIGH_ROW_SCAN_RATIO"
    COVERING_INDEX = "COVERING_INDEX"

    # Index recommendation
    NO_INDEXABLE_PREDICATE = "NO_INDEXABLE_PREDICATE"
    SORT_MAY_REQUIRE_FILESORT = "SORT_MAY_REQUIRE_FILESORT"
    RANGE_NOT_IN_KEY = "RANGE_NOT_IN_KEY"
    OR_PREVENTS_INDEX_SEEK = "OR_PREVENTS_INDEX_SEEK"

    # Predicate classification / statistics
    NON_SARGABLE_PREDICATE = "NON_SARGABLE_PREDICATE"
    IMPLICIT_CAST = "IMPLICIT_CAST"
    UNKNOWN_OPERATOR = "UNKNOWN_OPERATOR"
    UNKNOWN_COLUMN = "UNKNOWN_COLUMN"
    STATISTICS_UNAVAILABLE = "STATISTICS_UNAVAILABLE"


class AccessType(str, Enum):
    """EXPLAIN `type` column values, spelled exactly as MySQL prints them."""

    SYSTEM = "system"
    CONST = "const"
    EQ_REF = "eq_ref"
    REF = "ref"
    FULLTEXT = "fulltext"
    REF_OR_NULL = "ref_or_null"
    INDEX_MERGE = "index_merge"
    UNIQUE_SUBQUERY = "unique_subquery"
    INDEX_SUBQUERY = "index_subquery"
    RANGE = "range"
    INDEX = "index"
    ALL = "ALL"


class ExtraFlag(str, Enum):
    """EXPLAIN `Extra` tokens the plan classifier matches literally."""

    USING_FILESORT = "Using filesort"
    USING_TEMPORARY = "Using temporary"
    USING_INDEX = "Using index"
    USING_WHERE = "Using where"


# ── Predicates ───────────────────────────────────────────────────────────


class RawPredicate(BaseModel):
    """
    Caller-supplied predicate description, already flattened by a parser.

    Attributes:
        column: Column the predicate filters on.
        operator: Operator symbol as written (=, IN, BETWEEN, NOT LIKE, ...).
        value: Right-hand side. A list for IN/BETWEEN, the pattern for LIKE,
            None for a bind parameter or IS [NOT] NULL.
        is_column_wrapped: Column appears inside a function/arithmetic expression.
        wrappers: The flattened chain of functions/operators around the
            column, innermost first (e.g. ("trim", "lower")).
        column_type: Declared SQL type of the column, if known.
        value_type: SQL type of the right-hand side, if known. Inferred from
            the Python type of value otherwise.
        or_group: Label shared by predicates that are OR-connected.
    """

    model_config = ConfigDict(frozen=True)

    column: str = Field(..., min_length=1)
    operator: str = Field(..., min_length=1)
    value: Any = None
    is_column_wrapped: bool = False
    wrappers: tuple[str, ...] = ()
    column_type: str | None = None
    value_type: str | None = None
    or_group: str | None = None

    @property
    def wrap_depth(self) -> int:
        """Expression-wrap depth; an opaque wrapped flag counts as one level."""
        if self.wrappers:
            return len(self.wrappers)
        return 1 if self.is_column_wrapped else 0

    @property
    def wrapped(self) -> bool:
        return self.is_column_wrapped or bool(self.wrappers)


class Predicate(BaseModel):
    """
    A classified predicate.

    Invariant: sargable is False whenever the column is wrapped in an
    expression or the operator kind is NEGATION or NON_SARGABLE.
    """

    model_config = ConfigDict(frozen=True)

    column: str
    operator_kind: OperatorKind
    sargable: bool
    wrapped_in_expression: bool = False
    operator: str = ""
    reason: NonSargableReason | None = None
    or_group: str | None = None

    @model_validator(mode="after")
    def _check_sargability(self) -> "Predicate":
        if self.sargable and (
            self.wrapped_in_expression
            or self.operator_kind in (OperatorKind.NEGATION, OperatorKind.NON_SARGABLE)
        ):
            raise ValueError(
                f"Predicate on '{self.column}' cannot be sargable "
                f"(kind={self.operator_kind.value}, wrapped={self.wrapped_in_expression})"
            )
        return self

    @property
    def is_seekable_equality(self) -> bool:
        return self.sargable and self.operator_kind == OperatorKind.EQUALITY

    @property
    def is_seekable_range(self) -> bool:
        return self.sargable and self.operator_kind == OperatorKind.RANGE


# ── Statistics & Scores ──────────────────────────────────────────────────


class ColumnStatistic(BaseModel):
    """
    Per-column statistics supplied by the caller.

    row_count == 0 means the statistics are unavailable; selectivity then
    falls back to the configured default.
    """

    model_config = ConfigDict(frozen=True)

    column: str
    distinct_count: int = Field(..., ge=0)
    row_count: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_counts(self) -> "ColumnStatistic":
        if self.distinct_count > self.row_count:
            raise ValueError(
                f"distinct_count ({self.distinct_count}) exceeds "
                f"row_count ({self.row_count}) for '{self.column}'"
            )
        return self

    @property
    def is_available(self) -> bool:
        return self.row_count > 0


class SelectivityScore(BaseModel):
    """Fraction of rows a predicate is expected to retain; lower is more selective."""

    model_config = ConfigDict(frozen=True)

    column: str
    value: float = Field(..., gt=0.0, le=1.0)
    confidence: Confidence = Confidence.HIGH


class SortColumn(BaseModel):
    """One entry of an ORDER BY requirement."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(..., min_length=1)
    direction: SortDirection = SortDirection.ASC


# An empty sort spec is valid and means "no ordering requirement".
SortSpec = tuple[SortColumn, ...]


# ── Index Candidate ──────────────────────────────────────────────────────


class KeyPart(BaseModel):
    """A single column of a composite index key."""

    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC


class IndexCandidate(BaseModel):
    """
    Recommended composite index key.

    Attributes:
        key_parts: Ordered key columns with their direction.
        residual_filters: Predicates that cannot be folded into the key prefix
            and must be evaluated after the seek.
        confidence: Reflects statistics completeness and ordering conflicts.
        statistics_coverage: Fraction of scored key columns backed by statistics.
    """

    model_config = ConfigDict(frozen=True)

    key_parts: tuple[KeyPart, ...] = ()
    residual_filters: tuple[Predicate, ...] = ()
    confidence: Confidence = Confidence.LOW
    statistics_coverage: float = Field(default=0.0, ge=0.0, le=1.0)

    @property
    def columns(self) -> list[str]:
        """Ordered key column names."""
        return [part.column for part in self.key_parts]

    @property
    def is_empty(self) -> bool:
        return not self.key_parts

    def index_name(self, table: str) -> str:
        """Generate a sensible index name."""
        cols = "_".join(self.columns[:3])
        if len(self.columns) > 3:
            cols += "_etc"
        return f"idx_{table}_{cols}"

    def to_ddl(self, table: str) -> str:
        """
        Render a CREATE INDEX statement.

        Formatting helper for callers; reports only carry the column list.
        """
        if self.is_empty:
            raise ValueError("Cannot render DDL for an empty index candidate")
        parts = []
        for part in self.key_parts:
            if part.direction == SortDirection.DESC:
                parts.append(f"{part.column} DESC")
            else:
                parts.append(part.column)
        return f"CREATE INDEX {self.index_name(table)} ON {table} ({', '.join(parts)});"


# ── Plan Rows ────────────────────────────────────────────────────────────


class PlanRow(BaseModel):
    """Immutable snapshot of one EXPLAIN row."""

    model_config = ConfigDict(frozen=True)

    table: str
    access_type: AccessType
    key_used: str | None = None
    rows_estimate: int = Field(default=0, ge=0)
    extra_flags: frozenset[ExtraFlag] = frozenset()


# ── Advisories & Reports ─────────────────────────────────────────────────


class Advisory(BaseModel):
    """
    A single finding emitted by the advisor.

    Example:
        Advisory(
            severity=Severity.CRITICAL,
            code=AdvisoryCode.FULL_TABLE_SCAN,
            message="Full table scan on orders (50,000 rows)",
            table="orders",
        )
    """

    model_config = ConfigDict(frozen=True)

    severity: Severity
    code: AdvisoryCode
    message: str = Field(..., min_length=1)
    affected_columns: frozenset[str] = frozenset()
    table: str | None = None

    @property
    def dedup_key(self) -> tuple[AdvisoryCode, str | None, frozenset[str]]:
        return (self.code, self.table, self.affected_columns)


class AdvisoryReport(BaseModel):
    """
    Complete advisor output: ordered advisories plus zero or one index candidate.
    """

    model_config = ConfigDict(frozen=True)

    advisories: tuple[Advisory, ...] = ()
    index_candidate: IndexCandidate | None = None

    @property
    def has_critical(self) -> bool:
        return any(a.severity == Severity.CRITICAL for a in self.advisories)

    @property
    def has_warnings(self) -> bool:
        return any(a.severity == Severity.WARNING for a in self.advisories)

    @property
    def codes(self) -> list[AdvisoryCode]:
        return [a.code for a in self.advisories]

    def by_severity(self, severity: Severity) -> list[Advisory]:
        """Get all advisories of a specific severity."""
        return [a for a in self.advisories if a.severity == severity]

    def summary(self) -> dict[str, int | str | list[str] | None]:
        """Get a summary count by severity and the recommended key."""
        candidate = self.index_candidate
        return {
            "total": len(self.advisories),
            "critical": len(self.by_severity(Severity.CRITICAL)),
            "warning": len(self.by_severity(Severity.WARNING)),
            "info": len(self.by_severity(Severity.INFO)),
            "index_key": candidate.columns if candidate else None,
            "confidence": candidate.confidence.value if candidate else None,
        }
