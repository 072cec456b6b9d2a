"""
Predicate Classifier.

Normalizes caller-supplied predicate descriptions into typed,
SARGability-tagged Predicate entries.

Classification rules:
- =, ==, <=>, IN, IS NULL                     -> EQUALITY
- >, <, >=, <=, BETWEEN, IS NOT NULL          -> RANGE
- LIKE with a fixed, non-wildcard-leading pattern -> RANGE
- LIKE with a leading % or _                  -> NON_SARGABLE
- LIKE whose pattern is not a literal         -> NON_SARGABLE
- !=, <>, NOT IN, NOT LIKE, NOT BETWEEN       -> NEGATION
- anything applied to a wrapped column        -> not sargable (WRAPPED_COLUMN)
- right-hand side forcing a column conversion -> not sargable (IMPLICIT_CAST)
- LIKE on a non-string column                 -> not sargable (IMPLICIT_CAST)
- members of an OR group                      -> not sargable (OR_GROUP)

An unknown operator drops that predicate only: an INFO advisory is recorded
and classification continues with the rest.
"""

from __future__ import annotations

import datetime
import decimal
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from querytune.advisor.models import (
    Advisory,
    AdvisoryCode,
    NonSargableReason,
    OperatorKind,
    Predicate,
    RawPredicate,
    Severity,
)
from querytune.exceptions import UnknownOperatorError

logger = logging.getLogger(__name__)


_EQUALITY_OPERATORS = frozenset({"=", "==", "<=>", "IN", "IS NULL"})
_RANGE_OPERATORS = frozenset({">", "<", ">=", "<=", "BETWEEN", "IS NOT NULL"})
_NEGATION_OPERATORS = frozenset({"!=", "<>", "NOT IN", "NOT LIKE", "NOT BETWEEN"})
_PATTERN_OPERATORS = frozenset({"LIKE"})

_WHITESPACE = re.compile(r"\s+")


# ============================================================================
# Type families for implicit cast detection
# ============================================================================

_NUMERIC = "numeric"
_STRING = "string"
_TEMPORAL = "temporal"
_BINARY = "binary"

_TYPE_FAMILIES: dict[str, str] = {
    **dict.fromkeys(
        (
            "bit", "bool", "boolean", "tinyint", "smallint", "mediumint", "int",
            "integer", "bigint", "decimal", "dec", "numeric", "fixed", "float",
            "double", "real", "serial",
        ),
        _NUMERIC,
    ),
    **dict.fromkeys(
        (
            "char", "varchar", "nchar", "nvarchar", "text", "tinytext",
            "mediumtext", "longtext", "enum", "set", "json", "uuid", "string",
        ),
        _STRING,
    ),
    **dict.fromkeys(
        ("date", "datetime", "timestamp", "time", "year", "interval"),
        _TEMPORAL,
    ),
    **dict.fromkeys(
        ("binary", "varbinary", "blob", "tinyblob", "mediumblob", "longblob", "bytea"),
        _BINARY,
    ),
}

# Literal families the engine converts to the column's type, leaving the
# column itself untouched (and the index usable).
_LITERAL_CONVERTED_TO_COLUMN = frozenset({
    (_NUMERIC, _STRING),
    (_TEMPORAL, _STRING),
})


def type_family(sql_type: str | None) -> str | None:
    """
    Map a declared SQL type to its family.

    Handles modifiers: "VARCHAR(255)", "bigint unsigned", "double precision".
    """
    if not sql_type:
        return None
    base = sql_type.strip().lower().split("(", 1)[0].split()
    if not base:
        return None
    return _TYPE_FAMILIES.get(base[0])


def _python_value_family(value: Any) -> str | None:
    # bool before int: bool is an int subclass, both are numeric anyway
    if isinstance(value, (bool, int, float, decimal.Decimal)):
        return _NUMERIC
    if isinstance(value, str):
        return _STRING
    if isinstance(value, (datetime.date, datetime.time, datetime.timedelta)):
        return _TEMPORAL
    if isinstance(value, (bytes, bytearray)):
        return _BINARY
    return None


def _value_families(raw: RawPredicate) -> set[str]:
    """Families of the right-hand side, from value_type or the Python values."""
    declared = type_family(raw.value_type)
    if declared:
        return {declared}

    values: Iterable[Any]
    if isinstance(raw.value, (list, tuple, set, frozenset)):
        values = raw.value
    else:
        values = (raw.value,)

    families = set()
    for value in values:
        family = _python_value_family(value)
        if family:
            families.add(family)
    return families


def requires_implicit_cast(raw: RawPredicate) -> bool:
    """
    Check whether comparing the right-hand side forces a conversion of the column.

    Unknown types on either side never count as a cast.
    """
    column_family = type_family(raw.column_type)
    if column_family is None:
        return False
    if normalize_operator(raw.operator) in _PATTERN_OPERATORS:
        # LIKE is a string comparison: any other column type is converted.
        return column_family not in (_STRING, _BINARY)
    for value_family in _value_families(raw):
        if value_family == column_family:
            continue
        if (column_family, value_family) in _LITERAL_CONVERTED_TO_COLUMN:
            continue
        return True
    return False


def normalize_operator(operator: str) -> str:
    """Upper-case and collapse whitespace: 'not  in' -> 'NOT IN'."""
    return _WHITESPACE.sub(" ", operator.strip()).upper()


# ============================================================================
# Classification
# ============================================================================


@dataclass
class ClassificationResult:
    """
    Output of classifying a predicate list.

    Attributes:
        predicates: Classified predicates, in input order (dropped ones omitted).
        advisories: INFO/WARNING advisories raised during classification.
        dropped: Raw predicates that could not be classified.
    """

    predicates: list[Predicate] = field(default_factory=list)
    advisories: list[Advisory] = field(default_factory=list)
    dropped: list[RawPredicate] = field(default_factory=list)

    @property
    def seekable(self) -> list[Predicate]:
        return [p for p in self.predicates if p.sargable]

    @property
    def non_sargable(self) -> list[Predicate]:
        return [p for p in self.predicates if not p.sargable]


def _classify_pattern(raw: RawPredicate) -> tuple[OperatorKind, NonSargableReason | None]:
    pattern = raw.value
    if not isinstance(pattern, str):
        return OperatorKind.NON_SARGABLE, NonSargableReason.UNRESOLVED_PATTERN
    if pattern[:1] in ("%", "_"):
        return OperatorKind.NON_SARGABLE, NonSargableReason.LEADING_WILDCARD
    return OperatorKind.RANGE, None


def classify_predicate(raw: RawPredicate) -> Predicate:
    """
    Classify a single raw predicate.

    OR-group membership is not considered here; see classify_predicates().

    Raises:
        UnknownOperatorError: If the operator symbol is not recognized.
    """
    operator = normalize_operator(raw.operator)
    reason: NonSargableReason | None = None

    if operator in _EQUALITY_OPERATORS:
        kind = OperatorKind.EQUALITY
    elif operator in _RANGE_OPERATORS:
        kind = OperatorKind.RANGE
    elif operator in _PATTERN_OPERATORS:
        kind, reason = _classify_pattern(raw)
    elif operator in _NEGATION_OPERATORS:
        kind = OperatorKind.NEGATION
        reason = NonSargableReason.NEGATION
    else:
        raise UnknownOperatorError(raw.column, raw.operator)

    wrapped = raw.wrapped
    sargable = reason is None

    if sargable and wrapped:
        sargable = False
        reason = NonSargableReason.WRAPPED_COLUMN
    elif sargable and requires_implicit_cast(raw):
        sargable = False
        reason = NonSargableReason.IMPLICIT_CAST

    return Predicate(
        column=raw.column,
        operator_kind=kind,
        sargable=sargable,
        wrapped_in_expression=wrapped,
        operator=operator,
        reason=reason,
        or_group=raw.or_group,
    )


def _non_sargable_advisory(predicate: Predicate, table: str | None) -> Advisory:
    if predicate.reason == NonSargableReason.IMPLICIT_CAST:
        return Advisory(
            severity=Severity.WARNING,
            code=AdvisoryCode.IMPLICIT_CAST,
            message=(
                f"Comparison on '{predicate.column}' forces an implicit conversion "
                f"of the column; compare against a value of the column's declared type"
            ),
            affected_columns=frozenset({predicate.column}),
            table=table,
        )

    hints = {
        NonSargableReason.WRAPPED_COLUMN: (
            "the column is wrapped in a function or expression; "
            "rewrite the predicate so the bare column is compared"
        ),
        NonSargableReason.NEGATION: (
            f"negated operator {predicate.operator} cannot bound an index seek"
        ),
        NonSargableReason.LEADING_WILDCARD: (
            "LIKE pattern starts with a wildcard; only a fixed prefix can use an index"
        ),
        NonSargableReason.UNRESOLVED_PATTERN: (
            "LIKE pattern is not a literal, so a fixed prefix cannot be assumed"
        ),
    }
    hint = hints.get(predicate.reason, "predicate cannot drive an index seek")
    return Advisory(
        severity=Severity.WARNING,
        code=AdvisoryCode.NON_SARGABLE_PREDICATE,
        message=f"Predicate on '{predicate.column}' is not sargable: {hint}",
        affected_columns=frozenset({predicate.column}),
        table=table,
    )


def _or_group_advisory(group: str, columns: frozenset[str], table: str | None) -> Advisory:
    cols = ", ".join(sorted(columns))
    return Advisory(
        severity=Severity.WARNING,
        code=AdvisoryCode.OR_PREVENTS_INDEX_SEEK,
        message=(
            f"OR-connected predicates (group '{group}') on {cols} cannot share a "
            f"seekable index prefix; consider rewriting as UNION ALL"
        ),
        affected_columns=columns,
        table=table,
    )


def classify_predicates(
    raw_predicates: Iterable[RawPredicate],
    table: str | None = None,
) -> ClassificationResult:
    """
    Classify a flat list of raw predicates.

    Unknown operators are recovered locally. OR groups are treated
    conservatively: every member is non-sargable regardless of whether the
    branches share a leading column.

    Args:
        raw_predicates: Pre-flattened predicate descriptions.
        table: Table name attached to emitted advisories.

    Returns:
        ClassificationResult with predicates and advisories.
    """
    result = ClassificationResult()
    or_groups: dict[str, list[str]] = {}

    for raw in raw_predicates:
        try:
            predicate = classify_predicate(raw)
        except UnknownOperatorError as e:
            logger.warning("Dropping predicate: %s", e)
            result.dropped.append(raw)
            result.advisories.append(Advisory(
                severity=Severity.INFO,
                code=AdvisoryCode.UNKNOWN_OPERATOR,
                message=f"{e.message}; predicate excluded from index scoring",
                affected_columns=frozenset({raw.column}),
                table=table,
            ))
            continue

        if predicate.or_group is not None:
            or_groups.setdefault(predicate.or_group, []).append(predicate.column)
            if predicate.sargable:
                predicate = predicate.model_copy(update={
                    "sargable": False,
                    "reason": NonSargableReason.OR_GROUP,
                })

        result.predicates.append(predicate)
        if not predicate.sargable and predicate.reason != NonSargableReason.OR_GROUP:
            result.advisories.append(_non_sargable_advisory(predicate, table))

    for group, columns in or_groups.items():
        result.advisories.append(_or_group_advisory(group, frozenset(columns), table))

    return result
