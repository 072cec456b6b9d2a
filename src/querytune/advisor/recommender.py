"""
Index Order Recommender.

Builds one composite index key from classified predicates, the sort
requirement and per-column selectivity scores.

Technical approach:
1. Partition: sargable EQUALITY -> equality group, sargable RANGE -> range
   group, everything else -> residual filters (never in the key). A column
   wrapped in any predicate is kept out of the key entirely.
2. Order the equality group by selectivity ascending, ties by column name.
3. Place at most one range column right after the equality prefix. A range
   column that leads the sort is preferred so one key serves both the range
   and the ORDER BY; otherwise the most selective range wins (ties by name).
   Every other range predicate degrades to a residual filter: a composite
   index seeks on a single inequality boundary.
4. Append the remaining sort columns in the caller's order and direction,
   skipping any column that is wrapped in an expression somewhere.
   When the chosen range column is not the leading sort column, the index
   cannot deliver rows in sort order: confidence drops to LOW and a
   SORT_MAY_REQUIRE_FILESORT advisory is emitted.
5. No equality/range predicates but a sort: the key is the sort itself.
6. Nothing at all: empty candidate, LOW confidence, NO_INDEXABLE_PREDICATE.

The result is deterministic for identical input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from querytune.advisor.models import (
    Advisory,
    AdvisoryCode,
    Confidence,
    IndexCandidate,
    KeyPart,
    Predicate,
    SelectivityScore,
    Severity,
    SortColumn,
    SortDirection,
)
from querytune.config import AdvisorConfig

logger = logging.getLogger(__name__)


@dataclass
class Recommendation:
    """Index candidate plus the advisories produced while building it."""

    candidate: IndexCandidate
    advisories: list[Advisory] = field(default_factory=list)


@dataclass
class _Partition:
    equality: dict[str, Predicate] = field(default_factory=dict)
    range: dict[str, list[Predicate]] = field(default_factory=dict)
    residual: list[Predicate] = field(default_factory=list)


class IndexOrderRecommender:
    """
    Recommends composite index column order.

    Usage:
        recommender = IndexOrderRecommender()
        rec = recommender.recommend(predicates, sort_spec, scores)
        rec.candidate.columns   # ["user_id", "status", "amount", "created_at"]
    """

    def __init__(self, config: AdvisorConfig | None = None) -> None:
        self.config = config or AdvisorConfig()

    def recommend(
        self,
        predicates: Iterable[Predicate],
        sort_spec: Sequence[SortColumn] = (),
        scores: Mapping[str, SelectivityScore] | None = None,
        table: str | None = None,
    ) -> Recommendation:
        """
        Produce an index candidate.

        Args:
            predicates: Classified predicates.
            sort_spec: Ordered sort requirement; may be empty.
            scores: Selectivity per column. Missing columns use the
                configured default with LOW confidence.
            table: Table name attached to emitted advisories.

        Returns:
            Recommendation with exactly one IndexCandidate.
        """
        predicates = list(predicates)
        scores = dict(scores or {})
        advisories: list[Advisory] = []

        partition = self._partition(predicates)

        equality_cols = sorted(
            partition.equality,
            key=lambda col: (self._score(col, scores).value, col),
        )
        equality_set = set(equality_cols)

        # Sort columns pinned by an equality are constant within the seek.
        effective_sort = [s for s in sort_spec if s.column not in equality_set]

        range_col = self._choose_range(partition.range, effective_sort, scores)
        for col, preds in partition.range.items():
            if col == range_col:
                # Extra bounds on the seek column are applied within the range scan.
                continue
            partition.residual.extend(preds)
            advisories.append(Advisory(
                severity=Severity.INFO,
                code=AdvisoryCode.RANGE_NOT_IN_KEY,
                message=(
                    f"Range predicate on '{col}' follows the seek boundary "
                    f"and is evaluated as a filter after the index lookup"
                ),
                affected_columns=frozenset({col}),
                table=table,
            ))

        key_parts = [KeyPart(column=col) for col in equality_cols]
        sort_conflict = False

        if range_col is not None:
            direction = SortDirection.ASC
            if effective_sort and effective_sort[0].column == range_col:
                direction = effective_sort[0].direction
            elif effective_sort:
                sort_conflict = True
            key_parts.append(KeyPart(column=range_col, direction=direction))
            logger.debug("Chose range column %s (sort conflict=%s)", range_col, sort_conflict)

        placed = {part.column for part in key_parts}
        wrapped = {p.column for p in predicates if p.wrapped_in_expression}
        for sort_col in sort_spec:
            if sort_col.column in placed:
                continue
            if sort_col.column in wrapped:
                logger.debug("Skipping sort column %s: wrapped in a predicate", sort_col.column)
                continue
            key_parts.append(KeyPart(column=sort_col.column, direction=sort_col.direction))
            placed.add(sort_col.column)

        if sort_conflict:
            sort_cols = [s.column for s in effective_sort]
            advisories.append(Advisory(
                severity=Severity.INFO,
                code=AdvisoryCode.SORT_MAY_REQUIRE_FILESORT,
                message=(
                    f"Range column '{range_col}' precedes sort columns "
                    f"{', '.join(sort_cols)} in the key; rows leave the range scan "
                    f"unordered, so the sort may still need a filesort"
                ),
                affected_columns=frozenset([range_col, *sort_cols]),
                table=table,
            ))

        if not key_parts:
            advisories.append(self._no_indexable_advisory(predicates, table))
            return Recommendation(
                candidate=IndexCandidate(
                    residual_filters=tuple(partition.residual),
                    confidence=Confidence.LOW,
                ),
                advisories=advisories,
            )

        scored_cols = [*equality_cols, *([range_col] if range_col else [])]
        coverage = self._coverage(scored_cols, scores)
        confidence = self._confidence(coverage)
        if sort_conflict:
            confidence = Confidence.LOW

        return Recommendation(
            candidate=IndexCandidate(
                key_parts=tuple(key_parts),
                residual_filters=tuple(partition.residual),
                confidence=confidence,
                statistics_coverage=coverage,
            ),
            advisories=advisories,
        )

    def _partition(self, predicates: list[Predicate]) -> _Partition:
        partition = _Partition()
        wrapped = {p.column for p in predicates if p.wrapped_in_expression}
        for predicate in predicates:
            if predicate.column in wrapped:
                partition.residual.append(predicate)
            elif predicate.is_seekable_equality:
                if predicate.column in partition.equality:
                    partition.residual.append(predicate)
                else:
                    partition.equality[predicate.column] = predicate
            elif predicate.is_seekable_range:
                partition.range.setdefault(predicate.column, []).append(predicate)
            else:
                partition.residual.append(predicate)

        # A range on a column already pinned by equality adds nothing to the seek.
        for col in list(partition.range):
            if col in partition.equality:
                partition.residual.extend(partition.range.pop(col))
        return partition

    def _choose_range(
        self,
        range_group: Mapping[str, list[Predicate]],
        effective_sort: Sequence[SortColumn],
        scores: Mapping[str, SelectivityScore],
    ) -> str | None:
        if not range_group:
            return None
        if effective_sort and effective_sort[0].column in range_group:
            return effective_sort[0].column
        return min(range_group, key=lambda col: (self._score(col, scores).value, col))

    def _score(self, column: str, scores: Mapping[str, SelectivityScore]) -> SelectivityScore:
        score = scores.get(column)
        if score is None:
            return SelectivityScore(
                column=column,
                value=self.config.default_selectivity,
                confidence=Confidence.LOW,
            )
        return score

    def _coverage(self, columns: list[str], scores: Mapping[str, SelectivityScore]) -> float:
        if not columns:
            # Pure sort index: nothing depends on statistics.
            return 1.0
        covered = sum(
            1 for col in columns
            if self._score(col, scores).confidence != Confidence.LOW
        )
        return covered / len(columns)

    @staticmethod
    def _confidence(coverage: float) -> Confidence:
        if coverage >= 1.0:
            return Confidence.HIGH
        if coverage > 0.0:
            return Confidence.MEDIUM
        return Confidence.LOW

    @staticmethod
    def _no_indexable_advisory(predicates: list[Predicate], table: str | None) -> Advisory:
        columns = frozenset(p.column for p in predicates)
        if columns:
            message = (
                f"No sargable predicate on {', '.join(sorted(columns))} can form an "
                f"index key; every predicate is evaluated as a residual filter"
            )
        else:
            message = "No predicates or sort requirement to build an index from"
        return Advisory(
            severity=Severity.INFO,
            code=AdvisoryCode.NO_INDEXABLE_PREDICATE,
            message=message,
            affected_columns=columns,
            table=table,
        )


def recommend_index(
    predicates: Iterable[Predicate],
    sort_spec: Sequence[SortColumn] = (),
    scores: Mapping[str, SelectivityScore] | None = None,
    config: AdvisorConfig | None = None,
) -> IndexCandidate:
    """
    Convenience function returning only the index candidate.

    Args:
        predicates: Classified predicates.
        sort_spec: Ordered sort requirement.
        scores: Selectivity per column.
        config: Advisor configuration.
    """
    return IndexOrderRecommender(config).recommend(predicates, sort_spec, scores).candidate
