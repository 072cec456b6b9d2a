"""
Statistics Provider interface and Selectivity Model.

The selectivity score is a heuristic used only to order key columns; it is
not a cost estimate.

    EQUALITY -> 1 / max(distinct_count, 1)
    RANGE    -> fixed constant (config.range_selectivity, 0.3 by default)
    no stats -> config.default_selectivity (0.5) with Confidence.LOW

Missing statistics never fail: they lower confidence and surface as an
INFO STATISTICS_UNAVAILABLE advisory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, runtime_checkable

from querytune.advisor.models import (
    Advisory,
    AdvisoryCode,
    ColumnStatistic,
    Confidence,
    OperatorKind,
    Predicate,
    SelectivityScore,
    Severity,
)
from querytune.config import AdvisorConfig
from querytune.exceptions import UnknownColumnError


@runtime_checkable
class StatisticsProvider(Protocol):
    """
    Supplies per-column statistics.

    Implementations return None when a column has no statistics. The core
    never queries storage directly; a provider hands over already-resolved
    values.
    """

    def get_column_statistic(self, table: str, column: str) -> ColumnStatistic | None:
        ...


class InMemoryStatisticsProvider:
    """
    Dict-backed StatisticsProvider.

    Usage:
        provider = InMemoryStatisticsProvider({
            "orders": [
                ColumnStatistic(column="status", distinct_count=5, row_count=100_000),
            ],
        })
    """

    def __init__(
        self,
        statistics: Mapping[str, Iterable[ColumnStatistic]] | None = None,
    ) -> None:
        self._stats: dict[tuple[str, str], ColumnStatistic] = {}
        for table, stats in (statistics or {}).items():
            for stat in stats:
                self.add(table, stat)

    def add(self, table: str, statistic: ColumnStatistic) -> None:
        self._stats[(table, statistic.column)] = statistic

    def get_column_statistic(self, table: str, column: str) -> ColumnStatistic | None:
        return self._stats.get((table, column))

    def __len__(self) -> int:
        return len(self._stats)


def estimate_selectivity(
    predicate: Predicate,
    statistic: ColumnStatistic | None,
    config: AdvisorConfig | None = None,
) -> SelectivityScore:
    """
    Score a single sargable EQUALITY or RANGE predicate.

    Never raises: NEGATION / NON_SARGABLE predicates get the default score,
    though the recommender never places them in a key anyway.
    """
    config = config or AdvisorConfig()

    if statistic is None or not statistic.is_available:
        return SelectivityScore(
            column=predicate.column,
            value=config.default_selectivity,
            confidence=Confidence.LOW,
        )

    if predicate.operator_kind == OperatorKind.EQUALITY:
        value = 1.0 / max(statistic.distinct_count, 1)
    elif predicate.operator_kind == OperatorKind.RANGE:
        # Coarse on purpose until histogram data is supplied.
        value = config.range_selectivity
    else:
        value = config.default_selectivity

    return SelectivityScore(column=predicate.column, value=value)


@dataclass
class ScoringResult:
    """
    Selectivity scores keyed by column.

    When a column carries several seekable predicates the most selective
    score wins, so an equality beats a range on the same column.
    """

    scores: dict[str, SelectivityScore] = field(default_factory=dict)
    advisories: list[Advisory] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        """Fraction of scored columns backed by statistics."""
        if not self.scores:
            return 0.0
        covered = sum(1 for s in self.scores.values() if s.confidence != Confidence.LOW)
        return covered / len(self.scores)


class SelectivityModel:
    """Scores classified predicates against an injected StatisticsProvider."""

    def __init__(self, config: AdvisorConfig | None = None) -> None:
        self.config = config or AdvisorConfig()

    def score(
        self,
        predicates: Iterable[Predicate],
        provider: StatisticsProvider | None,
        table: str,
    ) -> ScoringResult:
        """
        Score every sargable predicate.

        Args:
            predicates: Classified predicates.
            provider: Statistics source; None means no statistics at all.
            table: Table the predicates filter.

        Returns:
            ScoringResult with one score per seekable column.
        """
        result = ScoringResult()
        missing: list[str] = []

        for predicate in predicates:
            if not predicate.sargable:
                continue
            statistic = lookup_statistic(provider, table, predicate.column)
            score = estimate_selectivity(predicate, statistic, self.config)

            current = result.scores.get(predicate.column)
            if current is None or score.value < current.value:
                result.scores[predicate.column] = score
            if score.confidence == Confidence.LOW and predicate.column not in missing:
                missing.append(predicate.column)

        for column in missing:
            result.advisories.append(Advisory(
                severity=Severity.INFO,
                code=AdvisoryCode.STATISTICS_UNAVAILABLE,
                message=(
                    f"No statistics for '{column}'; using default selectivity "
                    f"{self.config.default_selectivity}"
                ),
                affected_columns=frozenset({column}),
                table=table,
            ))

        return result


def lookup_statistic(
    provider: StatisticsProvider | None,
    table: str,
    column: str,
) -> ColumnStatistic | None:
    """Fetch a statistic, treating an absent provider as 'no statistics'."""
    if provider is None:
        return None
    return provider.get_column_statistic(table, column)


def ensure_known_column(
    column: str,
    predicates: Iterable[Predicate],
    provider: StatisticsProvider | None,
    table: str,
) -> None:
    """
    Check that a column is referenced by a predicate or has statistics.

    Raises:
        UnknownColumnError: If the column appears in neither.
    """
    if any(p.column == column for p in predicates):
        return
    if lookup_statistic(provider, table, column) is not None:
        return
    raise UnknownColumnError(column, table)
