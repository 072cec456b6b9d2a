"""
TuningAdvisor - orchestration layer for QueryTune.

This is the single entry point for running an analysis. It wires the pure
components together in a fixed order:

    bounds check -> classify predicates -> score selectivity
        -> recommend index order -> classify plan rows -> aggregate

Design principle: no state survives a call. The statistics provider and
the plan snapshot arrive as already-resolved inputs; the advisor performs
no I/O and can be shared freely across threads.

Usage:
    from querytune.engine import AnalysisRequest, TuningAdvisor

    advisor = TuningAdvisor()
    report = advisor.analyze(
        AnalysisRequest(
            table="orders",
            predicates=[RawPredicate(column="status", operator="=", value="paid")],
            sort=[SortColumn(column="created_at", direction="DESC")],
        ),
        statistics=provider,
    )
    report.index_candidate.columns
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field

from querytune.advisor.aggregator import aggregate
from querytune.advisor.classifier import classify_predicates
from querytune.advisor.models import (
    Advisory,
    AdvisoryCode,
    AdvisoryReport,
    Confidence,
    PlanRow,
    Predicate,
    RawPredicate,
    Severity,
    SortColumn,
    SortSpec,
)
from querytune.advisor.recommender import IndexOrderRecommender
from querytune.advisor.selectivity import (
    SelectivityModel,
    StatisticsProvider,
    ensure_known_column,
    lookup_statistic,
)
from querytune.config import AdvisorConfig, get_config
from querytune.exceptions import InputTooLargeError, UnknownColumnError
from querytune.plan.parser import parse_plan_rows
from querytune.plan.risk import PlanRiskClassifier

logger = logging.getLogger(__name__)


class AnalysisRequest(BaseModel):
    """
    Input for one analysis call.

    Attributes:
        table: Table the predicates and sort apply to.
        predicates: Pre-flattened predicate descriptions.
        sort: ORDER BY requirement, possibly empty.
        plan: EXPLAIN snapshot rows, possibly empty.
        table_row_counts: Approximate row counts per table for the
            row-scan-ratio check. Falls back to statistics for `table`.
    """

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., min_length=1)
    predicates: tuple[RawPredicate, ...] = ()
    sort: SortSpec = ()
    plan: tuple[PlanRow, ...] = ()
    table_row_counts: dict[str, int] = Field(default_factory=dict)


class TuningAdvisor:
    """
    Runs the full advisory pipeline.

    The advisor is stateless between calls; one instance may serve many
    threads.
    """

    def __init__(self, config: AdvisorConfig | None = None) -> None:
        self.config = config or get_config()
        self.selectivity = SelectivityModel(self.config)
        self.recommender = IndexOrderRecommender(self.config)
        self.plan_classifier = PlanRiskClassifier(self.config)

    def analyze(
        self,
        request: AnalysisRequest,
        statistics: StatisticsProvider | None = None,
    ) -> AdvisoryReport:
        """
        Analyze predicates, sort and plan snapshot for one table.

        Args:
            request: The normalized query description.
            statistics: Column statistics source; None means no statistics.

        Returns:
            AdvisoryReport with advisories and one index candidate.

        Raises:
            InputTooLargeError: If a structural bound is exceeded. No partial
                report is produced.
        """
        self.check_bounds(request)
        table = request.table

        classification = classify_predicates(request.predicates, table=table)
        scoring = self.selectivity.score(classification.predicates, statistics, table)
        recommendation = self.recommender.recommend(
            classification.predicates,
            request.sort,
            scoring.scores,
            table=table,
        )

        candidate = recommendation.candidate
        unknown = self._unknown_sort_columns(
            request.sort, classification.predicates, statistics, table
        )
        if unknown:
            candidate = candidate.model_copy(update={"confidence": Confidence.LOW})

        plan_advisories = self._classify_plan(request, statistics)

        return aggregate(
            classification.advisories,
            scoring.advisories,
            unknown,
            recommendation.advisories,
            plan_advisories,
            index_candidate=candidate,
            config=self.config,
        )

    def analyze_explain(
        self,
        explain_output: dict[str, Any] | list[dict[str, Any]],
        table_row_counts: dict[str, int] | None = None,
    ) -> AdvisoryReport:
        """
        Classify a raw EXPLAIN snapshot without predicate analysis.

        Raises:
            PlanParseError: If the EXPLAIN output cannot be normalized.
            InputTooLargeError: If the plan has too many rows.
        """
        rows = parse_plan_rows(explain_output)
        self._check_size("plan_rows", len(rows), self.config.max_plan_rows)
        counts = table_row_counts or {}
        advisories: list[Advisory] = []
        for row in rows:
            advisories.extend(self.plan_classifier.classify(row, counts.get(row.table)))
        return aggregate(advisories, config=self.config)

    def check_bounds(self, request: AnalysisRequest) -> None:
        """
        Fail fast on inputs larger than the configured bounds.

        Raises:
            InputTooLargeError: On the first violated bound.
        """
        config = self.config
        self._check_size("predicates", len(request.predicates), config.max_predicates)
        self._check_size("sort_columns", len(request.sort), config.max_predicates)
        self._check_size("plan_rows", len(request.plan), config.max_plan_rows)
        for raw in request.predicates:
            self._check_size("wrap_depth", raw.wrap_depth, config.max_wrap_depth)

    @staticmethod
    def _check_size(what: str, size: int, limit: int) -> None:
        if size > limit:
            raise InputTooLargeError(what, size, limit)

    def _unknown_sort_columns(
        self,
        sort: Iterable[SortColumn],
        predicates: list[Predicate],
        statistics: StatisticsProvider | None,
        table: str,
    ) -> list[Advisory]:
        advisories: list[Advisory] = []
        for sort_col in sort:
            try:
                ensure_known_column(sort_col.column, predicates, statistics, table)
            except UnknownColumnError as e:
                logger.warning("%s", e)
                advisories.append(Advisory(
                    severity=Severity.INFO,
                    code=AdvisoryCode.UNKNOWN_COLUMN,
                    message=f"{e.message}; kept in the key with LOW confidence",
                    affected_columns=frozenset({sort_col.column}),
                    table=table,
                ))
        return advisories

    def _classify_plan(
        self,
        request: AnalysisRequest,
        statistics: StatisticsProvider | None,
    ) -> list[Advisory]:
        advisories: list[Advisory] = []
        for row in request.plan:
            table_rows = self._table_row_estimate(request, row.table, statistics)
            advisories.extend(self.plan_classifier.classify(row, table_rows))
        return advisories

    @staticmethod
    def _table_row_estimate(
        request: AnalysisRequest,
        table: str,
        statistics: StatisticsProvider | None,
    ) -> int | None:
        if table in request.table_row_counts:
            return request.table_row_counts[table]
        if table != request.table:
            return None
        columns = [raw.column for raw in request.predicates]
        columns.extend(s.column for s in request.sort)
        counts = [
            stat.row_count
            for stat in (lookup_statistic(statistics, table, col) for col in columns)
            if stat is not None and stat.is_available
        ]
        return max(counts) if counts else None


def analyze_query(
    table: str,
    predicates: Iterable[RawPredicate] = (),
    sort: Iterable[SortColumn] = (),
    plan: Iterable[PlanRow] = (),
    statistics: StatisticsProvider | None = None,
    table_row_counts: dict[str, int] | None = None,
    config: AdvisorConfig | None = None,
) -> AdvisoryReport:
    """
    Convenience function running a single analysis.

    Returns:
        AdvisoryReport for the described query.
    """
    request = AnalysisRequest(
        table=table,
        predicates=tuple(predicates),
        sort=tuple(sort),
        plan=tuple(plan),
        table_row_counts=table_row_counts or {},
    )
    return TuningAdvisor(config).analyze(request, statistics)
