"""Tests for the statistics provider and selectivity model."""

import pytest
from pydantic import ValidationError

from querytune.advisor.models import (
    AdvisoryCode,
    ColumnStatistic,
    Confidence,
    OperatorKind,
    Predicate,
    SelectivityScore,
)
from querytune.advisor.selectivity import (
    InMemoryStatisticsProvider,
    SelectivityModel,
    StatisticsProvider,
    ensure_known_column,
    estimate_selectivity,
)
from querytune.config import AdvisorConfig
from querytune.exceptions import UnknownColumnError


def eq(column: str) -> Predicate:
    return Predicate(column=column, operator_kind=OperatorKind.EQUALITY, sargable=True)


def rng(column: str) -> Predicate:
    return Predicate(column=column, operator_kind=OperatorKind.RANGE, sargable=True)


class TestColumnStatistic:

    def test_distinct_cannot_exceed_rows(self):
        with pytest.raises(ValidationError):
            ColumnStatistic(column="x", distinct_count=11, row_count=10)

    def test_zero_rows_means_unavailable(self):
        stat = ColumnStatistic(column="x", distinct_count=0, row_count=0)
        assert not stat.is_available

    def test_score_bounds(self):
        with pytest.raises(ValidationError):
            SelectivityScore(column="x", value=0.0)
        with pytest.raises(ValidationError):
            SelectivityScore(column="x", value=1.5)


class TestEstimateSelectivity:

    def test_equality_uses_distinct_count(self):
        stat = ColumnStatistic(column="status", distinct_count=5, row_count=100_000)
        score = estimate_selectivity(eq("status"), stat)
        assert score.value == pytest.approx(0.2)
        assert score.confidence == Confidence.HIGH

    def test_equality_with_zero_distinct_is_clamped(self):
        stat = ColumnStatistic(column="flag", distinct_count=0, row_count=10)
        assert estimate_selectivity(eq("flag"), stat).value == 1.0

    def test_range_uses_constant(self):
        stat = ColumnStatistic(column="amount", distinct_count=9_000, row_count=100_000)
        assert estimate_selectivity(rng("amount"), stat).value == pytest.approx(0.3)

    def test_range_constant_is_configurable(self):
        stat = ColumnStatistic(column="amount", distinct_count=9_000, row_count=100_000)
        config = AdvisorConfig(range_selectivity=0.1)
        assert estimate_selectivity(rng("amount"), stat, config).value == pytest.approx(0.1)

    def test_missing_statistics_fall_back(self):
        score = estimate_selectivity(eq("email"), None)
        assert score.value == pytest.approx(0.5)
        assert score.confidence == Confidence.LOW

    def test_unavailable_statistics_fall_back(self):
        stat = ColumnStatistic(column="email", distinct_count=0, row_count=0)
        assert estimate_selectivity(eq("email"), stat).confidence == Confidence.LOW


class TestSelectivityModel:

    def test_scores_only_sargable_predicates(self, orders_stats):
        wrapped = Predicate(
            column="email",
            operator_kind=OperatorKind.EQUALITY,
            sargable=False,
            wrapped_in_expression=True,
        )
        result = SelectivityModel().score([eq("status"), wrapped], orders_stats, "orders")

        assert set(result.scores) == {"status"}
        assert result.advisories == []
        assert result.coverage == 1.0

    def test_most_selective_score_wins_per_column(self, orders_stats):
        result = SelectivityModel().score(
            [rng("user_id"), eq("user_id")], orders_stats, "orders"
        )
        assert result.scores["user_id"].value == pytest.approx(1 / 10_000)

    def test_missing_statistics_advisory_once_per_column(self, orders_stats):
        result = SelectivityModel().score(
            [rng("amount"), rng("amount"), eq("status")], orders_stats, "orders"
        )

        assert [a.code for a in result.advisories] == [AdvisoryCode.STATISTICS_UNAVAILABLE]
        assert result.advisories[0].affected_columns == frozenset({"amount"})
        assert result.coverage == pytest.approx(0.5)

    def test_no_provider(self):
        result = SelectivityModel().score([eq("a")], None, "t")
        assert result.scores["a"].confidence == Confidence.LOW


class TestStatisticsProvider:

    def test_in_memory_provider_is_a_provider(self, orders_stats):
        assert isinstance(orders_stats, StatisticsProvider)
        assert len(orders_stats) == 2

    def test_lookup_is_per_table(self, orders_stats):
        assert orders_stats.get_column_statistic("orders", "status") is not None
        assert orders_stats.get_column_statistic("users", "status") is None

    def test_ensure_known_column(self, orders_stats):
        ensure_known_column("status", [], orders_stats, "orders")
        ensure_known_column("amount", [rng("amount")], orders_stats, "orders")
        with pytest.raises(UnknownColumnError) as exc_info:
            ensure_known_column("created_at", [], orders_stats, "orders")
        assert exc_info.value.to_dict()["column"] == "created_at"

    def test_custom_provider(self):
        class FixedProvider:
            def get_column_statistic(self, table, column):
                return ColumnStatistic(column=column, distinct_count=100, row_count=1_000)

        result = SelectivityModel().score([eq("x")], FixedProvider(), "t")
        assert result.scores["x"].value == pytest.approx(0.01)
