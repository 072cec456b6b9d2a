"""
End-to-end tests for the TuningAdvisor pipeline and the aggregator.
"""

import pytest

from querytune.advisor.aggregator import aggregate
from querytune.advisor.models import (
    AccessType,
    Advisory,
    AdvisoryCode,
    ColumnStatistic,
    Confidence,
    ExtraFlag,
    PlanRow,
    RawPredicate,
    Severity,
    SortColumn,
    SortDirection,
)
from querytune.advisor.selectivity import InMemoryStatisticsProvider
from querytune.config import AdvisorConfig
from querytune.engine import AnalysisRequest, TuningAdvisor, analyze_query
from querytune.exceptions import InputTooLargeError, PlanParseError


def full_scan(table: str = "orders", rows: int = 50_000) -> PlanRow:
    return PlanRow(
        table=table,
        access_type=AccessType.ALL,
        key_used=None,
        rows_estimate=rows,
        extra_flags=frozenset({ExtraFlag.USING_WHERE}),
    )


def advisory(code: AdvisoryCode, table: str = "orders", columns=(), message="x") -> Advisory:
    return Advisory(
        severity=Severity.INFO,
        code=code,
        message=message,
        affected_columns=frozenset(columns),
        table=table,
    )


@pytest.fixture
def advisor(config) -> TuningAdvisor:
    return TuningAdvisor(config)


@pytest.fixture
def orders_stats_with_sort(orders_stats) -> InMemoryStatisticsProvider:
    orders_stats.add(
        "orders", ColumnStatistic(column="created_at", distinct_count=90_000, row_count=100_000)
    )
    return orders_stats


class TestTypicalQueries:

    def test_orders_lookup_with_sort(self, advisor, orders_predicates, orders_stats_with_sort):
        report = advisor.analyze(
            AnalysisRequest(
                table="orders",
                predicates=orders_predicates,
                sort=[SortColumn(column="created_at", direction=SortDirection.DESC)],
            ),
            statistics=orders_stats_with_sort,
        )

        candidate = report.index_candidate
        assert candidate.columns == ["user_id", "status", "amount", "created_at"]
        assert candidate.confidence == Confidence.LOW
        assert report.codes == [
            AdvisoryCode.STATISTICS_UNAVAILABLE,
            AdvisoryCode.SORT_MAY_REQUIRE_FILESORT,
        ]
        assert report.advisories[0].affected_columns == frozenset({"amount"})
        assert not report.has_critical

    def test_wrapped_email_lookup(self, advisor):
        report = advisor.analyze(AnalysisRequest(
            table="users",
            predicates=[
                RawPredicate(
                    column="email", operator="=", value="a@b.c", wrappers=("lower",)
                ),
            ],
        ))

        assert report.index_candidate.columns == []
        assert report.index_candidate.confidence == Confidence.LOW
        assert report.codes == [
            AdvisoryCode.NON_SARGABLE_PREDICATE,
            AdvisoryCode.NO_INDEXABLE_PREDICATE,
        ]
        assert report.has_warnings

    def test_full_scan_plan_without_key(self, advisor, orders_predicates):
        report = advisor.analyze(
            AnalysisRequest(
                table="orders",
                predicates=orders_predicates,
                plan=[full_scan()],
                table_row_counts={"orders": 50_000},
            ),
        )

        plan_codes = [a.code for a in report.advisories if a.table == "orders" and not a.affected_columns]
        assert plan_codes == [
            AdvisoryCode.FULL_TABLE_SCAN,
            AdvisoryCode.NO_INDEX_USED,
            AdvisoryCode.HIGH_ROW_SCAN_RATIO,
        ]
        assert report.has_critical

    def test_two_ranges_with_sort(self, advisor):
        report = advisor.analyze(AnalysisRequest(
            table="orders",
            predicates=[
                RawPredicate(column="amount", operator=">", value=100),
                RawPredicate(column="created_at", operator=">=", value="2024-01-01"),
            ],
            sort=[SortColumn(column="created_at", direction=SortDirection.DESC)],
        ))

        assert report.index_candidate.columns == ["created_at"]
        assert report.index_candidate.key_parts[0].direction == SortDirection.DESC
        assert AdvisoryCode.SORT_MAY_REQUIRE_FILESORT not in report.codes
        assert AdvisoryCode.RANGE_NOT_IN_KEY in report.codes


class TestRecovery:

    def test_unknown_operator_does_not_abort(self, advisor):
        report = advisor.analyze(AnalysisRequest(
            table="users",
            predicates=[
                RawPredicate(column="name", operator="SOUNDS LIKE", value="jon"),
                RawPredicate(column="id", operator="=", value=1),
            ],
        ))

        assert report.codes[0] == AdvisoryCode.UNKNOWN_OPERATOR
        assert report.index_candidate.columns == ["id"]

    def test_unknown_sort_column_degrades_confidence(self, advisor, orders_stats):
        report = advisor.analyze(
            AnalysisRequest(
                table="orders",
                predicates=[RawPredicate(column="user_id", operator="=", value=1)],
                sort=[SortColumn(column="ghost")],
            ),
            statistics=orders_stats,
        )

        assert report.index_candidate.columns == ["user_id", "ghost"]
        assert report.index_candidate.confidence == Confidence.LOW
        unknown = report.by_severity(Severity.INFO)
        assert [a.code for a in unknown] == [AdvisoryCode.UNKNOWN_COLUMN]
        assert unknown[0].affected_columns == frozenset({"ghost"})

    def test_known_sort_column_keeps_confidence(self, advisor, orders_stats_with_sort):
        report = advisor.analyze(
            AnalysisRequest(
                table="orders",
                predicates=[RawPredicate(column="user_id", operator="=", value=1)],
                sort=[SortColumn(column="created_at")],
            ),
            statistics=orders_stats_with_sort,
        )

        assert report.index_candidate.confidence == Confidence.HIGH
        assert report.advisories == ()


class TestBounds:

    def test_too_many_predicates(self):
        advisor = TuningAdvisor(AdvisorConfig(max_predicates=2))
        request = AnalysisRequest(
            table="t",
            predicates=[RawPredicate(column=f"c{i}", operator="=") for i in range(3)],
        )

        with pytest.raises(InputTooLargeError) as exc_info:
            advisor.analyze(request)

        assert exc_info.value.what == "predicates"
        assert exc_info.value.to_dict() == {
            "error_type": "InputTooLargeError",
            "message": "Input too large: predicates=3 exceeds limit 2",
            "what": "predicates",
            "size": 3,
            "limit": 2,
        }

    def test_wrap_depth(self, advisor):
        request = AnalysisRequest(
            table="t",
            predicates=[RawPredicate(column="c", operator="=", wrappers=("f",) * 9)],
        )
        with pytest.raises(InputTooLargeError) as exc_info:
            advisor.analyze(request)
        assert exc_info.value.what == "wrap_depth"

    def test_wrap_depth_at_limit_is_accepted(self, advisor):
        request = AnalysisRequest(
            table="t",
            predicates=[RawPredicate(column="c", operator="=", wrappers=("f",) * 8)],
        )
        assert advisor.analyze(request).index_candidate.is_empty

    def test_too_many_plan_rows(self):
        advisor = TuningAdvisor(AdvisorConfig(max_plan_rows=1))
        with pytest.raises(InputTooLargeError) as exc_info:
            advisor.analyze(AnalysisRequest(table="t", plan=[full_scan(), full_scan("u")]))
        assert exc_info.value.what == "plan_rows"


class TestPlanIntegration:

    def test_table_rows_from_statistics(self, advisor, orders_stats):
        row = PlanRow(table="orders", access_type=AccessType.REF, key_used="idx", rows_estimate=40_000)
        report = advisor.analyze(
            AnalysisRequest(
                table="orders",
                predicates=[RawPredicate(column="status", operator="=", value="paid")],
                plan=[row],
            ),
            statistics=orders_stats,
        )
        assert AdvisoryCode.HIGH_ROW_SCAN_RATIO in report.codes

    def test_ratio_skipped_for_unknown_table_size(self, advisor):
        report = advisor.analyze(AnalysisRequest(table="orders", plan=[full_scan("users")]))
        assert AdvisoryCode.HIGH_ROW_SCAN_RATIO not in report.codes
        assert AdvisoryCode.FULL_TABLE_SCAN in report.codes

    def test_identical_plan_rows_are_deduplicated(self, advisor):
        report = advisor.analyze(AnalysisRequest(table="orders", plan=[full_scan(), full_scan()]))
        assert report.codes.count(AdvisoryCode.FULL_TABLE_SCAN) == 1

    def test_disabled_codes_are_suppressed(self):
        config = AdvisorConfig(disabled_codes=frozenset({AdvisoryCode.NO_INDEX_USED}))
        report = TuningAdvisor(config).analyze(AnalysisRequest(table="orders", plan=[full_scan()]))
        assert AdvisoryCode.NO_INDEX_USED not in report.codes
        assert AdvisoryCode.FULL_TABLE_SCAN in report.codes

    def test_analyze_explain_traditional(self, advisor):
        report = advisor.analyze_explain(
            [
                {"table": "orders", "type": "ALL", "key": None, "rows": 1000, "Extra": "Using filesort"},
                {"table": "users", "type": "eq_ref", "key": "PRIMARY", "rows": 1, "Extra": "Using index"},
            ],
            table_row_counts={"orders": 1000},
        )

        assert report.codes == [
            AdvisoryCode.FULL_TABLE_SCAN,
            AdvisoryCode.EXPLICIT_SORT,
            AdvisoryCode.NO_INDEX_USED,
            AdvisoryCode.HIGH_ROW_SCAN_RATIO,
            AdvisoryCode.COVERING_INDEX,
        ]
        assert report.index_candidate is None

    def test_analyze_explain_rejects_garbage(self, advisor):
        with pytest.raises(PlanParseError):
            advisor.analyze_explain({"not": "a plan"})


class TestReport:

    def test_analyze_query_is_deterministic(self, orders_predicates, orders_stats):
        first = analyze_query("orders", orders_predicates, statistics=orders_stats)
        second = analyze_query("orders", orders_predicates, statistics=orders_stats)
        assert first == second

    def test_summary(self, orders_predicates, orders_stats_with_sort):
        report = analyze_query(
            "orders",
            orders_predicates,
            sort=[SortColumn(column="created_at", direction=SortDirection.DESC)],
            plan=[full_scan()],
            statistics=orders_stats_with_sort,
        )

        summary = report.summary()
        assert summary["critical"] == 1
        assert summary["index_key"] == ["user_id", "status", "amount", "created_at"]
        assert summary["confidence"] == "LOW"
        assert summary["total"] == len(report.advisories)

    def test_json_dump(self, orders_predicates, orders_stats):
        data = analyze_query("orders", orders_predicates, statistics=orders_stats).model_dump(mode="json")

        assert data["index_candidate"]["key_parts"][0] == {"column": "user_id", "direction": "ASC"}
        assert data["advisories"][0]["code"] == "STATISTICS_UNAVAILABLE"
        assert data["advisories"][0]["affected_columns"] == ["amount"]

    def test_default_config_comes_from_environment(self, monkeypatch):
        monkeypatch.setenv("QUERYTUNE_DISABLED_CODES", "FULL_TABLE_SCAN")
        report = TuningAdvisor().analyze(AnalysisRequest(table="orders", plan=[full_scan()]))
        assert AdvisoryCode.FULL_TABLE_SCAN not in report.codes


class TestAggregator:

    def test_first_occurrence_wins(self):
        first = advisory(AdvisoryCode.RANGE_NOT_IN_KEY, columns={"a"}, message="first")
        second = advisory(AdvisoryCode.RANGE_NOT_IN_KEY, columns={"a"}, message="second")

        report = aggregate([first], [second])

        assert [a.message for a in report.advisories] == ["first"]

    def test_same_code_on_different_tables_is_kept(self):
        report = aggregate([
            advisory(AdvisoryCode.FULL_TABLE_SCAN, table="orders"),
            advisory(AdvisoryCode.FULL_TABLE_SCAN, table="users"),
        ])
        assert len(report.advisories) == 2

    def test_group_order_is_preserved(self):
        report = aggregate(
            [advisory(AdvisoryCode.STATISTICS_UNAVAILABLE, columns={"a"})],
            [advisory(AdvisoryCode.FULL_TABLE_SCAN)],
        )
        assert report.codes == [AdvisoryCode.STATISTICS_UNAVAILABLE, AdvisoryCode.FULL_TABLE_SCAN]
