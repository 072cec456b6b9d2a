"""
Plan Risk Classifier.

Maps a single EXPLAIN row to severity-tiered advisories. Each rule follows
the same small pattern: a code, a severity, a check() predicate and a
message() renderer.

Emission order is fixed: CRITICAL rules first, then WARNING, then INFO,
each tier in the order listed below.

    CRITICAL  FULL_TABLE_SCAN      type = ALL
    CRITICAL  EXPLICIT_SORT        Extra has "Using filesort"
    CRITICAL  TEMP_TABLE           Extra has "Using temporary"
    WARNING   FULL_INDEX_SCAN      type = index
    WARNING   NO_INDEX_USED        key is NULL and type not in (system, const)
    WARNING   HIGH_ROW_SCAN_RATIO  rows / table rows > 0.3
    INFO      COVERING_INDEX       Extra has "Using index"
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from querytune.advisor.models import (
    AccessType,
    Advisory,
    AdvisoryCode,
    ExtraFlag,
    PlanRow,
    Severity,
)
from querytune.config import AdvisorConfig

logger = logging.getLogger(__name__)


class PlanRiskRule(ABC):
    """Base class for plan risk rules."""

    code: AdvisoryCode
    severity: Severity

    @abstractmethod
    def check(self, row: PlanRow, table_rows: int | None, config: AdvisorConfig) -> bool:
        """Check if this rule applies to the given row."""

    @abstractmethod
    def message(self, row: PlanRow, table_rows: int | None) -> str:
        """Human-readable description of the finding."""

    def advise(self, row: PlanRow, table_rows: int | None) -> Advisory:
        return Advisory(
            severity=self.severity,
            code=self.code,
            message=self.message(row, table_rows),
            table=row.table,
        )


class FullTableScan(PlanRiskRule):
    """
    type='ALL': every row of the table is read.

    Fires regardless of any other field.
    """

    code = AdvisoryCode.FULL_TABLE_SCAN
    severity = Severity.CRITICAL

    def check(self, row, table_rows, config):
        return row.access_type == AccessType.ALL

    def message(self, row, table_rows):
        return (
            f"Full table scan on {row.table} ({row.rows_estimate:,} rows estimated); "
            f"add an index on the filtered columns"
        )


class ExplicitSort(PlanRiskRule):
    """'Using filesort': ORDER BY cannot be satisfied by index order."""

    code = AdvisoryCode.EXPLICIT_SORT
    severity = Severity.CRITICAL

    def check(self, row, table_rows, config):
        return ExtraFlag.USING_FILESORT in row.extra_flags

    def message(self, row, table_rows):
        return (
            f"Filesort on {row.table}: rows are sorted after retrieval; "
            f"an index ending in the ORDER BY columns avoids the sort"
        )


class TempTable(PlanRiskRule):
    """'Using temporary': GROUP BY / DISTINCT / UNION materialized."""

    code = AdvisoryCode.TEMP_TABLE
    severity = Severity.CRITICAL

    def check(self, row, table_rows, config):
        return ExtraFlag.USING_TEMPORARY in row.extra_flags

    def message(self, row, table_rows):
        return (
            f"Temporary table created for {row.table}; "
            f"GROUP BY/DISTINCT columns are not served by an index"
        )


class FullIndexScan(PlanRiskRule):
    """type='index': the whole index is read in order."""

    code = AdvisoryCode.FULL_INDEX_SCAN
    severity = Severity.WARNING

    def check(self, row, table_rows, config):
        return row.access_type == AccessType.INDEX

    def message(self, row, table_rows):
        key = row.key_used or "an index"
        return f"Full scan of {key} on {row.table}; no seek boundary was used"


class NoIndexUsed(PlanRiskRule):
    """key is NULL for an access type that would need one."""

    code = AdvisoryCode.NO_INDEX_USED
    severity = Severity.WARNING

    EXEMPT = frozenset({AccessType.SYSTEM, AccessType.CONST})

    def check(self, row, table_rows, config):
        return row.key_used is None and row.access_type not in self.EXEMPT

    def message(self, row, table_rows):
        return f"No index used for {row.table} (access type {row.access_type.value})"


class HighRowScanRatio(PlanRiskRule):
    """Estimated rows examined is a large share of the table."""

    code = AdvisoryCode.HIGH_ROW_SCAN_RATIO
    severity = Severity.WARNING

    @staticmethod
    def ratio(row: PlanRow, table_rows: int) -> float:
        return row.rows_estimate / max(table_rows, 1)

    def check(self, row, table_rows, config):
        if table_rows is None:
            logger.debug("Skipping %s for %s: no table row estimate", self.code.value, row.table)
            return False
        return self.ratio(row, table_rows) > config.high_row_scan_ratio

    def message(self, row, table_rows):
        ratio = self.ratio(row, table_rows or 0)
        return (
            f"{row.table} examines {row.rows_estimate:,} of ~{table_rows or 0:,} rows "
            f"({ratio:.0%}); the access path filters poorly"
        )


class CoveringIndex(PlanRiskRule):
    """'Using index': answered from the index alone. Positive signal."""

    code = AdvisoryCode.COVERING_INDEX
    severity = Severity.INFO

    def check(self, row, table_rows, config):
        return ExtraFlag.USING_INDEX in row.extra_flags

    def message(self, row, table_rows):
        key = row.key_used or "the index"
        return f"{row.table} is covered by {key}; no base-table lookup needed"


DEFAULT_RULES: tuple[PlanRiskRule, ...] = (
    FullTableScan(),
    ExplicitSort(),
    TempTable(),
    FullIndexScan(),
    NoIndexUsed(),
    HighRowScanRatio(),
    CoveringIndex(),
)


class PlanRiskClassifier:
    """
    Classifies plan rows with an ordered rule set.

    Usage:
        classifier = PlanRiskClassifier()
        advisories = classifier.classify(row, table_row_count_estimate=50_000)
    """

    def __init__(
        self,
        config: AdvisorConfig | None = None,
        rules: Iterable[PlanRiskRule] | None = None,
    ) -> None:
        self.config = config or AdvisorConfig()
        # Stable sort keeps declaration order within a severity tier.
        self.rules = sorted(
            rules if rules is not None else DEFAULT_RULES,
            key=lambda rule: rule.severity,
        )

    def classify(
        self,
        row: PlanRow,
        table_row_count_estimate: int | None = None,
    ) -> list[Advisory]:
        """
        Classify one plan row.

        Args:
            row: EXPLAIN row snapshot.
            table_row_count_estimate: Approximate table size. When None the
                row-scan-ratio rule is skipped.

        Returns:
            Advisories ordered CRITICAL, WARNING, INFO.
        """
        return [
            rule.advise(row, table_row_count_estimate)
            for rule in self.rules
            if rule.check(row, table_row_count_estimate, self.config)
        ]


def classify(
    row: PlanRow,
    table_row_count_estimate: int | None = None,
    config: AdvisorConfig | None = None,
) -> list[Advisory]:
    """Classify a single plan row with the default rule set."""
    return PlanRiskClassifier(config).classify(row, table_row_count_estimate)
