"""
Advisory Aggregator.

Concatenates recommendation and plan advisories into one report. No
inference happens here: only deduplication on (code, table,
affected_columns), keeping the first occurrence, and suppression of codes
disabled in the configuration.
"""

from __future__ import annotations

from typing import Iterable

from querytune.advisor.models import Advisory, AdvisoryReport, IndexCandidate
from querytune.config import AdvisorConfig


def aggregate(
    *advisory_groups: Iterable[Advisory],
    index_candidate: IndexCandidate | None = None,
    config: AdvisorConfig | None = None,
) -> AdvisoryReport:
    """
    Build a report from advisory groups, preserving their order.

    Args:
        advisory_groups: Advisory sequences, concatenated in argument order.
        index_candidate: The recommender's candidate, if any.
        config: Supplies disabled_codes.

    Returns:
        AdvisoryReport with deduplicated advisories.
    """
    config = config or AdvisorConfig()
    seen: set[tuple] = set()
    advisories: list[Advisory] = []

    for group in advisory_groups:
        for advisory in group:
            if not config.is_code_enabled(advisory.code):
                continue
            key = advisory.dedup_key
            if key in seen:
                continue
            seen.add(key)
            advisories.append(advisory)

    return AdvisoryReport(advisories=tuple(advisories), index_candidate=index_candidate)
