"""
Execution-plan analysis.

Normalizes MySQL EXPLAIN output (traditional and FORMAT=JSON) into plan
rows and classifies each row into severity-tiered advisories.
"""

from querytune.plan.parser import parse_extra, parse_plan_rows
from querytune.plan.risk import (
    DEFAULT_RULES,
    PlanRiskClassifier,
    PlanRiskRule,
    classify,
)

__all__ = [
    "DEFAULT_RULES",
    "PlanRiskClassifier",
    "PlanRiskRule",
    "classify",
    "parse_extra",
    "parse_plan_rows",
]
