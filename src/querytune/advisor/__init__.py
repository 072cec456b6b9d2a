"""
Advisory core: predicate classification, selectivity scoring, index order
recommendation and report aggregation.
"""

from querytune.advisor.aggregator import aggregate
from querytune.advisor.classifier import (
    ClassificationResult,
    classify_predicate,
    classify_predicates,
)
from querytune.advisor.models import (
    AccessType,
    Advisory,
    AdvisoryCode,
    AdvisoryReport,
    ColumnStatistic,
    Confidence,
    ExtraFlag,
    IndexCandidate,
    KeyPart,
    NonSargableReason,
    OperatorKind,
    PlanRow,
    Predicate,
    RawPredicate,
    SelectivityScore,
    Severity,
    SortColumn,
    SortDirection,
    SortSpec,
)
from querytune.advisor.recommender import (
    IndexOrderRecommender,
    Recommendation,
    recommend_index,
)
from querytune.advisor.selectivity import (
    InMemoryStatisticsProvider,
    SelectivityModel,
    StatisticsProvider,
    estimate_selectivity,
)

__all__ = [
    # Models
    "AccessType",
    "Advisory",
    "AdvisoryCode",
    "AdvisoryReport",
    "ColumnStatistic",
    "Confidence",
    "ExtraFlag",
    "IndexCandidate",
    "KeyPart",
    "NonSargableReason",
    "OperatorKind",
    "PlanRow",
    "Predicate",
    "RawPredicate",
    "SelectivityScore",
    "Severity",
    "SortColumn",
    "SortDirection",
    "SortSpec",
    # Classification
    "ClassificationResult",
    "classify_predicate",
    "classify_predicates",
    # Selectivity
    "InMemoryStatisticsProvider",
    "SelectivityModel",
    "StatisticsProvider",
    "estimate_selectivity",
    # Recommendation
    "IndexOrderRecommender",
    "Recommendation",
    "recommend_index",
    # Aggregation
    "aggregate",
]
