"""QueryTune - heuristic query tuning advisor for relational databases."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from querytune.exceptions import (
    QueryTuneError,
    ClassificationError,
    UnknownOperatorError,
    UnknownColumnError,
    InputTooLargeError,
    PlanParseError,
    ConfigurationError,
)

from querytune.advisor import (
    AccessType,
    Advisory,
    AdvisoryCode,
    AdvisoryReport,
    ColumnStatistic,
    Confidence,
    ExtraFlag,
    IndexCandidate,
    InMemoryStatisticsProvider,
    IndexOrderRecommender,
    OperatorKind,
    PlanRow,
    Predicate,
    RawPredicate,
    SelectivityModel,
    SelectivityScore,
    Severity,
    SortColumn,
    SortDirection,
    StatisticsProvider,
    aggregate,
    classify_predicates,
)
from querytune.config import (
    AdvisorConfig,
    Environment,
    get_config,
)
from querytune.engine import (
    AnalysisRequest,
    TuningAdvisor,
    analyze_query,
)
from querytune.plan import (
    PlanRiskClassifier,
    classify,
    parse_plan_rows,
)

__all__ = [
    # Exception hierarchy
    "QueryTuneError",
    "ClassificationError",
    "UnknownOperatorError",
    "UnknownColumnError",
    "InputTooLargeError",
    "PlanParseError",
    "ConfigurationError",
    # Core
    "TuningAdvisor",
    "AnalysisRequest",
    "analyze_query",
    # Components
    "classify_predicates",
    "SelectivityModel",
    "IndexOrderRecommender",
    "PlanRiskClassifier",
    "classify",
    "aggregate",
    "parse_plan_rows",
    # Statistics
    "StatisticsProvider",
    "InMemoryStatisticsProvider",
    # Models
    "AccessType",
    "Advisory",
    "AdvisoryCode",
    "AdvisoryReport",
    "ColumnStatistic",
    "Confidence",
    "ExtraFlag",
    "IndexCandidate",
    "OperatorKind",
    "PlanRow",
    "Predicate",
    "RawPredicate",
    "SelectivityScore",
    "Severity",
    "SortColumn",
    "SortDirection",
    # Configuration
    "AdvisorConfig",
    "Environment",
    "get_config",
    # Metadata
    "__version__",
    "__license__",
]
