"""
Comparison core for ad-performance queries.
Resolves the periods a natural language query refers to, runs one scoped
lookup per period and reconciles the results.
"""

from .ai_extraction_service import AIExtractionValidator
from .ai_service import GeminiClient, get_default_llm
from .comparison_orchestrator import ComparisonOrchestrator, OrchestrationTrace
from .comparison_service import ComparisonService
from .config_service import ConfigService, get_config
from .error_handling_service import (
    AdCompareError,
    ErrorCategory,
    ErrorHandlingService,
    HallucinatedDateRejected,
    MalformedAIResponse,
    PeriodExecutionFailure,
    UnresolvableDateRange,
    get_error_handler,
)
from .intent_classifier_service import IntentClassifier
from .query_plan_service import (
    ComparisonRequest,
    OrchestrationState,
    PeriodResult,
    QueryPlan,
    QueryPlanService,
    TimeRange,
)
from .result_reconciler import ResultReconciler
from .time_resolver import TimeExpressionResolver

__all__ = [
    'AIExtractionValidator',
    'GeminiClient',
    'get_default_llm',
    'ComparisonOrchestrator',
    'OrchestrationTrace',
    'ComparisonService',
    'ConfigService',
    'get_config',
    'AdCompareError',
    'ErrorCategory',
    'ErrorHandlingService',
    'HallucinatedDateRejected',
    'MalformedAIResponse',
    'PeriodExecutionFailure',
    'UnresolvableDateRange',
    'get_error_handler',
    'IntentClassifier',
    'ComparisonRequest',
    'OrchestrationState',
    'PeriodResult',
    'QueryPlan',
    'QueryPlanService',
    'TimeRange',
    'ResultReconciler',
    'TimeExpressionResolver',
]
