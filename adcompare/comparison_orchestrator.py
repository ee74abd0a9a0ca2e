"""
Comparison Orchestrator
Resolves the periods a query asks about and, for comparisons, runs both
period lookups side by side and reconciles them into one payload.

State flow per request:
    IDLE → EXTRACTING_DATES → (FAILED | DATES_RESOLVED)
         → EXECUTING (A ∥ B) → RECONCILING → DONE
"""

import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from .ai_extraction_service import AIExtractionValidator, LLMCapability
from .ai_service import get_default_llm
from .comparison_service import ComparisonService
from .config_service import ConfigService
from .error_handling_service import (
    ErrorHandlingService,
    PeriodExecutionFailure,
    UnresolvableDateRange,
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

logger = structlog.get_logger(__name__)

QueryExecutor = Callable[[TimeRange, str], Union[Any, Awaitable[Any]]]
Extraction = Optional[tuple[list[TimeRange], str]]


class OrchestrationTrace:
    """Request-scoped record of state transitions."""

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self.states: list[OrchestrationState] = [OrchestrationState.IDLE]
        self.strategy: Optional[str] = None

    @property
    def state(self) -> OrchestrationState:
        return self.states[-1]

    def transition(self, state: OrchestrationState, detail: str = "") -> None:
        logger.info(
            f"[{self.request_id}] {self.state.value} → {state.value}",
            request_id=self.request_id,
            detail=detail,
        )
        self.states.append(state)


class ComparisonOrchestrator:
    """Drives date extraction, isolated period execution and reconciliation."""

    def __init__(
        self,
        executor: QueryExecutor,
        llm: Optional[LLMCapability] = None,
        resolver: Optional[TimeExpressionResolver] = None,
        today=None
    ):
        self.executor = executor
        self.resolver = resolver or TimeExpressionResolver(today)
        self.ai_validator = AIExtractionValidator(llm)
        # Tried in order; the first that yields two ranges wins
        self.comparison_strategies: list[Callable[[str, str], Awaitable[Extraction]]] = [
            self._from_dual_range,
            self._from_ai_extraction,
            self._from_deterministic_fallback,
        ]

    @classmethod
    def with_default_llm(cls, executor: QueryExecutor, today=None) -> "ComparisonOrchestrator":
        """Orchestrator wired to Gemini when an API key is configured."""
        return cls(executor, llm=get_default_llm(), today=today)

    async def run(self, raw_query: str, trace: Optional[OrchestrationTrace] = None) -> dict[str, Any]:
        """
        Process one query end to end.

        Args:
            raw_query: Natural language query
            trace: Optional trace to record state transitions in

        Returns:
            Single-period plan payload, or the comparison payload

        Raises:
            UnresolvableDateRange: If the needed ranges could not be resolved
        """
        trace = trace or OrchestrationTrace()
        resolved = await self.extract_dates(raw_query, trace)

        if isinstance(resolved, QueryPlan):
            trace.transition(OrchestrationState.DONE)
            return {"is_comparison": False, **resolved.to_dict()}

        trace.transition(OrchestrationState.EXECUTING)
        result_a, result_b = await asyncio.gather(
            self.execute_period(resolved.period_a, resolved.intent_label, trace),
            self.execute_period(resolved.period_b, resolved.intent_label, trace),
        )

        trace.transition(OrchestrationState.RECONCILING)
        payload = self.reconcile(resolved, result_a, result_b)
        trace.transition(OrchestrationState.DONE)
        return payload

    def run_sync(self, raw_query: str) -> dict[str, Any]:
        """Blocking wrapper around run() for callers without an event loop."""
        return asyncio.run(self.run(raw_query))

    async def extract_dates(
        self,
        raw_query: str,
        trace: Optional[OrchestrationTrace] = None
    ) -> ComparisonRequest | QueryPlan:
        """
        Resolve the request's period(s).

        Args:
            raw_query: Natural language query
            trace: Optional trace to record state transitions in

        Returns:
            ComparisonRequest for comparisons, QueryPlan for single periods

        Raises:
            UnresolvableDateRange: If no strategy produced enough ranges
        """
        trace = trace or OrchestrationTrace()
        trace.transition(OrchestrationState.EXTRACTING_DATES)
        query = raw_query or ""

        if IntentClassifier.classify(query):
            logger.info(
                f"[{trace.request_id}] Detected comparison query",
                keywords=IntentClassifier.matched_keywords(query),
            )
            return await self._extract_comparison(query, trace)

        ranges = self.resolver.resolve(query)
        if not ranges and ConfigService.DEFAULT_TO_RECENT_WINDOW:
            ranges = [QueryPlanService.default_window(self.resolver.today)]
            trace.strategy = "default_window"
        if not ranges:
            self._fail(trace, UnresolvableDateRange(query, required=1, found=0))

        if len(ranges) > 1:
            logger.info(
                f"[{trace.request_id}] Single-period query resolved several ranges; using the first",
                ranges=[r.to_query_string() for r in ranges],
            )
        trace.transition(OrchestrationState.DATES_RESOLVED, ranges[0].to_query_string())
        return QueryPlanService.build_plan(ranges[0], ConfigService.SINGLE_PERIOD_INTENT_LABEL)

    async def _extract_comparison(self, query: str, trace: OrchestrationTrace) -> ComparisonRequest:
        label = IntentClassifier.comparison_label(query)

        for strategy in self.comparison_strategies:
            extraction = await strategy(query, label)
            if extraction is None:
                continue
            ranges, intent = extraction
            trace.strategy = strategy.__name__.lstrip('_')
            request = ComparisonRequest.from_ranges(query, intent, ranges)
            trace.transition(
                OrchestrationState.DATES_RESOLVED,
                f"{request.period_a.to_query_string()} vs {request.period_b.to_query_string()} ({trace.strategy})",
            )
            return request

        self._fail(trace, UnresolvableDateRange(query, required=2, found=0))

    async def _from_dual_range(self, query: str, label: str) -> Extraction:
        ranges = self.resolver.resolve_dual(query)
        return (ranges, label) if len(ranges) >= 2 else None

    async def _from_ai_extraction(self, query: str, label: str) -> Extraction:
        if self.ai_validator.llm is None:
            return None
        extraction = await self.ai_validator.extract(query)
        if extraction is None:
            logger.info("AI extraction failed, using fallback logic")
            return None
        ranges, intent = extraction
        if intent == ConfigService.DEFAULT_INTENT_LABEL:
            intent = label
        return ranges, intent

    async def _from_deterministic_fallback(self, query: str, label: str) -> Extraction:
        ranges = self.resolver.resolve_comparison_fallback(query)
        return (ranges, label) if len(ranges) >= 2 else None

    def _fail(self, trace: OrchestrationTrace, error: UnresolvableDateRange) -> None:
        trace.transition(OrchestrationState.FAILED, str(error))
        error_info = ErrorHandlingService.process_error(
            error,
            context='extract_dates',
            details={'query': error.query[:100], 'required': error.required}
        )
        ErrorHandlingService.log_error(error_info, log_level="WARNING")
        raise error

    async def execute_period(
        self,
        time_range: TimeRange,
        intent_label: str,
        trace: Optional[OrchestrationTrace] = None
    ) -> PeriodResult:
        """
        Run the downstream lookup for one period.

        Never raises for execution errors: a failure becomes an error-marked
        PeriodResult so the sibling period is unaffected.

        Args:
            time_range: Period to query
            intent_label: Request intent label
            trace: Optional trace (for the request id in logs)

        Returns:
            PeriodResult with rows and totals, or with an error
        """
        request_id = trace.request_id if trace else "-"
        plan = QueryPlanService.build_plan(time_range, intent_label)
        logger.info(f"[{request_id}] Executing period query", query=plan.query_text)

        try:
            rows = self.executor(plan.time_range, plan.intent_label)
            if inspect.isawaitable(rows):
                rows = await rows
            if isinstance(rows, dict):
                rows = rows.get('results') or []
            if not isinstance(rows, list):
                raise TypeError(f"Executor returned {type(rows).__name__}, expected a list of rows")
            rows = ResultReconciler.format_rows(rows)
            totals = ResultReconciler.aggregate(rows)
        except Exception as e:
            failure = PeriodExecutionFailure(time_range.display_label, e)
            error_info = ErrorHandlingService.process_error(
                failure,
                context='execute_period',
                details={'range': time_range.to_query_string(), 'request_id': request_id}
            )
            ErrorHandlingService.log_error(error_info)
            return PeriodResult.failed(time_range, str(failure))

        logger.info(
            f"[{request_id}] Period query succeeded",
            period=time_range.display_label,
            row_count=len(rows),
        )
        return PeriodResult.succeeded(time_range, rows, totals)

    def reconcile(
        self,
        request: ComparisonRequest,
        result_a: PeriodResult,
        result_b: PeriodResult
    ) -> dict[str, Any]:
        """
        Assemble the comparison payload.

        Args:
            request: The resolved comparison request
            result_a: Baseline period result
            result_b: Primary period result

        Returns:
            Payload with both periods (baseline first) and, when both
            succeeded, per-metric changes
        """
        comparison: dict[str, Any] = {
            "intent": request.intent_label,
            "periods": [result_a.to_dict(), result_b.to_dict()],
        }
        if result_a.ok and result_b.ok:
            comparison["changes"] = ComparisonService.compare_totals(result_a.totals, result_b.totals)

        return {
            "is_comparison": True,
            "query": request.raw_query,
            "comparison": comparison,
        }
