"""
Query Plan Service
Request-scoped data model for period resolution and comparison, and scoped
downstream query generation for a single period.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Optional

from .config_service import ConfigService


class OrchestrationState(Enum):
    """Comparison orchestration states."""
    IDLE = "idle"
    EXTRACTING_DATES = "extracting_dates"
    FAILED = "failed"
    DATES_RESOLVED = "dates_resolved"
    EXECUTING = "executing"
    RECONCILING = "reconciling"
    DONE = "done"


@dataclass(frozen=True)
class TimeRange:
    """Inclusive calendar date range."""
    start: date
    end: date
    label: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @classmethod
    def from_iso(cls, start: str, end: str, label: Optional[str] = None) -> "TimeRange":
        """Build a range from two ``YYYY-MM-DD`` strings."""
        return cls(date.fromisoformat(start), date.fromisoformat(end), label)

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    @property
    def display_label(self) -> str:
        """Human-readable label, falling back to the canonical range string."""
        return self.label or self.to_query_string()

    def to_query_string(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class QueryPlan:
    """Scoped downstream query for one period."""
    time_range: TimeRange
    intent_label: str
    query_text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "range": self.time_range.to_dict(),
            "intent": self.intent_label,
            "query": self.query_text,
        }


@dataclass
class ComparisonRequest:
    """A period-over-period request; period_b is the primary (most recent) period."""
    raw_query: str
    intent_label: str
    period_a: TimeRange
    period_b: TimeRange

    @classmethod
    def from_ranges(cls, raw_query: str, intent_label: str, ranges: list[TimeRange]) -> "ComparisonRequest":
        """
        Build a request from the first two resolved ranges.

        The range that starts later becomes the primary period. Ties keep
        the order in which the ranges were resolved.

        Args:
            raw_query: Original user query
            intent_label: Comparison label
            ranges: Resolved ranges (at least two)

        Returns:
            ComparisonRequest
        """
        first, second = ranges[0], ranges[1]
        if first.start > second.start:
            first, second = second, first
        return cls(raw_query=raw_query, intent_label=intent_label, period_a=first, period_b=second)


@dataclass
class PeriodResult:
    """Outcome of one period execution: either rows and totals, or an error."""
    time_range: TimeRange
    rows: list[dict] = field(default_factory=list)
    totals: dict[str, float] = field(default_factory=dict)
    row_count: int = 0
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, time_range: TimeRange, rows: list[dict], totals: dict[str, float]) -> "PeriodResult":
        return cls(time_range=time_range, rows=rows, totals=totals, row_count=len(rows))

    @classmethod
    def failed(cls, time_range: TimeRange, error: str) -> "PeriodResult":
        return cls(time_range=time_range, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "dateRange": self.time_range.display_label,
            "range": self.time_range.to_dict(),
            "rows": self.rows,
            "totals": self.totals,
            "rowCount": self.row_count,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


class QueryPlanService:
    """Service for turning resolved ranges into scoped downstream queries."""

    @staticmethod
    def build_plan(time_range: TimeRange, intent_label: str) -> QueryPlan:
        """
        Build the scoped downstream query for one period.

        Args:
            time_range: Resolved period
            intent_label: Request intent label

        Returns:
            QueryPlan scoped to the period
        """
        query_text = ConfigService.DEFAULT_QUERY_TEMPLATE.format(label=time_range.display_label)
        return QueryPlan(time_range=time_range, intent_label=intent_label, query_text=query_text)

    @staticmethod
    def default_window(today: date) -> TimeRange:
        """Last DEFAULT_DATE_RANGE_DAYS days ending at the data-lag boundary."""
        end = today - timedelta(days=ConfigService.DATA_LAG_DAYS)
        start = end - timedelta(days=ConfigService.DEFAULT_DATE_RANGE_DAYS - 1)
        return TimeRange(start, end, f"last {ConfigService.DEFAULT_DATE_RANGE_DAYS} days")
