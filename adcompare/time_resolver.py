"""
Canonical Time Resolver
Turns free-form date expressions into concrete, validated calendar ranges.

Strategies are plain functions ``(text, today) -> list[TimeRange]`` tried in a
fixed order; the first one that produces a range wins. Every candidate is
validated (real calendar date, year bounds, start <= end) and silently dropped
when invalid, so resolution never raises on odd phrasing.
"""

import re
from datetime import date, timedelta
from typing import Callable, Optional

import structlog
from dateutil.relativedelta import relativedelta

from .config_service import ConfigService
from .query_plan_service import TimeRange

logger = structlog.get_logger(__name__)

Strategy = Callable[[str, date], list[TimeRange]]

MONTH_NAMES = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december',
]

MONTH_MAP = {name: i for i, name in enumerate(MONTH_NAMES, 1)}
MONTH_MAP.update({name[:3]: i for i, name in enumerate(MONTH_NAMES, 1)})
MONTH_MAP['sept'] = 9

MONTH = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
SEP = r"(?:\s+to\s+|\s*[-–]\s*)"

# Explicit range family, also used by the dual-range strategy
MONTH_SPAN_RE = re.compile(
    rf"\b{MONTH}\s+(\d{{1,2}}),?\s+(\d{{4}}){SEP}{MONTH}\s+(\d{{1,2}}),?\s+(\d{{4}})\b",
    re.IGNORECASE,
)
MONTH_DAY_RANGE_RE = re.compile(
    rf"\b{MONTH}\s+(\d{{1,2}}){SEP}(\d{{1,2}}),?\s+(\d{{4}})\b",
    re.IGNORECASE,
)
NUMERIC_RANGE_RE = re.compile(
    rf"\b(\d{{1,2}})/(\d{{1,2}})/(\d{{4}}){SEP}(\d{{1,2}})/(\d{{1,2}})/(\d{{4}})\b",
)
ISO_RANGE_RE = re.compile(
    rf"\b(\d{{4}})-(\d{{2}})-(\d{{2}}){SEP}(\d{{4}})-(\d{{2}})-(\d{{2}})\b",
)

NUMERIC_DUAL_RE = re.compile(
    rf"(?P<first>\b\d{{1,2}}/\d{{1,2}}/\d{{4}}{SEP}\d{{1,2}}/\d{{1,2}}/\d{{4}})"
    rf"\s+and\s+then\s+"
    rf"(?P<second>\d{{1,2}}/\d{{1,2}}/\d{{4}}{SEP}\d{{1,2}}/\d{{1,2}}/\d{{4}}\b)",
    re.IGNORECASE,
)
MONTH_DUAL_RE = re.compile(
    rf"(?P<first>\b{MONTH}\s+\d{{1,2}}{SEP}\d{{1,2}},?\s+\d{{4}})"
    rf"\s+and(?:\s+then)?\s+"
    rf"(?P<second>(?:{MONTH}\s+)?\d{{1,2}}{SEP}\d{{1,2}},?\s+\d{{4}}\b)",
    re.IGNORECASE,
)

QUARTER_RE = re.compile(r"\b(?:q|quarter)\s*([1-4])\s+(?:of\s+)?(\d{4})\b", re.IGNORECASE)
QUARTER_WORD_RE = re.compile(
    r"\b(first|second|third|fourth)\s+quarter(?:\s+of)?\s+(\d{4})\b", re.IGNORECASE
)
MONTH_YEAR_RE = re.compile(rf"\b{MONTH}\s+(\d{{4}})\b", re.IGNORECASE)
MONTH_ONLY_RE = re.compile(rf"\b(?:for|in|during)\s+{MONTH}\b(?!\s+\d)", re.IGNORECASE)
YEAR_ONLY_RE = re.compile(r"(?<![\d/-])((?:19|20)\d{2})(?![\d/-])")
PREVIOUS_WORD_RE = re.compile(r"([a-z]+)\W*$", re.IGNORECASE)
NEXT_WORD_RE = re.compile(r"^\W*([a-z]+)", re.IGNORECASE)

QUARTER_WORDS = {'first': 1, 'second': 2, 'third': 3, 'fourth': 4}

# A bare four-digit number is only a year next to one of these words
YEAR_CONTEXT_WORDS = frozenset({'in', 'for', 'during', 'of', 'year'})
COMPARISON_YEAR_CONTEXT_WORDS = YEAR_CONTEXT_WORDS | {
    'compare', 'compared', 'vs', 'versus', 'against', 'and', 'to',
}


def year_in_bounds(year: int) -> bool:
    return ConfigService.MIN_YEAR <= year <= ConfigService.MAX_YEAR


def make_date(year: int, month: int, day: int) -> Optional[date]:
    """Build a date, or None when the date is impossible or out of bounds."""
    if not year_in_bounds(year):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def make_range(start: Optional[date], end: Optional[date], label: Optional[str] = None) -> Optional[TimeRange]:
    """Build a range, or None when either bound is missing or reversed."""
    if start is None or end is None or start > end:
        return None
    return TimeRange(start, end, label)


def month_range(year: int, month: int, label: Optional[str] = None) -> Optional[TimeRange]:
    start = make_date(year, month, 1)
    if start is None:
        return None
    end = start + relativedelta(months=1) - timedelta(days=1)
    return TimeRange(start, end, label or start.strftime('%B %Y'))


def quarter_range(year: int, quarter: int, label: Optional[str] = None) -> Optional[TimeRange]:
    if not 1 <= quarter <= 4:
        return None
    start = make_date(year, (quarter - 1) * 3 + 1, 1)
    if start is None:
        return None
    end = start + relativedelta(months=3) - timedelta(days=1)
    return TimeRange(start, end, label or f"Q{quarter} {year}")


def year_range(year: int, label: Optional[str] = None) -> Optional[TimeRange]:
    if not year_in_bounds(year):
        return None
    return TimeRange(date(year, 1, 1), date(year, 12, 31), label or str(year))


def month_number(token: str) -> Optional[int]:
    return MONTH_MAP.get(token.lower())


def _yesterday(today: date) -> date:
    return today - timedelta(days=ConfigService.DATA_LAG_DAYS)


def _clean(label: str) -> str:
    return " ".join(label.split())


# ---------------------------------------------------------------------------
# Explicit range parsers
# ---------------------------------------------------------------------------

def _parse_month_span(m: re.Match) -> Optional[TimeRange]:
    month1, month2 = month_number(m.group(1)), month_number(m.group(4))
    if not month1 or not month2:
        return None
    start = make_date(int(m.group(3)), month1, int(m.group(2)))
    end = make_date(int(m.group(6)), month2, int(m.group(5)))
    return make_range(start, end, _clean(m.group(0)))


def _parse_month_day_range(m: re.Match) -> Optional[TimeRange]:
    month = month_number(m.group(1))
    if not month:
        return None
    year = int(m.group(4))
    start = make_date(year, month, int(m.group(2)))
    end = make_date(year, month, int(m.group(3)))
    return make_range(start, end, _clean(m.group(0)))


def _parse_numeric_range(m: re.Match) -> Optional[TimeRange]:
    # Slash dates are always M/D/YYYY
    start = make_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
    end = make_date(int(m.group(6)), int(m.group(4)), int(m.group(5)))
    return make_range(start, end, _clean(m.group(0)))


def _parse_iso_range(m: re.Match) -> Optional[TimeRange]:
    start = make_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    end = make_date(int(m.group(4)), int(m.group(5)), int(m.group(6)))
    return make_range(start, end, _clean(m.group(0)))


EXPLICIT_PATTERNS: list[tuple[re.Pattern, Callable[[re.Match], Optional[TimeRange]]]] = [
    (MONTH_SPAN_RE, _parse_month_span),
    (MONTH_DAY_RANGE_RE, _parse_month_day_range),
    (NUMERIC_RANGE_RE, _parse_numeric_range),
    (ISO_RANGE_RE, _parse_iso_range),
]


def _scan(text: str, patterns) -> list[tuple[tuple[int, int], TimeRange]]:
    """Collect non-overlapping matches from a pattern family, ordered by position."""
    found: list[tuple[tuple[int, int], TimeRange]] = []
    for pattern, parser in patterns:
        for m in pattern.finditer(text):
            span = m.span()
            if any(span[0] < taken[1] and taken[0] < span[1] for taken, _ in found):
                continue
            parsed = parser(m)
            if parsed is None:
                logger.debug("Dropped invalid date candidate", candidate=m.group(0))
                continue
            found.append((span, parsed))
    found.sort(key=lambda item: item[0][0])
    return found


def _mask_explicit_ranges(text: str) -> str:
    """Blank out explicit ranges so calendar patterns do not re-read their years."""
    for pattern, _ in EXPLICIT_PATTERNS:
        text = pattern.sub(lambda m: " " * len(m.group(0)), text)
    return text


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def week_keywords(text: str, today: date) -> list[TimeRange]:
    """'this/current week' through yesterday; 'last/past week' Monday-Sunday."""
    lower = text.lower()

    if re.search(r"\b(this|current)\s+week\b", lower):
        end = _yesterday(today)
        start = end - timedelta(days=end.weekday())
        return [TimeRange(start, end, "this week")]

    if re.search(r"\b(last|past)\s+week\b", lower):
        this_monday = today - timedelta(days=today.weekday())
        start = this_monday - timedelta(days=7)
        end = this_monday - timedelta(days=1)
        return [TimeRange(start, end, "last week")]

    return []


def dual_range(text: str, today: date) -> list[TimeRange]:
    """Two ranges in one phrase joined by 'and then' (or 'and' for month names)."""
    m = NUMERIC_DUAL_RE.search(text)
    if m:
        first = _scan(m.group('first'), [(NUMERIC_RANGE_RE, _parse_numeric_range)])
        second = _scan(m.group('second'), [(NUMERIC_RANGE_RE, _parse_numeric_range)])
        if first and second:
            return [first[0][1], second[0][1]]

    m = MONTH_DUAL_RE.search(text)
    if m:
        first_text = m.group('first')
        second_text = m.group('second')
        if m.group(4) is None:
            # Second range inherits the month of the first
            second_text = f"{m.group(2)} {second_text}"
        first = _scan(first_text, [(MONTH_DAY_RANGE_RE, _parse_month_day_range)])
        second = _scan(second_text, [(MONTH_DAY_RANGE_RE, _parse_month_day_range)])
        if first and second:
            return [first[0][1], second[0][1]]

    return []


def _today(m: re.Match, today: date) -> Optional[TimeRange]:
    return TimeRange(today, today, "today")


def _yesterday_range(m: re.Match, today: date) -> Optional[TimeRange]:
    day = _yesterday(today)
    return TimeRange(day, day, "yesterday")


def _this_month(m: re.Match, today: date) -> Optional[TimeRange]:
    return make_range(today.replace(day=1), _yesterday(today), _clean(m.group(0)))


def _last_month(m: re.Match, today: date) -> Optional[TimeRange]:
    end = today.replace(day=1) - timedelta(days=1)
    return TimeRange(end.replace(day=1), end, "last month")


def _year_to_date(m: re.Match, today: date) -> Optional[TimeRange]:
    end = _yesterday(today)
    return make_range(date(end.year, 1, 1), end, _clean(m.group(0)))


def _last_year(m: re.Match, today: date) -> Optional[TimeRange]:
    return year_range(today.year - 1, "last year")


def _last_n_days(m: re.Match, today: date) -> Optional[TimeRange]:
    days = int(m.group(1))
    if not 1 <= days <= ConfigService.MAX_LAST_N_DAYS:
        return None
    end = _yesterday(today)
    start = end - timedelta(days=days - 1)
    return TimeRange(start, end, f"last {days} days")


def _last_n_months(m: re.Match, today: date) -> Optional[TimeRange]:
    months = int(m.group(1))
    if not 1 <= months <= ConfigService.MAX_LAST_N_MONTHS:
        return None
    # Completed calendar months before the current one
    first_of_month = today.replace(day=1)
    start = first_of_month - relativedelta(months=months)
    end = first_of_month - timedelta(days=1)
    return TimeRange(start, end, f"last {months} months")


RELATIVE_KEYWORDS: list[tuple[re.Pattern, Callable[[re.Match, date], Optional[TimeRange]]]] = [
    (re.compile(r"\btoday\b", re.IGNORECASE), _today),
    (re.compile(r"\byesterday\b", re.IGNORECASE), _yesterday_range),
    (re.compile(r"\b(?:this|current)\s+month\b", re.IGNORECASE), _this_month),
    (re.compile(r"\blast\s+month\b", re.IGNORECASE), _last_month),
    (re.compile(r"\b(?:month\s+to\s+date|mtd)\b", re.IGNORECASE), _this_month),
    (re.compile(r"\b(?:year\s+to\s+date|ytd|this\s+year)\b", re.IGNORECASE), _year_to_date),
    (re.compile(r"\blast\s+year\b", re.IGNORECASE), _last_year),
    (re.compile(r"\b(?:last|past)\s+(\d+)\s+days?\b", re.IGNORECASE), _last_n_days),
    (re.compile(r"\b(?:last|past)\s+(\d+)\s+months?\b", re.IGNORECASE), _last_n_months),
]


def relative_keywords(text: str, today: date) -> list[TimeRange]:
    """Single relative keyword such as 'yesterday' or 'last 45 days'."""
    for pattern, builder in RELATIVE_KEYWORDS:
        m = pattern.search(text)
        if not m:
            continue
        resolved = builder(m, today)
        if resolved is not None:
            return [resolved]
        logger.debug("Relative keyword produced no valid window", keyword=m.group(0))
    return []


def generic_scan(text: str, today: date) -> list[TimeRange]:
    """Explicit month-name, slash and ISO ranges; matches accumulate."""
    return [r for _, r in _scan(text, EXPLICIT_PATTERNS)]


def _quarter_match(m: re.Match) -> Optional[TimeRange]:
    return quarter_range(int(m.group(2)), int(m.group(1)), _clean(m.group(0)))


def _quarter_word_match(m: re.Match) -> Optional[TimeRange]:
    return quarter_range(int(m.group(2)), QUARTER_WORDS[m.group(1).lower()], _clean(m.group(0)))


def _month_year_match(m: re.Match) -> Optional[TimeRange]:
    month = month_number(m.group(1))
    if not month:
        return None
    return month_range(int(m.group(2)), month, _clean(m.group(0)))


def _year_mentions(text: str, context_words: frozenset, check_next: bool) -> list[TimeRange]:
    """Bare years with a context word before them (or after, when check_next)."""
    years = []
    for m in YEAR_ONLY_RE.finditer(text):
        neighbours = [PREVIOUS_WORD_RE.search(text[:m.start()])]
        if check_next:
            neighbours.append(NEXT_WORD_RE.search(text[m.end():]))
        words = {n.group(1).lower() for n in neighbours if n}
        if not words & context_words:
            logger.debug("Ignored number without year context", candidate=m.group(1))
            continue
        resolved = year_range(int(m.group(1)))
        if resolved is not None and resolved not in years:
            years.append(resolved)
    return years


def _calendar_periods(
    text: str,
    today: date,
    year_context: frozenset,
    check_next: bool
) -> list[TimeRange]:
    masked = _mask_explicit_ranges(text)

    found = _scan(masked, [
        (QUARTER_RE, _quarter_match),
        (QUARTER_WORD_RE, _quarter_word_match),
        (MONTH_YEAR_RE, _month_year_match),
    ])
    if found:
        return [r for _, r in found]

    m = MONTH_ONLY_RE.search(masked)
    if m:
        month = month_number(m.group(1))
        year = today.year if month <= today.month else today.year - 1
        resolved = month_range(year, month)
        if resolved is not None:
            return [resolved]

    return _year_mentions(masked, year_context, check_next)


def calendar_periods(text: str, today: date) -> list[TimeRange]:
    """Whole quarters, months or years ('Q1 2025', 'January 2025', 'in 2024')."""
    return _calendar_periods(text, today, YEAR_CONTEXT_WORDS, check_next=False)


def comparison_calendar_periods(text: str, today: date) -> list[TimeRange]:
    """Calendar periods where comparison connectors also mark bare years ('2025 vs 2024')."""
    return _calendar_periods(text, today, COMPARISON_YEAR_CONTEXT_WORDS, check_next=True)


class TimeExpressionResolver:
    """Canonical time resolver - single source of truth for query date ranges."""

    STRATEGIES: tuple[Strategy, ...] = (
        week_keywords,
        dual_range,
        relative_keywords,
        generic_scan,
        calendar_periods,
    )

    def __init__(self, today: Optional[date] = None):
        self._today = today

    @property
    def today(self) -> date:
        """Evaluation date; the current local date unless one was injected."""
        return self._today or date.today()

    def resolve(self, text: str) -> list[TimeRange]:
        """
        Resolve up to two ranges from free text.

        Args:
            text: User query

        Returns:
            List of 0..2 TimeRange, from the first strategy that matched
        """
        if not text:
            return []

        today = self.today
        for strategy in self.STRATEGIES:
            ranges = strategy(text, today)
            if ranges:
                ranges = ranges[:ConfigService.MAX_RESOLVED_RANGES]
                logger.info(
                    "Resolved date ranges",
                    strategy=strategy.__name__,
                    ranges=[r.to_query_string() for r in ranges],
                )
                return ranges

        logger.info("No date ranges extracted from input", text=text)
        return []

    def resolve_dual(self, text: str) -> list[TimeRange]:
        """Run only the dual-range strategy."""
        return dual_range(text or "", self.today)

    def resolve_comparison_fallback(self, text: str) -> list[TimeRange]:
        """
        Deterministic two-period extraction for comparison queries.

        Tries explicit ranges first, then whole calendar periods such as
        'October 2025 vs October 2024'. Only returns when two ranges were
        found; a single range is not enough for a comparison.

        Args:
            text: User query

        Returns:
            Exactly two TimeRange, or an empty list
        """
        today = self.today
        for strategy in (generic_scan, comparison_calendar_periods):
            ranges = strategy(text or "", today)
            if len(ranges) >= 2:
                return ranges[:2]
        return []

    def parse_iso_range(self, text: str) -> Optional[TimeRange]:
        """Parse the first 'YYYY-MM-DD to YYYY-MM-DD' range in text."""
        found = _scan(text or "", [(ISO_RANGE_RE, _parse_iso_range)])
        return found[0][1] if found else None
