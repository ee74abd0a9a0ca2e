"""
Intent Classifier Service
Keyword-based detection of period-over-period comparison queries.
"""

import re

from .config_service import ConfigService


class IntentClassifier:
    """Service for detecting comparison queries and labelling their type."""

    # NOTE: bare "and" also fires on unrelated two-clause queries.
    COMPARISON_KEYWORDS: tuple[str, ...] = (
        'compare', 'vs', 'versus', 'and', 'against', 'compared to',
        'year over year', 'yoy', 'month over month', 'mom',
        'previous year', 'last year', 'prior year',
    )

    YEAR_OVER_YEAR = re.compile(
        r"\b(yoy|year[\s-]over[\s-]year|(?:previous|last|prior)\s+year)\b", re.IGNORECASE
    )
    MONTH_OVER_MONTH = re.compile(r"\b(mom|month[\s-]over[\s-]month)\b", re.IGNORECASE)
    WEEK_OVER_WEEK = re.compile(r"\b(wow|week[\s-]over[\s-]week|and\s+then)\b", re.IGNORECASE)

    @classmethod
    def classify(cls, text: str) -> bool:
        """Return True when the query asks for a comparison."""
        return bool(cls.matched_keywords(text))

    @classmethod
    def matched_keywords(cls, text: str) -> list[str]:
        """Keywords found in the text (case-insensitive substring match)."""
        lower = (text or "").lower()
        return [keyword for keyword in cls.COMPARISON_KEYWORDS if keyword in lower]

    @classmethod
    def comparison_label(cls, text: str) -> str:
        """
        Label the comparison type.

        Args:
            text: User query

        Returns:
            'year_over_year', 'month_over_month', 'week_over_week', or the
            generic default label
        """
        text = text or ""
        if cls.YEAR_OVER_YEAR.search(text):
            return "year_over_year"
        if cls.MONTH_OVER_MONTH.search(text):
            return "month_over_month"
        if cls.WEEK_OVER_WEEK.search(text):
            return "week_over_week"
        return ConfigService.DEFAULT_INTENT_LABEL
