"""
Comparison Service
Period-over-period change calculations with zero-baseline rules.
"""

from typing import Optional, Tuple

from .config_service import ConfigService


class ComparisonService:
    """Service for calculating changes between a baseline and a primary period."""

    @staticmethod
    def calculate_percentage_change(
        current: float,
        previous: float,
        format_result: bool = True
    ) -> Tuple[Optional[str | float], bool]:
        """
        Calculate percentage change with centralized zero-baseline rules.

        Rules:
        - prev == 0 and curr == 0 → 0.00% (valid)
        - prev == 0 and curr != 0 → N/A (undefined, cannot divide by zero)
        - else → (curr - prev) / prev * 100

        Args:
            current: Primary period value
            previous: Baseline period value
            format_result: If True, returns formatted string; if False, returns float or None

        Returns:
            Tuple of (percentage_change, is_valid)
        """
        if previous == 0 and current == 0:
            if format_result:
                return "0.00%", True
            return 0.0, True

        if previous == 0:
            if format_result:
                return "N/A", False
            return None, False

        pct_change = ((current - previous) / previous) * 100

        if format_result:
            return f"{pct_change:.2f}%", True
        return round(pct_change, ConfigService.DEFAULT_DECIMAL_PLACES), True

    @staticmethod
    def calculate_absolute_change(current: float, previous: float) -> float:
        """Calculate absolute change (current - previous)."""
        return round(current - previous, ConfigService.DEFAULT_DECIMAL_PLACES)

    @staticmethod
    def compare_totals(baseline: dict, primary: dict) -> dict[str, dict]:
        """
        Compare two periods' totals metric by metric.

        Only metrics present in both periods are compared.

        Args:
            baseline: Totals of the baseline period (period A)
            primary: Totals of the primary period (period B)

        Returns:
            Dictionary of metric → {baseline, primary, change, pct_change}
        """
        changes = {}
        for metric, previous in baseline.items():
            current = primary.get(metric)
            if not isinstance(current, (int, float)) or not isinstance(previous, (int, float)):
                continue
            pct, _ = ComparisonService.calculate_percentage_change(current, previous, format_result=False)
            changes[metric] = {
                "baseline": previous,
                "primary": current,
                "change": ComparisonService.calculate_absolute_change(current, previous),
                "pct_change": pct,
            }
        return changes
