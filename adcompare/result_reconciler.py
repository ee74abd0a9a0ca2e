"""
Result Reconciler
Per-period aggregation of ad-platform result rows.

Precision policy:
- Raw fields are summed first; derived metrics are computed from the sums only
- Micros are converted with decimal.Decimal, never float division
- Rounding happens once, after division, using the configured mode (half-up default)
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import pandas as pd

from .config_service import ConfigService

SUM_FIELDS: dict[str, tuple[str, ...]] = {
    'clicks': ('clicks',),
    'impressions': ('impressions',),
    'conversions': ('conversions',),
    'conversions_value': ('conversions_value', 'conversionsValue', 'conversion_value'),
    'cost_micros': ('cost_micros', 'costMicros'),
}

# Converted per row for display; keys are the micros field names
MICROS_DISPLAY_FIELDS = {
    'costMicros': 'cost_currency',
    'cost_micros': 'cost_currency',
    'averageCpc': 'average_cpc_currency',
    'costPerConversion': 'cost_per_conversion_currency',
}

NUMERIC_STRING_RE = re.compile(r"^-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?$")


def _is_id_key(key: str) -> bool:
    return key == 'id' or key.endswith('Id') or key.endswith('_id') or key == 'resourceName'


def _to_number(value: str) -> int | float:
    if re.fullmatch(r"-?\d+", value):
        return int(value)
    return float(value)


class ResultReconciler:
    """Service for normalizing result rows and computing per-period totals."""

    @staticmethod
    def quantize(value: Decimal, places: Optional[int] = None) -> float:
        """Round a Decimal to the configured places and rounding mode."""
        if places is None:
            places = ConfigService.DEFAULT_DECIMAL_PLACES
        exponent = Decimal(1).scaleb(-places)
        return float(value.quantize(exponent, rounding=ConfigService.get_rounding_mode()))

    @staticmethod
    def micros_to_currency(micros: Any) -> Decimal:
        return Decimal(str(micros)) / Decimal(ConfigService.MICROS_PER_UNIT)

    @staticmethod
    def _metric_source(row: Any) -> dict:
        """Flat view of a row; nested 'metrics' values win over top-level ones."""
        if not isinstance(row, dict):
            return {}
        source = {k: v for k, v in row.items() if not isinstance(v, (dict, list))}
        metrics = row.get('metrics')
        if isinstance(metrics, dict):
            source.update(metrics)
        return source

    @classmethod
    def _raw_values(cls, row: Any) -> dict[str, Any]:
        source = cls._metric_source(row)
        values = {}
        for name, aliases in SUM_FIELDS.items():
            value = None
            for alias in aliases:
                if alias in source:
                    value = source[alias]
                    break
            if isinstance(value, bool) or not isinstance(value, (int, float, str)):
                value = None
            elif isinstance(value, str):
                value = value.strip()
            values[name] = value
        return values

    @classmethod
    def exact_sums(cls, rows: list[dict]) -> dict[str, Decimal]:
        """
        Sum raw numeric fields across rows without rounding.

        Missing, non-numeric and non-finite values contribute 0; numeric
        strings are parsed. Each value is summed as a Decimal of its textual
        form so float drift never enters the totals.

        Args:
            rows: Result rows (flat or with a nested 'metrics' object)

        Returns:
            Dictionary of field name to exact Decimal sum
        """
        frame = pd.DataFrame(
            [cls._raw_values(r) for r in rows or []],
            columns=list(SUM_FIELDS),
            dtype=object,
        )

        sums: dict[str, Decimal] = {}
        for name in SUM_FIELDS:
            numeric = pd.to_numeric(frame[name], errors='coerce')
            total = Decimal(0)
            for raw, parsed in zip(frame[name], numeric):
                if pd.isna(parsed):
                    continue
                try:
                    value = Decimal(str(raw))
                except InvalidOperation:
                    continue
                if value.is_finite():
                    total += value
            sums[name] = total
        return sums

    @staticmethod
    def _plain_number(value: Decimal) -> int | float:
        if value == value.to_integral_value():
            return int(value)
        return float(value)

    @classmethod
    def sum_fields(cls, rows: list[dict]) -> dict[str, int | float]:
        """Raw field sums as plain numbers (integral sums become int, nothing is rounded)."""
        return {name: cls._plain_number(total) for name, total in cls.exact_sums(rows).items()}

    @classmethod
    def aggregate(cls, rows: list[dict]) -> dict[str, int | float]:
        """
        Compute aggregate metrics for one period.

        Derived metrics use the exact summed fields only; nothing is averaged
        per row and nothing is rounded before division.

        Args:
            rows: Result rows for a single period

        Returns:
            AggregateMetrics dictionary
        """
        sums = cls.exact_sums(rows)

        cost = cls.micros_to_currency(sums['cost_micros'])
        clicks = sums['clicks']
        impressions = sums['impressions']
        conversions = sums['conversions']

        totals: dict[str, int | float] = {name: cls._plain_number(total) for name, total in sums.items()}
        totals['cost_currency'] = cls.quantize(cost)
        totals['avg_cpc'] = cls.quantize(cost / clicks) if clicks > 0 else 0.0
        totals['ctr'] = cls.quantize(clicks / impressions * 100) if impressions > 0 else 0.0
        totals['cost_per_conversion'] = cls.quantize(cost / conversions) if conversions > 0 else 0.0
        return totals

    @classmethod
    def format_row(cls, row: Any) -> Any:
        """
        Format a single result row, preserving nested structure.

        Numeric strings become numbers (IDs and resource names stay strings)
        and micros fields gain a currency counterpart.
        """
        if isinstance(row, list):
            return [cls.format_row(item) for item in row]
        if not isinstance(row, dict):
            return row

        formatted = {}
        for key, value in row.items():
            if isinstance(value, (dict, list)):
                formatted[key] = cls.format_row(value)
            elif isinstance(value, str) and NUMERIC_STRING_RE.match(value) and not _is_id_key(key):
                formatted[key] = _to_number(value)
            else:
                formatted[key] = value

        for micros_key, currency_key in MICROS_DISPLAY_FIELDS.items():
            value = formatted.get(micros_key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
                formatted[currency_key] = cls.quantize(cls.micros_to_currency(value))

        return formatted

    @classmethod
    def format_rows(cls, rows: list) -> list:
        return [cls.format_row(row) for row in rows or []]
