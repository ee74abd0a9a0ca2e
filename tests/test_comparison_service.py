import pytest

from adcompare.comparison_service import ComparisonService


@pytest.mark.parametrize("current,previous,expected", [
    (0, 0, ("0.00%", True)),
    (5, 0, ("N/A", False)),
    (150, 100, ("50.00%", True)),
    (50, 100, ("-50.00%", True)),
])
def test_percentage_change_formatted(current, previous, expected):
    assert ComparisonService.calculate_percentage_change(current, previous) == expected


def test_percentage_change_raw():
    assert ComparisonService.calculate_percentage_change(1, 3, format_result=False) == (-66.67, True)
    assert ComparisonService.calculate_percentage_change(5, 0, format_result=False) == (None, False)


def test_absolute_change():
    assert ComparisonService.calculate_absolute_change(7.5, 5.25) == 2.25


def test_compare_totals_only_compares_shared_numeric_metrics():
    baseline = {"clicks": 10, "ctr": 5.0, "cost_currency": 0.0, "label": "x"}
    primary = {"clicks": 15, "ctr": 4.0, "cost_currency": 3.0}

    changes = ComparisonService.compare_totals(baseline, primary)

    assert set(changes) == {"clicks", "ctr", "cost_currency"}
    assert changes["clicks"] == {"baseline": 10, "primary": 15, "change": 5, "pct_change": 50.0}
    assert changes["ctr"]["pct_change"] == -20.0
    assert changes["cost_currency"]["pct_change"] is None
