from datetime import date

import pytest

from adcompare.time_resolver import TimeExpressionResolver


@pytest.fixture
def today():
    """Fixed evaluation date (a Sunday)."""
    return date(2025, 6, 15)


@pytest.fixture
def resolver(today):
    return TimeExpressionResolver(today)
