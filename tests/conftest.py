"""Shared test fixtures."""

import pandas as pd
import pytest


def daily_prices(start: str, end: str, price: float) -> pd.Series:
    index = pd.date_range(start, end, freq="D", name="date")
    return pd.Series(price, index=index, name="close", dtype=float)


@pytest.fixture
def make_series():
    """Build a daily price series from (start, end, price) segments."""

    def _make(*segments) -> pd.Series:
        return pd.concat([daily_prices(*segment) for segment in segments])

    return _make


@pytest.fixture
def flat_then_payout(make_series):
    """$2.00 for the 200 days before 2024, then a single payout-day price on Feb 1st."""

    def _make(payout_price: float) -> pd.Series:
        return make_series(
            ("2023-06-15", "2024-01-31", 2.00),
            ("2024-02-01", "2024-02-01", payout_price),
        )

    return _make


@pytest.fixture
def multi_year_series(make_series):
    """Two and a half years of prices moving through and outside a 80%/170% band."""
    return make_series(
        ("2023-01-01", "2023-12-31", 2.00),
        ("2024-01-01", "2024-04-30", 1.00),
        ("2024-05-01", "2024-08-31", 2.20),
        ("2024-09-01", "2024-12-31", 6.00),
        ("2025-01-01", "2025-06-30", 3.00),
    )
