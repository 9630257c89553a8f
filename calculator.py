"""
Core Payout Calculation Module

This module contains the calculation engine for the MPC node payout schedule.
It derives a yearly baseline from the trailing 180-day average price, builds a
floor/ceiling band around it, and reprices each monthly payout so that its USD
value never falls below the floor guarantee or rises above the ceiling cap.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 180
MIN_LOOKBACK_SAMPLES = 30
DEFAULT_YEARS = [2021, 2022, 2023, 2024, 2025, 2026]


@dataclass(frozen=True)
class PercentBand:
    """Floor and ceiling expressed as multipliers of the 180-day baseline"""

    floor_percent: float = 0.80  # 80% of 180d avg
    ceiling_percent: float = 1.70  # 170% of 180d avg

    def __post_init__(self):
        if not 0 < self.floor_percent < 1 < self.ceiling_percent:
            raise ValueError(
                f"Percent band must satisfy 0 < floor < 1 < ceiling. "
                f"Got floor={self.floor_percent:.2%}, ceiling={self.ceiling_percent:.2%}"
            )


@dataclass(frozen=True)
class PriceBand:
    """Floor and ceiling given as absolute token prices in USD"""

    floor_price: float
    ceiling_price: float

    def __post_init__(self):
        if not 0 < self.floor_price < self.ceiling_price:
            raise ValueError(
                f"Price band must satisfy 0 < floor < ceiling. "
                f"Got floor=${self.floor_price:.4f}, ceiling=${self.ceiling_price:.4f}"
            )


Band = Union[PercentBand, PriceBand]


@dataclass(frozen=True)
class CalculatorParams:
    """Configuration parameters for one payout calculation run"""

    monthly_usd_target: float = 7200
    band: Band = field(default_factory=PercentBand)

    def __post_init__(self):
        if self.monthly_usd_target <= 0:
            raise ValueError(f"Monthly USD target must be positive. Got {self.monthly_usd_target}")
        if not isinstance(self.band, (PercentBand, PriceBand)):
            raise ValueError(f"Unsupported band configuration: {self.band!r}")

    def band_prices(self, baseline: float) -> Tuple[float, float]:
        """Floor and ceiling prices for a year with the given baseline"""
        if isinstance(self.band, PercentBand):
            return baseline * self.band.floor_percent, baseline * self.band.ceiling_percent
        return self.band.floor_price, self.band.ceiling_price

    def band_percents(self, baseline: float) -> Tuple[float, float]:
        """
        Floor and ceiling as multipliers of the baseline

        For an absolute price band the multipliers are implied by the baseline,
        so the USD guarantee equals the fixed token amount valued at the band price.
        """
        if isinstance(self.band, PercentBand):
            return self.band.floor_percent, self.band.ceiling_percent
        return self.band.floor_price / baseline, self.band.ceiling_price / baseline


class PayoutStatus(str, Enum):
    FLOOR_HIT = "FLOOR HIT"
    CEILING_HIT = "CEILING HIT"
    NORMAL = "Normal"


@dataclass(frozen=True)
class BandAdjustment:
    status: PayoutStatus
    effective_tokens: float
    effective_usd_value: float


@dataclass(frozen=True)
class PayoutRecord:
    """A single monthly payout with its band adjustment applied"""

    year: int
    payout_date: date
    month: int
    baseline: float
    floor_price: float
    ceiling_price: float
    fixed_tokens: float
    effective_tokens: float
    price_at_payout: float
    nominal_usd_value: float
    effective_usd_value: float
    status: PayoutStatus

    @property
    def token_delta(self) -> float:
        return self.effective_tokens - self.fixed_tokens

    @property
    def floor_hit(self) -> bool:
        return self.status is PayoutStatus.FLOOR_HIT

    @property
    def ceiling_hit(self) -> bool:
        return self.status is PayoutStatus.CEILING_HIT


@dataclass(frozen=True)
class YearSummary:
    """Aggregated payout figures for one baseline year"""

    year: int
    baseline: float
    floor_price: float
    ceiling_price: float
    fixed_tokens: float
    floor_count: int
    ceiling_count: int
    normal_count: int
    total_payouts: int
    total_tokens_paid: float
    total_tokens_if_unadjusted: float
    tokens_saved_by_ceiling: float
    tokens_added_by_floor: float
    avg_effective_usd_value: float
    avg_nominal_usd_value: float

    @property
    def net_token_impact(self) -> float:
        """Extra tokens paid (positive) or saved (negative) by the band"""
        return self.tokens_added_by_floor - self.tokens_saved_by_ceiling


def lookback_average(
    series: pd.Series,
    reference_date,
    window_days: int = LOOKBACK_DAYS,
    min_samples: int = MIN_LOOKBACK_SAMPLES,
) -> Optional[float]:
    """
    Trailing mean price over the calendar window ending just before a date

    Args:
        series: Closing prices indexed by date
        reference_date: First day excluded from the window
        window_days: Window length in calendar days
        min_samples: Minimum number of observations required in the window

    Returns:
        Mean closing price, or None when the window holds fewer than min_samples points
    """
    reference = pd.Timestamp(reference_date)
    start = reference - pd.Timedelta(days=window_days)
    window = series[(series.index >= start) & (series.index < reference)]

    if len(window) < min_samples:
        return None

    return float(window.mean())


def price_on_or_after(series: pd.Series, target_date) -> Optional[float]:
    """
    Closing price on a date, rolling forward to the next observation when missing

    Payout dates fall on month starts, which are often non-trading days. The
    lookup only moves forward in time.
    """
    target = pd.Timestamp(target_date)

    exact = series[series.index == target]
    if len(exact) > 0:
        return float(exact.iloc[0])

    later = series[series.index >= target]
    if len(later) == 0:
        return None
    return float(later.iloc[0])


def adjust_payout(
    price_at_payout: float,
    floor_price: float,
    ceiling_price: float,
    fixed_tokens: float,
    monthly_usd_target: float,
    floor_percent: float,
    ceiling_percent: float,
) -> BandAdjustment:
    """
    Apply the floor/ceiling policy to one payout

    Below the floor the payout is repriced to guarantee target × floor_percent
    in USD (more tokens); above the ceiling it is capped at
    target × ceiling_percent (fewer tokens). Inside the band the fixed token
    amount is paid as is.

    Args:
        price_at_payout: Market price on the payout date (must be positive)
        floor_price: Lower band bound
        ceiling_price: Upper band bound
        fixed_tokens: Token amount implied by the baseline
        monthly_usd_target: Monthly payout target in USD
        floor_percent: USD guarantee multiplier applied on a floor hit
        ceiling_percent: USD cap multiplier applied on a ceiling hit

    Returns:
        BandAdjustment with status, effective tokens and effective USD value
    """
    if price_at_payout < floor_price:
        usd_value = monthly_usd_target * floor_percent
        return BandAdjustment(PayoutStatus.FLOOR_HIT, usd_value / price_at_payout, usd_value)

    if price_at_payout > ceiling_price:
        usd_value = monthly_usd_target * ceiling_percent
        return BandAdjustment(PayoutStatus.CEILING_HIT, usd_value / price_at_payout, usd_value)

    return BandAdjustment(PayoutStatus.NORMAL, fixed_tokens, fixed_tokens * price_at_payout)


def _payout_dates(year: int) -> List[date]:
    # February of the baseline year through January of the next one
    dates = []
    for month in range(2, 14):
        if month <= 12:
            dates.append(date(year, month, 1))
        else:
            dates.append(date(year + 1, month - 12, 1))
    return dates


def generate_payouts(
    series: pd.Series,
    params: CalculatorParams,
    years: Iterable[int] = DEFAULT_YEARS,
) -> List[PayoutRecord]:
    """
    Build the monthly payout schedule for the requested years

    Years without enough lookback history and months without a resolvable price
    are left out of the result rather than reported as errors.

    Returns:
        Payout records sorted by payout date
    """
    results = []

    for year in years:
        baseline = lookback_average(series, date(year, 1, 1))
        if baseline is None:
            logger.debug("Skipping %s: fewer than %s prices in the %s-day lookback",
                         year, MIN_LOOKBACK_SAMPLES, LOOKBACK_DAYS)
            continue

        floor_price, ceiling_price = params.band_prices(baseline)
        floor_percent, ceiling_percent = params.band_percents(baseline)
        fixed_tokens = params.monthly_usd_target / baseline

        for payout_date in _payout_dates(year):
            price_at_payout = price_on_or_after(series, payout_date)
            if price_at_payout is None:
                logger.debug("Skipping payout %s: no price on or after this date", payout_date)
                continue

            adjustment = adjust_payout(
                price_at_payout,
                floor_price,
                ceiling_price,
                fixed_tokens,
                params.monthly_usd_target,
                floor_percent,
                ceiling_percent,
            )

            results.append(PayoutRecord(
                year=year,
                payout_date=payout_date,
                month=payout_date.month,
                baseline=baseline,
                floor_price=floor_price,
                ceiling_price=ceiling_price,
                fixed_tokens=fixed_tokens,
                effective_tokens=adjustment.effective_tokens,
                price_at_payout=price_at_payout,
                nominal_usd_value=fixed_tokens * price_at_payout,
                effective_usd_value=adjustment.effective_usd_value,
                status=adjustment.status,
            ))

    return sorted(results, key=lambda r: r.payout_date)


def summarize_by_year(records: Sequence[PayoutRecord]) -> List[YearSummary]:
    """Fold payout records into one summary per year, in ascending year order"""
    year_groups = {}
    for record in records:
        year_groups.setdefault(record.year, []).append(record)

    summaries = []
    for year in sorted(year_groups):
        data = year_groups[year]
        first = data[0]

        effective = np.array([r.effective_tokens for r in data])
        fixed = np.array([r.fixed_tokens for r in data])
        floor_mask = np.array([r.floor_hit for r in data])
        ceiling_mask = np.array([r.ceiling_hit for r in data])

        summaries.append(YearSummary(
            year=year,
            baseline=first.baseline,
            floor_price=first.floor_price,
            ceiling_price=first.ceiling_price,
            fixed_tokens=first.fixed_tokens,
            floor_count=int(floor_mask.sum()),
            ceiling_count=int(ceiling_mask.sum()),
            normal_count=int((~floor_mask & ~ceiling_mask).sum()),
            total_payouts=len(data),
            total_tokens_paid=float(np.sum(effective)),
            total_tokens_if_unadjusted=float(np.sum(fixed)),
            tokens_saved_by_ceiling=float(np.sum(fixed[ceiling_mask] - effective[ceiling_mask])),
            tokens_added_by_floor=float(np.sum(effective[floor_mask] - fixed[floor_mask])),
            avg_effective_usd_value=float(np.mean([r.effective_usd_value for r in data])),
            avg_nominal_usd_value=float(np.mean([r.nominal_usd_value for r in data])),
        ))

    return summaries


def compute(
    series: pd.Series,
    params: CalculatorParams,
    years: Iterable[int] = DEFAULT_YEARS,
) -> Tuple[List[PayoutRecord], List[YearSummary]]:
    """
    Run the full pipeline: payout schedule followed by yearly summaries

    Holds no state between calls; callers rerun it whenever inputs change.
    """
    records = generate_payouts(series, params, years)
    summaries = summarize_by_year(records)
    logger.info("Computed %d payouts across %d years", len(records), len(summaries))
    return records, summaries


def records_to_frame(records: Sequence[PayoutRecord]) -> pd.DataFrame:
    """Tabular view of payout records, one row per payout"""
    columns = [
        'year', 'payout_date', 'month', 'baseline', 'floor_price', 'ceiling_price',
        'fixed_tokens', 'effective_tokens', 'token_delta', 'price_at_payout',
        'nominal_usd_value', 'effective_usd_value', 'status',
    ]
    rows = []
    for r in records:
        rows.append({
            'year': r.year,
            'payout_date': r.payout_date.isoformat(),
            'month': r.month,
            'baseline': r.baseline,
            'floor_price': r.floor_price,
            'ceiling_price': r.ceiling_price,
            'fixed_tokens': r.fixed_tokens,
            'effective_tokens': r.effective_tokens,
            'token_delta': r.token_delta,
            'price_at_payout': r.price_at_payout,
            'nominal_usd_value': r.nominal_usd_value,
            'effective_usd_value': r.effective_usd_value,
            'status': r.status.value,
        })
    return pd.DataFrame(rows, columns=columns)


def summaries_to_frame(summaries: Sequence[YearSummary]) -> pd.DataFrame:
    """Tabular view of year summaries, one row per year"""
    columns = [
        'year', 'baseline', 'floor_price', 'ceiling_price', 'fixed_tokens',
        'floor_count', 'ceiling_count', 'normal_count', 'total_payouts',
        'total_tokens_paid', 'total_tokens_if_unadjusted', 'tokens_saved_by_ceiling',
        'tokens_added_by_floor', 'net_token_impact', 'avg_effective_usd_value',
        'avg_nominal_usd_value',
    ]
    rows = [{col: getattr(s, col) for col in columns} for s in summaries]
    return pd.DataFrame(rows, columns=columns)
