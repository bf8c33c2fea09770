"""
Performance Calculator - Trailing returns derived from daily history.

None of the upstream providers expose fund performance directly, so it is
computed from a daily close series:

- return_pct:   (last close / base close - 1) * 100, where base is the last
                close on or before the start of the period
- volatility:   annualized standard deviation of daily simple returns (%)
- sharpe_ratio: annualized mean return / annualized volatility, risk-free 0
"""

import math
import statistics
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from etf_data.exceptions import ValidationError
from etf_data.models import Performance, Period, PricePoint


TRADING_DAYS_PER_YEAR = 252

# Calendar look-back per period. YTD and MAX are resolved against the series.
PERIOD_DAYS: dict[Period, int] = {
    Period.D1: 1,
    Period.W1: 7,
    Period.M1: 30,
    Period.M3: 91,
    Period.M6: 182,
    Period.Y1: 365,
    Period.Y2: 730,
    Period.Y3: 1095,
    Period.Y5: 1826,
    Period.Y10: 3652,
}

MAX_LOOKBACK_DAYS = 365 * 30


def parse_periods(periods: Iterable[str]) -> list[Period]:
    """
    Parse period labels ("1M", "ytd", ...), preserving order and dropping
    duplicates.

    Raises:
        ValidationError: On an empty list or an unknown label
    """
    parsed: list[Period] = []
    for label in periods:
        try:
            period = Period(str(label).strip().upper())
        except ValueError:
            valid = ", ".join(p.value for p in Period)
            raise ValidationError(
                f"Invalid period '{label}'. Valid periods: {valid}",
                field="periods",
                value=label,
            )
        if period not in parsed:
            parsed.append(period)

    if not parsed:
        raise ValidationError("At least one period is required", field="periods", value=[])
    return parsed


def period_start(period: Period, end: datetime) -> Optional[datetime]:
    """Start of a period ending at `end`. None means "from the first point"."""
    if period == Period.MAX:
        return None
    if period == Period.YTD:
        return datetime(end.year, 1, 1, tzinfo=end.tzinfo)
    return end - timedelta(days=PERIOD_DAYS[period])


def lookback_start(periods: Sequence[Period], end: datetime) -> datetime:
    """Earliest date a history request must cover for the given periods."""
    starts: list[datetime] = []
    for period in periods:
        start = period_start(period, end)
        starts.append(start if start is not None else end - timedelta(days=MAX_LOOKBACK_DAYS))
    # A week of slack so the base bar before a weekend/holiday is included
    return min(starts) - timedelta(days=7)


def _to_datetime(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def _daily_returns(points: Sequence[PricePoint]) -> list[float]:
    returns = []
    for previous, current in zip(points, points[1:]):
        if previous.close > 0:
            returns.append(current.close / previous.close - 1)
    return returns


def _risk_metrics(points: Sequence[PricePoint]) -> tuple[float, float]:
    """(volatility %, sharpe ratio) for the bars in a window."""
    returns = _daily_returns(points)
    if len(returns) < 2:
        return 0.0, 0.0

    stdev = statistics.stdev(returns)
    if stdev == 0:
        return 0.0, 0.0

    annual_vol = stdev * math.sqrt(TRADING_DAYS_PER_YEAR)
    annual_return = statistics.fmean(returns) * TRADING_DAYS_PER_YEAR
    return annual_vol * 100, annual_return / annual_vol


def compute_performance(
    symbol: str,
    points: Sequence[PricePoint],
    periods: Sequence[Period],
) -> list[Performance]:
    """
    Compute trailing performance for each period.

    Periods whose start precedes the available history are omitted.
    """
    ordered = sorted((p for p in points if p.close > 0), key=lambda p: p.timestamp)
    if len(ordered) < 2:
        return []

    last = ordered[-1]
    end = _to_datetime(last.timestamp)
    results: list[Performance] = []

    for period in periods:
        start = period_start(period, end)

        if start is None:
            base_index = 0
        else:
            base_index = -1
            for index, point in enumerate(ordered):
                if _to_datetime(point.timestamp) <= start:
                    base_index = index
                else:
                    break
            if base_index < 0:
                continue

        base = ordered[base_index]
        if base is last:
            continue

        window = ordered[base_index:]
        volatility, sharpe = _risk_metrics(window)
        results.append(Performance(
            symbol=symbol,
            period=period.value,
            return_pct=(last.close / base.close - 1) * 100,
            volatility=volatility,
            sharpe_ratio=sharpe,
        ))

    return results
