"""
ETF Data Models - Normalized, provider-agnostic data structures.

Every provider maps its own wire schema into these records. Absent fields
carry the type's "unknown" default (empty string or zero) rather than None,
so consumers never need to null-check individual fields.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from etf_data.capabilities import ProviderCapabilities
from etf_data.exceptions import (
    FACTORY_PROVIDER_NAME,
    AggregateExhaustedError,
    ProviderDataError,
)


T = TypeVar("T")


# =============================================================
# ENUMS
# =============================================================


class Period(Enum):
    """Performance look-back periods."""
    D1 = "1D"
    W1 = "1W"
    M1 = "1M"
    M3 = "3M"
    M6 = "6M"
    Y1 = "1Y"
    Y2 = "2Y"
    Y3 = "3Y"
    Y5 = "5Y"
    Y10 = "10Y"
    YTD = "YTD"
    MAX = "MAX"


DEFAULT_PERIODS = ["1D", "1W", "1M", "3M", "6M", "1Y", "3Y", "5Y", "YTD"]


class HistoricalInterval(Enum):
    """Bar sizes for historical series."""
    MIN1 = "1min"
    MIN5 = "5min"
    MIN15 = "15min"
    MIN30 = "30min"
    HOUR1 = "1hour"
    DAY1 = "1day"
    WEEK1 = "1week"
    MONTH1 = "1month"


class SecurityType(Enum):
    """Instrument type reported by search."""
    ETF = "ETF"
    STOCK = "Stock"
    INDEX = "Index"


class OutcomeStatus(Enum):
    """How a single provider attempt ended."""
    SUCCESS = "success"
    DATA_ERROR = "data_error"
    FAULT = "fault"


# =============================================================
# DOMAIN ENTITIES
# =============================================================


@dataclass
class Quote:
    """Latest price snapshot. timestamp is epoch milliseconds."""
    symbol: str
    name: str = ""
    price: float = 0.0
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    market_cap: float = 0.0
    timestamp: int = 0
    currency: str = ""
    exchange: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "change": self.change,
            "change_percent": self.change_percent,
            "volume": self.volume,
            "market_cap": self.market_cap,
            "timestamp": self.timestamp,
            "currency": self.currency,
            "exchange": self.exchange,
        }


@dataclass
class Metadata:
    """Fund profile."""
    symbol: str
    name: str = ""
    description: str = ""
    exchange: str = ""
    currency: str = ""
    isin: str = ""
    cusip: str = ""
    category: str = ""
    family: str = ""
    inception_date: str = ""
    expense_ratio: float = 0.0
    aum: float = 0.0  # Assets under management
    dividend_yield: float = 0.0
    pe_ratio: float = 0.0
    beta: float = 0.0
    website: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "description": self.description,
            "exchange": self.exchange,
            "currency": self.currency,
            "isin": self.isin,
            "cusip": self.cusip,
            "category": self.category,
            "family": self.family,
            "inception_date": self.inception_date,
            "expense_ratio": self.expense_ratio,
            "aum": self.aum,
            "dividend_yield": self.dividend_yield,
            "pe_ratio": self.pe_ratio,
            "beta": self.beta,
            "website": self.website,
        }


@dataclass
class Holding:
    """A fund constituent. weight is a percentage."""
    symbol: str
    name: str = ""
    weight: float = 0.0
    shares: float = 0.0
    market_value: float = 0.0
    sector: str = ""
    country: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "name": self.name,
            "weight": self.weight,
            "shares": self.shares,
            "market_value": self.market_value,
            "sector": self.sector,
            "country": self.country,
        }


@dataclass
class SectorAllocation:
    sector: str
    weight: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"sector": self.sector, "weight": self.weight}


@dataclass
class CountryAllocation:
    country: str
    weight: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"country": self.country, "weight": self.weight}


@dataclass
class Performance:
    """Trailing return over a period, in percent."""
    symbol: str
    period: str
    return_pct: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "period": self.period,
            "return_pct": self.return_pct,
            "volatility": self.volatility,
            "sharpe_ratio": self.sharpe_ratio,
        }


@dataclass
class PricePoint:
    """One OHLCV bar. timestamp is epoch milliseconds."""
    timestamp: int
    open: float = 0.0
    high: float = 0.0
    low: float = 0.0
    close: float = 0.0
    volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


@dataclass
class HistoricalSeries:
    """Bars for one symbol, ascending by timestamp."""
    symbol: str
    interval: str
    data: list[PricePoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "symbol": self.symbol,
            "interval": self.interval,
            "data": [point.to_dict() for point in self.data],
        }


@dataclass
class SearchResult:
    symbol: str
    name: str = ""
    type: SecurityType = SecurityType.ETF
    exchange: str = ""
    currency: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "type": self.type.value,
            "exchange": self.exchange,
            "currency": self.currency,
        }


# =============================================================
# PROVIDER DESCRIPTION
# =============================================================


@dataclass(frozen=True)
class RateLimitDeclaration:
    """Published quota of a provider plan. Informational only."""
    requests_per_minute: int = 0
    requests_per_day: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "requests_per_minute": self.requests_per_minute,
            "requests_per_day": self.requests_per_day,
        }


@dataclass
class RateLimitInfo:
    """Rate-limit state last reported by the provider's response headers."""
    remaining: int = 0
    reset: int = 0
    limit: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"remaining": self.remaining, "reset": self.reset, "limit": self.limit}


@dataclass
class ProviderConfig:
    """Static configuration of one provider integration."""
    name: str
    api_key: str
    base_url: str
    rate_limit: RateLimitDeclaration = field(default_factory=RateLimitDeclaration)
    endpoints: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary. The API key is never serialized."""
        return {
            "name": self.name,
            "base_url": self.base_url,
            "rate_limit": self.rate_limit.to_dict(),
            "endpoints": dict(self.endpoints),
        }


@dataclass(frozen=True)
class ProviderDescriptor:
    """Identity, quota and capabilities of a registered provider."""
    name: str
    display_name: str
    rate_limit: RateLimitDeclaration
    capabilities: ProviderCapabilities
    is_healthy: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "rate_limit": self.rate_limit.to_dict(),
            "capabilities": self.capabilities.to_dict(),
            "is_healthy": self.is_healthy,
        }


# =============================================================
# RESULT ENVELOPE
# =============================================================


@dataclass(frozen=True)
class ProviderOutcome:
    """Record of a single provider attempt inside a fallback chain."""
    provider: str
    status: OutcomeStatus
    error: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def message(self) -> str:
        """Human-readable "{provider}: {error}" line."""
        return f"{self.provider}: {self.error}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "status": self.status.value,
            "error": self.error,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class ProviderResult(Generic[T]):
    """
    Envelope returned by every provider and factory operation.

    success=False implies error is set and data is None.
    success=True implies data is fully populated.
    """
    data: Optional[T]
    provider: str
    success: bool
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    outcomes: tuple[ProviderOutcome, ...] = ()

    def __post_init__(self) -> None:
        if not self.success and not self.error:
            raise ValueError("A failed ProviderResult must carry an error message")
        if not self.success and self.data is not None:
            raise ValueError("A failed ProviderResult must not carry data")

    @classmethod
    def ok(cls, data: T, provider: str) -> "ProviderResult[T]":
        """Build a success result."""
        return cls(data=data, provider=provider, success=True)

    @classmethod
    def fail(
        cls,
        error: str,
        provider: str,
        outcomes: tuple[ProviderOutcome, ...] = (),
    ) -> "ProviderResult[T]":
        """Build a failure result."""
        return cls(data=None, provider=provider, success=False, error=error, outcomes=outcomes)

    @property
    def is_aggregate(self) -> bool:
        """True when produced by the factory rather than a single provider."""
        return self.provider == FACTORY_PROVIDER_NAME

    def unwrap(self) -> T:
        """Return data, or raise the typed error this failure represents."""
        if self.success:
            return self.data  # type: ignore[return-value]
        if self.is_aggregate:
            raise AggregateExhaustedError(self.error or "", outcomes=self.outcomes)
        raise ProviderDataError(self.error or "", provider_name=self.provider)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: Any = self.data
        if isinstance(data, list):
            data = [item.to_dict() if hasattr(item, "to_dict") else item for item in data]
        elif hasattr(data, "to_dict"):
            data = data.to_dict()
        return {
            "data": data,
            "provider": self.provider,
            "success": self.success,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
