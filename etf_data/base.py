"""
Base ETF Provider - Abstract interface for all data providers.

All providers MUST implement this interface to ensure:
- Isolation (no provider knows about any other)
- Replaceability
- Fail-safety (expected failures come back as results, not exceptions)
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Union

import aiohttp

from etf_data.exceptions import ConfigurationError, ProviderDataError, ValidationError
from etf_data.models import (
    CountryAllocation,
    HistoricalInterval,
    HistoricalSeries,
    Holding,
    Metadata,
    Performance,
    ProviderConfig,
    ProviderResult,
    Quote,
    RateLimitInfo,
    SearchResult,
    SectorAllocation,
)
from etf_data.performance import compute_performance, lookback_start, parse_periods


logger = logging.getLogger(__name__)


IntervalLike = Union[str, HistoricalInterval]


def validate_symbol(symbol: Any) -> None:
    """Raise ValidationError for a missing or blank symbol."""
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError("Symbol is required", field="symbol", value=symbol)


def validate_query(query: Any) -> None:
    """Raise ValidationError for a missing or blank search query."""
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Search query is required", field="query", value=query)


def to_float(value: Any, default: float = 0.0) -> float:
    """Lenient numeric parse for wire values ("12.5", "NA", "3.1%", None)."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip().rstrip("%").replace(",", ""))
    except ValueError:
        return default


def to_int(value: Any, default: int = 0) -> int:
    return int(to_float(value, float(default)))


def parse_interval(interval: IntervalLike) -> HistoricalInterval:
    """Parse an interval label ("1day") into HistoricalInterval."""
    if isinstance(interval, HistoricalInterval):
        return interval
    try:
        return HistoricalInterval(str(interval).strip())
    except ValueError:
        valid = ", ".join(i.value for i in HistoricalInterval)
        raise ValidationError(
            f"Invalid interval '{interval}'. Valid intervals: {valid}",
            field="interval",
            value=interval,
        )


class BaseETFProvider(ABC):
    """
    Abstract base class for all ETF data providers.

    Each provider implementation must:
    1. Declare name and build its ProviderConfig
    2. Implement the seven fetch operations (performance is derived)
    3. Convert every expected failure into a failure ProviderResult

    Features:
    - Shared aiohttp session handling
    - HTTP error -> ProviderDataError conversion
    - Rate-limit bookkeeping from response headers
    - Derived performance from daily history
    """

    DEFAULT_TIMEOUT = 30.0
    DEFAULT_USER_AGENT = "ETFDataAggregator/1.0"

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError(
                "API key is required",
                provider_name=self.__class__.__name__,
                config_key="api_key",
            )

        self._api_key = api_key.strip()
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._user_agent = user_agent or self.DEFAULT_USER_AGENT

        self.rate_limit_info = RateLimitInfo()
        self.config = self._build_config(self._api_key)

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name of this provider."""
        pass

    @abstractmethod
    def _build_config(self, api_key: str) -> ProviderConfig:
        """Build the static provider configuration."""
        pass

    # =========================================================
    # OPERATIONS
    # =========================================================

    @abstractmethod
    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        pass

    @abstractmethod
    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        pass

    @abstractmethod
    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        pass

    @abstractmethod
    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        pass

    @abstractmethod
    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        pass

    @abstractmethod
    async def get_historical_data(
        self,
        symbol: str,
        interval: IntervalLike,
        start: datetime,
        end: datetime,
    ) -> ProviderResult[HistoricalSeries]:
        pass

    @abstractmethod
    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        pass

    async def get_performance(
        self,
        symbol: str,
        periods: Sequence[str],
    ) -> ProviderResult[list[Performance]]:
        """
        Trailing performance derived from this provider's daily history.

        Raises:
            ValidationError: On a blank symbol or an unknown period
        """
        validate_symbol(symbol)
        parsed = parse_periods(periods)

        end = datetime.now(timezone.utc)
        start = lookback_start(parsed, end)
        history = await self.get_historical_data(symbol, HistoricalInterval.DAY1, start, end)
        if not history.success:
            return self._failure(f"Failed to fetch performance: {history.error}")

        performance = compute_performance(self.format_symbol(symbol), history.data.data, parsed)
        if not performance:
            return self._failure("Not enough history to compute performance")

        return self._success(performance)

    # =========================================================
    # UTILITIES
    # =========================================================

    async def get_rate_limit_info(self) -> RateLimitInfo:
        """Rate-limit state from the most recent response headers."""
        return self.rate_limit_info

    async def is_healthy(self) -> bool:
        """Probe the provider with a cheap search."""
        try:
            result = await self.search("SPY", 1)
            return result.success
        except Exception as e:
            logger.warning(f"[{self.name}] Health probe failed: {e}")
            return False

    @staticmethod
    def format_symbol(symbol: str) -> str:
        return symbol.strip().upper()

    @staticmethod
    def validate_symbol(symbol: str) -> None:
        validate_symbol(symbol)

    @staticmethod
    def _date_str(value: datetime) -> str:
        return value.strftime("%Y-%m-%d")

    def _success(self, data: Any) -> ProviderResult:
        """Build a success result attributed to this provider."""
        return ProviderResult.ok(data, self.name)

    def _failure(self, error: str) -> ProviderResult:
        """Build a failure result attributed to this provider."""
        logger.warning(f"[{self.name}] {error}")
        return ProviderResult.fail(error, self.name)

    def _unsupported(self, what: str) -> ProviderResult:
        """Failure result for an operation this provider cannot serve."""
        return self._failure(f"{what} data not available in {self.name}")

    # =========================================================
    # HTTP
    # =========================================================

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }

    async def _make_request(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        GET a JSON document.

        Raises:
            ProviderDataError: On transport errors, non-2xx responses and
                unparseable payloads
        """
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.get(url, params=params, headers=headers) as response:
                latency_ms = (time.time() - start_time) * 1000
                self._update_rate_limit(response.headers)

                if response.status >= 400:
                    body = await response.text()
                    raise ProviderDataError(
                        message=f"HTTP {response.status}: {response.reason} - {body[:200]}",
                        provider_name=self.name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderDataError(
                        message="Unparseable response payload",
                        provider_name=self.name,
                        status_code=response.status,
                        request_url=url,
                        original_error=e,
                    )

                logger.debug(f"[{self.name}] GET {url} completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise ProviderDataError(
                message=f"Network request failed: {e}",
                provider_name=self.name,
                request_url=url,
                original_error=e,
            )

    def _update_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Update rate-limit bookkeeping from response headers."""
        for header, attr in (
            ("X-RateLimit-Remaining", "remaining"),
            ("X-RateLimit-Reset", "reset"),
            ("X-RateLimit-Limit", "limit"),
        ):
            value = headers.get(header)
            if value is None:
                continue
            try:
                setattr(self.rate_limit_info, attr, int(value))
            except ValueError:
                logger.debug(f"[{self.name}] Ignoring non-numeric {header}: {value!r}")

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BaseETFProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
