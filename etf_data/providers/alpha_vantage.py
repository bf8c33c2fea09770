"""
Alpha Vantage ETF Data Provider.

Every call goes to the single /query endpoint with a "function" parameter:
- GLOBAL_QUOTE
- OVERVIEW
- TIME_SERIES_INTRADAY / _DAILY / _WEEKLY / _MONTHLY
- SYMBOL_SEARCH

Throttling and bad requests are reported with HTTP 200 and a "Note",
"Information" or "Error Message" body. Holdings and allocations are not
offered.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from etf_data.base import (
    BaseETFProvider,
    IntervalLike,
    parse_interval,
    to_float,
    to_int,
    validate_query,
    validate_symbol,
)
from etf_data.exceptions import ProviderDataError
from etf_data.models import (
    CountryAllocation,
    HistoricalInterval,
    HistoricalSeries,
    Holding,
    Metadata,
    PricePoint,
    ProviderConfig,
    ProviderResult,
    Quote,
    RateLimitDeclaration,
    SearchResult,
    SecurityType,
    SectorAllocation,
)


logger = logging.getLogger(__name__)


class AlphaVantageProvider(BaseETFProvider):
    """Alpha Vantage API provider."""

    BASE_URL = "https://www.alphavantage.co/query"

    # Interval -> (function, extra params, series key)
    SERIES_MAP = {
        HistoricalInterval.MIN1: ("TIME_SERIES_INTRADAY", {"interval": "1min"}, "Time Series (1min)"),
        HistoricalInterval.MIN5: ("TIME_SERIES_INTRADAY", {"interval": "5min"}, "Time Series (5min)"),
        HistoricalInterval.MIN15: ("TIME_SERIES_INTRADAY", {"interval": "15min"}, "Time Series (15min)"),
        HistoricalInterval.MIN30: ("TIME_SERIES_INTRADAY", {"interval": "30min"}, "Time Series (30min)"),
        HistoricalInterval.HOUR1: ("TIME_SERIES_INTRADAY", {"interval": "60min"}, "Time Series (60min)"),
        HistoricalInterval.DAY1: ("TIME_SERIES_DAILY", {}, "Time Series (Daily)"),
        HistoricalInterval.WEEK1: ("TIME_SERIES_WEEKLY", {}, "Weekly Time Series"),
        HistoricalInterval.MONTH1: ("TIME_SERIES_MONTHLY", {}, "Monthly Time Series"),
    }

    @property
    def name(self) -> str:
        return "Alpha Vantage"

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url=self.BASE_URL,
            rate_limit=RateLimitDeclaration(requests_per_minute=5, requests_per_day=500),
            endpoints={
                "quote": "?function=GLOBAL_QUOTE",
                "metadata": "?function=OVERVIEW",
                "historical": "?function=TIME_SERIES_DAILY",
                "search": "?function=SYMBOL_SEARCH",
            },
        )

    async def _query(self, function: str, **params: Any) -> dict[str, Any]:
        """
        Call /query and surface in-band errors.

        Raises:
            ProviderDataError: On transport errors and on "Error Message",
                "Note" (throttled) or "Information" payloads
        """
        payload = await self._make_request(
            self.BASE_URL,
            params={"function": function, **params, "apikey": self.config.api_key},
        )
        if not isinstance(payload, dict):
            raise ProviderDataError("Unexpected response payload", provider_name=self.name)

        if "Error Message" in payload:
            raise ProviderDataError(payload["Error Message"], provider_name=self.name)
        for key in ("Note", "Information"):
            if key in payload:
                logger.warning(f"[{self.name}] {function} rejected: {payload[key]}")
                raise ProviderDataError(payload[key], provider_name=self.name, status_code=429)

        return payload

    @staticmethod
    def _parse_date(value: str) -> datetime:
        fmt = "%Y-%m-%d %H:%M:%S" if " " in value else "%Y-%m-%d"
        return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._query("GLOBAL_QUOTE", symbol=ticker)
            quote = payload.get("Global Quote") or {}
            if not quote.get("05. price"):
                raise ProviderDataError("No quote data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch quote: {e.message}")

        trading_day = quote.get("07. latest trading day")
        return self._success(Quote(
            symbol=quote.get("01. symbol") or ticker,
            name=ticker,  # Not returned by GLOBAL_QUOTE
            price=to_float(quote.get("05. price")),
            change=to_float(quote.get("09. change")),
            change_percent=to_float(quote.get("10. change percent")),
            volume=to_int(quote.get("06. volume")),
            timestamp=int(self._parse_date(trading_day).timestamp() * 1000) if trading_day else 0,
            currency="USD",
            exchange="",
        ))

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            overview = await self._query("OVERVIEW", symbol=ticker)
            if not overview.get("Symbol"):
                raise ProviderDataError("No metadata found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch metadata: {e.message}")

        return self._success(Metadata(
            symbol=overview.get("Symbol") or ticker,
            name=overview.get("Name") or "",
            description=overview.get("Description") or "",
            exchange=overview.get("Exchange") or "",
            currency=overview.get("Currency") or "",
            cusip=overview.get("CUSIP") or "",
            category=overview.get("AssetType") or "ETF",
            aum=to_float(overview.get("MarketCapitalization")),
            dividend_yield=to_float(overview.get("DividendYield")),
            pe_ratio=to_float(overview.get("PERatio")),
            beta=to_float(overview.get("Beta")),
        ))

    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        validate_symbol(symbol)
        return self._unsupported("Holdings")

    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        validate_symbol(symbol)
        return self._unsupported("Sector allocation")

    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        validate_symbol(symbol)
        return self._unsupported("Country allocation")

    async def get_historical_data(
        self,
        symbol: str,
        interval: IntervalLike,
        start: datetime,
        end: datetime,
    ) -> ProviderResult[HistoricalSeries]:
        validate_symbol(symbol)
        parsed = parse_interval(interval)
        ticker = self.format_symbol(symbol)
        function, extra, series_key = self.SERIES_MAP[parsed]

        try:
            payload = await self._query(function, symbol=ticker, outputsize="full", **extra)
            series = payload.get(series_key) or {}
            if not series:
                raise ProviderDataError("No historical data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch historical data: {e.message}")

        start_utc = start if start.tzinfo else start.replace(tzinfo=timezone.utc)
        end_utc = end if end.tzinfo else end.replace(tzinfo=timezone.utc)

        # Series is keyed by date, newest first; the API ignores date bounds
        points = []
        for stamp, bar in series.items():
            when = self._parse_date(stamp)
            if when < start_utc or when > end_utc:
                continue
            points.append(PricePoint(
                timestamp=int(when.timestamp() * 1000),
                open=to_float(bar.get("1. open")),
                high=to_float(bar.get("2. high")),
                low=to_float(bar.get("3. low")),
                close=to_float(bar.get("4. close")),
                volume=to_float(bar.get("5. volume")),
            ))
        points.sort(key=lambda p: p.timestamp)

        return self._success(HistoricalSeries(symbol=ticker, interval=parsed.value, data=points))

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)

        try:
            payload = await self._query("SYMBOL_SEARCH", keywords=query.strip())
        except ProviderDataError as e:
            return self._failure(f"Failed to search: {e.message}")

        return self._success([
            SearchResult(
                symbol=match.get("1. symbol") or "",
                name=match.get("2. name") or "",
                type=SecurityType.ETF if match.get("3. type") == "ETF" else SecurityType.STOCK,
                exchange=match.get("4. region") or "",
                currency=match.get("8. currency") or "",
            )
            for match in (payload.get("bestMatches") or [])[:limit]
        ])
