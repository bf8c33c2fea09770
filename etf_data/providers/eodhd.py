"""
EODHD ETF Data Provider.

Endpoints used:
- /real-time/{symbol} - Delayed quote
- /fundamentals/{symbol} - General + ETF_Data (metadata, holdings,
  sector weights, world regions)
- /eod/{symbol} - End-of-day bars (daily, weekly, monthly only)
- /search/{query} - Instrument search

Symbols are exchange-qualified ("SPY.US"); bare symbols default to US.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote as url_quote

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


class EODHDProvider(BaseETFProvider):
    """EOD Historical Data API provider."""

    BASE_URL = "https://eodhd.com/api"
    DEFAULT_EXCHANGE = "US"

    # No intraday bars on the free tier
    PERIOD_MAP = {
        HistoricalInterval.MIN1: "d",
        HistoricalInterval.MIN5: "d",
        HistoricalInterval.MIN15: "d",
        HistoricalInterval.MIN30: "d",
        HistoricalInterval.HOUR1: "d",
        HistoricalInterval.DAY1: "d",
        HistoricalInterval.WEEK1: "w",
        HistoricalInterval.MONTH1: "m",
    }

    @property
    def name(self) -> str:
        return "EODHD"

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url=self.BASE_URL,
            rate_limit=RateLimitDeclaration(requests_per_minute=20, requests_per_day=1000),
            endpoints={
                "quote": "/real-time/{symbol}",
                "metadata": "/fundamentals/{symbol}",
                "holdings": "/fundamentals/{symbol}",
                "historical": "/eod/{symbol}",
                "search": "/search/{query}",
                "fundamentals": "/fundamentals/{symbol}",
            },
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        return {**params, "api_token": self.config.api_key}

    def format_exchange_symbol(self, symbol: str) -> str:
        """EODHD wants "TICKER.EXCHANGE"."""
        formatted = self.format_symbol(symbol)
        if "." in formatted:
            return formatted
        return f"{formatted}.{self.DEFAULT_EXCHANGE}"

    @staticmethod
    def _weight(value: Any) -> float:
        """Weights arrive as numbers, strings or {"Equity_%": "..."} rows."""
        if isinstance(value, dict):
            for key in ("Equity_%", "Assets_%", "Weight"):
                if key in value:
                    return to_float(value[key])
            return 0.0
        return to_float(value)

    async def _fetch_fundamentals(self, symbol: str) -> dict[str, Any]:
        payload = await self._make_request(
            f"{self.BASE_URL}/fundamentals/{self.format_exchange_symbol(symbol)}",
            params=self._params(fmt="json"),
        )
        if not isinstance(payload, dict) or not payload.get("General"):
            raise ProviderDataError("No fundamentals data found", provider_name=self.name)
        return payload

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)

        try:
            payload = await self._make_request(
                f"{self.BASE_URL}/real-time/{self.format_exchange_symbol(symbol)}",
                params=self._params(fmt="json"),
            )
            if not isinstance(payload, dict) or to_float(payload.get("close")) <= 0:
                raise ProviderDataError("No quote data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch quote: {e.message}")

        code = str(payload.get("code") or self.format_exchange_symbol(symbol))
        return self._success(Quote(
            symbol=code.split(".")[0],
            name=code.split(".")[0],  # Not returned by the real-time endpoint
            price=to_float(payload.get("close")),
            change=to_float(payload.get("change")),
            change_percent=to_float(payload.get("change_p")),
            volume=to_int(payload.get("volume")),
            timestamp=to_int(payload.get("timestamp")) * 1000,
            currency="USD",
            exchange=self.DEFAULT_EXCHANGE,
        ))

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)

        try:
            payload = await self._fetch_fundamentals(symbol)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch metadata: {e.message}")

        general = payload["General"]
        etf = payload.get("ETF_Data") or {}

        return self._success(Metadata(
            symbol=general.get("Code") or self.format_symbol(symbol),
            name=general.get("Name") or "",
            description=general.get("Description") or "",
            exchange=general.get("Exchange") or "",
            currency=general.get("CurrencyCode") or "",
            isin=general.get("ISIN") or etf.get("ISIN") or "",
            cusip=general.get("CUSIP") or "",
            category=general.get("Category") or "ETF",
            family=etf.get("Company_Name") or "",
            inception_date=etf.get("Inception_Date") or "",
            expense_ratio=to_float(etf.get("NetExpenseRatio")) or to_float(etf.get("Ongoing_Charge")),
            aum=to_float(etf.get("TotalAssets")),
            dividend_yield=to_float(etf.get("Yield")),
            website=etf.get("Company_URL") or etf.get("ETF_URL") or "",
        ))

    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        validate_symbol(symbol)

        try:
            payload = await self._fetch_fundamentals(symbol)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch holdings: {e.message}")

        raw = (payload.get("ETF_Data") or {}).get("Holdings") or {}
        holdings = [
            Holding(
                symbol=row.get("Code") or key,
                name=row.get("Name") or "",
                weight=self._weight(row),
                sector=row.get("Sector") or "",
                country=row.get("Country") or "",
            )
            for key, row in raw.items()
        ]
        holdings.sort(key=lambda h: h.weight, reverse=True)
        return self._success(holdings)

    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        validate_symbol(symbol)

        try:
            payload = await self._fetch_fundamentals(symbol)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch sector allocation: {e.message}")

        raw = (payload.get("ETF_Data") or {}).get("Sector_Weights") or {}
        return self._success([
            SectorAllocation(sector=sector, weight=self._weight(value))
            for sector, value in raw.items()
        ])

    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        validate_symbol(symbol)

        try:
            payload = await self._fetch_fundamentals(symbol)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch country allocation: {e.message}")

        raw = (payload.get("ETF_Data") or {}).get("World_Regions") or {}
        return self._success([
            CountryAllocation(country=region, weight=self._weight(value))
            for region, value in raw.items()
        ])

    async def get_historical_data(
        self,
        symbol: str,
        interval: IntervalLike,
        start: datetime,
        end: datetime,
    ) -> ProviderResult[HistoricalSeries]:
        validate_symbol(symbol)
        parsed = parse_interval(interval)

        try:
            payload = await self._make_request(
                f"{self.BASE_URL}/eod/{self.format_exchange_symbol(symbol)}",
                params=self._params(
                    period=self.PERIOD_MAP[parsed],
                    fmt="json",
                    **{"from": self._date_str(start), "to": self._date_str(end)},
                ),
            )
            if not payload:
                raise ProviderDataError("No historical data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch historical data: {e.message}")

        points = [
            PricePoint(
                timestamp=int(
                    datetime.strptime(row["date"], "%Y-%m-%d")
                    .replace(tzinfo=timezone.utc)
                    .timestamp() * 1000
                ),
                open=to_float(row.get("open")),
                high=to_float(row.get("high")),
                low=to_float(row.get("low")),
                close=to_float(row.get("close")),
                volume=to_float(row.get("volume")),
            )
            for row in payload
        ]
        return self._success(HistoricalSeries(
            symbol=self.format_symbol(symbol),
            interval=parsed.value,
            data=points,
        ))

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)

        try:
            payload = await self._make_request(
                f"{self.BASE_URL}/search/{url_quote(query.strip())}",
                params=self._params(limit=limit, type="etf", fmt="json"),
            )
        except ProviderDataError as e:
            return self._failure(f"Failed to search: {e.message}")

        results = [
            SearchResult(
                symbol=item.get("Code") or "",
                name=item.get("Name") or "",
                type=SecurityType.ETF if item.get("Type") == "ETF" else SecurityType.STOCK,
                exchange=item.get("Exchange") or "",
                currency=item.get("Currency") or "",
            )
            for item in payload or []
        ]
        return self._success(results[:limit])
