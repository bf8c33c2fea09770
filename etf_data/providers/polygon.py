"""
Polygon.io ETF Data Provider.

Endpoints used:
- /v2/aggs/ticker/{symbol}/prev - Previous day bar (quote)
- /v3/reference/tickers/{symbol} - Ticker details (metadata)
- /v2/aggs/ticker/{symbol}/range/... - Aggregates (historical)
- /v3/reference/tickers - Ticker search

Holdings and allocations are not available on the free tier.
"""

import logging
from datetime import datetime
from typing import Any

from etf_data.base import BaseETFProvider, IntervalLike, parse_interval, validate_query, validate_symbol
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


class PolygonProvider(BaseETFProvider):
    """Polygon.io REST API provider."""

    BASE_URL = "https://api.polygon.io"

    # Interval -> (multiplier, timespan)
    INTERVAL_MAP = {
        HistoricalInterval.MIN1: (1, "minute"),
        HistoricalInterval.MIN5: (5, "minute"),
        HistoricalInterval.MIN15: (15, "minute"),
        HistoricalInterval.MIN30: (30, "minute"),
        HistoricalInterval.HOUR1: (1, "hour"),
        HistoricalInterval.DAY1: (1, "day"),
        HistoricalInterval.WEEK1: (1, "week"),
        HistoricalInterval.MONTH1: (1, "month"),
    }

    @property
    def name(self) -> str:
        return "Polygon.io"

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url=self.BASE_URL,
            rate_limit=RateLimitDeclaration(requests_per_minute=5, requests_per_day=1000),
            endpoints={
                "quote": "/v2/aggs/ticker/{symbol}/prev",
                "metadata": "/v3/reference/tickers/{symbol}",
                "historical": "/v2/aggs/ticker/{symbol}/range/{multiplier}/{timespan}/{from}/{to}",
                "search": "/v3/reference/tickers",
            },
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        return {**params, "apiKey": self.config.api_key}

    async def _get(self, path: str, **params: Any) -> dict[str, Any]:
        payload = await self._make_request(f"{self.BASE_URL}{path}", params=self._params(**params))
        if not isinstance(payload, dict):
            raise ProviderDataError("Unexpected response payload", provider_name=self.name)
        # Plan restrictions can arrive in-band with a 200
        if payload.get("status") in ("ERROR", "NOT_AUTHORIZED"):
            message = payload.get("error") or payload.get("message") or payload["status"]
            logger.warning(f"[{self.name}] API error: {message}")
            raise ProviderDataError(message, provider_name=self.name)
        return payload

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get(f"/v2/aggs/ticker/{ticker}/prev")
            results = payload.get("results") or []
            if not results:
                raise ProviderDataError("No quote data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch quote: {e.message}")

        bar = results[0]
        close = float(bar.get("c") or 0)
        open_ = float(bar.get("o") or 0)

        return self._success(Quote(
            symbol=ticker,
            name=ticker,  # Not returned by the aggregates endpoint
            price=close,
            change=close - open_,
            change_percent=(close - open_) / open_ * 100 if open_ else 0.0,
            volume=int(bar.get("v") or 0),
            timestamp=int(bar.get("t") or 0),
            currency="USD",
            exchange="",
        ))

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get(f"/v3/reference/tickers/{ticker}")
            details = payload.get("results")
            if not details:
                raise ProviderDataError("No metadata found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch metadata: {e.message}")

        return self._success(Metadata(
            symbol=details.get("ticker") or ticker,
            name=details.get("name") or "",
            description=details.get("description") or "",
            exchange=details.get("primary_exchange") or "",
            currency=(details.get("currency_name") or "").upper(),
            category="ETF",
            inception_date=details.get("list_date") or "",
            aum=float(details.get("market_cap") or 0),
            website=details.get("homepage_url") or "",
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
        multiplier, timespan = self.INTERVAL_MAP[parsed]

        try:
            payload = await self._get(
                f"/v2/aggs/ticker/{ticker}/range/{multiplier}/{timespan}"
                f"/{self._date_str(start)}/{self._date_str(end)}",
                adjusted="true", sort="asc", limit=50000,
            )
            results = payload.get("results") or []
            if not results:
                raise ProviderDataError("No historical data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch historical data: {e.message}")

        points = [
            PricePoint(
                timestamp=int(bar["t"]),
                open=float(bar.get("o") or 0),
                high=float(bar.get("h") or 0),
                low=float(bar.get("l") or 0),
                close=float(bar.get("c") or 0),
                volume=float(bar.get("v") or 0),
            )
            for bar in results
        ]
        return self._success(HistoricalSeries(symbol=ticker, interval=parsed.value, data=points))

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)

        try:
            payload = await self._get("/v3/reference/tickers", search=query.strip(), active="true", limit=limit)
        except ProviderDataError as e:
            return self._failure(f"Failed to search: {e.message}")

        results = []
        for item in payload.get("results") or []:
            # ETF or common stock only
            if item.get("type") not in ("ETF", "CS"):
                continue
            results.append(SearchResult(
                symbol=item.get("ticker") or "",
                name=item.get("name") or "",
                type=SecurityType.ETF if item.get("type") == "ETF" else SecurityType.STOCK,
                exchange=item.get("primary_exchange") or "",
                currency=(item.get("currency_name") or "").upper(),
            ))

        return self._success(results[:limit])
