"""
Finnhub ETF Data Provider.

Endpoints used:
- /quote + /stock/profile2 (quote, name and listing)
- /etf/profile (metadata, falls back to /stock/profile2)
- /etf/holdings, /etf/sector, /etf/country
- /stock/candle (historical, unix-second range)
- /search
"""

import logging
from datetime import datetime
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


class FinnhubProvider(BaseETFProvider):
    """Finnhub.io API provider."""

    BASE_URL = "https://finnhub.io/api/v1"

    RESOLUTION_MAP = {
        HistoricalInterval.MIN1: "1",
        HistoricalInterval.MIN5: "5",
        HistoricalInterval.MIN15: "15",
        HistoricalInterval.MIN30: "30",
        HistoricalInterval.HOUR1: "60",
        HistoricalInterval.DAY1: "D",
        HistoricalInterval.WEEK1: "W",
        HistoricalInterval.MONTH1: "M",
    }

    @property
    def name(self) -> str:
        return "Finnhub"

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url=self.BASE_URL,
            rate_limit=RateLimitDeclaration(requests_per_minute=60, requests_per_day=1000),
            endpoints={
                "quote": "/quote",
                "metadata": "/etf/profile",
                "holdings": "/etf/holdings",
                "historical": "/stock/candle",
                "search": "/search",
                "profile": "/stock/profile2",
                "etfSector": "/etf/sector",
                "etfCountry": "/etf/country",
            },
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        return {**params, "token": self.config.api_key}

    async def _get(self, path: str, **params: Any) -> Any:
        return await self._make_request(f"{self.BASE_URL}{path}", params=self._params(**params))

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            quote = await self._get("/quote", symbol=ticker)
            # Unknown symbols come back as all-zero quotes
            if not isinstance(quote, dict) or not to_float(quote.get("c")):
                raise ProviderDataError("No quote data found", provider_name=self.name)
            profile = await self._get("/stock/profile2", symbol=ticker) or {}
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch quote: {e.message}")

        return self._success(Quote(
            symbol=ticker,
            name=profile.get("name") or ticker,
            price=to_float(quote.get("c")),
            change=to_float(quote.get("d")),
            change_percent=to_float(quote.get("dp")),
            volume=0,  # Not returned by /quote
            market_cap=to_float(profile.get("marketCapitalization")) * 1_000_000,
            timestamp=to_int(quote.get("t")) * 1000,
            currency=profile.get("currency") or "USD",
            exchange=profile.get("exchange") or "",
        ))

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get("/etf/profile", symbol=ticker) or {}
            fund = payload.get("profile") or {}
            if not fund:
                logger.debug(f"[{self.name}] No ETF profile for {ticker}, trying stock profile")
                profile = await self._get("/stock/profile2", symbol=ticker) or {}
                if not profile:
                    raise ProviderDataError("No metadata found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch metadata: {e.message}")

        if fund:
            return self._success(Metadata(
                symbol=ticker,
                name=fund.get("name") or "",
                description=fund.get("description") or "",
                exchange=fund.get("exchange") or "",
                currency=fund.get("currency") or "USD",
                isin=fund.get("isin") or "",
                cusip=fund.get("cusip") or "",
                category=fund.get("assetClass") or "ETF",
                family=fund.get("etfCompany") or "",
                inception_date=fund.get("inceptionDate") or "",
                expense_ratio=to_float(fund.get("expenseRatio")),
                aum=to_float(fund.get("aum")),
                website=fund.get("website") or "",
            ))

        return self._success(Metadata(
            symbol=profile.get("ticker") or ticker,
            name=profile.get("name") or "",
            exchange=profile.get("exchange") or "",
            currency=profile.get("currency") or "",
            isin=profile.get("isin") or "",
            cusip=profile.get("cusip") or "",
            category=profile.get("finnhubIndustry") or "ETF",
            inception_date=profile.get("ipo") or "",
            aum=to_float(profile.get("marketCapitalization")) * 1_000_000,
            website=profile.get("weburl") or "",
        ))

    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get("/etf/holdings", symbol=ticker) or {}
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch holdings: {e.message}")

        return self._success([
            Holding(
                symbol=row.get("symbol") or "",
                name=row.get("name") or "",
                weight=to_float(row.get("percent", row.get("weight"))),
                shares=to_float(row.get("share")),
                market_value=to_float(row.get("value")),
            )
            for row in payload.get("holdings") or []
        ])

    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get("/etf/sector", symbol=ticker) or {}
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch sector allocation: {e.message}")

        return self._success([
            SectorAllocation(sector=row.get("industry") or "", weight=to_float(row.get("exposure")))
            for row in payload.get("sectorExposure") or []
        ])

    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get("/etf/country", symbol=ticker) or {}
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch country allocation: {e.message}")

        return self._success([
            CountryAllocation(country=row.get("country") or "", weight=to_float(row.get("exposure")))
            for row in payload.get("countryExposure") or []
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
        ticker = self.format_symbol(symbol)

        try:
            payload = await self._get(
                "/stock/candle",
                symbol=ticker,
                resolution=self.RESOLUTION_MAP[parsed],
                **{"from": int(start.timestamp()), "to": int(end.timestamp())},
            )
            if not isinstance(payload, dict) or payload.get("s") != "ok":
                raise ProviderDataError("No historical data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch historical data: {e.message}")

        # Column-oriented arrays, one entry per bar
        points = [
            PricePoint(
                timestamp=to_int(t) * 1000,
                open=to_float(o),
                high=to_float(h),
                low=to_float(l),
                close=to_float(c),
                volume=to_float(v),
            )
            for t, o, h, l, c, v in zip(
                payload.get("t") or [],
                payload.get("o") or [],
                payload.get("h") or [],
                payload.get("l") or [],
                payload.get("c") or [],
                payload.get("v") or [],
            )
        ]
        return self._success(HistoricalSeries(symbol=ticker, interval=parsed.value, data=points))

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)

        try:
            payload = await self._get("/search", q=query.strip()) or {}
        except ProviderDataError as e:
            return self._failure(f"Failed to search: {e.message}")

        return self._success([
            SearchResult(
                symbol=item.get("symbol") or "",
                name=item.get("description") or "",
                type=SecurityType.ETF if item.get("type") == "ETP" else SecurityType.STOCK,
                exchange="",
                currency="",
            )
            for item in (payload.get("result") or [])[:limit]
        ])
