"""
Financial Modeling Prep ETF Data Provider.

Endpoints used:
- /quote/{symbol}
- /profile/{symbol}
- /etf-holder/{symbol}
- /etf-sector-weightings/{symbol}
- /etf-country-weightings/{symbol}
- /historical-price-full/{symbol} (daily) and /historical-chart/{n}{unit}/{symbol} (intraday)
- /search
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


class FMPProvider(BaseETFProvider):
    """Financial Modeling Prep v3 API provider."""

    BASE_URL = "https://financialmodelingprep.com/api/v3"

    HISTORICAL_ENDPOINTS = {
        HistoricalInterval.MIN1: "/historical-chart/1min",
        HistoricalInterval.MIN5: "/historical-chart/5min",
        HistoricalInterval.MIN15: "/historical-chart/15min",
        HistoricalInterval.MIN30: "/historical-chart/30min",
        HistoricalInterval.HOUR1: "/historical-chart/1hour",
        HistoricalInterval.DAY1: "/historical-price-full",
        HistoricalInterval.WEEK1: "/historical-price-full",
        HistoricalInterval.MONTH1: "/historical-price-full",
    }

    @property
    def name(self) -> str:
        return "Financial Modeling Prep"

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url=self.BASE_URL,
            rate_limit=RateLimitDeclaration(requests_per_minute=250, requests_per_day=250),
            endpoints={
                "quote": "/quote/{symbol}",
                "metadata": "/profile/{symbol}",
                "holdings": "/etf-holder/{symbol}",
                "historical": "/historical-price-full/{symbol}",
                "search": "/search",
                "etfSector": "/etf-sector-weightings/{symbol}",
                "etfCountry": "/etf-country-weightings/{symbol}",
            },
        )

    def _params(self, **params: Any) -> dict[str, Any]:
        return {**params, "apikey": self.config.api_key}

    def _check_payload(self, payload: Any) -> Any:
        """FMP reports bad keys and plan restrictions in-band as {"Error Message": ...}."""
        if isinstance(payload, dict) and payload.get("Error Message"):
            logger.warning(f"[{self.name}] API error: {payload['Error Message']}")
            raise ProviderDataError(payload["Error Message"], provider_name=self.name)
        return payload

    async def _get_list(
        self,
        path: str,
        what: str,
        required: bool = True,
        **params: Any,
    ) -> list[dict[str, Any]]:
        """FMP answers most endpoints with a JSON array; empty means unknown symbol."""
        payload = self._check_payload(
            await self._make_request(f"{self.BASE_URL}{path}", params=self._params(**params))
        )
        if not payload:
            if required:
                raise ProviderDataError(f"No {what} found", provider_name=self.name)
            return []
        if not isinstance(payload, list):
            raise ProviderDataError(f"Unexpected {what} payload", provider_name=self.name)
        return [row for row in payload if isinstance(row, dict)]

    @staticmethod
    def _parse_date(value: str) -> int:
        """FMP dates are "YYYY-MM-DD" or "YYYY-MM-DD HH:MM:SS"; returns epoch ms."""
        fmt = "%Y-%m-%d %H:%M:%S" if " " in value else "%Y-%m-%d"
        parsed = datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            rows = await self._get_list(f"/quote/{ticker}", "quote data")
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch quote: {e.message}")

        row = rows[0]
        return self._success(Quote(
            symbol=row.get("symbol") or ticker,
            name=row.get("name") or ticker,
            price=to_float(row.get("price")),
            change=to_float(row.get("change")),
            change_percent=to_float(row.get("changesPercentage")),
            volume=to_int(row.get("volume")),
            market_cap=to_float(row.get("marketCap")),
            timestamp=to_int(row.get("timestamp")) * 1000,
            currency="USD",
            exchange=row.get("exchange") or "",
        ))

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            rows = await self._get_list(f"/profile/{ticker}", "metadata")
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch metadata: {e.message}")

        row = rows[0]
        return self._success(Metadata(
            symbol=row.get("symbol") or ticker,
            name=row.get("companyName") or "",
            description=row.get("description") or "",
            exchange=row.get("exchangeShortName") or "",
            currency=row.get("currency") or "",
            isin=row.get("isin") or "",
            cusip=row.get("cusip") or "",
            category=row.get("sector") or "ETF",
            inception_date=row.get("ipoDate") or "",
            aum=to_float(row.get("mktCap")),
            beta=to_float(row.get("beta")),
            website=row.get("website") or "",
        ))

    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            rows = await self._get_list(f"/etf-holder/{ticker}", "holdings", required=False)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch holdings: {e.message}")

        return self._success([
            Holding(
                symbol=row.get("asset") or row.get("symbol") or "",
                name=row.get("name") or "",
                weight=to_float(row.get("weightPercentage", row.get("pctVal"))),
                shares=to_float(row.get("sharesNumber", row.get("balance"))),
                market_value=to_float(row.get("marketValue", row.get("curVal"))),
            )
            for row in rows
        ])

    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            rows = await self._get_list(f"/etf-sector-weightings/{ticker}", "sector weightings", required=False)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch sector allocation: {e.message}")

        return self._success([
            SectorAllocation(sector=row.get("sector") or "", weight=to_float(row.get("weightPercentage")))
            for row in rows
        ])

    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        validate_symbol(symbol)
        ticker = self.format_symbol(symbol)

        try:
            rows = await self._get_list(f"/etf-country-weightings/{ticker}", "country weightings", required=False)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch country allocation: {e.message}")

        return self._success([
            CountryAllocation(country=row.get("country") or "", weight=to_float(row.get("weightPercentage")))
            for row in rows
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
        endpoint = self.HISTORICAL_ENDPOINTS[parsed]

        try:
            payload = self._check_payload(await self._make_request(
                f"{self.BASE_URL}{endpoint}/{ticker}",
                params=self._params(**{"from": self._date_str(start), "to": self._date_str(end)}),
            ))
            # Daily endpoint wraps bars in {"historical": [...]}; intraday returns a bare list
            rows = payload.get("historical") if isinstance(payload, dict) else payload
            if not rows or not isinstance(rows, list):
                raise ProviderDataError("No historical data found", provider_name=self.name)
        except ProviderDataError as e:
            return self._failure(f"Failed to fetch historical data: {e.message}")

        points = sorted(
            (
                PricePoint(
                    timestamp=self._parse_date(row["date"]),
                    open=to_float(row.get("open")),
                    high=to_float(row.get("high")),
                    low=to_float(row.get("low")),
                    close=to_float(row.get("close")),
                    volume=to_float(row.get("volume")),
                )
                for row in rows
                if isinstance(row, dict) and row.get("date")
            ),
            key=lambda p: p.timestamp,
        )
        return self._success(HistoricalSeries(symbol=ticker, interval=parsed.value, data=points))

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)

        try:
            rows = await self._get_list("/search", "search results", required=False, query=query.strip(), limit=limit)
        except ProviderDataError as e:
            return self._failure(f"Failed to search: {e.message}")

        return self._success([
            SearchResult(
                symbol=row.get("symbol") or "",
                name=row.get("name") or "",
                type=SecurityType.ETF,  # FMP search does not distinguish types
                exchange=row.get("exchangeShortName") or "",
                currency=row.get("currency") or "",
            )
            for row in rows[:limit]
        ])
