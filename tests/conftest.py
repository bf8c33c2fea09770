"""
Shared fixtures: scriptable in-memory providers and a fake HTTP session.

No test in this suite touches the network.
"""

import asyncio
from typing import Any, Optional

import aiohttp
import pytest

from etf_data.base import BaseETFProvider
from etf_data.exceptions import ProviderDataError
from etf_data.models import (
    CountryAllocation,
    HistoricalSeries,
    Holding,
    Metadata,
    PricePoint,
    ProviderConfig,
    ProviderResult,
    Quote,
    RateLimitDeclaration,
    SearchResult,
    SectorAllocation,
)


# =============================================================
# FAKE PROVIDER
# =============================================================


class FakeProvider(BaseETFProvider):
    """
    Provider whose every operation follows a scripted behaviour:

    - "ok":    success result with canned data
    - "fail":  failure result (domain error)
    - "raise": raises RuntimeError (fault)
    - "hang":  sleeps past any sane timeout
    - "no_data": raises ProviderDataError instead of returning a failure
    - "request_timeout": raises a bare asyncio.TimeoutError, as an HTTP client would
    """

    def __init__(self, display_name: str = "Fake", behaviour: str = "ok", price: float = 100.0) -> None:
        self._display_name = display_name
        super().__init__("test-key")
        self.behaviour = behaviour
        self.price = price
        self.calls: list[str] = []

    @property
    def name(self) -> str:
        return self._display_name

    def _build_config(self, api_key: str) -> ProviderConfig:
        return ProviderConfig(
            name=self.name,
            api_key=api_key,
            base_url="https://fake.invalid",
            rate_limit=RateLimitDeclaration(requests_per_minute=10, requests_per_day=100),
        )

    async def _respond(self, operation: str, data: Any) -> ProviderResult:
        self.calls.append(operation)
        if self.behaviour == "raise":
            raise RuntimeError(f"{self.name} exploded")
        if self.behaviour == "no_data":
            raise ProviderDataError("symbol not covered", provider_name=self.name)
        if self.behaviour == "request_timeout":
            raise asyncio.TimeoutError()
        if self.behaviour == "hang":
            await asyncio.sleep(10)
        if self.behaviour == "fail":
            return self._failure(f"No {operation} data")
        return self._success(data)

    async def get_quote(self, symbol):
        return await self._respond("quote", Quote(symbol=symbol, name=symbol, price=self.price))

    async def get_metadata(self, symbol):
        return await self._respond("metadata", Metadata(symbol=symbol, name=f"{symbol} Fund"))

    async def get_holdings(self, symbol):
        return await self._respond("holdings", [Holding(symbol="AAPL", name="Apple", weight=7.1)])

    async def get_sector_allocation(self, symbol):
        return await self._respond("sectorAllocation", [SectorAllocation(sector="Technology", weight=30.0)])

    async def get_country_allocation(self, symbol):
        return await self._respond("countryAllocation", [CountryAllocation(country="United States", weight=99.0)])

    async def get_historical_data(self, symbol, interval, start, end):
        series = HistoricalSeries(
            symbol=symbol,
            interval="1day",
            data=[
                PricePoint(timestamp=1_704_153_600_000, close=100.0),
                PricePoint(timestamp=1_704_240_000_000, close=101.0),
                PricePoint(timestamp=1_704_326_400_000, close=99.0),
            ],
        )
        return await self._respond("historicalData", series)

    async def search(self, query, limit=10):
        return await self._respond("search", [SearchResult(symbol="SPY", name="SPDR S&P 500")][:limit])


@pytest.fixture
def make_provider():
    """Factory fixture: make_provider("Polygon", "raise")."""
    def _make(display_name: str = "Fake", behaviour: str = "ok", price: float = 100.0) -> FakeProvider:
        return FakeProvider(display_name, behaviour, price)
    return _make


# =============================================================
# FAKE HTTP
# =============================================================


class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside `async with`."""

    def __init__(
        self,
        status: int = 200,
        payload: Any = None,
        body: str = "",
        headers: Optional[dict[str, str]] = None,
        json_error: Optional[Exception] = None,
    ) -> None:
        self.status = status
        self.reason = "OK" if status < 400 else "Error"
        self.headers = headers or {}
        self._payload = payload
        self._body = body
        self._json_error = json_error

    async def text(self) -> str:
        return self._body

    async def json(self, content_type: Optional[str] = None) -> Any:
        if self._json_error is not None:
            raise self._json_error
        return self._payload

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False


class FakeSession:
    """Records GET requests and answers with a fixed response."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or FakeResponse(payload={})
        self.error = error
        self.closed = False
        self.requests: list[tuple[str, Optional[dict]]] = []

    def get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> FakeResponse:
        self.requests.append((url, params))
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_session():
    """Factory fixture: fake_session(status=503, body="...") or fake_session(error=...)."""
    def _make(error: Optional[Exception] = None, **response_kwargs: Any) -> FakeSession:
        return FakeSession(FakeResponse(**response_kwargs), error)
    return _make


@pytest.fixture
def connection_error() -> aiohttp.ClientError:
    return aiohttp.ClientConnectionError("connection refused")
