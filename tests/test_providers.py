"""
Provider Mapping Tests.

============================================================
PURPOSE
============================================================
Each built-in provider maps its wire payloads into the
normalized entities. Requests are intercepted at
_make_request() with recorded payload shapes.

============================================================
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from etf_data.exceptions import ProviderDataError
from etf_data.models import SecurityType
from etf_data.providers import (
    AlphaVantageProvider,
    EODHDProvider,
    FinnhubProvider,
    FMPProvider,
    PolygonProvider,
)


JAN_2_2024_MS = 1_704_153_600_000


def mock_request(provider, *payloads, error=None):
    """Patch _make_request to return payloads in order (or raise)."""
    if error is not None:
        return patch.object(provider, "_make_request", AsyncMock(side_effect=error))
    if len(payloads) == 1:
        return patch.object(provider, "_make_request", AsyncMock(return_value=payloads[0]))
    return patch.object(provider, "_make_request", AsyncMock(side_effect=list(payloads)))


# ============================================================
# POLYGON
# ============================================================

class TestPolygonProvider:
    """Polygon.io mappings."""

    @pytest.mark.asyncio
    async def test_quote_from_previous_bar(self):
        provider = PolygonProvider("key")
        payload = {"results": [{"c": 510.0, "o": 500.0, "v": 1000, "t": JAN_2_2024_MS}]}

        with mock_request(provider, payload) as request:
            result = await provider.get_quote("spy")

        assert result.success is True
        quote = result.data
        assert quote.symbol == "SPY"
        assert quote.price == 510.0
        assert quote.change == 10.0
        assert quote.change_percent == pytest.approx(2.0)
        assert quote.volume == 1000
        assert quote.timestamp == JAN_2_2024_MS
        url = request.call_args[0][0]
        assert url.endswith("/v2/aggs/ticker/SPY/prev")
        assert request.call_args[1]["params"]["apiKey"] == "key"

    @pytest.mark.asyncio
    async def test_search_keeps_etfs_and_stocks(self):
        provider = PolygonProvider("key")
        payload = {"results": [
            {"ticker": "SPY", "name": "SPDR S&P 500", "type": "ETF", "primary_exchange": "ARCX", "currency_name": "usd"},
            {"ticker": "SPY.WS", "name": "Warrant", "type": "WARRANT"},
            {"ticker": "AAPL", "name": "Apple", "type": "CS", "primary_exchange": "XNAS", "currency_name": "usd"},
        ]}

        with mock_request(provider, payload):
            result = await provider.search("spy")

        assert [r.symbol for r in result.data] == ["SPY", "AAPL"]
        assert result.data[0].type == SecurityType.ETF
        assert result.data[1].type == SecurityType.STOCK
        assert result.data[0].currency == "USD"

    @pytest.mark.asyncio
    async def test_empty_history_is_failure(self):
        provider = PolygonProvider("key")

        with mock_request(provider, {"resultsCount": 0}):
            result = await provider.get_historical_data(
                "SPY", "1day", datetime(2024, 1, 1), datetime(2024, 1, 31)
            )

        assert result.success is False
        assert result.error == "Failed to fetch historical data: No historical data found"

    @pytest.mark.asyncio
    async def test_history_uses_interval_mapping(self):
        provider = PolygonProvider("key")
        payload = {"results": [{"t": JAN_2_2024_MS, "o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 10}]}

        with mock_request(provider, payload) as request:
            result = await provider.get_historical_data(
                "SPY", "15min", datetime(2024, 1, 1), datetime(2024, 1, 2)
            )

        assert result.data.interval == "15min"
        assert result.data.data[0].close == 1.5
        assert "/range/15/minute/2024-01-01/2024-01-02" in request.call_args[0][0]

    @pytest.mark.asyncio
    async def test_in_band_error_is_failure(self):
        provider = PolygonProvider("key")
        payload = {"status": "NOT_AUTHORIZED", "message": "You are not entitled to this data."}

        with mock_request(provider, payload):
            result = await provider.get_metadata("SPY")

        assert result.success is False
        assert result.error == "Failed to fetch metadata: You are not entitled to this data."

    @pytest.mark.asyncio
    async def test_non_object_payload_is_failure(self):
        provider = PolygonProvider("key")

        with mock_request(provider, ["unexpected"]):
            result = await provider.search("spy")

        assert result.success is False
        assert result.error == "Failed to search: Unexpected response payload"


# ============================================================
# EODHD
# ============================================================

class TestEODHDProvider:
    """EODHD mappings."""

    @pytest.mark.asyncio
    async def test_quote(self):
        provider = EODHDProvider("key")
        payload = {
            "code": "SPY.US",
            "timestamp": 1_704_153_600,
            "close": 450.5,
            "change": 1.5,
            "change_p": 0.33,
            "volume": 12345,
        }

        with mock_request(provider, payload) as request:
            result = await provider.get_quote("spy")

        assert result.provider == "EODHD"
        assert result.data.symbol == "SPY"
        assert result.data.price == 450.5
        assert result.data.timestamp == JAN_2_2024_MS
        assert request.call_args[0][0].endswith("/real-time/SPY.US")
        assert request.call_args[1]["params"]["api_token"] == "key"

    @pytest.mark.asyncio
    async def test_quote_without_price_is_failure(self):
        provider = EODHDProvider("key")

        with mock_request(provider, {"code": "ZZZ.US", "close": "NA"}):
            result = await provider.get_quote("ZZZ")

        assert result.success is False
        assert result.error == "Failed to fetch quote: No quote data found"

    @pytest.mark.asyncio
    async def test_holdings_sorted_by_weight(self):
        provider = EODHDProvider("key")
        payload = {
            "General": {"Code": "SPY"},
            "ETF_Data": {"Holdings": {
                "AAPL.US": {"Code": "AAPL", "Name": "Apple", "Assets_%": 7.0, "Sector": "Technology"},
                "MSFT.US": {"Code": "MSFT", "Name": "Microsoft", "Assets_%": "7.5"},
            }},
        }

        with mock_request(provider, payload):
            result = await provider.get_holdings("SPY")

        assert [h.symbol for h in result.data] == ["MSFT", "AAPL"]
        assert result.data[0].weight == 7.5
        assert result.data[1].sector == "Technology"

    @pytest.mark.asyncio
    async def test_sector_and_country_weights(self):
        provider = EODHDProvider("key")
        payload = {
            "General": {"Code": "VT"},
            "ETF_Data": {
                "Sector_Weights": {"Technology": {"Equity_%": "23.1"}},
                "World_Regions": {"North America": {"Equity_%": "62.4"}},
            },
        }

        with mock_request(provider, payload, payload):
            sectors = await provider.get_sector_allocation("VT")
            countries = await provider.get_country_allocation("VT")

        assert sectors.data[0].sector == "Technology"
        assert sectors.data[0].weight == 23.1
        assert countries.data[0].country == "North America"
        assert countries.data[0].weight == 62.4

    @pytest.mark.asyncio
    async def test_metadata_without_general_is_failure(self):
        provider = EODHDProvider("key")

        with mock_request(provider, {}):
            result = await provider.get_metadata("SPY")

        assert result.error == "Failed to fetch metadata: No fundamentals data found"

    @pytest.mark.asyncio
    async def test_history(self):
        provider = EODHDProvider("key")
        payload = [{"date": "2024-01-02", "open": 1, "high": 2, "low": 0.5, "close": 1.5, "volume": 100}]

        with mock_request(provider, payload) as request:
            result = await provider.get_historical_data(
                "SPY", "1week", datetime(2024, 1, 1), datetime(2024, 2, 1)
            )

        assert result.data.data[0].timestamp == JAN_2_2024_MS
        assert request.call_args[1]["params"]["period"] == "w"


# ============================================================
# FMP
# ============================================================

class TestFMPProvider:
    """Financial Modeling Prep mappings."""

    @pytest.mark.asyncio
    async def test_quote(self):
        provider = FMPProvider("key")
        payload = [{
            "symbol": "SPY",
            "name": "SPDR S&P 500 ETF Trust",
            "price": 470.0,
            "changesPercentage": 0.5,
            "change": 2.3,
            "volume": 100,
            "marketCap": 1e9,
            "timestamp": 1_704_153_600,
            "exchange": "AMEX",
        }]

        with mock_request(provider, payload) as request:
            result = await provider.get_quote("SPY")

        assert result.provider == "Financial Modeling Prep"
        assert result.data.name == "SPDR S&P 500 ETF Trust"
        assert result.data.change_percent == 0.5
        assert result.data.timestamp == JAN_2_2024_MS
        assert request.call_args[1]["params"]["apikey"] == "key"

    @pytest.mark.asyncio
    async def test_unknown_symbol_is_failure(self):
        provider = FMPProvider("key")

        with mock_request(provider, []):
            result = await provider.get_quote("NOPE")

        assert result.error == "Failed to fetch quote: No quote data found"

    @pytest.mark.asyncio
    async def test_percentage_strings_parsed(self):
        provider = FMPProvider("key")

        with mock_request(provider, [{"sector": "Technology", "weightPercentage": "29.5%"}]):
            result = await provider.get_sector_allocation("SPY")

        assert result.data[0].weight == 29.5

    @pytest.mark.asyncio
    async def test_daily_history_sorted_ascending(self):
        provider = FMPProvider("key")
        payload = {"symbol": "SPY", "historical": [
            {"date": "2024-01-03", "close": 2.0},
            {"date": "2024-01-02", "close": 1.0},
        ]}

        with mock_request(provider, payload) as request:
            result = await provider.get_historical_data(
                "SPY", "1day", datetime(2024, 1, 1), datetime(2024, 1, 5)
            )

        assert [p.close for p in result.data.data] == [1.0, 2.0]
        assert result.data.data[0].timestamp == JAN_2_2024_MS
        assert "/historical-price-full/SPY" in request.call_args[0][0]
        assert request.call_args[1]["params"]["from"] == "2024-01-01"

    @pytest.mark.asyncio
    async def test_intraday_history_endpoint(self):
        provider = FMPProvider("key")

        with mock_request(provider, [{"date": "2024-01-02 09:30:00", "close": 1.0}]) as request:
            result = await provider.get_historical_data(
                "SPY", "5min", datetime(2024, 1, 2), datetime(2024, 1, 2)
            )

        assert result.data.data[0].timestamp == JAN_2_2024_MS + (9 * 3600 + 30 * 60) * 1000
        assert "/historical-chart/5min/SPY" in request.call_args[0][0]

    @pytest.mark.asyncio
    async def test_transport_error_is_failure(self):
        provider = FMPProvider("key")
        error = ProviderDataError("HTTP 401: Unauthorized", provider_name="Financial Modeling Prep", status_code=401)

        with mock_request(provider, error=error):
            result = await provider.get_holdings("SPY")

        assert result.success is False
        assert result.error == "Failed to fetch holdings: HTTP 401: Unauthorized"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation, prefix", [
        ("get_quote", "Failed to fetch quote"),
        ("get_holdings", "Failed to fetch holdings"),
        ("get_sector_allocation", "Failed to fetch sector allocation"),
        ("get_country_allocation", "Failed to fetch country allocation"),
    ])
    async def test_in_band_error_message_is_failure(self, operation, prefix):
        provider = FMPProvider("key")
        payload = {"Error Message": "Exclusive Endpoint: not available under your current subscription"}

        with mock_request(provider, payload):
            result = await getattr(provider, operation)("SPY")

        assert result.success is False
        assert result.error == f"{prefix}: Exclusive Endpoint: not available under your current subscription"

    @pytest.mark.asyncio
    async def test_in_band_error_on_history_and_search(self):
        provider = FMPProvider("key")
        payload = {"Error Message": "Invalid API KEY."}

        with mock_request(provider, payload):
            history = await provider.get_historical_data(
                "SPY", "1day", datetime(2024, 1, 1), datetime(2024, 1, 5)
            )
            search = await provider.search("bond")

        assert history.error == "Failed to fetch historical data: Invalid API KEY."
        assert search.error == "Failed to search: Invalid API KEY."

    @pytest.mark.asyncio
    async def test_unexpected_object_payload_is_failure(self):
        provider = FMPProvider("key")

        with mock_request(provider, {"symbol": "SPY"}):
            result = await provider.get_holdings("SPY")

        assert result.success is False
        assert result.error == "Failed to fetch holdings: Unexpected holdings payload"

    @pytest.mark.asyncio
    async def test_empty_holdings_is_success(self):
        provider = FMPProvider("key")

        with mock_request(provider, []):
            result = await provider.get_holdings("SPY")

        assert result.success is True
        assert result.data == []


# ============================================================
# FINNHUB
# ============================================================

class TestFinnhubProvider:
    """Finnhub mappings."""

    @pytest.mark.asyncio
    async def test_quote_merges_profile(self):
        provider = FinnhubProvider("key")
        quote = {"c": 470.0, "d": 1.0, "dp": 0.2, "t": 1_704_153_600}
        profile = {"name": "SPDR S&P 500", "currency": "USD", "exchange": "NYSE ARCA"}

        with mock_request(provider, quote, profile) as request:
            result = await provider.get_quote("spy")

        assert result.data.name == "SPDR S&P 500"
        assert result.data.price == 470.0
        assert result.data.exchange == "NYSE ARCA"
        assert result.data.timestamp == JAN_2_2024_MS
        assert request.await_count == 2
        assert request.call_args_list[0][1]["params"] == {"symbol": "SPY", "token": "key"}

    @pytest.mark.asyncio
    async def test_zero_quote_is_failure(self):
        provider = FinnhubProvider("key")

        with mock_request(provider, {"c": 0, "d": None, "dp": None, "t": 0}) as request:
            result = await provider.get_quote("NOPE")

        assert result.error == "Failed to fetch quote: No quote data found"
        assert request.await_count == 1

    @pytest.mark.asyncio
    async def test_metadata_falls_back_to_stock_profile(self):
        provider = FinnhubProvider("key")

        with mock_request(provider, {}, {"ticker": "SPY", "name": "SPDR", "weburl": "https://x.invalid"}):
            result = await provider.get_metadata("SPY")

        assert result.data.name == "SPDR"
        assert result.data.website == "https://x.invalid"

    @pytest.mark.asyncio
    async def test_etf_profile_metadata(self):
        provider = FinnhubProvider("key")
        payload = {"symbol": "SPY", "profile": {"name": "SPDR", "expenseRatio": 0.0945, "aum": 4.5e11}}

        with mock_request(provider, payload):
            result = await provider.get_metadata("SPY")

        assert result.data.expense_ratio == 0.0945
        assert result.data.aum == 4.5e11

    @pytest.mark.asyncio
    async def test_candles(self):
        provider = FinnhubProvider("key")
        payload = {
            "s": "ok",
            "t": [1_704_153_600, 1_704_240_000],
            "o": [1.0, 2.0],
            "h": [1.5, 2.5],
            "l": [0.5, 1.5],
            "c": [1.2, 2.2],
            "v": [100, 200],
        }

        with mock_request(provider, payload) as request:
            result = await provider.get_historical_data(
                "SPY",
                "1day",
                datetime(2024, 1, 1, tzinfo=timezone.utc),
                datetime(2024, 1, 5, tzinfo=timezone.utc),
            )

        assert [p.close for p in result.data.data] == [1.2, 2.2]
        assert result.data.data[0].timestamp == JAN_2_2024_MS
        params = request.call_args[1]["params"]
        assert params["resolution"] == "D"
        assert params["from"] == 1_704_067_200

    @pytest.mark.asyncio
    async def test_no_candles_is_failure(self):
        provider = FinnhubProvider("key")

        with mock_request(provider, {"s": "no_data"}):
            result = await provider.get_historical_data(
                "SPY", "1day", datetime(2024, 1, 1), datetime(2024, 1, 5)
            )

        assert result.error == "Failed to fetch historical data: No historical data found"

    @pytest.mark.asyncio
    async def test_search_respects_limit(self):
        provider = FinnhubProvider("key")
        payload = {"count": 2, "result": [
            {"description": "SPDR S&P 500", "symbol": "SPY", "type": "ETP"},
            {"description": "Apple Inc", "symbol": "AAPL", "type": "Common Stock"},
        ]}

        with mock_request(provider, payload):
            result = await provider.search("s", limit=1)

        assert len(result.data) == 1
        assert result.data[0].type == SecurityType.ETF


# ============================================================
# ALPHA VANTAGE
# ============================================================

class TestAlphaVantageProvider:
    """Alpha Vantage mappings."""

    @pytest.mark.asyncio
    async def test_quote(self):
        provider = AlphaVantageProvider("key")
        payload = {"Global Quote": {
            "01. symbol": "SPY",
            "05. price": "470.1200",
            "06. volume": "1000",
            "07. latest trading day": "2024-01-02",
            "09. change": "1.2000",
            "10. change percent": "0.2556%",
        }}

        with mock_request(provider, payload) as request:
            result = await provider.get_quote("SPY")

        assert result.data.price == 470.12
        assert result.data.change_percent == 0.2556
        assert result.data.volume == 1000
        assert result.data.timestamp == JAN_2_2024_MS
        params = request.call_args[1]["params"]
        assert params["function"] == "GLOBAL_QUOTE"
        assert params["apikey"] == "key"

    @pytest.mark.asyncio
    async def test_throttle_note_is_failure(self):
        provider = AlphaVantageProvider("key")
        note = "Thank you for using Alpha Vantage! Our standard API rate limit is 25 requests per day."

        with mock_request(provider, {"Note": note}):
            result = await provider.get_quote("SPY")

        assert result.success is False
        assert result.error == f"Failed to fetch quote: {note}"

    @pytest.mark.asyncio
    async def test_error_message_is_failure(self):
        provider = AlphaVantageProvider("key")

        with mock_request(provider, {"Error Message": "Invalid API call."}):
            result = await provider.get_metadata("SPY")

        assert result.error == "Failed to fetch metadata: Invalid API call."

    @pytest.mark.asyncio
    async def test_history_filtered_and_sorted(self):
        provider = AlphaVantageProvider("key")
        payload = {"Time Series (Daily)": {
            "2024-01-03": {"1. open": "2", "4. close": "2.5", "5. volume": "20"},
            "2024-01-02": {"1. open": "1", "4. close": "1.5", "5. volume": "10"},
            "2023-12-01": {"1. open": "0", "4. close": "0.5", "5. volume": "5"},
        }}

        with mock_request(provider, payload):
            result = await provider.get_historical_data(
                "SPY", "1day", datetime(2024, 1, 1), datetime(2024, 1, 31)
            )

        assert [p.close for p in result.data.data] == [1.5, 2.5]
        assert result.data.data[0].timestamp == JAN_2_2024_MS

    @pytest.mark.asyncio
    async def test_holdings_not_offered(self):
        provider = AlphaVantageProvider("key")

        with mock_request(provider, {}) as request:
            result = await provider.get_holdings("SPY")

        assert result.error == "Holdings data not available in Alpha Vantage"
        request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search(self):
        provider = AlphaVantageProvider("key")
        payload = {"bestMatches": [
            {"1. symbol": "SPY", "2. name": "SPDR S&P 500", "3. type": "ETF", "4. region": "United States", "8. currency": "USD"},
        ]}

        with mock_request(provider, payload):
            result = await provider.search("spy")

        assert result.data[0].symbol == "SPY"
        assert result.data[0].type == SecurityType.ETF
        assert result.data[0].currency == "USD"
