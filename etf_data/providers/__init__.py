"""
Providers package - ETF data provider implementations.
"""

from etf_data.base import BaseETFProvider
from etf_data.providers.alpha_vantage import AlphaVantageProvider
from etf_data.providers.eodhd import EODHDProvider
from etf_data.providers.finnhub import FinnhubProvider
from etf_data.providers.fmp import FMPProvider
from etf_data.providers.polygon import PolygonProvider


# Registry name -> implementation, used when registering by API key
PROVIDER_CLASSES: dict[str, type[BaseETFProvider]] = {
    "polygon": PolygonProvider,
    "eodhd": EODHDProvider,
    "fmp": FMPProvider,
    "finnhub": FinnhubProvider,
    "alpha_vantage": AlphaVantageProvider,
}


__all__ = [
    "AlphaVantageProvider",
    "EODHDProvider",
    "FinnhubProvider",
    "FMPProvider",
    "PolygonProvider",
    "PROVIDER_CLASSES",
]
