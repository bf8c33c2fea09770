"""
ETF Data Package - Multi-provider ETF data aggregation layer.

Provides normalized ETF quotes, fund metadata, holdings, sector and
country allocations, performance and price history from several
third-party market-data APIs behind one interface.

Features:
- Isolated, replaceable data providers
- Normalized output format across all providers
- Capability filtering per operation
- Automatic fallback on provider failure
- Health gating with explicit recovery
- Structured per-provider outcomes when every provider fails

Quick Start:
    from etf_data import create_etf_provider_factory

    async def main():
        async with create_etf_provider_factory() as factory:
            result = await factory.get_quote("SPY")
            if result.success:
                print(f"{result.data.symbol}: {result.data.price} via {result.provider}")
            else:
                for outcome in result.outcomes:
                    print(outcome.provider, outcome.status.value, outcome.error)

Adding New Providers:
    1. Create class extending BaseETFProvider
    2. Implement name, _build_config() and the seven fetch operations
    3. Register with ETFProviderFactory.register_provider(name, instance, capabilities)
    4. No changes needed to callers
"""

from etf_data.base import BaseETFProvider
from etf_data.capabilities import (
    DEFAULT_CAPABILITIES,
    Capability,
    CapabilityMatrix,
    ProviderCapabilities,
)
from etf_data.config import (
    DEFAULT_PRIORITY,
    FactoryConfig,
    ProviderCredentials,
    get_config,
    set_config,
)
from etf_data.exceptions import (
    AggregateExhaustedError,
    ConfigurationError,
    ETFDataError,
    NoProvidersConfiguredError,
    ProviderDataError,
    ProviderFaultError,
    ValidationError,
)
from etf_data.factory import (
    ETFProviderFactory,
    create_etf_provider_factory,
    get_default_factory,
    reset_default_factory,
)
from etf_data.health import HealthRecord, HealthStatus, HealthTracker
from etf_data.models import (
    CountryAllocation,
    HistoricalInterval,
    HistoricalSeries,
    Holding,
    Metadata,
    OutcomeStatus,
    Performance,
    Period,
    PricePoint,
    ProviderConfig,
    ProviderDescriptor,
    ProviderOutcome,
    ProviderResult,
    Quote,
    RateLimitDeclaration,
    RateLimitInfo,
    SearchResult,
    SecurityType,
    SectorAllocation,
)
from etf_data.providers import (
    PROVIDER_CLASSES,
    AlphaVantageProvider,
    EODHDProvider,
    FinnhubProvider,
    FMPProvider,
    PolygonProvider,
)


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseETFProvider",
    # Factory
    "ETFProviderFactory",
    "create_etf_provider_factory",
    "get_default_factory",
    "reset_default_factory",
    # Capabilities
    "Capability",
    "CapabilityMatrix",
    "ProviderCapabilities",
    "DEFAULT_CAPABILITIES",
    # Health
    "HealthRecord",
    "HealthStatus",
    "HealthTracker",
    # Config
    "DEFAULT_PRIORITY",
    "FactoryConfig",
    "ProviderCredentials",
    "get_config",
    "set_config",
    # Exceptions
    "ETFDataError",
    "ValidationError",
    "ProviderDataError",
    "ProviderFaultError",
    "AggregateExhaustedError",
    "NoProvidersConfiguredError",
    "ConfigurationError",
    # Models
    "Quote",
    "Metadata",
    "Holding",
    "SectorAllocation",
    "CountryAllocation",
    "Performance",
    "Period",
    "PricePoint",
    "HistoricalSeries",
    "HistoricalInterval",
    "SearchResult",
    "SecurityType",
    "ProviderConfig",
    "ProviderDescriptor",
    "ProviderOutcome",
    "ProviderResult",
    "OutcomeStatus",
    "RateLimitDeclaration",
    "RateLimitInfo",
    # Providers
    "PROVIDER_CLASSES",
    "PolygonProvider",
    "EODHDProvider",
    "FMPProvider",
    "FinnhubProvider",
    "AlphaVantageProvider",
]
