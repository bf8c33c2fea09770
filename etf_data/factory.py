"""
ETF Provider Factory - Multi-provider aggregation with fallback.

Provides:
- Name-keyed provider registry
- Capability filtering per operation
- Health gating (a faulted provider is skipped until health_check())
- Sequential fallback in priority order; first success wins
- Structured per-provider outcomes on exhausted chains

Usage:
    factory = ETFProviderFactory(ProviderCredentials.from_env())
    result = await factory.get_quote("SPY")
    if result.success:
        print(result.provider, result.data.price)
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from etf_data.base import BaseETFProvider, IntervalLike, parse_interval, validate_query, validate_symbol
from etf_data.capabilities import Capability, CapabilityMatrix, ProviderCapabilities
from etf_data.config import FactoryConfig, ProviderCredentials, get_config
from etf_data.exceptions import (
    FACTORY_PROVIDER_NAME,
    ConfigurationError,
    NoProvidersConfiguredError,
    ProviderDataError,
    ProviderFaultError,
)
from etf_data.health import HealthTracker
from etf_data.models import (
    DEFAULT_PERIODS,
    CountryAllocation,
    HistoricalSeries,
    Holding,
    Metadata,
    OutcomeStatus,
    Performance,
    ProviderDescriptor,
    ProviderOutcome,
    ProviderResult,
    Quote,
    SearchResult,
    SectorAllocation,
)
from etf_data.performance import parse_periods
from etf_data.providers import PROVIDER_CLASSES


logger = logging.getLogger(__name__)


ProviderCall = Callable[[BaseETFProvider], Awaitable[ProviderResult]]


class ETFProviderFactory:
    """
    Aggregates ETF data providers behind a single interface.

    For every request the factory walks its priority list and tries each
    registered, healthy, capable provider in turn. A provider that returns
    a failure result is skipped for this request only; a provider that
    raises (or exceeds provider_timeout) is marked unhealthy and skipped
    by every later request until health_check() restores it.

    Usage:
        async with ETFProviderFactory(providers={"fake": FakeProvider("k")}) as factory:
            result = await factory.get_holdings("QQQ")
    """

    def __init__(
        self,
        credentials: Optional[ProviderCredentials] = None,
        *,
        providers: Optional[Mapping[str, BaseETFProvider]] = None,
        capabilities: Optional[Union[CapabilityMatrix, Mapping[str, ProviderCapabilities]]] = None,
        priority: Optional[Sequence[str]] = None,
        config: Optional[FactoryConfig] = None,
    ) -> None:
        self.config = config or FactoryConfig()

        self._providers: dict[str, BaseETFProvider] = {}
        self._priority: list[str] = []
        self._health = HealthTracker()

        if isinstance(capabilities, CapabilityMatrix):
            self._capabilities = capabilities
        else:
            self._capabilities = CapabilityMatrix()
            for name, caps in self.config.capability_overrides.items():
                self._capabilities.set(name, caps)
            for name, caps in (capabilities or {}).items():
                self._capabilities.set(name, caps)

        if credentials is not None:
            for name, api_key in credentials.as_dict().items():
                self.register_provider(name, api_key)

        for name, provider in (providers or {}).items():
            self.register_provider(name, provider)

        # Desired order first, then anything registered that it does not name
        desired = list(priority) if priority is not None else list(self.config.priority)
        self._priority = [name for name in dict.fromkeys(desired) if name in self._providers]
        self._priority.extend(name for name in self._providers if name not in self._priority)

        logger.info(
            f"ETF provider factory initialized with {len(self._providers)} provider(s), "
            f"priority={self._priority}"
        )

    # =========================================================
    # REGISTRY
    # =========================================================

    def register_provider(
        self,
        name: str,
        provider_or_api_key: Union[BaseETFProvider, str, None],
        capabilities: Optional[ProviderCapabilities] = None,
    ) -> bool:
        """
        Register a provider under a name.

        Args:
            name: Registry name (e.g. "polygon")
            provider_or_api_key: A provider instance, or an API key for the
                built-in provider of that name
            capabilities: Capability row to declare for this name

        Returns:
            False when an empty API key was given and nothing was registered

        Raises:
            ConfigurationError: Unknown built-in provider name
        """
        if isinstance(provider_or_api_key, BaseETFProvider):
            provider = provider_or_api_key
        else:
            api_key = (provider_or_api_key or "").strip()
            if not api_key:
                logger.debug(f"[{name}] No API key, provider not registered")
                return False

            provider_class = PROVIDER_CLASSES.get(name)
            if provider_class is None:
                raise ConfigurationError(
                    f"Unknown provider '{name}'. Built-in providers: {', '.join(PROVIDER_CLASSES)}",
                    provider_name=name,
                    config_key="provider",
                )
            provider = provider_class(
                api_key,
                timeout=self.config.request_timeout,
                user_agent=self.config.user_agent,
            )

        if name in self._providers:
            logger.warning(f"Provider '{name}' already registered, replacing")

        self._providers[name] = provider
        self._health.register(name)
        if capabilities is not None:
            self._capabilities.set(name, capabilities)
        if name not in self._priority:
            self._priority.append(name)

        logger.info(f"Registered provider '{name}' ({provider.name})")
        return True

    def unregister_provider(self, name: str) -> Optional[BaseETFProvider]:
        """Remove a provider. The caller owns closing it."""
        provider = self._providers.pop(name, None)
        if provider is None:
            return None

        self._health.unregister(name)
        if name in self._priority:
            self._priority.remove(name)
        logger.info(f"Unregistered provider '{name}'")
        return provider

    def set_priority(self, names: Sequence[str]) -> None:
        """
        Replace the fallback order.

        Names that are not registered are dropped. Registered providers left
        out of the list are never tried.
        """
        unknown = [name for name in names if name not in self._providers]
        if unknown:
            logger.debug(f"Ignoring unregistered providers in priority: {unknown}")

        self._priority = [name for name in dict.fromkeys(names) if name in self._providers]
        logger.info(f"Provider priority set to {self._priority}")

    def get_priority(self) -> list[str]:
        return list(self._priority)

    def get_provider(self, name: str) -> Optional[BaseETFProvider]:
        return self._providers.get(name)

    def has_providers(self) -> bool:
        return bool(self._providers)

    def list_available_providers(self) -> list[str]:
        """Registered provider names in registration order."""
        return list(self._providers)

    @property
    def capabilities(self) -> CapabilityMatrix:
        return self._capabilities

    @property
    def health(self) -> HealthTracker:
        return self._health

    # =========================================================
    # OPERATIONS
    # =========================================================

    async def get_quote(self, symbol: str) -> ProviderResult[Quote]:
        validate_symbol(symbol)
        return await self._execute_with_fallback(
            Capability.QUOTE,
            lambda provider: provider.get_quote(symbol),
        )

    async def get_metadata(self, symbol: str) -> ProviderResult[Metadata]:
        validate_symbol(symbol)
        return await self._execute_with_fallback(
            Capability.METADATA,
            lambda provider: provider.get_metadata(symbol),
        )

    async def get_holdings(self, symbol: str) -> ProviderResult[list[Holding]]:
        validate_symbol(symbol)
        return await self._execute_with_fallback(
            Capability.HOLDINGS,
            lambda provider: provider.get_holdings(symbol),
        )

    async def get_sector_allocation(self, symbol: str) -> ProviderResult[list[SectorAllocation]]:
        validate_symbol(symbol)
        return await self._execute_with_fallback(
            Capability.SECTOR_ALLOCATION,
            lambda provider: provider.get_sector_allocation(symbol),
        )

    async def get_country_allocation(self, symbol: str) -> ProviderResult[list[CountryAllocation]]:
        validate_symbol(symbol)
        return await self._execute_with_fallback(
            Capability.COUNTRY_ALLOCATION,
            lambda provider: provider.get_country_allocation(symbol),
        )

    async def get_performance(
        self,
        symbol: str,
        periods: Optional[Sequence[str]] = None,
    ) -> ProviderResult[list[Performance]]:
        validate_symbol(symbol)
        labels = [p.value for p in parse_periods(periods if periods is not None else DEFAULT_PERIODS)]
        return await self._execute_with_fallback(
            Capability.PERFORMANCE,
            lambda provider: provider.get_performance(symbol, labels),
        )

    async def get_historical_data(
        self,
        symbol: str,
        interval: IntervalLike,
        start: datetime,
        end: datetime,
    ) -> ProviderResult[HistoricalSeries]:
        validate_symbol(symbol)
        parsed = parse_interval(interval)
        return await self._execute_with_fallback(
            Capability.HISTORICAL_DATA,
            lambda provider: provider.get_historical_data(symbol, parsed, start, end),
        )

    async def search(self, query: str, limit: int = 10) -> ProviderResult[list[SearchResult]]:
        validate_query(query)
        return await self._execute_with_fallback(
            Capability.SEARCH,
            lambda provider: provider.search(query, limit),
        )

    # =========================================================
    # FALLBACK
    # =========================================================

    def _candidates(self, capability: Capability) -> list[str]:
        """Priority-ordered providers eligible for an operation right now."""
        candidates = []
        for name in self._priority:
            if name not in self._providers:
                continue
            if not self._health.is_healthy(name):
                logger.debug(f"[{name}] Skipped for {capability.value}: unhealthy")
                continue
            if not self._capabilities.supports(name, capability):
                logger.debug(f"[{name}] Skipped for {capability.value}: not supported")
                continue
            candidates.append(name)
        return candidates

    async def _execute_with_fallback(
        self,
        capability: Capability,
        call: ProviderCall,
    ) -> ProviderResult:
        """
        Try eligible providers one at a time until one succeeds.

        Raises:
            NoProvidersConfiguredError: Nothing is registered
        """
        if not self._providers:
            raise NoProvidersConfiguredError(capability=capability.value)

        candidates = self._candidates(capability)
        if not candidates:
            error = f"No eligible providers for '{capability.value}'"
            logger.error(error)
            return ProviderResult.fail(error, FACTORY_PROVIDER_NAME)

        outcomes: list[ProviderOutcome] = []

        for name in candidates:
            provider = self._providers[name]
            start_time = time.time()

            try:
                result = await asyncio.wait_for(
                    self._call_provider(name, capability, call, provider),
                    timeout=self.config.provider_timeout,
                )
            except asyncio.TimeoutError as e:
                self._record_fault(name, ProviderFaultError(
                    f"Timed out after {self.config.provider_timeout}s",
                    provider_name=name,
                    operation=capability.value,
                    timeout=True,
                    original_error=e,
                ), start_time, outcomes)
                continue
            except ProviderDataError as e:
                # Raised rather than returned, but still a domain failure
                result = ProviderResult.fail(e.message or e.__class__.__name__, provider.name)
            except ProviderFaultError as fault:
                self._record_fault(name, fault, start_time, outcomes)
                continue
            except Exception as e:
                self._record_fault(name, ProviderFaultError(
                    str(e) or e.__class__.__name__,
                    provider_name=name,
                    operation=capability.value,
                    original_error=e,
                ), start_time, outcomes)
                continue

            latency_ms = (time.time() - start_time) * 1000

            if result.success:
                if outcomes:
                    logger.info(f"[{name}] Served {capability.value} after {len(outcomes)} fallback(s)")
                return result

            outcomes.append(ProviderOutcome(
                provider=name,
                status=OutcomeStatus.DATA_ERROR,
                error=result.error,
                latency_ms=latency_ms,
            ))
            logger.warning(f"[{name}] {capability.value} failed, falling back: {result.error}")

        error = "All providers failed. Errors: " + "; ".join(o.message for o in outcomes)
        logger.error(f"{capability.value}: {error}")
        return ProviderResult.fail(error, FACTORY_PROVIDER_NAME, tuple(outcomes))

    @staticmethod
    async def _call_provider(
        name: str,
        capability: Capability,
        call: ProviderCall,
        provider: BaseETFProvider,
    ) -> ProviderResult:
        """
        Await one provider call.

        A timeout raised from inside the provider (e.g. its own HTTP
        request_timeout) is converted here so it cannot be mistaken for
        the factory's provider_timeout firing.
        """
        try:
            return await call(provider)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise ProviderFaultError(
                f"Request timed out: {e}" if str(e) else "Request timed out",
                provider_name=name,
                operation=capability.value,
                timeout=True,
                original_error=e,
            ) from e

    def _record_fault(
        self,
        name: str,
        fault: ProviderFaultError,
        start_time: float,
        outcomes: list[ProviderOutcome],
    ) -> None:
        outcomes.append(ProviderOutcome(
            provider=name,
            status=OutcomeStatus.FAULT,
            error=fault.message,
            latency_ms=(time.time() - start_time) * 1000,
        ))
        self._health.mark_unhealthy(name, fault.message, fault=fault)

    # =========================================================
    # HEALTH & INFO
    # =========================================================

    async def health_check(self, probe: bool = False) -> dict[str, bool]:
        """
        Re-evaluate provider health.

        Without probe every registered provider is restored to healthy.
        With probe each provider's is_healthy() is awaited concurrently and
        its answer recorded; a probe that raises counts as unhealthy.
        """
        if not probe:
            for name in self._providers:
                self._health.mark_healthy(name)
            logger.info(f"Health reset for {len(self._providers)} provider(s)")
            return self._health.snapshot()

        names = list(self._providers)
        results = await asyncio.gather(
            *(self._providers[name].is_healthy() for name in names),
            return_exceptions=True,
        )

        for name, outcome in zip(names, results):
            if outcome is True:
                self._health.mark_healthy(name)
            elif isinstance(outcome, BaseException):
                self._health.mark_unhealthy(name, f"Health probe raised: {outcome}")
            else:
                self._health.mark_unhealthy(name, "Health probe failed")

        return self._health.snapshot()

    def get_provider_info(self) -> list[ProviderDescriptor]:
        """Descriptor per registered provider, in registration order."""
        return [
            ProviderDescriptor(
                name=name,
                display_name=provider.name,
                rate_limit=provider.config.rate_limit,
                capabilities=self._capabilities.get(name),
                is_healthy=self._health.is_healthy(name),
            )
            for name, provider in self._providers.items()
        ]

    def get_stats(self) -> dict[str, Any]:
        """Get factory statistics."""
        return {
            "total_providers": len(self._providers),
            "priority": self.get_priority(),
            "unhealthy": self._health.unhealthy_providers(),
            "health": self._health.to_dict(),
        }

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def close(self) -> None:
        """Close every provider's HTTP resources."""
        for name, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.error(f"Error closing provider {name}: {e}")
        logger.info("ETF provider factory closed")

    async def __aenter__(self) -> "ETFProviderFactory":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<ETFProviderFactory(providers={self.get_priority()})>"


# =============================================================
# MODULE HELPERS
# =============================================================


_default_factory: Optional[ETFProviderFactory] = None


def create_etf_provider_factory(
    credentials: Optional[ProviderCredentials] = None,
    config: Optional[FactoryConfig] = None,
) -> ETFProviderFactory:
    """Build a factory from environment credentials and the global config."""
    return ETFProviderFactory(
        credentials if credentials is not None else ProviderCredentials.from_env(),
        config=config or get_config(),
    )


def get_default_factory() -> ETFProviderFactory:
    """Get or create the process-wide factory."""
    global _default_factory
    if _default_factory is None:
        _default_factory = create_etf_provider_factory()
    return _default_factory


async def reset_default_factory() -> None:
    """Close and forget the process-wide factory."""
    global _default_factory
    factory, _default_factory = _default_factory, None
    if factory is not None:
        await factory.close()
