"""
Capability Matrix - Static per-provider operation support.

A capability says whether a provider can serve an operation at all,
independent of its live health. The aggregator consults the matrix before
calling a provider so a structurally unsupported request never spends a
network round-trip or an API-quota unit.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional


class Capability(Enum):
    """The eight operations every provider exposes."""
    QUOTE = "quote"
    METADATA = "metadata"
    HOLDINGS = "holdings"
    SECTOR_ALLOCATION = "sectorAllocation"
    COUNTRY_ALLOCATION = "countryAllocation"
    PERFORMANCE = "performance"
    HISTORICAL_DATA = "historicalData"
    SEARCH = "search"


# Capability value -> dataclass field name
_FIELD_BY_CAPABILITY = {
    Capability.QUOTE: "quote",
    Capability.METADATA: "metadata",
    Capability.HOLDINGS: "holdings",
    Capability.SECTOR_ALLOCATION: "sector_allocation",
    Capability.COUNTRY_ALLOCATION: "country_allocation",
    Capability.PERFORMANCE: "performance",
    Capability.HISTORICAL_DATA: "historical_data",
    Capability.SEARCH: "search",
}


@dataclass(frozen=True)
class ProviderCapabilities:
    """Which operations a provider can structurally serve."""
    quote: bool = False
    metadata: bool = False
    holdings: bool = False
    sector_allocation: bool = False
    country_allocation: bool = False
    performance: bool = False
    historical_data: bool = False
    search: bool = False

    def supports(self, capability: Capability) -> bool:
        """Check support for a single operation."""
        return getattr(self, _FIELD_BY_CAPABILITY[capability])

    def supported(self) -> list[Capability]:
        """List supported operations."""
        return [cap for cap in Capability if self.supports(cap)]

    @classmethod
    def none(cls) -> "ProviderCapabilities":
        """Capabilities of an unknown provider: nothing."""
        return cls()

    @classmethod
    def all(cls) -> "ProviderCapabilities":
        """A provider that supports every operation."""
        return cls(**{f.name: True for f in fields(cls)})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProviderCapabilities":
        """
        Create from a mapping keyed by capability value ("sectorAllocation")
        or field name ("sector_allocation"). Missing keys are False.
        """
        kwargs: dict[str, bool] = {}
        for capability, field_name in _FIELD_BY_CAPABILITY.items():
            if capability.value in data:
                kwargs[field_name] = bool(data[capability.value])
            elif field_name in data:
                kwargs[field_name] = bool(data[field_name])
        return cls(**kwargs)

    def to_dict(self) -> dict[str, bool]:
        """Convert to dictionary keyed by capability value."""
        return {cap.value: self.supports(cap) for cap in Capability}


# =============================================================
# DEFAULT MATRIX
# =============================================================

# Performance is derived from daily history, so every provider with a
# historical endpoint can serve it.
DEFAULT_CAPABILITIES: dict[str, ProviderCapabilities] = {
    "polygon": ProviderCapabilities(
        quote=True,
        metadata=True,
        holdings=False,  # Not in the free tier
        sector_allocation=False,
        country_allocation=False,
        performance=True,
        historical_data=True,
        search=True,
    ),
    "eodhd": ProviderCapabilities.all(),
    "fmp": ProviderCapabilities.all(),
    "finnhub": ProviderCapabilities.all(),
    "alpha_vantage": ProviderCapabilities(
        quote=True,
        metadata=True,
        holdings=False,
        sector_allocation=False,
        country_allocation=False,
        performance=True,
        historical_data=True,
        search=True,
    ),
}


class CapabilityMatrix:
    """
    Name-keyed capability table.

    Injectable so tests and operators can describe arbitrary providers
    without touching network code. Unknown providers support nothing.
    """

    def __init__(
        self,
        capabilities: Optional[Mapping[str, ProviderCapabilities]] = None,
    ) -> None:
        self._table: dict[str, ProviderCapabilities] = dict(
            DEFAULT_CAPABILITIES if capabilities is None else capabilities
        )

    def get(self, provider_name: str) -> ProviderCapabilities:
        """Get capabilities for a provider (all False if unknown)."""
        return self._table.get(provider_name, ProviderCapabilities.none())

    def set(self, provider_name: str, capabilities: ProviderCapabilities) -> None:
        """Declare capabilities for a provider."""
        self._table[provider_name] = capabilities

    def supports(self, provider_name: str, capability: Capability) -> bool:
        """Check whether a provider can serve an operation."""
        return self.get(provider_name).supports(capability)

    def providers_for(self, capability: Capability) -> list[str]:
        """Names of all known providers that can serve an operation."""
        return [name for name, caps in self._table.items() if caps.supports(capability)]

    def __contains__(self, provider_name: str) -> bool:
        return provider_name in self._table

    def to_dict(self) -> dict[str, dict[str, bool]]:
        """Convert to dictionary."""
        return {name: caps.to_dict() for name, caps in self._table.items()}
