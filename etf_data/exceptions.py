"""
ETF Data Exceptions - Error taxonomy for the provider aggregation layer.

Two families:
- Caller errors (ValidationError, NoProvidersConfiguredError, ConfigurationError)
  are raised before any provider is contacted.
- Provider errors (ProviderDataError, ProviderFaultError) are recorded inside
  the fallback loop and never escape it; AggregateExhaustedError summarizes
  a chain in which every candidate failed.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from etf_data.models import ProviderOutcome


FACTORY_PROVIDER_NAME = "factory"


class ETFDataError(Exception):
    """Base exception for all ETF data errors."""

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider_name = provider_name
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "provider_name": self.provider_name,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.provider_name:
            parts.append(f"[provider={self.provider_name}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ValidationError(ETFDataError, ValueError):
    """Malformed caller input, detected before any network call."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, None, None, context)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "field": self.field,
            "value": repr(self.value),
        })
        return data


class ProviderDataError(ETFDataError):
    """
    A provider completed its call but has no usable data.

    Covers "not found", unsupported-by-plan, non-2xx responses and
    unparseable payloads. Not penalized against provider health.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider_name, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    def is_rate_limited(self) -> bool:
        """Check if error is due to rate limiting."""
        return self.status_code == 429

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        """Check if error is client-side."""
        return self.status_code is not None and 400 <= self.status_code < 500


class ProviderFaultError(ETFDataError):
    """
    A provider call raised unexpectedly (bug, timeout, malformed payload
    beyond what its converter handles). Penalized against provider health.
    """

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        operation: Optional[str] = None,
        timeout: bool = False,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider_name, original_error, context)
        self.operation = operation
        self.timeout = timeout

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "operation": self.operation,
            "timeout": self.timeout,
        })
        return data


class AggregateExhaustedError(ETFDataError):
    """Every eligible provider was tried and none succeeded."""

    def __init__(
        self,
        message: str,
        capability: Optional[str] = None,
        outcomes: Optional[Sequence["ProviderOutcome"]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, FACTORY_PROVIDER_NAME, None, context)
        self.capability = capability
        self.outcomes = tuple(outcomes or ())

    @property
    def attempted_providers(self) -> list[str]:
        """Names of the providers that were actually invoked."""
        return [outcome.provider for outcome in self.outcomes]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "capability": self.capability,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        })
        return data


class NoProvidersConfiguredError(ETFDataError):
    """No provider is registered, so no request can be attempted."""

    def __init__(
        self,
        message: str = "No data providers configured",
        capability: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, FACTORY_PROVIDER_NAME, None, context)
        self.capability = capability


class ConfigurationError(ETFDataError):
    """Invalid provider or factory configuration."""

    def __init__(
        self,
        message: str,
        provider_name: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, provider_name, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
