"""
ETF Data - Configuration.

============================================================
CONFIGURATION SOURCES
============================================================

- Default values
- Environment variables (a .env file is loaded first)
- YAML config file

Provider credentials come only from the environment; a provider is
registered only when its key is non-empty.

============================================================
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from etf_data.capabilities import ProviderCapabilities
from etf_data.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# Ranked by data quality for ETFs
DEFAULT_PRIORITY = ["polygon", "eodhd", "fmp", "finnhub", "alpha_vantage"]


# =============================================================
# CREDENTIALS
# =============================================================


@dataclass
class ProviderCredentials:
    """API key per built-in provider."""
    polygon: Optional[str] = None
    eodhd: Optional[str] = None
    fmp: Optional[str] = None
    finnhub: Optional[str] = None
    alpha_vantage: Optional[str] = None

    ENV_VARS = {
        "polygon": "POLYGON_API_KEY",
        "eodhd": "EODHD_API_KEY",
        "fmp": "FMP_API_KEY",
        "finnhub": "FINNHUB_API_KEY",
        "alpha_vantage": "ALPHA_VANTAGE_API_KEY",
    }

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "ProviderCredentials":
        """
        Load credentials from environment variables.

        Environment variables:
        - POLYGON_API_KEY
        - EODHD_API_KEY
        - FMP_API_KEY
        - FINNHUB_API_KEY
        - ALPHA_VANTAGE_API_KEY
        """
        if dotenv:
            load_dotenv()
        return cls(**{name: os.getenv(var) for name, var in cls.ENV_VARS.items()})

    def as_dict(self) -> dict[str, str]:
        """Provider name -> key, for non-empty keys only."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value and value.strip():
                result[f.name] = value.strip()
        return result

    def __repr__(self) -> str:
        configured = ", ".join(self.as_dict()) or "none"
        return f"<ProviderCredentials(configured={configured})>"


# =============================================================
# FACTORY CONFIGURATION
# =============================================================


@dataclass
class FactoryConfig:
    """Settings for ETFProviderFactory."""
    priority: list[str] = field(default_factory=lambda: list(DEFAULT_PRIORITY))

    # Upper bound for a single provider call inside a fallback chain
    provider_timeout: float = 30.0

    # aiohttp total timeout for a single HTTP request
    request_timeout: float = 30.0

    user_agent: str = "ETFDataAggregator/1.0"

    # Replaces the built-in capability row of the named providers
    capability_overrides: dict[str, ProviderCapabilities] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.provider_timeout <= 0:
            raise ConfigurationError("provider_timeout must be > 0", config_key="provider_timeout")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be > 0", config_key="request_timeout")

    @classmethod
    def from_env(cls) -> "FactoryConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - ETF_PROVIDER_PRIORITY (comma-separated provider names)
        - ETF_PROVIDER_TIMEOUT
        - ETF_REQUEST_TIMEOUT
        - ETF_USER_AGENT
        """
        load_dotenv()
        kwargs: dict[str, Any] = {}

        if os.getenv("ETF_PROVIDER_PRIORITY"):
            kwargs["priority"] = [
                name.strip()
                for name in os.getenv("ETF_PROVIDER_PRIORITY", "").split(",")
                if name.strip()
            ]
        if os.getenv("ETF_PROVIDER_TIMEOUT"):
            kwargs["provider_timeout"] = _parse_float("ETF_PROVIDER_TIMEOUT", os.getenv("ETF_PROVIDER_TIMEOUT"))
        if os.getenv("ETF_REQUEST_TIMEOUT"):
            kwargs["request_timeout"] = _parse_float("ETF_REQUEST_TIMEOUT", os.getenv("ETF_REQUEST_TIMEOUT"))
        if os.getenv("ETF_USER_AGENT"):
            kwargs["user_agent"] = os.getenv("ETF_USER_AGENT")

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Path) -> "FactoryConfig":
        """
        Load configuration from a YAML file.

        Example:
            priority: [eodhd, fmp, polygon]
            provider_timeout: 10
            request_timeout: 8
            capabilities:
              polygon:
                holdings: true

        An unreadable file falls back to defaults; malformed values raise
        ConfigurationError.
        """
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load YAML config from {path}: {e}")
            return cls()

        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping")

        kwargs: dict[str, Any] = {}

        if "priority" in data:
            priority = data["priority"]
            if not isinstance(priority, list) or not all(isinstance(n, str) for n in priority):
                raise ConfigurationError("priority must be a list of provider names", config_key="priority")
            kwargs["priority"] = priority

        for key in ("provider_timeout", "request_timeout"):
            if key in data:
                kwargs[key] = _parse_float(key, data[key])

        if "user_agent" in data:
            kwargs["user_agent"] = str(data["user_agent"])

        if "capabilities" in data:
            table = data["capabilities"]
            if not isinstance(table, dict):
                raise ConfigurationError("capabilities must be a mapping", config_key="capabilities")
            overrides = {}
            for name, row in table.items():
                if not isinstance(row, dict):
                    raise ConfigurationError(
                        f"capabilities for '{name}' must be a mapping",
                        provider_name=name,
                        config_key="capabilities",
                    )
                overrides[name] = ProviderCapabilities.from_dict(row)
            kwargs["capability_overrides"] = overrides

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "priority": list(self.priority),
            "provider_timeout": self.provider_timeout,
            "request_timeout": self.request_timeout,
            "user_agent": self.user_agent,
            "capability_overrides": {
                name: caps.to_dict() for name, caps in self.capability_overrides.items()
            },
        }


def _parse_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"{key} must be a number, got {value!r}",
            config_key=key,
            original_error=e,
        )


# =============================================================
# GLOBAL CONFIG SINGLETON
# =============================================================


_default_config: Optional[FactoryConfig] = None


def get_config() -> FactoryConfig:
    """Get the global factory configuration."""
    global _default_config
    if _default_config is None:
        _default_config = FactoryConfig.from_env()
    return _default_config


def set_config(config: Optional[FactoryConfig]) -> None:
    """Set (or clear, with None) the global factory configuration."""
    global _default_config
    _default_config = config
