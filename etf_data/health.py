"""
Health Tracker - Per-provider boolean health state.

============================================================
STATE MACHINE
============================================================

    HEALTHY  --(provider fault)------------------>  UNHEALTHY
    UNHEALTHY --(explicit factory health check)-->  HEALTHY

Every provider starts HEALTHY at registration. There is no timer-based
recovery: only the factory's health_check() moves a provider back.

A domain failure (a provider returning success=False, or raising
ProviderDataError) never touches health.

============================================================
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from etf_data.exceptions import ProviderFaultError


logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthRecord:
    """Health of one provider."""
    provider_name: str
    status: HealthStatus = HealthStatus.HEALTHY
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    last_transition: Optional[datetime] = None
    fault_count: int = 0
    last_fault: Optional[ProviderFaultError] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "provider_name": self.provider_name,
            "status": self.status.value,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "last_transition": self.last_transition.isoformat() if self.last_transition else None,
            "fault_count": self.fault_count,
            "last_fault": self.last_fault.to_dict() if self.last_fault else None,
        }


class HealthTracker:
    """
    Health state for every registered provider.

    Writes are idempotent; concurrent fallback chains marking the same
    provider unhealthy is harmless.
    """

    def __init__(self) -> None:
        self._records: dict[str, HealthRecord] = {}
        self._lock = threading.RLock()

    def register(self, provider_name: str) -> HealthRecord:
        """Start tracking a provider as healthy (resets an existing record)."""
        with self._lock:
            record = HealthRecord(provider_name=provider_name)
            self._records[provider_name] = record
            return record

    def unregister(self, provider_name: str) -> bool:
        """Stop tracking a provider."""
        with self._lock:
            return self._records.pop(provider_name, None) is not None

    def is_registered(self, provider_name: str) -> bool:
        with self._lock:
            return provider_name in self._records

    def is_healthy(self, provider_name: str) -> bool:
        """Unknown providers are never healthy."""
        with self._lock:
            record = self._records.get(provider_name)
            return record is not None and record.is_healthy

    def get_record(self, provider_name: str) -> Optional[HealthRecord]:
        with self._lock:
            return self._records.get(provider_name)

    def last_error(self, provider_name: str) -> Optional[str]:
        with self._lock:
            record = self._records.get(provider_name)
            return record.last_error if record else None

    def mark_unhealthy(
        self,
        provider_name: str,
        reason: str,
        fault: Optional[ProviderFaultError] = None,
    ) -> None:
        """Record a provider fault and take the provider out of rotation."""
        with self._lock:
            record = self._records.get(provider_name)
            if record is None:
                logger.debug(f"Ignoring fault for untracked provider: {provider_name}")
                return

            now = datetime.now(timezone.utc)
            record.fault_count += 1
            record.last_error = reason
            record.last_error_time = now
            record.last_fault = fault

            if record.status != HealthStatus.UNHEALTHY:
                record.status = HealthStatus.UNHEALTHY
                record.last_transition = now
                logger.error(f"[{provider_name}] Marked UNHEALTHY: {reason}")

    def mark_healthy(self, provider_name: str) -> None:
        """Return a provider to rotation."""
        with self._lock:
            record = self._records.get(provider_name)
            if record is None:
                return

            if record.status != HealthStatus.HEALTHY:
                record.status = HealthStatus.HEALTHY
                record.last_transition = datetime.now(timezone.utc)
                logger.info(f"[{provider_name}] Recovered to HEALTHY")

    def snapshot(self) -> dict[str, bool]:
        """Provider name -> healthy flag."""
        with self._lock:
            return {name: record.is_healthy for name, record in self._records.items()}

    def unhealthy_providers(self) -> list[str]:
        with self._lock:
            return [name for name, record in self._records.items() if not record.is_healthy]

    def to_dict(self) -> dict[str, dict]:
        with self._lock:
            return {name: record.to_dict() for name, record in self._records.items()}
