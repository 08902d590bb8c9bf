from __future__ import annotations
"""Base generation service: unified retry, timeout, and usage metrics."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from scenesmith.errors import ProviderTimeout, SceneSmithError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GenResult(Generic[T]):
    """Standardized generation result."""
    data: T
    provider: str
    latency_ms: int
    cost_estimate: float
    retries_used: int


@dataclass
class GenServiceConfig:
    """Configuration for a generation service."""
    max_retries: int = 1
    retry_delay: float = 0.0
    timeout: float = 180.0


class BaseGenService(ABC, Generic[T]):
    """Abstract base class for all generation services.

    Provides:
    - Per-call deadline (a missed deadline becomes ``ProviderTimeout``)
    - Immediate retry of errors flagged ``retriable``
    - Cost tracking and metrics
    """

    service_name: str = "unknown"
    config: GenServiceConfig

    def __init__(self, config: GenServiceConfig | None = None):
        self.config = config or GenServiceConfig()
        self._total_calls = 0
        self._total_cost = 0.0
        self._total_errors = 0
        self._total_failures = 0
        self._total_latency_ms = 0

    async def execute(self, **kwargs: Any) -> GenResult[T]:
        """Unified execution entry point with timeout/retry/metrics."""
        self._total_calls += 1
        start = time.monotonic()
        attempts = self.config.max_retries + 1

        for attempt in range(attempts):
            try:
                try:
                    result = await asyncio.wait_for(
                        self._generate(**kwargs),
                        timeout=self.config.timeout,
                    )
                except asyncio.TimeoutError as e:
                    raise ProviderTimeout(
                        f"{self.service_name} exceeded {self.config.timeout:g}s deadline"
                    ) from e
            except SceneSmithError as e:
                self._total_errors += 1
                logger.warning(
                    "%s attempt %d/%d failed (%s): %s",
                    self.service_name, attempt + 1, attempts, type(e).__name__, e,
                )
                if not e.retriable or attempt + 1 >= attempts:
                    self._total_failures += 1
                    raise
                if self.config.retry_delay:
                    await asyncio.sleep(self.config.retry_delay)
                continue
            except Exception:
                self._total_errors += 1
                self._total_failures += 1
                raise

            latency = int((time.monotonic() - start) * 1000)
            cost = self._estimate_cost(**kwargs)
            self._total_cost += cost
            self._total_latency_ms += latency
            return GenResult(
                data=result,
                provider=self.service_name,
                latency_ms=latency,
                cost_estimate=cost,
                retries_used=attempt,
            )

        # range() always returns or raises above
        raise AssertionError("unreachable")

    @abstractmethod
    async def _generate(self, **kwargs: Any) -> T:
        """Subclass implements actual generation logic."""
        ...

    def _estimate_cost(self, **kwargs: Any) -> float:
        """Optional cost estimation, overridden by subclasses."""
        return 0.0

    def get_metrics(self) -> dict[str, Any]:
        """Return usage statistics for this service."""
        succeeded = self._total_calls - self._total_failures
        return {
            "service": self.service_name,
            "total_calls": self._total_calls,
            "total_cost": round(self._total_cost, 4),
            "total_errors": self._total_errors,
            "total_failures": self._total_failures,
            "error_rate": round(self._total_failures / max(self._total_calls, 1), 3),
            "avg_latency_ms": (
                round(self._total_latency_ms / succeeded) if succeeded > 0 else 0
            ),
        }
