"""
Health and readiness checks for the consent manager.

Liveness reports that the process is up. Readiness additionally proves that
the signing key can still sign and verify, and that the consent store answers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Response, status
from pydantic import BaseModel, Field

from .config import Settings
from .signing import SigningAuthority
from .store import ConsentStore


logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status values."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status for a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


class HealthCheckResponse(BaseModel):
    """Complete health check response."""
    status: HealthStatus
    service: str
    version: str = "1.0.0"
    timestamp: float = Field(default_factory=time.time)
    uptime_seconds: float
    checks: List[ComponentHealth]
    metadata: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class HealthChecker:
    """Runs component checks against the signing authority and consent store."""

    service_name: str
    signer: SigningAuthority
    store: ConsentStore
    settings: Settings
    startup_time: float = dataclass_field(default_factory=time.time)
    version: str = "1.0.0"

    async def check_signing(self) -> ComponentHealth:
        """Sign and verify a probe payload with the held key."""
        start = time.time()
        try:
            token = self.signer.sign({"probe": self.service_name})
            self.signer.verify(token)
        except Exception as e:
            return ComponentHealth(
                name="signing",
                status=HealthStatus.UNHEALTHY,
                message=f"Signing key probe failed: {str(e)}",
                metadata={"error": type(e).__name__, "kid": self.signer.key_id},
            )
        return ComponentHealth(
            name="signing",
            status=HealthStatus.HEALTHY,
            message="Signing key operational",
            latency_ms=round((time.time() - start) * 1000, 2),
            metadata={"kid": self.signer.key_id, "algorithm": self.signer.algorithm},
        )

    async def check_store(self) -> ComponentHealth:
        """Count stored artifacts as a store connectivity probe."""
        start = time.time()
        try:
            total = await self.store.count()
        except Exception as e:
            return ComponentHealth(
                name="store",
                status=HealthStatus.UNHEALTHY,
                message=f"Consent store unavailable: {str(e)}",
                metadata={"error": type(e).__name__, "backend": self.settings.store_backend},
            )
        return ComponentHealth(
            name="store",
            status=HealthStatus.HEALTHY,
            message="Consent store reachable",
            latency_ms=round((time.time() - start) * 1000, 2),
            metadata={"backend": self.settings.store_backend, "consents": total},
        )

    async def run_check_with_timeout(
        self,
        check_func: Callable,
        timeout: float = None
    ) -> ComponentHealth:
        """Run a health check with timeout protection."""
        timeout = timeout or self.settings.health_check_timeout

        try:
            return await asyncio.wait_for(check_func(), timeout=timeout)
        except asyncio.TimeoutError:
            return ComponentHealth(
                name=getattr(check_func, '__name__', 'unknown').replace('check_', ''),
                status=HealthStatus.UNHEALTHY,
                message=f"Health check timeout after {timeout}s",
                metadata={"timeout": timeout}
            )

    def _build_response(self, overall_status: HealthStatus, checks: List[ComponentHealth]) -> HealthCheckResponse:
        return HealthCheckResponse(
            status=overall_status,
            service=self.service_name,
            version=self.version,
            uptime_seconds=round(time.time() - self.startup_time, 2),
            checks=checks,
            metadata={
                "environment": self.settings.environment,
                "timestamp_iso": datetime.fromtimestamp(time.time()).isoformat()
            }
        )

    async def health(self) -> HealthCheckResponse:
        """Liveness: the service is running."""
        checks = [
            ComponentHealth(
                name="service",
                status=HealthStatus.HEALTHY,
                message=f"{self.service_name} is running",
                metadata={"uptime_seconds": round(time.time() - self.startup_time, 2)},
            )
        ]
        return self._build_response(HealthStatus.HEALTHY, checks)

    async def ready(self) -> HealthCheckResponse:
        """Readiness: signing and store checks must both pass."""
        checks = list(
            await asyncio.gather(
                self.run_check_with_timeout(self.check_signing),
                self.run_check_with_timeout(self.check_store),
            )
        )

        if all(check.status == HealthStatus.HEALTHY for check in checks):
            overall_status = HealthStatus.HEALTHY
        else:
            overall_status = HealthStatus.UNHEALTHY
            logger.warning(
                "%s not ready: %s",
                self.service_name,
                ", ".join(f"{check.name}={check.status.value}" for check in checks),
            )

        return self._build_response(overall_status, checks)


def setup_health_endpoints(app: FastAPI, checker: HealthChecker) -> HealthChecker:
    """
    Setup health and readiness endpoints on a FastAPI application.

    Endpoints:
    - GET /health: Liveness probe (is the service alive?)
    - GET /ready: Readiness probe (can it sign and reach its store?)
    """

    @app.get(
        "/health",
        tags=["Health"],
        summary="Health check (liveness probe)",
        response_model=HealthCheckResponse,
        status_code=status.HTTP_200_OK
    )
    async def health_endpoint():
        """Health check endpoint (liveness probe)."""
        return await checker.health()

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness check (readiness probe)",
        response_model=HealthCheckResponse,
        status_code=status.HTTP_200_OK
    )
    async def readiness_endpoint(response: Response):
        """Readiness check endpoint (readiness probe)."""
        result = await checker.ready()

        if result.status == HealthStatus.HEALTHY:
            response.status_code = status.HTTP_200_OK
        else:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

        return result

    return checker
