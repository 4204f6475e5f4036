"""
Health check for readiness/liveness probes.

Checks database connectivity and reports the payout provider circuit state.
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creator_payouts.database.connection import get_session_factory
from creator_payouts.integrations.paypal_client import CircuitBreaker

logger = structlog.get_logger(__name__)


class HealthCheck:
    """Health check service for the payout subsystem's dependencies."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.session_factory = session_factory
        self.circuit_breaker = circuit_breaker

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status
        """
        try:
            session_factory = self.session_factory or get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
            return {"status": "healthy"}
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    def check_payout_provider(self) -> Dict[str, Any]:
        """Report the provider circuit breaker state."""
        if self.circuit_breaker is None:
            return {"status": "unknown"}
        state = self.circuit_breaker.state
        return {"status": "degraded" if state == "open" else "healthy", "circuit": state}

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all checks.

        Returns:
            Dict[str, Any]: Overall status plus per-dependency results
        """
        checks = {
            "database": await self.check_database(),
            "payout_provider": self.check_payout_provider(),
        }
        if checks["database"]["status"] != "healthy":
            overall = "unhealthy"
        elif checks["payout_provider"]["status"] == "degraded":
            overall = "degraded"
        else:
            overall = "healthy"
        return {"status": overall, "checks": checks}
