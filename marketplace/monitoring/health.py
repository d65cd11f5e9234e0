"""
Health check endpoints for Kubernetes readiness/liveness probes.

Checks:
- Database connectivity
- PayPal API reachability and credentials
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.config import get_settings
from marketplace.database.connection import get_session_factory
from marketplace.integrations.paypal_client import PayPalClient, PayPalError

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - PayPal API reachability check
    - Overall system health status
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        paypal_client: Optional[PayPalClient] = None,
    ) -> None:
        """
        Initialize health check service.

        Args:
            session_factory: Optional session factory (defaults to the global one)
            paypal_client: Optional PayPal client
        """
        self.settings = get_settings()
        self._session_factory = session_factory
        self._paypal_client = paypal_client

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Returns:
            Dict[str, Any]: Database health status

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = self._session_factory or get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except SQLAlchemyError as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}") from e

    async def check_paypal(self) -> Dict[str, Any]:
        """
        Check PayPal API reachability.

        Returns:
            Dict[str, Any]: PayPal health status

        Raises:
            HealthCheckError: If PayPal check fails
        """
        try:
            client = self._paypal_client or PayPalClient()
            await client.ping()

            return {
                "status": "healthy",
                "service": "paypal",
                "message": "PayPal API connection successful",
                "sandbox": self.settings.is_sandbox,
            }

        except PayPalError as e:
            logger.error("paypal_health_check_failed", error=str(e), status_code=e.status_code)
            raise HealthCheckError(f"PayPal health check failed: {str(e)}") from e

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("database", self.check_database), ("paypal", self.check_paypal)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {
                    "status": "unhealthy",
                    "service": name,
                    "error": str(e),
                }
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe endpoint.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: every dependency must be reachable."""
        return await self.check_all()
