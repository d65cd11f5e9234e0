"""
FastAPI dependency providers.

Services are built once per process; tests swap any of them through
``app.dependency_overrides``.
"""
import uuid
from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.core.approval import ApprovalWorkflow
from marketplace.core.catalog import AssetCatalog
from marketplace.core.context import RequestContext
from marketplace.core.purchase_workflow import PurchaseWorkflow
from marketplace.database.connection import get_session_factory
from marketplace.integrations.identity import SessionProvider
from marketplace.integrations.paypal_client import PayPalClient
from marketplace.integrations.upload_signer import UploadSigner
from marketplace.monitoring.health import HealthCheck


@lru_cache
def get_session_provider() -> SessionProvider:
    return SessionProvider()


@lru_cache
def get_paypal_client() -> PayPalClient:
    return PayPalClient()


@lru_cache
def get_upload_signer() -> UploadSigner:
    return UploadSigner()


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_request_context(
    request: Request,
    provider: SessionProvider = Depends(get_session_provider),
) -> RequestContext:
    """Pair the caller's session with the request ID."""
    if hasattr(request.state, "session"):
        session = request.state.session
    else:
        session = provider.get_session(request.headers, request.cookies)
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    return RequestContext(session=session, request_id=request_id)


def get_purchase_workflow(
    paypal_client: PayPalClient = Depends(get_paypal_client),
) -> PurchaseWorkflow:
    return PurchaseWorkflow(paypal_client=paypal_client)


def get_catalog() -> AssetCatalog:
    return AssetCatalog()


def get_approval_workflow() -> ApprovalWorkflow:
    return ApprovalWorkflow()


def get_health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    paypal_client: PayPalClient = Depends(get_paypal_client),
) -> HealthCheck:
    return HealthCheck(session_factory=session_factory, paypal_client=paypal_client)
