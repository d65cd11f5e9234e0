"""
API routes for the asset marketplace.

Browser navigations (checkout, PayPal callback, download, invoice) answer
with 303 redirects. Everything else is JSON.
"""
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.config import get_settings
from marketplace.core import documents
from marketplace.core.approval import ApprovalWorkflow
from marketplace.core.catalog import AssetCatalog
from marketplace.core.context import RequestContext
from marketplace.core.exceptions import (
    AuthRequired,
    MarketplaceError,
    NotFound,
    PermissionDenied,
    UpstreamFailure,
    ValidationFailure,
)
from marketplace.core.purchase_workflow import PurchaseWorkflow
from marketplace.database.connection import get_db
from marketplace.integrations.upload_signer import UploadSigner, UploadSigningError
from marketplace.monitoring.health import HealthCheck

from .dependencies import (
    get_approval_workflow,
    get_catalog,
    get_health_check,
    get_purchase_workflow,
    get_request_context,
    get_sessionmaker,
    get_upload_signer,
)
from .schemas import (
    ApprovalRequest,
    ApprovalResponse,
    AssetDetailResponse,
    AssetSummaryResponse,
    CategoryResponse,
    DashboardResponse,
    ErrorResponse,
    HealthCheckResponse,
    PendingAssetResponse,
    PurchaseResponse,
    SignatureRequest,
    SignatureResponse,
    UploadAssetResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
catalog_router = APIRouter(tags=["catalog"])
checkout_router = APIRouter(tags=["checkout"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["dashboard"])
documents_router = APIRouter(tags=["documents"])
upload_router = APIRouter(prefix="/api/cloudinary", tags=["uploads"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])

_HTTP_STATUS = {
    AuthRequired: status.HTTP_401_UNAUTHORIZED,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    ValidationFailure: status.HTTP_400_BAD_REQUEST,
    UpstreamFailure: status.HTTP_502_BAD_GATEWAY,
}


def _status_for(error: MarketplaceError) -> int:
    return _HTTP_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


# Catalog


@catalog_router.get(
    "/categories",
    response_model=List[CategoryResponse],
    summary="List categories",
)
async def list_categories(
    db: AsyncSession = Depends(get_db),
    catalog: AssetCatalog = Depends(get_catalog),
) -> List[Any]:
    return await catalog.list_categories(db)


@catalog_router.get(
    "/gallery",
    response_model=List[AssetSummaryResponse],
    summary="Public gallery",
    description="Approved assets, optionally filtered by category",
)
async def gallery(
    category_id: Optional[int] = Query(default=None, gt=0),
    db: AsyncSession = Depends(get_db),
    catalog: AssetCatalog = Depends(get_catalog),
) -> List[Any]:
    return await catalog.list_public_assets(db, category_id=category_id)


@catalog_router.get(
    "/gallery/{asset_id}",
    response_model=AssetDetailResponse,
    summary="Asset detail",
)
async def asset_detail(
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    catalog: AssetCatalog = Depends(get_catalog),
    workflow: PurchaseWorkflow = Depends(get_purchase_workflow),
) -> Dict[str, Any]:
    """Asset with category and owner, plus the caller's ownership flag."""
    try:
        view = await catalog.get_asset_detail(db, asset_id)
    except NotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    has_purchased = await workflow.has_purchased(db, view.id, ctx.user_id)

    return {
        **AssetDetailResponse.model_validate(view, from_attributes=True).model_dump(),
        "has_purchased": has_purchased,
        "download_url": f"/download/{view.id}" if has_purchased else None,
    }


# Checkout


@checkout_router.post(
    "/gallery/{asset_id}/checkout",
    summary="Start checkout",
    description="Create a PayPal order and redirect the browser to approve it",
    status_code=status.HTTP_303_SEE_OTHER,
)
async def checkout(
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    workflow: PurchaseWorkflow = Depends(get_purchase_workflow),
) -> RedirectResponse:
    try:
        result = await workflow.initiate(db, ctx, asset_id)
    except AuthRequired:
        return _redirect("/login")
    except NotFound:
        return _redirect("/gallery")
    except UpstreamFailure:
        return _redirect(f"/gallery/{quote(asset_id, safe='')}?error=true")

    if result.already_purchased:
        return _redirect(f"/gallery/{quote(asset_id, safe='')}?success=true")

    return _redirect(result.approval_link)


@checkout_router.get(
    "/api/paypal/capture",
    summary="PayPal approval callback",
    description="Capture the approved order, record the purchase and redirect",
    status_code=status.HTTP_303_SEE_OTHER,
)
async def paypal_capture(
    token: Optional[str] = Query(default=None),
    asset_id: Optional[str] = Query(default=None, alias="assetId"),
    payer_id: Optional[str] = Query(default=None, alias="PayerID"),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    workflow: PurchaseWorkflow = Depends(get_purchase_workflow),
) -> RedirectResponse:
    start_time = time.time()

    try:
        outcome = await workflow.capture(db, ctx, token, asset_id, payer_id)
    except AuthRequired:
        return _redirect("/login")
    except Exception as e:
        logger.error(
            "api_capture_unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        target = f"/gallery/{quote(asset_id, safe='')}" if asset_id else "/gallery"
        return _redirect(f"{target}?error=server_error")

    logger.info(
        "api_capture_completed",
        state=outcome.state.value,
        duration_seconds=time.time() - start_time,
    )

    return _redirect(outcome.redirect_path)


# Dashboard


@dashboard_router.get(
    "/assets",
    response_model=DashboardResponse,
    summary="Owner dashboard",
    responses={401: {"model": ErrorResponse}},
)
async def dashboard_assets(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    catalog: AssetCatalog = Depends(get_catalog),
) -> Any:
    try:
        dashboard = await catalog.dashboard(session_factory, ctx)
    except AuthRequired as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return {"categories": dashboard.categories, "assets": dashboard.assets}


@dashboard_router.post(
    "/assets",
    response_model=UploadAssetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded asset",
    description="Submit an asset already uploaded to storage for admin review",
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def upload_asset(
    fields: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    catalog: AssetCatalog = Depends(get_catalog),
) -> Any:
    try:
        asset = await catalog.upload_asset(db, ctx, fields)
    except (AuthRequired, ValidationFailure) as e:
        logger.info("api_upload_asset_rejected", error=str(e))
        return JSONResponse(
            status_code=_status_for(e),
            content={"success": False, "error": str(e)},
        )

    return {"success": True, "asset_id": asset.id}


@dashboard_router.get(
    "/purchases",
    response_model=List[PurchaseResponse],
    summary="Buyer's purchases",
    responses={401: {"model": ErrorResponse}},
)
async def dashboard_purchases(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    workflow: PurchaseWorkflow = Depends(get_purchase_workflow),
) -> List[Dict[str, Any]]:
    try:
        rows = await workflow.list_purchases(db, ctx)
    except AuthRequired as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return [
        {
            "id": purchase.id,
            "asset_id": asset.id,
            "asset_title": asset.title,
            "thumbnail_url": asset.thumbnail_url,
            "price": purchase.price,
            "created_at": purchase.created_at,
            "download_url": f"/download/{asset.id}",
            "invoice_url": f"/invoice/{purchase.id}",
        }
        for purchase, asset in rows
    ]


# Documents


@documents_router.get(
    "/download/{asset_id}",
    response_class=HTMLResponse,
    summary="Download page for a purchased asset",
)
async def download_page(
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        html = await documents.render_download(db, ctx, asset_id)
    except AuthRequired:
        return _redirect("/login")
    except NotFound:
        return _redirect("/gallery")
    except PermissionDenied:
        return _redirect(f"/gallery/{quote(asset_id, safe='')}")

    return HTMLResponse(content=html)


@documents_router.get(
    "/invoice/{purchase_id}",
    response_class=HTMLResponse,
    summary="Invoice for a purchase",
)
async def invoice_page(
    purchase_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
) -> Response:
    try:
        html = await documents.render_invoice(db, ctx, purchase_id)
    except AuthRequired:
        return _redirect("/login")
    except NotFound:
        return _redirect("/dashboard/purchases")

    return HTMLResponse(content=html)


# Uploads


@upload_router.post(
    "/signature",
    response_model=SignatureResponse,
    summary="Sign a direct upload",
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_signature(
    request: Optional[SignatureRequest] = Body(default=None),
    ctx: RequestContext = Depends(get_request_context),
    signer: UploadSigner = Depends(get_upload_signer),
) -> Any:
    if ctx.session is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"success": False, "error": "Sign in required"},
        )

    timestamp = request.timestamp if request and request.timestamp else int(time.time())

    try:
        credential = signer.sign(timestamp)
    except UploadSigningError as e:
        logger.error("api_upload_signature_error", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Failed to sign upload"},
        )

    return {
        "signature": credential.signature,
        "timestamp": credential.timestamp,
        "api_key": credential.api_key,
        "folder": credential.folder,
        "cloud_name": get_settings().cloudinary_cloud_name,
    }


# Admin


@admin_router.get(
    "/assets/pending",
    response_model=List[PendingAssetResponse],
    summary="Assets awaiting review",
)
async def pending_assets(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    approvals: ApprovalWorkflow = Depends(get_approval_workflow),
) -> Any:
    try:
        return await approvals.list_pending(db, ctx)
    except MarketplaceError as e:
        raise HTTPException(status_code=_status_for(e), detail=str(e))


async def _set_state(
    approvals: ApprovalWorkflow,
    db: AsyncSession,
    ctx: RequestContext,
    asset_id: str,
    new_state: str,
) -> Any:
    try:
        return await approvals.set_approval_state(db, ctx, asset_id, new_state)
    except MarketplaceError as e:
        logger.warning(
            "api_approval_rejected",
            asset_id=asset_id,
            state=new_state,
            error=str(e),
        )
        raise HTTPException(status_code=_status_for(e), detail=str(e))


@admin_router.post(
    "/assets/{asset_id}/approval",
    response_model=ApprovalResponse,
    summary="Set an asset's approval state",
)
async def set_approval(
    asset_id: str,
    request: ApprovalRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    approvals: ApprovalWorkflow = Depends(get_approval_workflow),
) -> Any:
    return await _set_state(approvals, db, ctx, asset_id, request.state)


@admin_router.post(
    "/assets/{asset_id}/approve",
    response_model=ApprovalResponse,
    summary="Approve an asset",
)
async def approve_asset(
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    approvals: ApprovalWorkflow = Depends(get_approval_workflow),
) -> Any:
    return await _set_state(approvals, db, ctx, asset_id, "approved")


@admin_router.post(
    "/assets/{asset_id}/reject",
    response_model=ApprovalResponse,
    summary="Reject an asset",
)
async def reject_asset(
    asset_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    approvals: ApprovalWorkflow = Depends(get_approval_workflow),
) -> Any:
    return await _set_state(approvals, db, ctx, asset_id, "rejected")


# Monitoring


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness(health_check: HealthCheck = Depends(get_health_check)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
