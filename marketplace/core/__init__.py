"""Marketplace workflows: purchases, approvals, catalog and buyer documents."""
from .approval import ApprovalWorkflow, PendingAsset
from .catalog import AssetCatalog, AssetUploadFields, AssetView, Dashboard
from .context import RequestContext
from .exceptions import (
    AlreadyExists,
    AuthRequired,
    MarketplaceError,
    NotFound,
    PermissionDenied,
    UpstreamFailure,
    ValidationFailure,
)
from .purchase_workflow import (
    CaptureOutcome,
    InitiateResult,
    PurchaseState,
    PurchaseWorkflow,
    RecordResult,
)

__all__ = [
    "AlreadyExists",
    "ApprovalWorkflow",
    "AssetCatalog",
    "AssetUploadFields",
    "AssetView",
    "AuthRequired",
    "CaptureOutcome",
    "Dashboard",
    "InitiateResult",
    "MarketplaceError",
    "NotFound",
    "PendingAsset",
    "PermissionDenied",
    "PurchaseState",
    "PurchaseWorkflow",
    "RecordResult",
    "RequestContext",
    "UpstreamFailure",
    "ValidationFailure",
]
