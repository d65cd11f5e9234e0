"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Failure body returned by JSON endpoints."""

    success: bool = Field(default=False, description="Always false")
    error: str = Field(..., description="Human-readable error message")


class CategoryResponse(BaseModel):
    """Response schema for a category."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Category ID")
    name: str = Field(..., description="Category name")


class AssetSummaryResponse(BaseModel):
    """Gallery entry for an approved asset."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Asset ID")
    title: str = Field(..., description="Asset title")
    description: Optional[str] = Field(default=None, description="Asset description")
    thumbnail_url: str = Field(..., description="Preview image URL")
    category_id: int = Field(..., description="Category ID")
    category_name: Optional[str] = Field(default=None, description="Category name")
    owner_name: Optional[str] = Field(default=None, description="Uploader's display name")
    created_at: datetime = Field(..., description="Upload timestamp")


class AssetDetailResponse(AssetSummaryResponse):
    """Asset detail page data, including whether the caller owns it."""

    owner_image: Optional[str] = Field(default=None, description="Uploader's avatar URL")
    approval_state: str = Field(..., description="pending, approved or rejected")
    has_purchased: bool = Field(default=False, description="Caller has bought this asset")
    download_url: Optional[str] = Field(default=None, description="Download page, when purchased")


class UserAssetResponse(BaseModel):
    """An asset as its owner sees it on the dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Asset ID")
    title: str = Field(..., description="Asset title")
    description: Optional[str] = Field(default=None, description="Asset description")
    file_url: str = Field(..., description="Stored file URL")
    thumbnail_url: str = Field(..., description="Preview image URL")
    category_id: int = Field(..., description="Category ID")
    approval_state: str = Field(..., description="pending, approved or rejected")
    created_at: datetime = Field(..., description="Upload timestamp")


class DashboardResponse(BaseModel):
    """Response schema for the owner's asset dashboard."""

    categories: List[CategoryResponse] = Field(..., description="All categories")
    assets: List[UserAssetResponse] = Field(..., description="Caller's assets, oldest first")


class UploadAssetResponse(BaseModel):
    """Response schema for a registered upload."""

    success: bool = Field(default=True, description="Always true")
    asset_id: UUID = Field(..., description="New asset ID (state: pending)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"success": True, "asset_id": "123e4567-e89b-12d3-a456-426614174000"}
            ]
        }
    }


class PurchaseResponse(BaseModel):
    """A purchase on the buyer's dashboard."""

    id: UUID = Field(..., description="Purchase ID")
    asset_id: UUID = Field(..., description="Purchased asset ID")
    asset_title: str = Field(..., description="Purchased asset title")
    thumbnail_url: str = Field(..., description="Preview image URL")
    price: int = Field(..., description="Price paid in minor units")
    created_at: datetime = Field(..., description="Purchase timestamp")
    download_url: str = Field(..., description="Download page")
    invoice_url: str = Field(..., description="Invoice page")


class SignatureRequest(BaseModel):
    """Request schema for upload signing."""

    timestamp: Optional[int] = Field(
        default=None, gt=0, description="Unix timestamp to sign (defaults to now)"
    )


class SignatureResponse(BaseModel):
    """Signed upload parameters."""

    signature: str = Field(..., description="Upload signature")
    timestamp: int = Field(..., description="Signed timestamp")
    api_key: str = Field(..., description="Storage API key")
    folder: str = Field(..., description="Target folder")
    cloud_name: str = Field(..., description="Storage cloud name")


class ApprovalRequest(BaseModel):
    """Request schema for an approval state change."""

    state: str = Field(..., description="pending, approved or rejected")


class ApprovalResponse(BaseModel):
    """Response schema for an approval state change."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Asset ID")
    approval_state: str = Field(..., description="New approval state")


class PendingAssetResponse(BaseModel):
    """An asset awaiting review."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Asset ID")
    title: str = Field(..., description="Asset title")
    file_url: str = Field(..., description="Stored file URL")
    thumbnail_url: str = Field(..., description="Preview image URL")
    owner_name: Optional[str] = Field(default=None, description="Uploader's display name")
    created_at: datetime = Field(..., description="Upload timestamp")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
