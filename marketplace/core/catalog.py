"""
Asset catalog: category reference data, the public gallery, owner
dashboards and asset uploads.
"""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketplace.core.context import RequestContext
from marketplace.core.exceptions import NotFound, ValidationFailure
from marketplace.core.purchase_workflow import parse_uuid
from marketplace.database.models import Asset, Category, User
from marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


def _check_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an http(s) URL")
    return value


class AssetUploadFields(BaseModel):
    """Fields submitted with a new asset. The binary is already in storage."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category_id: int = Field(..., gt=0)
    file_url: str
    thumbnail_url: Optional[str] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("file_url")
    @classmethod
    def validate_file_url(cls, v: str) -> str:
        return _check_url(v)

    @field_validator("thumbnail_url")
    @classmethod
    def validate_thumbnail_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _check_url(v)

    @model_validator(mode="after")
    def default_thumbnail(self) -> "AssetUploadFields":
        if self.thumbnail_url is None:
            self.thumbnail_url = self.file_url
        return self


@dataclass(frozen=True)
class AssetView:
    """An asset joined with its category and owner."""

    id: uuid.UUID
    title: str
    description: Optional[str]
    file_url: str
    thumbnail_url: str
    category_id: int
    category_name: Optional[str]
    owner_id: str
    owner_name: Optional[str]
    owner_image: Optional[str]
    approval_state: str
    created_at: datetime


@dataclass(frozen=True)
class Dashboard:
    """Data for the owner's asset dashboard."""

    categories: List[Category]
    assets: List[Asset]


def _asset_view_query():
    return (
        select(Asset, Category.name, User.name, User.image)
        .outerjoin(Category, Asset.category_id == Category.id)
        .outerjoin(User, Asset.user_id == User.id)
    )


def _to_view(row: Any) -> AssetView:
    asset, category_name, owner_name, owner_image = row
    return AssetView(
        id=asset.id,
        title=asset.title,
        description=asset.description,
        file_url=asset.file_url,
        thumbnail_url=asset.thumbnail_url,
        category_id=asset.category_id,
        category_name=category_name,
        owner_id=asset.user_id,
        owner_name=owner_name,
        owner_image=owner_image,
        approval_state=asset.approval_state,
        created_at=asset.created_at,
    )


def _format_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "fields"
    return f"Invalid {location}: {first['msg']}"


class AssetCatalog:
    """Read side of the catalog plus asset submission."""

    async def list_categories(self, db: AsyncSession) -> List[Category]:
        result = await db.execute(select(Category).order_by(Category.id))
        return list(result.scalars().all())

    async def list_public_assets(
        self, db: AsyncSession, category_id: Optional[int] = None
    ) -> List[AssetView]:
        """
        List approved assets for the public gallery.

        Args:
            db: Database session
            category_id: Optional category filter

        Returns:
            List[AssetView]: Approved assets, in no particular order
        """
        stmt = _asset_view_query().where(Asset.approval_state == "approved")
        if category_id is not None:
            stmt = stmt.where(Asset.category_id == category_id)
        result = await db.execute(stmt)
        return [_to_view(row) for row in result.all()]

    async def list_user_assets(self, db: AsyncSession, user_id: str) -> List[Asset]:
        """List an owner's assets in every approval state, oldest first."""
        stmt = select(Asset).where(Asset.user_id == user_id).order_by(Asset.created_at)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_asset_detail(
        self, db: AsyncSession, asset_id: str | uuid.UUID
    ) -> AssetView:
        """
        Fetch one asset with its category and owner.

        Raises:
            NotFound: If the asset does not exist
        """
        asset_uuid = parse_uuid(asset_id)
        if asset_uuid is None:
            raise NotFound(f"Asset {asset_id} not found")

        result = await db.execute(_asset_view_query().where(Asset.id == asset_uuid))
        row = result.first()
        if row is None:
            raise NotFound(f"Asset {asset_id} not found")
        return _to_view(row)

    async def dashboard(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ctx: RequestContext,
    ) -> Dashboard:
        """
        Load categories and the caller's assets concurrently.

        Each query runs on its own session since an AsyncSession cannot be
        shared between concurrent tasks.
        """
        session = ctx.require_user()

        async def _categories() -> List[Category]:
            async with session_factory() as db:
                return await self.list_categories(db)

        async def _assets() -> List[Asset]:
            async with session_factory() as db:
                return await self.list_user_assets(db, session.user_id)

        categories, assets = await asyncio.gather(_categories(), _assets())
        return Dashboard(categories=categories, assets=assets)

    async def upload_asset(
        self, db: AsyncSession, ctx: RequestContext, fields: Mapping[str, Any]
    ) -> Asset:
        """
        Register an uploaded asset for review.

        Args:
            db: Database session
            ctx: Request context (must carry a session)
            fields: Submitted title, description, category_id, file_url, thumbnail_url

        Returns:
            Asset: The new asset, in the pending state

        Raises:
            AuthRequired: If there is no session
            ValidationFailure: If a field is invalid or the category is unknown
        """
        session = ctx.require_user()

        try:
            data = AssetUploadFields.model_validate(dict(fields))
        except ValidationError as e:
            metrics.record_upload("invalid")
            logger.info("asset_upload_invalid", request_id=ctx.request_id, errors=e.error_count())
            raise ValidationFailure(_format_validation_error(e)) from e

        category = await db.get(Category, data.category_id)
        if category is None:
            metrics.record_upload("invalid")
            raise ValidationFailure(f"Category {data.category_id} does not exist")

        asset = Asset(
            id=uuid.uuid4(),
            title=data.title,
            description=data.description,
            file_url=data.file_url,
            thumbnail_url=data.thumbnail_url,
            category_id=category.id,
            user_id=session.user_id,
            approval_state="pending",
            created_at=datetime.now(timezone.utc),
        )
        db.add(asset)
        await db.commit()

        logger.info(
            "asset_uploaded",
            request_id=ctx.request_id,
            asset_id=str(asset.id),
            user_id=session.user_id,
            category_id=category.id,
        )
        metrics.record_upload("created")

        return asset
