"""
Asset approval workflow.

Assets start ``pending``; an admin moves them to ``approved`` or
``rejected``. The field is overwritten in place and no history is kept, so
any transition (including reversals) is allowed.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.context import RequestContext
from marketplace.core.exceptions import NotFound, ValidationFailure
from marketplace.core.purchase_workflow import parse_uuid
from marketplace.database.models import APPROVAL_STATES, Asset, User
from marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PendingAsset:
    """Row shown on the admin review screen."""

    id: uuid.UUID
    title: str
    file_url: str
    thumbnail_url: str
    owner_name: Optional[str]
    created_at: datetime


class ApprovalWorkflow:
    """Admin-only approval state changes."""

    async def set_approval_state(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        asset_id: str | uuid.UUID,
        new_state: str,
    ) -> Asset:
        """
        Overwrite an asset's approval state.

        Args:
            db: Database session
            ctx: Request context (must be an admin session)
            asset_id: Asset to update
            new_state: One of pending, approved, rejected

        Returns:
            Asset: The updated asset

        Raises:
            AuthRequired: If there is no session
            PermissionDenied: If the caller is not an admin
            ValidationFailure: If the state is unknown
            NotFound: If the asset does not exist
        """
        session = ctx.require_admin()

        if new_state not in APPROVAL_STATES:
            raise ValidationFailure(
                f"Invalid approval state '{new_state}', expected one of {', '.join(APPROVAL_STATES)}"
            )

        asset_uuid = parse_uuid(asset_id)
        asset = await db.get(Asset, asset_uuid) if asset_uuid else None
        if asset is None:
            raise NotFound(f"Asset {asset_id} not found")

        previous_state = asset.approval_state
        asset.approval_state = new_state
        await db.commit()

        logger.info(
            "asset_approval_state_set",
            request_id=ctx.request_id,
            asset_id=str(asset.id),
            admin_id=session.user_id,
            previous_state=previous_state,
            new_state=new_state,
        )
        metrics.record_approval(new_state)

        return asset

    async def approve(
        self, db: AsyncSession, ctx: RequestContext, asset_id: str | uuid.UUID
    ) -> Asset:
        return await self.set_approval_state(db, ctx, asset_id, "approved")

    async def reject(
        self, db: AsyncSession, ctx: RequestContext, asset_id: str | uuid.UUID
    ) -> Asset:
        return await self.set_approval_state(db, ctx, asset_id, "rejected")

    async def list_pending(self, db: AsyncSession, ctx: RequestContext) -> List[PendingAsset]:
        """List assets awaiting review with their owner's name, oldest first."""
        ctx.require_admin()

        stmt = (
            select(Asset, User.name)
            .outerjoin(User, Asset.user_id == User.id)
            .where(Asset.approval_state == "pending")
            .order_by(Asset.created_at)
        )
        result = await db.execute(stmt)

        return [
            PendingAsset(
                id=asset.id,
                title=asset.title,
                file_url=asset.file_url,
                thumbnail_url=asset.thumbnail_url,
                owner_name=owner_name,
                created_at=asset.created_at,
            )
            for asset, owner_name in result.all()
        ]
