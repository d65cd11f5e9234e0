"""Buyer-facing HTML documents: the download page and per-purchase invoices."""
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import get_settings
from marketplace.core.context import RequestContext
from marketplace.core.exceptions import NotFound, PermissionDenied
from marketplace.core.purchase_workflow import PurchaseWorkflow, parse_uuid
from marketplace.database.models import Asset, Category, Payment, Purchase, User
from marketplace.integrations.paypal_client import format_amount

logger = structlog.get_logger(__name__)

templates_dir = Path(__file__).resolve().parent.parent / "templates"
templates = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class Invoice:
    """Everything printed on an invoice, taken from the stored records."""

    purchase_id: uuid.UUID
    purchased_at: datetime
    asset_title: str
    thumbnail_url: str
    category_name: Optional[str]
    buyer_id: str
    buyer_name: Optional[str]
    amount: str
    currency: str
    provider: str


async def load_invoice(
    db: AsyncSession, ctx: RequestContext, purchase_id: str | uuid.UUID
) -> Invoice:
    """
    Load the invoice for one of the caller's purchases.

    Raises:
        AuthRequired: If there is no session
        NotFound: If the purchase does not exist or belongs to someone else
    """
    session = ctx.require_user()

    purchase_uuid = parse_uuid(purchase_id)
    if purchase_uuid is None:
        raise NotFound(f"Purchase {purchase_id} not found")

    stmt = (
        select(Purchase, Asset, Category.name, User.name, Payment)
        .join(Asset, Purchase.asset_id == Asset.id)
        .join(Payment, Purchase.payment_id == Payment.id)
        .outerjoin(Category, Asset.category_id == Category.id)
        .outerjoin(User, Purchase.user_id == User.id)
        .where(Purchase.id == purchase_uuid)
    )
    row = (await db.execute(stmt)).first()

    # Someone else's purchase looks exactly like a missing one
    if row is None or row[0].user_id != session.user_id:
        raise NotFound(f"Purchase {purchase_id} not found")

    purchase, asset, category_name, buyer_name, payment = row
    return Invoice(
        purchase_id=purchase.id,
        purchased_at=purchase.created_at,
        asset_title=asset.title,
        thumbnail_url=asset.thumbnail_url,
        category_name=category_name,
        buyer_id=purchase.user_id,
        buyer_name=buyer_name,
        amount=format_amount(payment.amount),
        currency=payment.currency,
        provider=payment.provider,
    )


async def render_invoice(
    db: AsyncSession, ctx: RequestContext, purchase_id: str | uuid.UUID
) -> str:
    invoice = await load_invoice(db, ctx, purchase_id)
    logger.info("invoice_rendered", request_id=ctx.request_id, purchase_id=str(invoice.purchase_id))
    return templates.get_template("invoice.html").render(
        app_name=get_settings().app_name,
        invoice=invoice,
    )


async def render_download(
    db: AsyncSession, ctx: RequestContext, asset_id: str | uuid.UUID
) -> str:
    """
    Render the download page for a purchased asset.

    Args:
        db: Database session
        ctx: Request context (must carry a session)
        asset_id: Asset to download

    Returns:
        str: Rendered HTML

    Raises:
        AuthRequired: If there is no session
        NotFound: If the asset does not exist
        PermissionDenied: If the caller has not bought the asset
    """
    session = ctx.require_user()

    asset_uuid = parse_uuid(asset_id)
    asset = await db.get(Asset, asset_uuid) if asset_uuid else None
    if asset is None:
        raise NotFound(f"Asset {asset_id} not found")

    purchase = await PurchaseWorkflow.get_purchase(db, asset.id, session.user_id)
    if purchase is None:
        logger.info(
            "download_denied",
            request_id=ctx.request_id,
            asset_id=str(asset.id),
            user_id=session.user_id,
        )
        raise PermissionDenied("Asset has not been purchased")

    return templates.get_template("download.html").render(
        app_name=get_settings().app_name,
        asset=asset,
        purchase=purchase,
    )
