"""
Purchase workflow: checkout, capture callback and ledger recording.

Flow:
1. initiate  - check ownership, create a PayPal order, hand back the approval link
2. (payer approves on PayPal, PayPal redirects the browser to the callback)
3. capture   - validate callback parameters, capture the order
4. record    - write Payment and Purchase in one transaction

Nothing is persisted before capture, so an abandoned checkout leaves only a
remote order behind. The unique (asset_id, user_id) constraint on purchases
decides "already purchased" when two callbacks race.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple
from urllib.parse import urlencode

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import Settings, get_settings
from marketplace.core.context import RequestContext
from marketplace.core.exceptions import AlreadyExists, NotFound, UpstreamFailure
from marketplace.database.models import Asset, Payment, Purchase
from marketplace.integrations.paypal_client import PayPalClient, PayPalError
from marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

PAYMENT_PROVIDER = "paypal"

MISSING_PARAMS = "missing-params"
PAYMENT_FAILED = "payment_failed"
RECORDING_FAILED = "recording_failed"
ASSET_NOT_FOUND = "asset_not_found"


class PurchaseState(Enum):
    """Purchase workflow states."""

    NONE = "none"
    ORDER_CREATED = "order_created"
    APPROVED_BY_PAYER = "approved_by_payer"
    CAPTURED = "captured"
    RECORDED = "recorded"
    ALREADY_PURCHASED = "already_purchased"
    FAILED_CREATE = "failed_create"
    FAILED_CAPTURE = "failed_capture"
    FAILED_RECORD = "failed_record"


@dataclass(frozen=True)
class InitiateResult:
    """Result of starting a checkout."""

    state: PurchaseState
    already_purchased: bool = False
    order_id: Optional[str] = None
    approval_link: Optional[str] = None


@dataclass(frozen=True)
class RecordResult:
    """Result of writing a captured payment to the ledger."""

    success: bool
    state: PurchaseState
    purchase_id: Optional[uuid.UUID] = None
    already_exists: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of the capture callback, including where to send the browser."""

    state: PurchaseState
    asset_id: Optional[str] = None
    error: Optional[str] = None
    purchase_id: Optional[uuid.UUID] = None

    @property
    def redirect_path(self) -> str:
        if not self.asset_id:
            return f"/gallery?error={self.error or MISSING_PARAMS}"
        if self.error:
            return f"/gallery/{self.asset_id}?error={self.error}"
        return f"/gallery/{self.asset_id}?success=true"


def parse_uuid(value: str | uuid.UUID) -> Optional[uuid.UUID]:
    """Parse a UUID path or query value, returning None when it is malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def enter_state(state: PurchaseState, **fields: object) -> PurchaseState:
    """Log and count a purchase moving into ``state``."""
    logger.info("purchase_state_entered", state=state.value, **fields)
    metrics.record_purchase_state(state.value)
    return state


def invalidate_views(asset_id: uuid.UUID) -> List[str]:
    """
    Announce the pages whose content changed after a purchase.

    Pages are rendered per request, so this only emits the paths for
    whatever sits in front of the service (CDN purge, UI revalidation).
    """
    paths = [f"/gallery/{asset_id}", "/dashboard/purchases"]
    metrics.record_view_invalidation("asset_detail")
    metrics.record_view_invalidation("purchase_list")
    logger.info("views_invalidated", paths=paths)
    return paths


class PurchaseWorkflow:
    """
    Orchestrates checkout, capture and recording of asset purchases.

    The PayPal client is injected so the gateway can be stubbed in tests.
    """

    def __init__(
        self,
        paypal_client: Optional[PayPalClient] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize purchase workflow.

        Args:
            paypal_client: Optional PayPal client
            settings: Optional settings (price, currency, public URL)
        """
        self.settings = settings or get_settings()
        self.paypal_client = paypal_client or PayPalClient()

    @staticmethod
    async def get_purchase(
        db: AsyncSession, asset_id: uuid.UUID, user_id: str
    ) -> Optional[Purchase]:
        """Return the purchase for (asset_id, user_id), if any."""
        stmt = (
            select(Purchase)
            .where(Purchase.asset_id == asset_id, Purchase.user_id == user_id)
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def has_purchased(
        self, db: AsyncSession, asset_id: str | uuid.UUID, user_id: Optional[str]
    ) -> bool:
        """Check whether the user owns the asset."""
        asset_uuid = parse_uuid(asset_id)
        if user_id is None or asset_uuid is None:
            return False
        return await self.get_purchase(db, asset_uuid, user_id) is not None

    async def initiate(
        self, db: AsyncSession, ctx: RequestContext, asset_id: str | uuid.UUID
    ) -> InitiateResult:
        """
        Start a checkout for an asset.

        Args:
            db: Database session
            ctx: Request context (must carry a session)
            asset_id: Asset to buy

        Returns:
            InitiateResult: Approval link, or already_purchased=True

        Raises:
            AuthRequired: If there is no session
            NotFound: If the asset does not exist
            UpstreamFailure: If PayPal refused to create the order
        """
        session = ctx.require_user()

        asset_uuid = parse_uuid(asset_id)
        asset = await db.get(Asset, asset_uuid) if asset_uuid else None
        if asset is None:
            raise NotFound(f"Asset {asset_id} not found")

        if await self.get_purchase(db, asset.id, session.user_id) is not None:
            logger.info(
                "checkout_already_purchased",
                request_id=ctx.request_id,
                asset_id=str(asset.id),
                user_id=session.user_id,
            )
            metrics.record_checkout("already_purchased")
            state = enter_state(
                PurchaseState.ALREADY_PURCHASED, asset_id=str(asset.id), user_id=session.user_id
            )
            return InitiateResult(state=state, already_purchased=True)

        app_url = self.settings.app_url
        return_url = f"{app_url}/api/paypal/capture?{urlencode({'assetId': str(asset.id)})}"
        cancel_url = f"{app_url}/gallery/{asset.id}?cancelled=true"

        try:
            order = await self.paypal_client.create_order(
                asset_id=str(asset.id),
                description=f"Purchase of {asset.title}",
                amount_minor_units=self.settings.purchase_price_cents,
                currency=self.settings.purchase_currency,
                return_url=return_url,
                cancel_url=cancel_url,
                custom_id=f"{session.user_id}|{asset.id}",
            )
        except PayPalError as e:
            logger.error(
                "checkout_order_failed",
                request_id=ctx.request_id,
                asset_id=str(asset.id),
                status_code=e.status_code,
                error=str(e),
            )
            metrics.record_checkout("failed")
            enter_state(PurchaseState.FAILED_CREATE, asset_id=str(asset.id), user_id=session.user_id)
            raise UpstreamFailure("Failed to create PayPal order") from e

        logger.info(
            "checkout_order_created",
            request_id=ctx.request_id,
            asset_id=str(asset.id),
            order_id=order.order_id,
        )
        metrics.record_checkout("created")

        return InitiateResult(
            state=enter_state(
                PurchaseState.ORDER_CREATED, asset_id=str(asset.id), user_id=session.user_id
            ),
            order_id=order.order_id,
            approval_link=order.approval_link,
        )

    async def capture(
        self,
        db: AsyncSession,
        ctx: RequestContext,
        token: Optional[str],
        asset_id: Optional[str],
        payer_id: Optional[str],
    ) -> CaptureOutcome:
        """
        Handle the gateway's post-approval redirect.

        Args:
            db: Database session
            ctx: Request context
            token: PayPal order token
            asset_id: Asset the order was created for
            payer_id: PayPal payer ID

        Returns:
            CaptureOutcome: Final state and redirect target

        Raises:
            AuthRequired: If the parameters are valid but there is no session
        """
        asset_uuid = parse_uuid(asset_id) if asset_id else None
        if not token or not payer_id or asset_uuid is None:
            logger.warning(
                "capture_missing_params",
                request_id=ctx.request_id,
                has_token=bool(token),
                has_asset_id=bool(asset_id),
                has_payer_id=bool(payer_id),
            )
            metrics.record_capture("missing_params")
            return CaptureOutcome(state=PurchaseState.NONE, error=MISSING_PARAMS)

        session = ctx.require_user()
        asset_ref = str(asset_uuid)

        # Money must not move for an asset the ledger cannot reference
        if await db.get(Asset, asset_uuid) is None:
            logger.warning(
                "capture_unknown_asset",
                request_id=ctx.request_id,
                asset_id=asset_ref,
                order_token=token,
            )
            metrics.record_capture(ASSET_NOT_FOUND)
            return CaptureOutcome(state=PurchaseState.NONE, error=ASSET_NOT_FOUND)

        enter_state(PurchaseState.APPROVED_BY_PAYER, asset_id=asset_ref, user_id=session.user_id)

        try:
            result = await self.paypal_client.capture_order(token)
        except PayPalError as e:
            logger.error(
                "capture_failed",
                request_id=ctx.request_id,
                order_token=token,
                status_code=e.status_code,
                body=e.body,
            )
            metrics.record_capture(PAYMENT_FAILED)
            return CaptureOutcome(
                state=enter_state(PurchaseState.FAILED_CAPTURE, asset_id=asset_ref),
                asset_id=asset_ref,
                error=PAYMENT_FAILED,
            )

        if not result.completed:
            logger.warning(
                "capture_not_completed",
                request_id=ctx.request_id,
                order_token=token,
                status=result.status,
            )
            metrics.record_capture(PAYMENT_FAILED)
            return CaptureOutcome(
                state=enter_state(PurchaseState.FAILED_CAPTURE, asset_id=asset_ref),
                asset_id=asset_ref,
                error=PAYMENT_FAILED,
            )

        enter_state(PurchaseState.CAPTURED, asset_id=asset_ref, order_token=token)

        recorded = await self.record(
            db,
            asset_id=asset_uuid,
            order_token=token,
            user_id=session.user_id,
            price_cents=self.settings.purchase_price_cents,
            currency=self.settings.purchase_currency,
        )
        if not recorded.success:
            metrics.record_capture(RECORDING_FAILED)
            return CaptureOutcome(state=recorded.state, asset_id=asset_ref, error=RECORDING_FAILED)

        metrics.record_capture("recorded")
        return CaptureOutcome(
            state=recorded.state, asset_id=asset_ref, purchase_id=recorded.purchase_id
        )

    async def record(
        self,
        db: AsyncSession,
        asset_id: uuid.UUID,
        order_token: str,
        user_id: str,
        price_cents: int,
        currency: str,
    ) -> RecordResult:
        """
        Write the Payment and Purchase rows for a captured order.

        An existing purchase for the pair, whether seen up front or through
        the unique constraint, is reported as success with already_exists=True.

        Args:
            db: Database session
            asset_id: Purchased asset
            order_token: PayPal order ID, stored as the payment's provider_id
            user_id: Buyer
            price_cents: Amount in minor units
            currency: ISO currency code

        Returns:
            RecordResult: Outcome of the write
        """
        try:
            purchase, payment = await self._insert_purchase(
                db, asset_id, order_token, user_id, price_cents, currency
            )
        except AlreadyExists as e:
            logger.info(
                "purchase_already_recorded",
                asset_id=str(asset_id),
                user_id=user_id,
                purchase_id=str(e.purchase_id),
            )
            metrics.record_purchase("already_exists")
            return RecordResult(
                success=True,
                state=enter_state(PurchaseState.ALREADY_PURCHASED, asset_id=str(asset_id)),
                purchase_id=e.purchase_id,
                already_exists=True,
            )
        except SQLAlchemyError as e:
            logger.error(
                "purchase_record_failed",
                asset_id=str(asset_id),
                user_id=user_id,
                error=str(e),
            )
            metrics.record_purchase("failed")
            return RecordResult(
                success=False,
                state=enter_state(PurchaseState.FAILED_RECORD, asset_id=str(asset_id)),
                error="Failed to save purchase and payment",
            )

        logger.info(
            "purchase_recorded",
            asset_id=str(asset_id),
            user_id=user_id,
            purchase_id=str(purchase.id),
            payment_id=str(payment.id),
        )
        metrics.record_purchase("created", price_cents)
        invalidate_views(asset_id)

        return RecordResult(
            success=True,
            state=enter_state(PurchaseState.RECORDED, asset_id=str(asset_id)),
            purchase_id=purchase.id,
        )

    async def _insert_purchase(
        self,
        db: AsyncSession,
        asset_id: uuid.UUID,
        order_token: str,
        user_id: str,
        price_cents: int,
        currency: str,
    ) -> Tuple[Purchase, Payment]:
        """
        Commit Payment and Purchase together.

        Raises:
            AlreadyExists: If the buyer already owns the asset
            SQLAlchemyError: On any other write failure, after rollback
        """
        existing = await self.get_purchase(db, asset_id, user_id)
        if existing is not None:
            raise AlreadyExists(existing.id)

        now = datetime.now(timezone.utc)
        payment = Payment(
            id=uuid.uuid4(),
            amount=price_cents,
            currency=currency.upper(),
            status="completed",
            provider=PAYMENT_PROVIDER,
            provider_id=order_token,
            user_id=user_id,
            created_at=now,
        )
        purchase = Purchase(
            id=uuid.uuid4(),
            asset_id=asset_id,
            user_id=user_id,
            payment_id=payment.id,
            price=price_cents,
            created_at=now,
        )

        try:
            db.add(payment)
            db.add(purchase)
            await db.flush()
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # Another request won the unique (asset_id, user_id) race
            winner = await self.get_purchase(db, asset_id, user_id)
            if winner is None:
                raise
            raise AlreadyExists(winner.id) from None
        except SQLAlchemyError:
            await db.rollback()
            raise

        return purchase, payment

    async def list_purchases(
        self, db: AsyncSession, ctx: RequestContext
    ) -> List[Tuple[Purchase, Asset]]:
        """List the caller's purchases with their assets, oldest first."""
        session = ctx.require_user()
        stmt = (
            select(Purchase, Asset)
            .join(Asset, Purchase.asset_id == Asset.id)
            .where(Purchase.user_id == session.user_id)
            .order_by(Purchase.created_at)
        )
        result = await db.execute(stmt)
        return [(purchase, asset) for purchase, asset in result.all()]
