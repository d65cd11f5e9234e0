"""
PayPal Orders v2 REST client.

Implements:
- Order creation with an approval redirect link
- Order capture after payer approval
- Credential check for health probes

Every call authenticates with HTTP Basic client credentials. Calls are
not retried: a failing or slow gateway blocks the caller for the full
duration and surfaces as a PayPalError.
"""
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog

from marketplace.config import get_settings
from marketplace.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CAPTURE_COMPLETED = "COMPLETED"


class PayPalError(Exception):
    """Raised when a PayPal call fails or returns a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        """
        Initialize PayPal error.

        Args:
            message: Error message
            status_code: HTTP status returned by PayPal, if any
            body: Raw response body kept for diagnostics
        """
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class PayPalOrder:
    """A created order awaiting payer approval."""

    order_id: str
    approval_link: str


@dataclass(frozen=True)
class CaptureResult:
    """Outcome of capturing an approved order."""

    status: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == CAPTURE_COMPLETED


def format_amount(amount_minor_units: int) -> str:
    """Render minor units as the decimal string PayPal expects ("5.00")."""
    return f"{Decimal(amount_minor_units) / 100:.2f}"


class PayPalClient:
    """
    Thin wrapper over the PayPal Orders v2 API.

    A fresh httpx client is opened per call; credentials are sent with each
    request and no access token is cached.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize PayPal client.

        Args:
            api_url: PayPal API base URL (defaults to settings)
            client_id: REST client ID (defaults to settings)
            client_secret: REST client secret (defaults to settings)
            transport: Optional httpx transport, used to stub the gateway
        """
        if api_url is None or client_id is None or client_secret is None:
            settings = get_settings()
            api_url = api_url or settings.paypal_api_url
            client_id = client_id or settings.paypal_client_id
            client_secret = client_secret or settings.paypal_client_secret

        self.api_url = api_url.rstrip("/")
        self._auth = httpx.BasicAuth(client_id, client_secret)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            auth=self._auth,
            transport=self._transport,
        )

    async def _post(
        self,
        operation: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        POST to PayPal and decode the JSON body.

        Raises:
            PayPalError: On transport errors, non-2xx statuses or bad JSON
        """
        start_time = time.time()
        headers = {"Content-Type": "application/json"} if data is None else {}

        try:
            async with self._client() as client:
                response = await client.post(path, json=json, data=data, headers=headers)
        except httpx.HTTPError as e:
            metrics.record_paypal_api_call(operation, "error", time.time() - start_time)
            logger.error("paypal_request_failed", operation=operation, error=str(e))
            raise PayPalError(f"PayPal {operation} request failed: {e}") from e

        duration = time.time() - start_time

        if not response.is_success:
            metrics.record_paypal_api_call(operation, str(response.status_code), duration)
            logger.error(
                "paypal_api_error",
                operation=operation,
                status_code=response.status_code,
                body=response.text,
            )
            raise PayPalError(
                f"PayPal {operation} failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        metrics.record_paypal_api_call(operation, str(response.status_code), duration)

        try:
            return response.json()
        except ValueError as e:
            raise PayPalError(
                f"PayPal {operation} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def create_order(
        self,
        asset_id: str,
        description: str,
        amount_minor_units: int,
        currency: str,
        return_url: str,
        cancel_url: str,
        custom_id: str,
    ) -> PayPalOrder:
        """
        Create a CAPTURE-intent order with a single purchase unit.

        Args:
            asset_id: Asset being bought, sent as the unit's reference_id
            description: Line description shown to the payer
            amount_minor_units: Price in minor units
            currency: ISO currency code
            return_url: Where PayPal sends the payer after approval
            cancel_url: Where PayPal sends the payer on cancel
            custom_id: Correlation value echoed back by PayPal

        Returns:
            PayPalOrder: Order ID and payer approval link

        Raises:
            PayPalError: If the order could not be created
        """
        logger.info(
            "creating_paypal_order",
            asset_id=asset_id,
            amount_minor_units=amount_minor_units,
            currency=currency,
        )

        payload = {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "reference_id": asset_id,
                    "description": description,
                    "amount": {
                        "currency_code": currency.upper(),
                        "value": format_amount(amount_minor_units),
                    },
                    "custom_id": custom_id,
                }
            ],
            "application_context": {
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }

        data = await self._post("create_order", "/v2/checkout/orders", json=payload)

        order_id = data.get("id")
        approval_link = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not order_id or not approval_link:
            logger.error("paypal_order_malformed", body=data)
            raise PayPalError("PayPal order response has no id or approval link", body=str(data))

        logger.info("paypal_order_created", order_id=order_id, asset_id=asset_id)

        return PayPalOrder(order_id=order_id, approval_link=approval_link)

    async def capture_order(self, order_token: str) -> CaptureResult:
        """
        Capture an order the payer has approved.

        Args:
            order_token: Order ID returned to the callback as ``token``

        Returns:
            CaptureResult: Capture status and raw response body

        Raises:
            PayPalError: If the token is not a single path segment or PayPal
                answers with a non-2xx status
        """
        logger.info("capturing_paypal_order", order_token=order_token)

        segment = quote(order_token, safe="")
        if segment in ("", ".", ".."):
            logger.warning("paypal_capture_token_rejected", order_token=order_token)
            raise PayPalError(f"Invalid PayPal order token: {order_token!r}")

        data = await self._post("capture_order", f"/v2/checkout/orders/{segment}/capture")
        result = CaptureResult(status=str(data.get("status", "")), raw=data)

        logger.info(
            "paypal_order_captured",
            order_token=order_token,
            status=result.status,
        )

        return result

    async def ping(self) -> None:
        """
        Verify PayPal is reachable and the credentials are accepted.

        Raises:
            PayPalError: If the credential exchange fails
        """
        await self._post(
            "ping",
            "/v1/oauth2/token",
            data={"grant_type": "client_credentials"},
        )
