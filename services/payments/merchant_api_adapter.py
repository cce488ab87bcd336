"""
Merchant REST API adapter.
POSTs an order as JSON with a bearer secret and reads the checkout link back.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .adapter_base import GatewayConfig, PaymentLinkAdapter, PaymentLinkRequest, PaymentLinkResult

logger = logging.getLogger(__name__)

LINK_FIELDS = ("payment_url", "paymentUrl", "checkout_url", "checkoutUrl", "url", "link", "redirect_url")
INVOICE_FIELDS = ("invoice_id", "invoiceId", "id")


def _first_str(data: Dict[str, Any], fields) -> Optional[str]:
    for name in fields:
        value = data.get(name)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


def extract_link(body: Any) -> Optional[str]:
    """Find the payable link at the top level or under ``data``."""
    if not isinstance(body, dict):
        return None
    link = _first_str(body, LINK_FIELDS)
    if link:
        return link
    nested = body.get("data")
    if isinstance(nested, dict):
        return _first_str(nested, LINK_FIELDS)
    return None


def extract_invoice_ref(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    ref = _first_str(body, INVOICE_FIELDS)
    if ref:
        return ref
    nested = body.get("data")
    if isinstance(nested, dict):
        return _first_str(nested, INVOICE_FIELDS)
    return None


class MerchantApiAdapter(PaymentLinkAdapter):
    """Merchant REST API with merchant id + bearer secret."""

    def __init__(self, timeout: float = 15.0, transport: httpx.AsyncBaseTransport = None):
        self.timeout = timeout
        self.transport = transport

    @property
    def provider(self) -> str:
        return "merchant_api"

    def is_configured(self, config: GatewayConfig) -> bool:
        return bool(config.api_url and config.merchant_id and config.secret)

    async def _post_api(self, url: str, payload: Dict[str, Any], secret: str) -> Any:
        """Make API request and return the decoded JSON body."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {secret}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            return response.json()

    async def create_link(self, config: GatewayConfig, request: PaymentLinkRequest) -> Optional[PaymentLinkResult]:
        payload = {
            "merchant_id": config.merchant_id,
            "amount": request.amount,
            "currency": config.currency,
            "order_id": request.payment_id,
            "player_id": request.player_ref,
            "description": f"Top-up {request.amount} {config.currency} for player {request.player_ref}",
        }

        body = await self._post_api(config.api_url, payload, config.secret)

        link = extract_link(body)
        if not link:
            logger.warning(f"Merchant API response for order {request.payment_id} has no payment link")
            return None

        return PaymentLinkResult(
            provider=self.provider,
            payment_url=link,
            invoice_ref=extract_invoice_ref(body),
        )
