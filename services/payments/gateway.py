"""
Payment link gateway.

Tries the configured strategies in order: merchant REST API, hosted form
scrape, URL template. Each strategy is isolated; an error or an empty answer
moves on to the next one. When none is configured the result has no URL.
"""
import logging
from typing import List, Optional, Sequence

from services import config_resolver as keys
from services.config_resolver import ConfigResolver

from .adapter_base import GatewayConfig, PaymentLinkAdapter, PaymentLinkRequest, PaymentLinkResult
from .form_scrape_adapter import FormScrapeAdapter
from .merchant_api_adapter import MerchantApiAdapter
from .template_adapter import TemplateAdapter

logger = logging.getLogger(__name__)


def default_adapters(timeout: float = 15.0) -> List[PaymentLinkAdapter]:
    return [
        MerchantApiAdapter(timeout=timeout),
        FormScrapeAdapter(timeout=timeout),
        TemplateAdapter(),
    ]


class PaymentGateway:

    def __init__(self, resolver: ConfigResolver, adapters: Optional[Sequence[PaymentLinkAdapter]] = None,
                 currency: str = "UAH", timeout: float = 15.0):
        self.resolver = resolver
        self.adapters = list(adapters) if adapters is not None else default_adapters(timeout)
        self.currency = currency

    async def load_config(self) -> GatewayConfig:
        return GatewayConfig(
            api_url=(await self.resolver.get(keys.PAYMENT_API_URL)).strip(),
            merchant_id=(await self.resolver.get(keys.PAYMENT_MERCHANT_ID)).strip(),
            secret=(await self.resolver.get(keys.PAYMENT_SECRET)).strip(),
            provider_url=(await self.resolver.get(keys.PAYMENT_PROVIDER_URL)).strip(),
            link_template=(await self.resolver.get(keys.PAYMENT_LINK_TEMPLATE)).strip(),
            currency=self.currency,
        )

    async def create_link(self, amount: int, player_ref: str, payment_id: str) -> PaymentLinkResult:
        config = await self.load_config()
        request = PaymentLinkRequest(payment_id=payment_id, amount=amount, player_ref=player_ref)

        for adapter in self.adapters:
            if not adapter.is_configured(config):
                continue
            try:
                result = await adapter.create_link(config, request)
            except Exception as e:
                logger.error(f"Payment link via {adapter.provider} failed for order {payment_id}: {e}")
                continue
            if result and result.available:
                logger.info(f"Payment link for order {payment_id} created via {result.provider}")
                return result
            logger.warning(f"{adapter.provider} returned no payment link for order {payment_id}")

        logger.warning(f"No payment provider produced a link for order {payment_id}")
        return PaymentLinkResult.not_configured()
