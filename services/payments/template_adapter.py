"""
URL template adapter: ``https://pay.example/?sum={amount}&player={player_id}&order={payment_id}``
"""
import urllib.parse
from typing import Optional

from .adapter_base import GatewayConfig, PaymentLinkAdapter, PaymentLinkRequest, PaymentLinkResult


def render_template(template: str, request: PaymentLinkRequest) -> str:
    return (
        template
        .replace("{amount}", str(request.amount))
        .replace("{player_id}", urllib.parse.quote(request.player_ref, safe=""))
        .replace("{payment_id}", request.payment_id)
    )


class TemplateAdapter(PaymentLinkAdapter):

    @property
    def provider(self) -> str:
        return "template"

    def is_configured(self, config: GatewayConfig) -> bool:
        return bool(config.link_template)

    async def create_link(self, config: GatewayConfig, request: PaymentLinkRequest) -> Optional[PaymentLinkResult]:
        return PaymentLinkResult(provider=self.provider, payment_url=render_template(config.link_template, request))
