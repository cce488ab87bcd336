"""
Payment Adapter Base Classes
"""
from dataclasses import dataclass
from typing import Optional
from abc import ABC, abstractmethod


@dataclass
class GatewayConfig:
    """Provider settings resolved from runtime config for one link request."""
    api_url: str = ""
    merchant_id: str = ""
    secret: str = ""
    provider_url: str = ""
    link_template: str = ""
    currency: str = "UAH"


@dataclass
class PaymentLinkRequest:
    payment_id: str
    amount: int
    player_ref: str


@dataclass
class PaymentLinkResult:
    """Result from asking a provider for a payable link."""
    provider: str
    payment_url: Optional[str] = None
    invoice_ref: Optional[str] = None

    @property
    def available(self) -> bool:
        return bool(self.payment_url)

    @classmethod
    def not_configured(cls) -> "PaymentLinkResult":
        return cls(provider="none")


class PaymentLinkAdapter(ABC):
    """Base payment link strategy interface."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider name."""
        pass

    @abstractmethod
    def is_configured(self, config: GatewayConfig) -> bool:
        """True when the settings this strategy needs are present."""
        pass

    @abstractmethod
    async def create_link(self, config: GatewayConfig, request: PaymentLinkRequest) -> Optional[PaymentLinkResult]:
        """Create a payable link, or None when the provider gave nothing usable."""
        pass
