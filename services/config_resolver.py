"""
Runtime configuration lookup.

Values edited from the dashboard live in the ``bot_config`` table. A lookup
resolves: stored non-empty value, then the caller's fallback, then the YAML
default, then "".
"""
import logging
from typing import List, Optional

from config.feature_config import FeatureConfig, get_feature_config
from services.funnel import parse_positive_int
from services.storage import Storage

logger = logging.getLogger(__name__)

# Runtime keys the bot reads
MANAGER_CHAT_ID = "manager_chat_id"
PAYMENT_API_URL = "payment_api_url"
PAYMENT_MERCHANT_ID = "payment_merchant_id"
PAYMENT_SECRET = "payment_secret"
PAYMENT_PROVIDER_URL = "payment_provider_url"
PAYMENT_LINK_TEMPLATE = "payment_link_template"
PAYMENT_AMOUNTS = "payment_amounts"


class ConfigResolver:
    def __init__(self, storage: Storage, defaults: FeatureConfig = None):
        self.storage = storage
        self.defaults = defaults or get_feature_config()

    async def get(self, key: str, fallback: Optional[str] = None) -> str:
        stored = await self.storage.get_config(key)
        if stored is not None and stored.strip():
            return stored
        if fallback:
            return fallback
        return self.defaults.get_default(key) or ""

    async def text(self, key: str, **fmt) -> str:
        """Resolve a text and fill ``{placeholders}``; unknown placeholders are left alone."""
        template = await self.get(key)
        if not fmt:
            return template
        try:
            return template.format(**fmt)
        except (KeyError, IndexError, ValueError):
            logger.warning(f"Could not format config text {key!r}; sending it unformatted")
            return template

    async def manager_chat_id(self) -> Optional[str]:
        value = (await self.get(MANAGER_CHAT_ID)).strip()
        return value or None

    async def payment_amounts(self) -> List[int]:
        raw = await self.get(PAYMENT_AMOUNTS)
        if raw:
            parsed = (parse_positive_int(p) for p in raw.split(","))
            amounts = [a for a in parsed if a is not None]
            if amounts:
                return amounts
        return self.defaults.get_payment_amounts()

    @property
    def currency_symbol(self) -> str:
        return self.defaults.currency_symbol
