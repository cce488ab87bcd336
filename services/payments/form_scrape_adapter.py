"""
Hosted payment form adapter.

Some providers only expose an HTML page. We GET it, copy the hidden inputs,
POST the form back with our order fields (the session keeps the page cookies)
and look for the payable link in the answer. Whatever goes wrong, the user
still gets the bare provider URL.
"""
import asyncio
import json
import logging
import re
import urllib.parse
from typing import Callable, Dict, Optional

import aiohttp

from .adapter_base import GatewayConfig, PaymentLinkAdapter, PaymentLinkRequest, PaymentLinkResult

logger = logging.getLogger(__name__)

_FORM_RE = re.compile(r"<form\b[^>]*>", re.IGNORECASE)
_INPUT_RE = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""")
_JSON_LINK_RE = re.compile(r'"(payment_url|checkout_url|paymentUrl|checkoutUrl)"\s*:\s*"([^"]+)"')
_HREF_RE = re.compile(r"""href\s*=\s*["']([^"']*(?:/pay|/checkout|/invoice)[^"']*)["']""", re.IGNORECASE)
_JS_REDIRECT_RE = re.compile(
    r"""(?:window\.location(?:\.href)?|location\.href)\s*=\s*["']([^"']+)["']""", re.IGNORECASE
)
_META_REFRESH_RE = re.compile(r"""<meta[^>]+url=([^"'>\s]+)""", re.IGNORECASE)

PAY_PATH_MARKERS = ("/pay", "/checkout", "/invoice")


def _attrs(tag: str) -> Dict[str, str]:
    attrs = {}
    for name, dq, sq, bare in _ATTR_RE.findall(tag):
        attrs[name.lower()] = dq or sq or bare
    return attrs


def parse_hidden_inputs(html: str) -> Dict[str, str]:
    """Hidden form fields (CSRF tokens, merchant keys) as name -> value."""
    fields = {}
    for tag in _INPUT_RE.findall(html):
        attrs = _attrs(tag)
        if attrs.get("type", "").lower() == "hidden" and attrs.get("name"):
            fields[attrs["name"]] = attrs.get("value", "")
    return fields


def parse_form_action(html: str, page_url: str) -> str:
    match = _FORM_RE.search(html)
    if match:
        action = _attrs(match.group(0)).get("action")
        if action:
            return urllib.parse.urljoin(page_url, action)
    return page_url


def extract_payable_link(body: str, base_url: str) -> Optional[str]:
    """Look for a payable link in a provider response body."""
    match = _JSON_LINK_RE.search(body)
    if match:
        return match.group(2).replace("\\/", "/")

    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("payment_url", "checkout_url", "url", "redirect_url"):
            if isinstance(data.get(key), str) and data[key]:
                return urllib.parse.urljoin(base_url, data[key])

    for regex in (_JS_REDIRECT_RE, _META_REFRESH_RE, _HREF_RE):
        match = regex.search(body)
        if match:
            candidate = urllib.parse.urljoin(base_url, match.group(1))
            if regex is _HREF_RE or any(m in candidate for m in PAY_PATH_MARKERS):
                return candidate
    return None


class FormScrapeAdapter(PaymentLinkAdapter):
    """Hosted form scrape; falls back to the bare provider URL on any failure."""

    def __init__(self, timeout: float = 15.0, session_factory: Callable[[], aiohttp.ClientSession] = None):
        self.timeout = timeout
        self.session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    @property
    def provider(self) -> str:
        return "form_scrape"

    def is_configured(self, config: GatewayConfig) -> bool:
        return bool(config.provider_url)

    async def create_link(self, config: GatewayConfig, request: PaymentLinkRequest) -> Optional[PaymentLinkResult]:
        try:
            link = await self._scrape(config.provider_url, request)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Payment form scrape failed for order {request.payment_id}: {e}")
            link = None
        except Exception as e:
            logger.error(f"Unexpected payment form scrape error for order {request.payment_id}: {e}")
            link = None

        if not link:
            logger.info(f"Using bare provider URL for order {request.payment_id}")
            link = config.provider_url

        return PaymentLinkResult(provider=self.provider, payment_url=link)

    async def _scrape(self, page_url: str, request: PaymentLinkRequest) -> Optional[str]:
        async with self.session_factory() as session:
            async with session.get(page_url) as response:
                response.raise_for_status()
                page = await response.text()

            form_data = parse_hidden_inputs(page)
            form_data.update({
                "order_id": request.payment_id,
                "player_id": request.player_ref,
                "amount": str(request.amount),
            })
            action = parse_form_action(page, page_url)

            async with session.post(action, data=form_data, allow_redirects=False) as response:
                location = response.headers.get("Location")
                if location and 300 <= response.status < 400:
                    return urllib.parse.urljoin(action, location)
                response.raise_for_status()
                body = await response.text()

        return extract_payable_link(body, action)
