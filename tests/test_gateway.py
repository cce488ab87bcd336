"""Payment link strategies and their fallback order."""
import json

import aiohttp
import httpx

from services.payments.adapter_base import GatewayConfig, PaymentLinkRequest
from services.payments.form_scrape_adapter import (
    FormScrapeAdapter,
    extract_payable_link,
    parse_form_action,
    parse_hidden_inputs,
)
from services.payments.gateway import PaymentGateway
from services.payments.merchant_api_adapter import MerchantApiAdapter, extract_link
from services.payments.template_adapter import TemplateAdapter

PAGE = """
<html><body>
<form method="post" action="/checkout/create">
  <input type="hidden" name="csrf_token" value="tok123">
  <input type="hidden" name="merchant" value='m-7'>
  <input type="text" name="comment" value="ignored">
</form>
</body></html>
"""


class FakeResponse:
    def __init__(self, status=200, text="", headers=None):
        self.status = status
        self._text = text
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(request_info=None, history=(), status=self.status)

    async def text(self):
        return self._text


class FakeSession:
    def __init__(self, page, post_response):
        self.page = page
        self.post_response = post_response
        self.posted = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def get(self, url):
        return FakeResponse(text=self.page)

    def post(self, url, data=None, allow_redirects=True):
        self.posted.append((url, data))
        return self.post_response


def failing_session():
    raise aiohttp.ClientConnectionError("connection refused")


def gateway_with(resolver, **adapters):
    return PaymentGateway(resolver, adapters=[
        adapters.get("api") or MerchantApiAdapter(timeout=1.0),
        adapters.get("scrape") or FormScrapeAdapter(timeout=1.0, session_factory=failing_session),
        TemplateAdapter(),
    ])


async def test_nothing_configured(resolver):
    result = await gateway_with(resolver).create_link(100, "P1", "pay-1")
    assert result.available is False
    assert result.provider == "none"


async def test_scrape_failure_returns_bare_provider_url(resolver, storage):
    storage.config["payment_provider_url"] = "https://provider.example/pay"

    result = await gateway_with(resolver).create_link(100, "P1", "pay-1")

    assert result.payment_url == "https://provider.example/pay"
    assert result.provider == "form_scrape"


async def test_scrape_follows_redirect(resolver, storage):
    storage.config["payment_provider_url"] = "https://provider.example/pay"
    session = FakeSession(PAGE, FakeResponse(status=302, headers={"Location": "/invoice/abc"}))
    scrape = FormScrapeAdapter(session_factory=lambda: session)

    result = await gateway_with(resolver, scrape=scrape).create_link(500, "P-9", "pay-2")

    assert result.payment_url == "https://provider.example/invoice/abc"
    url, data = session.posted[0]
    assert url == "https://provider.example/checkout/create"
    assert data == {
        "csrf_token": "tok123",
        "merchant": "m-7",
        "order_id": "pay-2",
        "player_id": "P-9",
        "amount": "500",
    }


async def test_scrape_reads_link_from_json_body(resolver, storage):
    storage.config["payment_provider_url"] = "https://provider.example/pay"
    body = json.dumps({"checkout_url": "https://provider.example/checkout/xyz"})
    scrape = FormScrapeAdapter(session_factory=lambda: FakeSession(PAGE, FakeResponse(text=body)))

    result = await gateway_with(resolver, scrape=scrape).create_link(500, "P-9", "pay-2")

    assert result.payment_url == "https://provider.example/checkout/xyz"


async def test_scrape_without_link_in_answer_uses_bare_url(resolver, storage):
    storage.config["payment_provider_url"] = "https://provider.example/pay"
    scrape = FormScrapeAdapter(session_factory=lambda: FakeSession(PAGE, FakeResponse(text="<p>thanks</p>")))

    result = await gateway_with(resolver, scrape=scrape).create_link(500, "P-9", "pay-2")

    assert result.payment_url == "https://provider.example/pay"


async def test_merchant_api_preferred(resolver, storage):
    storage.config.update({
        "payment_api_url": "https://api.provider.example/v1/invoices",
        "payment_merchant_id": "m-1",
        "payment_secret": "s3cret",
        "payment_provider_url": "https://provider.example/pay",
    })
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"checkoutUrl": "https://pay.example/i/1"}, "invoice_id": "inv-1"})

    api = MerchantApiAdapter(timeout=1.0, transport=httpx.MockTransport(handler))
    result = await gateway_with(resolver, api=api).create_link(200, "P-5", "pay-3")

    assert result.payment_url == "https://pay.example/i/1"
    assert result.invoice_ref == "inv-1"
    assert seen["auth"] == "Bearer s3cret"
    assert seen["body"]["merchant_id"] == "m-1"
    assert seen["body"]["order_id"] == "pay-3"
    assert seen["body"]["amount"] == 200
    assert seen["body"]["player_id"] == "P-5"


async def test_merchant_api_error_falls_through_to_template(resolver, storage):
    storage.config.update({
        "payment_api_url": "https://api.provider.example/v1/invoices",
        "payment_merchant_id": "m-1",
        "payment_secret": "s3cret",
        "payment_link_template": "https://pay.example/?a={amount}&p={player_id}&o={payment_id}",
    })
    api = MerchantApiAdapter(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")))

    result = await gateway_with(resolver, api=api).create_link(200, "P 5", "pay-3")

    assert result.provider == "template"
    assert result.payment_url == "https://pay.example/?a=200&p=P%205&o=pay-3"


async def test_merchant_api_without_link_falls_through(resolver, storage):
    storage.config.update({
        "payment_api_url": "https://api.provider.example/v1/invoices",
        "payment_merchant_id": "m-1",
        "payment_secret": "s3cret",
        "payment_link_template": "https://pay.example/{payment_id}",
    })
    api = MerchantApiAdapter(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"ok": True})))

    result = await gateway_with(resolver, api=api).create_link(200, "P5", "pay-3")

    assert result.payment_url == "https://pay.example/pay-3"


async def test_partial_api_credentials_are_not_configured():
    api = MerchantApiAdapter()
    assert api.is_configured(GatewayConfig(api_url="https://x", merchant_id="m")) is False
    assert api.is_configured(GatewayConfig(api_url="https://x", merchant_id="m", secret="s")) is True


def test_extract_link_field_order():
    assert extract_link({"url": "https://b", "payment_url": "https://a"}) == "https://a"
    assert extract_link({"data": {"redirect_url": "https://c"}}) == "https://c"
    assert extract_link({"data": "nope"}) is None
    assert extract_link(["https://a"]) is None


def test_form_parsing_helpers():
    assert parse_hidden_inputs(PAGE) == {"csrf_token": "tok123", "merchant": "m-7"}
    assert parse_form_action(PAGE, "https://provider.example/pay") == "https://provider.example/checkout/create"
    assert parse_form_action("<p>no form</p>", "https://provider.example/pay") == "https://provider.example/pay"


def test_extract_payable_link_markers():
    base = "https://provider.example/form"
    assert extract_payable_link('{"payment_url":"https:\\/\\/p.example\\/pay\\/1"}', base) == "https://p.example/pay/1"
    assert extract_payable_link('<a href="/checkout/42">Pay</a>', base) == "https://provider.example/checkout/42"
    assert extract_payable_link("<script>window.location.href='/invoice/7'</script>", base) == \
        "https://provider.example/invoice/7"
    assert extract_payable_link('<a href="/about">About</a>', base) is None


async def test_template_adapter_direct():
    result = await TemplateAdapter().create_link(
        GatewayConfig(link_template="https://t/{amount}/{player_id}"),
        PaymentLinkRequest(payment_id="x", amount=5, player_ref="abc"),
    )
    assert result.payment_url == "https://t/5/abc"
