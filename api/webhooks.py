"""
Payment provider webhook, authenticated by the shared ``payment_secret``.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request

from api.deps import get_payments, get_resolver
from services import config_resolver as keys
from services.config_resolver import ConfigResolver
from services.payment_service import PaymentService, PaymentStatusConflict
from services.payments.webhook import extract_secret, parse_notice, secret_matches

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["payments"])


async def _read_payload(request: Request) -> Dict[str, Any]:
    data: Dict[str, Any] = dict(request.query_params)
    if request.method != "POST":
        return data

    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            body = await request.json()
            if not isinstance(body, dict):
                raise HTTPException(status_code=400, detail="JSON object expected")
            data.update(body)
        elif "form" in content_type:
            form = await request.form()
            data.update({k: v for k, v in form.items() if isinstance(v, str)})
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook body")
    return data


@router.api_route("/webhook", methods=["GET", "POST"])
async def payment_webhook(request: Request,
                          resolver: ConfigResolver = Depends(get_resolver),
                          payments: PaymentService = Depends(get_payments)):
    expected = (await resolver.get(keys.PAYMENT_SECRET)).strip()
    provided = extract_secret(request.headers, request.query_params)
    if not secret_matches(expected, provided):
        logger.warning(f"Rejected payment webhook from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    notice = parse_notice(await _read_payload(request))
    if notice.status is None:
        raise HTTPException(status_code=400, detail=f"Unknown payment status: {notice.raw_status}")
    if not notice.payment_id and not notice.invoice_ref:
        raise HTTPException(status_code=400, detail="Payment reference required")

    payment = await payments.find(payment_id=notice.payment_id, invoice_ref=notice.invoice_ref)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    try:
        change = await payments.apply_status(payment, notice.status)
    except PaymentStatusConflict as e:
        # Terminal payments stay as they are; acknowledge so the provider stops retrying
        logger.info(f"Webhook ignored: {e}")
        return {"ok": True, "changed": False, "status": payment.status.value}

    return {"ok": True, "changed": change.changed, "status": change.payment.status.value}
