"""
Provider webhook parsing: shared-secret check and status normalization.
"""
import hmac
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from services.models import PaymentStatus

PAID_STATUSES = {"success", "paid", "completed", "succeeded", "approved"}
CANCELLED_STATUSES = {"failed", "cancelled", "canceled", "rejected", "declined", "expired"}
PROCESSING_STATUSES = {"processing", "in_progress", "created", "waiting"}

SECRET_HEADERS = ("x-webhook-secret", "x-signature")
PAYMENT_ID_FIELDS = ("payment_id", "order_id", "orderId")
INVOICE_FIELDS = ("invoice_id", "invoiceId")
STATUS_FIELDS = ("status", "state", "payment_status")


def normalize_status(raw: Any) -> Optional[PaymentStatus]:
    """Map a provider status word to PaymentStatus; unknown words give None."""
    if raw is None:
        return None
    value = str(raw).strip().lower()
    if value == "pending":
        return PaymentStatus.PENDING
    if value in PAID_STATUSES:
        return PaymentStatus.PAID
    if value in CANCELLED_STATUSES:
        return PaymentStatus.CANCELLED
    if value in PROCESSING_STATUSES:
        return PaymentStatus.PROCESSING
    return None


def extract_secret(headers: Mapping[str, str], query: Mapping[str, str]) -> Optional[str]:
    for name in SECRET_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return query.get("secret") or None


def secret_matches(expected: str, provided: Optional[str]) -> bool:
    """Constant-time compare; an unconfigured secret never matches."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _first(data: Dict[str, Any], fields) -> Optional[str]:
    for name in fields:
        value = data.get(name)
        if value not in (None, ""):
            return str(value)
    return None


@dataclass
class WebhookNotice:
    payment_id: Optional[str]
    invoice_ref: Optional[str]
    raw_status: Optional[str]
    status: Optional[PaymentStatus]


def parse_notice(data: Dict[str, Any]) -> WebhookNotice:
    raw_status = _first(data, STATUS_FIELDS)
    return WebhookNotice(
        payment_id=_first(data, PAYMENT_ID_FIELDS),
        invoice_ref=_first(data, INVOICE_FIELDS),
        raw_status=raw_status,
        status=normalize_status(raw_status),
    )
