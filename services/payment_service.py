"""
Payment intents and their status changes.

Paid and cancelled are terminal. Asking a terminal payment to move anywhere
else raises ``PaymentStatusConflict``; re-applying the current status is a
no-op. Users (and, for paid, the operator) are notified once, on the actual
change.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from services.manager_relay import ManagerRelay
from services.models import PaymentIntent, PaymentStatus, UserSession
from services.notifier import Notifier
from services.payments.adapter_base import PaymentLinkResult
from services.payments.gateway import PaymentGateway
from services.storage import Storage

logger = logging.getLogger(__name__)


class PaymentNotFound(LookupError):
    pass


class PaymentStatusConflict(ValueError):
    def __init__(self, payment: PaymentIntent, requested: PaymentStatus):
        self.payment = payment
        self.requested = requested
        super().__init__(
            f"Payment {payment.id} is {payment.status.value}; cannot change it to {requested.value}"
        )


@dataclass
class StatusChange:
    payment: PaymentIntent
    changed: bool


class PaymentService:

    def __init__(self, storage: Storage, notifier: Notifier, relay: ManagerRelay, gateway: PaymentGateway = None):
        self.storage = storage
        self.notifier = notifier
        self.relay = relay
        self.gateway = gateway

    async def start(self, session: UserSession) -> Tuple[PaymentIntent, PaymentLinkResult]:
        """Record a pending intent for the session's amount and player ref, then ask for a link."""
        payment = await self.storage.create_payment(PaymentIntent(
            external_id=session.external_id,
            player_ref=session.pending_player_ref,
            amount=session.pending_amount,
        ))
        logger.info(f"Payment {payment.id} created: {payment.amount} for player {payment.player_ref}")

        if self.gateway is None:
            return payment, PaymentLinkResult.not_configured()

        result = await self.gateway.create_link(payment.amount, payment.player_ref, payment.id)
        if result.invoice_ref:
            payment.provider_invoice_ref = result.invoice_ref
            payment = await self.storage.update_payment(payment) or payment
        return payment, result

    async def find(self, payment_id: Optional[str] = None, invoice_ref: Optional[str] = None) -> Optional[PaymentIntent]:
        payment = None
        if payment_id:
            payment = await self.storage.get_payment(payment_id)
        if payment is None and invoice_ref:
            payment = await self.storage.get_payment_by_invoice(invoice_ref)
        return payment

    async def change_status(self, payment_id: str, status: PaymentStatus) -> StatusChange:
        payment = await self.storage.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFound(payment_id)
        return await self.apply_status(payment, status)

    async def apply_status(self, payment: PaymentIntent, status: PaymentStatus) -> StatusChange:
        if payment.status == status:
            return StatusChange(payment, changed=False)
        if payment.status.is_terminal:
            raise PaymentStatusConflict(payment, status)

        previous = payment.status
        payment.status = status
        updated = await self.storage.update_payment(payment) or payment
        logger.info(f"Payment {updated.id}: {previous.value} -> {status.value}")

        await self._notify(updated)
        return StatusChange(updated, changed=True)

    async def _notify(self, payment: PaymentIntent):
        if payment.status == PaymentStatus.PAID:
            await self.notifier.notify_payment_paid(payment)
            session = await self.storage.get_session(payment.external_id)
            await self.relay.notify_payment_confirmed(payment, session.display_handle if session else None)
        elif payment.status == PaymentStatus.CANCELLED:
            await self.notifier.notify_payment_cancelled(payment)
