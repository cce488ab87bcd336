"""
Funnel controller
=================

Glue between the Telegram routers and the services. Loads (or lazily creates)
the user's session, runs the event through the state machine, persists the
result and triggers the side effects: screens, escalations, payment links.

Kept free of aiogram types so it can be driven directly from tests.
"""
import logging
from typing import Optional, Union

from services.funnel import (
    CheckPayment,
    Event,
    FunnelStateMachine,
    RequestManager,
    ShowRules,
    Start,
    Transition,
)
from services.manager_relay import REASON_MANAGER_REQUEST, ManagerRelay
from services.models import UserSession
from services.notifier import Notifier
from services.payment_service import PaymentService
from services.storage import Storage

logger = logging.getLogger(__name__)

ChatId = Union[int, str]


class FunnelController:

    def __init__(self, storage: Storage, notifier: Notifier, relay: ManagerRelay,
                 payments: PaymentService, machine: FunnelStateMachine = None):
        self.storage = storage
        self.notifier = notifier
        self.relay = relay
        self.payments = payments
        self.machine = machine or FunnelStateMachine()

    async def ensure_session(self, external_id: str, display_handle: Optional[str] = None) -> UserSession:
        """Get the user's session, creating it on first contact and refreshing the username."""
        session = await self.storage.get_session(external_id)
        if session is None:
            logger.info(f"New user {external_id}")
            return await self.storage.create_session(UserSession(external_id=external_id, display_handle=display_handle))
        if display_handle and session.display_handle != display_handle:
            session = await self.storage.save_session(session.copy(display_handle=display_handle))
        return session

    async def handle_start(self, external_id: str, display_handle: Optional[str], chat_id: ChatId) -> Optional[Transition]:
        return await self.handle_event(external_id, display_handle, chat_id, Start())

    async def handle_event(self, external_id: str, display_handle: Optional[str], chat_id: ChatId,
                           event: Event) -> Optional[Transition]:
        session = await self.ensure_session(external_id, display_handle)

        # Any other button or /start abandons a pending message to the manager
        if not isinstance(event, RequestManager):
            self.relay.clear_composing(external_id)

        if isinstance(event, ShowRules):
            await self.notifier.show_rules(chat_id)
            return None
        if isinstance(event, RequestManager):
            await self._request_manager(session, chat_id)
            return None
        if isinstance(event, CheckPayment):
            await self._check_payment(session, chat_id, event.payment_id)
            return None

        return await self._run(session, chat_id, event)

    async def handle_text(self, external_id: str, display_handle: Optional[str], chat_id: ChatId,
                          text: str) -> Optional[Transition]:
        """Free text: a message for the manager, a payment input, or unsolicited text."""
        session = await self.ensure_session(external_id, display_handle)

        if self.relay.consume_composing(external_id):
            await self.relay.escalate_message(session, text)
            await self.notifier.ack_message_forwarded(chat_id)
            return None

        event = self.machine.text_event(session, text)
        if event is not None:
            return await self._run(session, chat_id, event)

        await self.relay.escalate_message(session, text)
        await self.notifier.ack_message_forwarded(chat_id)
        return None

    async def _run(self, session: UserSession, chat_id: ChatId, event: Event) -> Transition:
        transition = self.machine.apply(session, event)
        if not transition.matched:
            logger.debug(f"Ignored {type(event).__name__} for {session.external_id} in {session.funnel_state.value}")
            return transition

        if transition.session != session:
            transition.session = await self.storage.save_session(transition.session)

        if transition.create_payment:
            await self._start_payment(transition.session, chat_id)
        elif transition.screen is not None:
            await self.notifier.show(chat_id, transition.screen, transition.session)

        if transition.escalation:
            await self.relay.escalate(transition.session, transition.escalation)

        return transition

    async def _request_manager(self, session: UserSession, chat_id: ChatId):
        await self.notifier.ack_manager_request(chat_id)
        await self.relay.escalate(session, REASON_MANAGER_REQUEST)
        self.relay.arm_composing(session.external_id)

    async def _check_payment(self, session: UserSession, chat_id: ChatId, payment_id: str):
        payment = await self.storage.get_payment(payment_id)
        if payment is not None and payment.external_id != session.external_id:
            logger.warning(f"User {session.external_id} asked for someone else's payment {payment_id}")
            payment = None
        await self.notifier.show_payment_check(chat_id, payment)

    async def _start_payment(self, session: UserSession, chat_id: ChatId):
        payment, link = await self.payments.start(session)
        if link.available:
            await self.notifier.show_pay(chat_id, payment, link.payment_url)
            return

        await self.notifier.show_payment_not_configured(chat_id)
        await self.relay.escalate(
            session,
            f"Payment link unavailable: {payment.amount} {self.notifier.resolver.currency_symbol}, "
            f"Player ID {payment.player_ref}, payment {payment.id}",
        )
