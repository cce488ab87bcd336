"""
Manager relay
=============

Bridges end users and the operator chat:

* escalations become tickets and are pushed to the operator with a Reply button;
* an operator reply is armed by the button and consumed by the operator's
  next free-text message;
* dashboard replies go straight to the user;
* broadcast is armed by a command and consumed by the next free-text message.

Transient modes live in ``RoutingStateStore``, keyed by operator chat or user.
They are in memory only and reset on restart.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Set

from bot import keyboards
from services.config_resolver import ConfigResolver
from services.models import EscalationTicket, PaymentIntent, Reply, ReplySource, UserSession
from services.notifier import Notifier
from services.storage import Storage

logger = logging.getLogger(__name__)

REASON_MANAGER_REQUEST = "Manager 24/7 request"
INCOMING_MESSAGE_PREFIX = "Incoming message: "


@dataclass(frozen=True)
class PendingReply:
    ticket_id: str
    external_id: str


@dataclass
class BroadcastReport:
    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


class RoutingStateStore:
    """Arm / consume / clear for the relay's transient modes."""

    def __init__(self):
        self._replies: Dict[str, PendingReply] = {}
        self._broadcast: Set[str] = set()
        self._composing: Set[str] = set()

    # Operator reply
    def arm_reply(self, operator_chat: str, pending: PendingReply):
        self._broadcast.discard(operator_chat)
        self._replies[operator_chat] = pending

    def pending_reply(self, operator_chat: str) -> Optional[PendingReply]:
        return self._replies.get(operator_chat)

    def consume_reply(self, operator_chat: str) -> Optional[PendingReply]:
        return self._replies.pop(operator_chat, None)

    # Broadcast
    def arm_broadcast(self, operator_chat: str):
        self._replies.pop(operator_chat, None)
        self._broadcast.add(operator_chat)

    def broadcast_armed(self, operator_chat: str) -> bool:
        return operator_chat in self._broadcast

    def consume_broadcast(self, operator_chat: str) -> bool:
        if operator_chat in self._broadcast:
            self._broadcast.discard(operator_chat)
            return True
        return False

    # User composing a message to the manager
    def arm_composing(self, external_id: str):
        self._composing.add(external_id)

    def consume_composing(self, external_id: str) -> bool:
        if external_id in self._composing:
            self._composing.discard(external_id)
            return True
        return False

    def clear_composing(self, external_id: str):
        self._composing.discard(external_id)

    def clear_operator(self, operator_chat: str) -> bool:
        """Drop every armed mode for an operator chat; True if anything was armed."""
        had_reply = self._replies.pop(operator_chat, None) is not None
        had_broadcast = operator_chat in self._broadcast
        self._broadcast.discard(operator_chat)
        return had_reply or had_broadcast


def _format_ticket(ticket: EscalationTicket) -> str:
    step = ticket.funnel_state_at_creation.value if ticket.funnel_state_at_creation else "unknown"
    return (
        "📩 Message from user\n\n"
        f"👤 ID: {ticket.external_id}\n"
        f"📝 Username: @{ticket.display_handle or 'unknown'}\n"
        f"📍 Step: {step}\n"
        f"💬 Reason: {ticket.reason_text}"
    )


class ManagerRelay:

    def __init__(self, storage: Storage, resolver: ConfigResolver, notifier: Notifier,
                 routes: RoutingStateStore = None, broadcast_delay: float = 0.05):
        self.storage = storage
        self.resolver = resolver
        self.notifier = notifier
        self.routes = routes or RoutingStateStore()
        self.broadcast_delay = broadcast_delay

    async def escalate(self, session: UserSession, reason: str) -> EscalationTicket:
        """Persist a ticket and notify the operator chat when one is configured."""
        ticket = await self.storage.create_ticket(EscalationTicket(
            external_id=session.external_id,
            display_handle=session.display_handle,
            funnel_state_at_creation=session.funnel_state,
            reason_text=reason,
        ))
        logger.info(f"Escalation {ticket.id} from {session.external_id}: {reason[:80]}")

        manager_chat = await self.resolver.manager_chat_id()
        if not manager_chat:
            logger.warning("Manager chat ID not configured; ticket kept for the dashboard only")
            return ticket

        await self.notifier.send_text(
            manager_chat,
            _format_ticket(ticket),
            keyboards.operator_reply_kb(ticket.id, ticket.external_id),
        )
        return ticket

    async def escalate_message(self, session: UserSession, text: str) -> EscalationTicket:
        return await self.escalate(session, f"{INCOMING_MESSAGE_PREFIX}{text}")

    def begin_operator_reply(self, operator_chat: str, ticket_id: str, external_id: str):
        self.routes.arm_reply(str(operator_chat), PendingReply(ticket_id=ticket_id, external_id=external_id))

    def is_replying(self, operator_chat: str) -> bool:
        return self.routes.pending_reply(str(operator_chat)) is not None

    async def deliver_operator_reply(self, operator_chat: str, text: str) -> Optional[Reply]:
        """Send the operator's text to the armed target; None when no reply is armed."""
        pending = self.routes.consume_reply(str(operator_chat))
        if pending is None:
            return None

        delivered = await self.notifier.send_text(pending.external_id, text)
        if not delivered:
            logger.warning(f"Operator reply for ticket {pending.ticket_id} was not delivered")

        return await self.storage.add_reply(Reply(
            ticket_id=pending.ticket_id,
            text=text,
            source=ReplySource.OPERATOR_TELEGRAM,
        ))

    async def dashboard_reply(self, ticket_id: str, text: str) -> Optional[Reply]:
        ticket = await self.storage.get_ticket(ticket_id)
        if ticket is None:
            return None

        reply = await self.storage.add_reply(Reply(
            ticket_id=ticket.id,
            text=text,
            source=ReplySource.OPERATOR_DASHBOARD,
        ))
        await self.notifier.send_text(ticket.external_id, text)
        return reply

    def arm_broadcast(self, operator_chat: str):
        self.routes.arm_broadcast(str(operator_chat))

    def is_broadcast_armed(self, operator_chat: str) -> bool:
        return self.routes.broadcast_armed(str(operator_chat))

    def consume_broadcast(self, operator_chat: str) -> bool:
        return self.routes.consume_broadcast(str(operator_chat))

    async def send_broadcast(self, text: str) -> BroadcastReport:
        """Send ``text`` to every known user, one after another."""
        report = BroadcastReport()
        sessions = await self.storage.list_sessions()

        for session in sessions:
            try:
                ok = await self.notifier.send_text(session.external_id, text)
            except Exception as e:
                logger.error(f"Broadcast to {session.external_id} failed: {e}")
                ok = False
            if ok:
                report.sent += 1
            else:
                report.failed += 1
            if self.broadcast_delay:
                await asyncio.sleep(self.broadcast_delay)

        logger.info(f"Broadcast finished: sent={report.sent}, failed={report.failed}")
        return report

    async def resolve(self, ticket_id: str) -> Optional[EscalationTicket]:
        return await self.storage.resolve_ticket(ticket_id)

    def cancel(self, operator_chat: str) -> bool:
        return self.routes.clear_operator(str(operator_chat))

    def arm_composing(self, external_id: str):
        self.routes.arm_composing(str(external_id))

    def consume_composing(self, external_id: str) -> bool:
        return self.routes.consume_composing(str(external_id))

    def clear_composing(self, external_id: str):
        self.routes.clear_composing(str(external_id))

    async def notify_payment_confirmed(self, payment: PaymentIntent, display_handle: Optional[str] = None) -> bool:
        manager_chat = await self.resolver.manager_chat_id()
        if not manager_chat:
            return False
        text = (
            "✅ Payment confirmed!\n\n"
            f"👤 ID: {payment.external_id}\n"
            f"📝 Username: @{display_handle or 'unknown'}\n"
            f"💰 Amount: {payment.amount} {self.resolver.currency_symbol}\n"
            f"🎮 Player ID: {payment.player_ref}"
        )
        return await self.notifier.send_text(manager_chat, text)
