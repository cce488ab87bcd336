"""
Domain records for the onboarding funnel bot.
Sessions, payment intents, escalation tickets and their replies.
"""
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class FunnelState(str, Enum):
    HOME = "HOME"
    STEP_1 = "STEP_1"
    STEP_2 = "STEP_2"
    STEP_3 = "STEP_3"
    PAYMENT = "PAYMENT"


class PaymentSubState(str, Enum):
    AMOUNT = "amount"
    CUSTOM_AMOUNT = "custom_amount"
    PLAYER_ID = "player_id"
    PAY = "pay"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.PAID, PaymentStatus.CANCELLED)


class ReplySource(str, Enum):
    OPERATOR_TELEGRAM = "operator_telegram"
    OPERATOR_DASHBOARD = "operator_dashboard"


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.utcnow()


@dataclass
class UserSession:
    """Per-user funnel position. Keyed by the Telegram user id."""
    external_id: str
    display_handle: Optional[str] = None
    funnel_state: FunnelState = FunnelState.HOME
    bonus_claimed: bool = False
    payment_sub_state: Optional[PaymentSubState] = None
    pending_amount: Optional[int] = None
    pending_player_ref: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def copy(self, **changes) -> "UserSession":
        return replace(self, **changes)

    def cleared_payment(self, **changes) -> "UserSession":
        """Copy with the payment sub-flow reset."""
        return replace(
            self,
            payment_sub_state=None,
            pending_amount=None,
            pending_player_ref=None,
            **changes
        )

    def to_dict(self) -> dict:
        return {
            "externalId": self.external_id,
            "displayHandle": self.display_handle,
            "funnelState": self.funnel_state.value,
            "bonusClaimed": self.bonus_claimed,
            "paymentSubState": self.payment_sub_state.value if self.payment_sub_state else None,
            "pendingAmount": self.pending_amount,
            "pendingPlayerRef": self.pending_player_ref,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class PaymentIntent:
    external_id: str
    player_ref: str
    amount: int
    status: PaymentStatus = PaymentStatus.PENDING
    provider_invoice_ref: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "externalId": self.external_id,
            "playerRef": self.player_ref,
            "amount": self.amount,
            "status": self.status.value,
            "providerInvoiceRef": self.provider_invoice_ref,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class Reply:
    ticket_id: str
    text: str
    source: ReplySource
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticketId": self.ticket_id,
            "text": self.text,
            "source": self.source.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class EscalationTicket:
    """A request for human attention, raised by the user or by the funnel."""
    external_id: str
    reason_text: str
    display_handle: Optional[str] = None
    funnel_state_at_creation: Optional[FunnelState] = None
    resolved: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "externalId": self.external_id,
            "displayHandle": self.display_handle,
            "funnelStateAtCreation": (
                self.funnel_state_at_creation.value if self.funnel_state_at_creation else None
            ),
            "reasonText": self.reason_text,
            "resolved": self.resolved,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
