"""
Inline button payloads.

Button presses arrive as short strings. They are decoded here, once, into the
typed funnel events the controller works with.
"""
from dataclasses import dataclass
from typing import Optional

from services.funnel import (
    AdvanceClub,
    AdvanceInstall,
    BeginInstall,
    CheckPayment,
    ClaimBonus,
    ClubNotFound,
    EnterCustomAmount,
    EnterPayment,
    Event,
    GoHome,
    RequestManager,
    SelectAmount,
    ShowRules,
    parse_positive_int,
)

GO_STEP1 = "go_step1"
GO_PAYMENT = "go_payment"
GO_HOME = "go_home"
MANAGER = "manager"
RULES = "rules"
INSTALLED_APP = "installed_app"
JOINED_CLUB = "joined_club"
CLUB_NOT_FOUND = "club_not_found"
CLAIM_BONUS = "claim_bonus"
CUSTOM_AMOUNT = "custom_amount"
AMOUNT_PREFIX = "amount_"
CHECK_PAYMENT_PREFIX = "check_payment_"
REPLY_PREFIX = "reply:"

_SIMPLE = {
    GO_STEP1: BeginInstall,
    GO_PAYMENT: EnterPayment,
    GO_HOME: GoHome,
    MANAGER: RequestManager,
    RULES: ShowRules,
    INSTALLED_APP: AdvanceInstall,
    JOINED_CLUB: AdvanceClub,
    CLUB_NOT_FOUND: ClubNotFound,
    CLAIM_BONUS: ClaimBonus,
    CUSTOM_AMOUNT: EnterCustomAmount,
}


def amount_data(amount: int) -> str:
    return f"{AMOUNT_PREFIX}{amount}"


def check_payment_data(payment_id: str) -> str:
    return f"{CHECK_PAYMENT_PREFIX}{payment_id}"


def decode(data: Optional[str]) -> Optional[Event]:
    """Turn button data into a funnel event; unknown or malformed data gives None."""
    if not data:
        return None
    event_type = _SIMPLE.get(data)
    if event_type is not None:
        return event_type()
    if data.startswith(AMOUNT_PREFIX):
        amount = parse_positive_int(data[len(AMOUNT_PREFIX):])
        return SelectAmount(amount) if amount is not None else None
    if data.startswith(CHECK_PAYMENT_PREFIX):
        payment_id = data[len(CHECK_PAYMENT_PREFIX):]
        return CheckPayment(payment_id) if payment_id else None
    return None


@dataclass(frozen=True)
class ReplyTarget:
    ticket_id: str
    external_id: str


def reply_data(ticket_id: str, external_id: str) -> str:
    return f"{REPLY_PREFIX}{ticket_id}:{external_id}"


def decode_reply(data: Optional[str]) -> Optional[ReplyTarget]:
    """Operator "Reply" button: ``reply:<ticket_id>:<external_id>``."""
    if not data or not data.startswith(REPLY_PREFIX):
        return None
    ticket_id, sep, external_id = data[len(REPLY_PREFIX):].rpartition(":")
    if not sep or not ticket_id or not external_id:
        return None
    return ReplyTarget(ticket_id=ticket_id, external_id=external_id)
