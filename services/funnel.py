"""
Funnel state machine
====================

Owns ``funnel_state`` / ``payment_sub_state`` of a UserSession and decides
which inbound events are legal. Rules are an explicit table of
(event type, guard, effect); the first rule whose event type matches and whose
guard passes wins. Anything unmatched is a no-op.

The machine is pure: it never touches storage or Telegram. It returns a
``Transition`` describing the new session plus what the caller should do next
(which screen to show, whether to escalate, whether to create a payment).
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Type

from services.models import FunnelState, PaymentSubState, UserSession


# --- Events -----------------------------------------------------------------

class Event:
    """Base class for inbound funnel events."""


@dataclass(frozen=True)
class Start(Event):
    pass


@dataclass(frozen=True)
class BeginInstall(Event):
    pass


@dataclass(frozen=True)
class AdvanceInstall(Event):
    pass


@dataclass(frozen=True)
class AdvanceClub(Event):
    pass


@dataclass(frozen=True)
class ClubNotFound(Event):
    pass


@dataclass(frozen=True)
class ClaimBonus(Event):
    pass


@dataclass(frozen=True)
class EnterPayment(Event):
    pass


@dataclass(frozen=True)
class SelectAmount(Event):
    amount: int


@dataclass(frozen=True)
class EnterCustomAmount(Event):
    pass


@dataclass(frozen=True)
class SubmitCustomAmount(Event):
    text: str


@dataclass(frozen=True)
class SubmitPlayerRef(Event):
    text: str


@dataclass(frozen=True)
class GoHome(Event):
    pass


# Events the controller handles without a funnel transition

@dataclass(frozen=True)
class ShowRules(Event):
    pass


@dataclass(frozen=True)
class RequestManager(Event):
    pass


@dataclass(frozen=True)
class CheckPayment(Event):
    payment_id: str


# --- Outcomes ---------------------------------------------------------------

class Screen(str, Enum):
    HOME = "home"
    STEP_1 = "step_1"
    STEP_2 = "step_2"
    STEP_3 = "step_3"
    AMOUNT_MENU = "amount_menu"
    CUSTOM_AMOUNT_PROMPT = "custom_amount_prompt"
    CUSTOM_AMOUNT_INVALID = "custom_amount_invalid"
    PLAYER_ID_PROMPT = "player_id_prompt"
    PLAYER_ID_INVALID = "player_id_invalid"
    PAY = "pay"
    CLUB_HELP = "club_help"
    BONUS_ACCEPTED = "bonus_accepted"


REASON_CLUB_NOT_FOUND = "Club not found"
REASON_BONUS = "Bonus request"


@dataclass
class Transition:
    session: UserSession
    matched: bool = True
    screen: Optional[Screen] = None
    escalation: Optional[str] = None
    create_payment: bool = False


Guard = Callable[[UserSession, Event], bool]
Effect = Callable[[UserSession, Event], Transition]


@dataclass(frozen=True)
class Rule:
    event: Type[Event]
    guard: Guard
    effect: Effect
    name: str = ""


def any_state(session: UserSession, event: Event) -> bool:
    return True


def state_in(*states: FunnelState) -> Guard:
    allowed = frozenset(states)

    def guard(session: UserSession, event: Event) -> bool:
        return session.funnel_state in allowed
    return guard


def sub_state_is(sub_state: PaymentSubState) -> Guard:
    def guard(session: UserSession, event: Event) -> bool:
        return (
            session.funnel_state == FunnelState.PAYMENT
            and session.payment_sub_state == sub_state
        )
    return guard


def parse_positive_int(text: str) -> Optional[int]:
    """Parse user input as a positive whole number, or None."""
    if text is None:
        return None
    text = text.strip()
    # isdigit() also accepts "²" and "①", which int() rejects
    if not (text.isascii() and text.isdigit()):
        return None
    value = int(text)
    return value if value > 0 else None


# --- Effects ----------------------------------------------------------------

def _go_home(session: UserSession, event: Event) -> Transition:
    return Transition(session.cleared_payment(funnel_state=FunnelState.HOME), screen=Screen.HOME)


def _begin_install(session: UserSession, event: Event) -> Transition:
    return Transition(session.cleared_payment(funnel_state=FunnelState.STEP_1), screen=Screen.STEP_1)


def _advance_install(session: UserSession, event: Event) -> Transition:
    return Transition(session.copy(funnel_state=FunnelState.STEP_2), screen=Screen.STEP_2)


def _advance_club(session: UserSession, event: Event) -> Transition:
    return Transition(session.copy(funnel_state=FunnelState.STEP_3), screen=Screen.STEP_3)


def _club_not_found(session: UserSession, event: Event) -> Transition:
    return Transition(session, screen=Screen.CLUB_HELP, escalation=REASON_CLUB_NOT_FOUND)


def _claim_bonus(session: UserSession, event: Event) -> Transition:
    return Transition(
        session.copy(bonus_claimed=True),
        screen=Screen.BONUS_ACCEPTED,
        escalation=REASON_BONUS,
    )


def _enter_payment(session: UserSession, event: Event) -> Transition:
    updated = session.cleared_payment(funnel_state=FunnelState.PAYMENT)
    updated.payment_sub_state = PaymentSubState.AMOUNT
    return Transition(updated, screen=Screen.AMOUNT_MENU)


def _select_amount(session: UserSession, event: SelectAmount) -> Transition:
    return Transition(
        session.copy(payment_sub_state=PaymentSubState.PLAYER_ID, pending_amount=event.amount),
        screen=Screen.PLAYER_ID_PROMPT,
    )


def _enter_custom_amount(session: UserSession, event: Event) -> Transition:
    return Transition(
        session.copy(payment_sub_state=PaymentSubState.CUSTOM_AMOUNT),
        screen=Screen.CUSTOM_AMOUNT_PROMPT,
    )


def _submit_custom_amount(session: UserSession, event: SubmitCustomAmount) -> Transition:
    amount = parse_positive_int(event.text)
    if amount is None:
        return Transition(session, screen=Screen.CUSTOM_AMOUNT_INVALID)
    return Transition(
        session.copy(payment_sub_state=PaymentSubState.PLAYER_ID, pending_amount=amount),
        screen=Screen.PLAYER_ID_PROMPT,
    )


def _submit_player_ref(session: UserSession, event: SubmitPlayerRef) -> Transition:
    player_ref = (event.text or "").strip()
    if not player_ref:
        return Transition(session, screen=Screen.PLAYER_ID_INVALID)
    return Transition(
        session.copy(payment_sub_state=PaymentSubState.PAY, pending_player_ref=player_ref),
        screen=Screen.PAY,
        create_payment=True,
    )


DEFAULT_RULES: Tuple[Rule, ...] = (
    Rule(Start, any_state, _go_home, "start"),
    Rule(BeginInstall, any_state, _begin_install, "begin_install"),
    Rule(AdvanceInstall, state_in(FunnelState.HOME, FunnelState.STEP_1), _advance_install, "advance_install"),
    Rule(AdvanceClub, state_in(FunnelState.STEP_2), _advance_club, "advance_club"),
    Rule(ClubNotFound, any_state, _club_not_found, "club_not_found"),
    Rule(ClaimBonus, any_state, _claim_bonus, "claim_bonus"),
    Rule(EnterPayment, any_state, _enter_payment, "enter_payment"),
    Rule(
        SelectAmount,
        lambda s, e: sub_state_is(PaymentSubState.AMOUNT)(s, e) and e.amount > 0,
        _select_amount,
        "select_amount",
    ),
    Rule(EnterCustomAmount, sub_state_is(PaymentSubState.AMOUNT), _enter_custom_amount, "enter_custom_amount"),
    Rule(SubmitCustomAmount, sub_state_is(PaymentSubState.CUSTOM_AMOUNT), _submit_custom_amount, "submit_custom_amount"),
    Rule(SubmitPlayerRef, sub_state_is(PaymentSubState.PLAYER_ID), _submit_player_ref, "submit_player_ref"),
    Rule(GoHome, any_state, _go_home, "go_home"),
)


class FunnelStateMachine:
    """Applies events to sessions using an explicit rule table."""

    def __init__(self, rules: Sequence[Rule] = DEFAULT_RULES):
        self.rules: List[Rule] = list(rules)

    def find_rule(self, session: UserSession, event: Event) -> Optional[Rule]:
        for rule in self.rules:
            if isinstance(event, rule.event) and rule.guard(session, event):
                return rule
        return None

    def accepts(self, session: UserSession, event: Event) -> bool:
        return self.find_rule(session, event) is not None

    def apply(self, session: UserSession, event: Event) -> Transition:
        """Apply ``event``; unmatched events return the session untouched."""
        rule = self.find_rule(session, event)
        if rule is None:
            return Transition(session, matched=False)
        return rule.effect(session, event)

    def expects_text(self, session: UserSession) -> bool:
        """True while the payment sub-flow is waiting for typed input."""
        return session.funnel_state == FunnelState.PAYMENT and session.payment_sub_state in (
            PaymentSubState.CUSTOM_AMOUNT,
            PaymentSubState.PLAYER_ID,
        )

    def text_event(self, session: UserSession, text: str) -> Optional[Event]:
        """Map free text to the funnel event the current sub-state expects."""
        if not self.expects_text(session):
            return None
        if session.payment_sub_state == PaymentSubState.CUSTOM_AMOUNT:
            return SubmitCustomAmount(text)
        return SubmitPlayerRef(text)
