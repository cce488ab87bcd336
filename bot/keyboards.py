from typing import List

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from bot import callbacks as cb


def _kb(rows):
    """Helper to create inline keyboards."""
    return InlineKeyboardMarkup(inline_keyboard=rows)


def _manager_row():
    return [InlineKeyboardButton(text="📞 Manager 24/7", callback_data=cb.MANAGER)]


def _home_row():
    return [InlineKeyboardButton(text="🏠 Home", callback_data=cb.GO_HOME)]


def home_kb() -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="▶️ Start", callback_data=cb.GO_STEP1)],
        [InlineKeyboardButton(text="💳 Top up", callback_data=cb.GO_PAYMENT)],
        _manager_row(),
        [InlineKeyboardButton(text="📋 Rules", callback_data=cb.RULES)],
    ])


def step1_kb(android_link: str, ios_link: str, windows_link: str) -> InlineKeyboardMarkup:
    platforms = []
    for label, link in (("🤖 Android", android_link), ("🍎 iOS", ios_link), ("🖥 Windows", windows_link)):
        if link:
            platforms.append(InlineKeyboardButton(text=label, url=link))
    rows = [platforms] if platforms else []
    rows += [
        [InlineKeyboardButton(text="✅ I installed the app", callback_data=cb.INSTALLED_APP)],
        _manager_row(),
    ]
    return _kb(rows)


def step2_kb() -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="✅ I'm in the club", callback_data=cb.JOINED_CLUB)],
        [InlineKeyboardButton(text="❌ Can't find the club", callback_data=cb.CLUB_NOT_FOUND)],
        _manager_row(),
    ])


def step3_kb() -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="🎁 Claim bonus", callback_data=cb.CLAIM_BONUS)],
        [InlineKeyboardButton(text="💳 Top up", callback_data=cb.GO_PAYMENT)],
        _manager_row(),
        [InlineKeyboardButton(text="📋 Rules", callback_data=cb.RULES), _home_row()[0]],
    ])


def rules_kb() -> InlineKeyboardMarkup:
    return _kb([_home_row()])


def amount_menu_kb(amounts: List[int], currency: str) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(text=f"{a} {currency}", callback_data=cb.amount_data(a))
        for a in amounts
    ]
    rows = [buttons[i:i + 3] for i in range(0, len(buttons), 3)]
    rows += [
        [InlineKeyboardButton(text="✏️ Enter manually", callback_data=cb.CUSTOM_AMOUNT)],
        _manager_row(),
        _home_row(),
    ]
    return _kb(rows)


def pay_kb(payment_url: str, payment_id: str) -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="💳 Pay", url=payment_url)],
        [InlineKeyboardButton(text="🔄 Check payment", callback_data=cb.check_payment_data(payment_id))],
        _manager_row(),
        _home_row(),
    ])


def payment_retry_kb() -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="💳 Top up", callback_data=cb.GO_PAYMENT)],
        _home_row(),
    ])


def payment_processing_kb(payment_id: str) -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="🔄 Check again", callback_data=cb.check_payment_data(payment_id))],
        _manager_row(),
    ])


def back_home_kb() -> InlineKeyboardMarkup:
    return _kb([_manager_row(), _home_row()])


def operator_reply_kb(ticket_id: str, external_id: str) -> InlineKeyboardMarkup:
    return _kb([
        [InlineKeyboardButton(text="↩️ Reply", callback_data=cb.reply_data(ticket_id, external_id))],
    ])
