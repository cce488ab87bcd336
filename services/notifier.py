"""
Outbound messages.

Renders every screen from config texts and sends it with its keyboard. Media
references under ``/uploads/`` are streamed from the upload directory; URLs and
Telegram file ids are passed through. Send methods never raise: they log and
return False.
"""
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Tuple, Union

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import FSInputFile, InlineKeyboardMarkup

from bot import keyboards
from services.config_resolver import ConfigResolver
from services.funnel import Screen
from services.models import PaymentIntent, PaymentStatus, UserSession

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"

ChatId = Union[int, str]
MediaInput = Union[FSInputFile, str]


def media_kind(ref: str, default: str = "photo") -> str:
    """'video' or 'photo' from the file extension; ``default`` when unknown."""
    mime, _ = mimetypes.guess_type(ref.split("?", 1)[0])
    if mime and mime.startswith("video/"):
        return "video"
    if mime and mime.startswith("image/"):
        return "photo"
    return default


def resolve_media(ref: str, upload_dir: Union[str, Path], default_kind: str = "photo") -> Optional[Tuple[str, MediaInput]]:
    """Turn a stored media reference into (kind, sendable input), or None if unusable."""
    ref = (ref or "").strip()
    if not ref:
        return None

    upload_dir = Path(upload_dir)
    local = None
    if ref.startswith(UPLOADS_PREFIX):
        local = upload_dir / Path(ref[len(UPLOADS_PREFIX):]).name
    elif not ref.startswith(("http://", "https://")) and Path(ref).parent.resolve() == upload_dir.resolve():
        local = Path(ref)

    if local is not None:
        if not local.is_file():
            logger.error(f"Media file not found: {local}")
            return None
        return media_kind(local.name, default_kind), FSInputFile(local)

    return media_kind(ref, default_kind), ref


class Notifier:

    def __init__(self, bot: Optional[Bot], resolver: ConfigResolver, upload_dir: Union[str, Path] = "uploads"):
        self.bot = bot
        self.resolver = resolver
        self.upload_dir = Path(upload_dir)

    # --- Transport ----------------------------------------------------------

    async def send_text(self, chat_id: ChatId, text: str, reply_markup: InlineKeyboardMarkup = None) -> bool:
        if self.bot is None:
            logger.warning(f"Bot is not running; message to {chat_id} dropped")
            return False
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
            return True
        except TelegramAPIError as e:
            logger.warning(f"Failed to send message to {chat_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending message to {chat_id}: {e}")
            return False

    async def send_media(self, chat_id: ChatId, media_ref: str, caption: str,
                         reply_markup: InlineKeyboardMarkup = None, default_kind: str = "photo") -> bool:
        """Send media with caption; falls back to the caption as text."""
        media = resolve_media(media_ref, self.upload_dir, default_kind)
        if media is None or self.bot is None:
            return await self.send_text(chat_id, caption, reply_markup)

        kind, payload = media
        try:
            if kind == "video":
                await self.bot.send_video(chat_id=chat_id, video=payload, caption=caption, reply_markup=reply_markup)
            else:
                await self.bot.send_photo(chat_id=chat_id, photo=payload, caption=caption, reply_markup=reply_markup)
            logger.info(f"✅ Sent {kind} to {chat_id}")
            return True
        except TelegramAPIError as e:
            logger.warning(f"Failed to send {kind} to {chat_id}, falling back to text: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending {kind} to {chat_id}, falling back to text: {e}")
        return await self.send_text(chat_id, caption, reply_markup)

    # --- Screens ------------------------------------------------------------

    async def show(self, chat_id: ChatId, screen: Screen, session: UserSession) -> bool:
        """Render a funnel screen for ``session``."""
        if screen == Screen.HOME:
            return await self.show_home(chat_id)
        if screen == Screen.STEP_1:
            return await self.show_step1(chat_id)
        if screen == Screen.STEP_2:
            return await self.show_step2(chat_id)
        if screen == Screen.STEP_3:
            return await self.show_step3(chat_id)
        if screen == Screen.AMOUNT_MENU:
            return await self.show_amount_menu(chat_id)
        if screen == Screen.CUSTOM_AMOUNT_PROMPT:
            return await self.send_text(chat_id, await self.resolver.text("custom_amount_text"))
        if screen == Screen.CUSTOM_AMOUNT_INVALID:
            return await self.send_text(chat_id, await self.resolver.text("custom_amount_invalid_text"))
        if screen == Screen.PLAYER_ID_PROMPT:
            return await self.send_text(chat_id, await self.resolver.text(
                "player_id_text", amount=session.pending_amount, currency=self.resolver.currency_symbol))
        if screen == Screen.PLAYER_ID_INVALID:
            return await self.send_text(chat_id, await self.resolver.text("player_id_invalid_text"))
        if screen == Screen.CLUB_HELP:
            return await self.send_text(chat_id, await self.resolver.text("club_help_text"))
        if screen == Screen.BONUS_ACCEPTED:
            return await self.send_text(chat_id, await self.resolver.text("bonus_accepted_text"))
        logger.debug(f"Screen {screen} has no standalone renderer")
        return False

    async def show_home(self, chat_id: ChatId) -> bool:
        return await self.send_text(chat_id, await self.resolver.text("welcome_text"), keyboards.home_kb())

    async def show_step1(self, chat_id: ChatId) -> bool:
        text = await self.resolver.text("step1_text")
        video = await self.resolver.get("step1_video")
        if video:
            await self.send_media(chat_id, video, text, default_kind="video")
        else:
            await self.send_text(chat_id, text)
        kb = keyboards.step1_kb(
            await self.resolver.get("android_link"),
            await self.resolver.get("ios_link"),
            await self.resolver.get("windows_link"),
        )
        return await self.send_text(chat_id, await self.resolver.text("step1_platform_prompt"), kb)

    async def show_step2(self, chat_id: ChatId) -> bool:
        club_id = await self.resolver.get("club_id")
        text = await self.resolver.text("step2_text", club_id=club_id)
        if "Club ID" not in text:
            text = f"{text}\n\n🆔 Club ID: {club_id}"
        video = await self.resolver.get("step2_video")
        if video:
            await self.send_media(chat_id, video, text, default_kind="video")
        else:
            await self.send_text(chat_id, text)
        return await self.send_text(chat_id, await self.resolver.text("step2_action_prompt"), keyboards.step2_kb())

    async def show_step3(self, chat_id: ChatId) -> bool:
        return await self.send_text(chat_id, await self.resolver.text("bonus_text"), keyboards.step3_kb())

    async def show_rules(self, chat_id: ChatId) -> bool:
        return await self.send_text(chat_id, await self.resolver.text("rules_text"), keyboards.rules_kb())

    async def show_amount_menu(self, chat_id: ChatId) -> bool:
        amounts = await self.resolver.payment_amounts()
        kb = keyboards.amount_menu_kb(amounts, self.resolver.currency_symbol)
        return await self.send_text(chat_id, await self.resolver.text("amount_menu_text"), kb)

    async def show_pay(self, chat_id: ChatId, payment: PaymentIntent, payment_url: str) -> bool:
        text = await self.resolver.text(
            "pay_text",
            amount=payment.amount,
            currency=self.resolver.currency_symbol,
            player_id=payment.player_ref,
        )
        return await self.send_text(chat_id, text, keyboards.pay_kb(payment_url, payment.id))

    async def show_payment_not_configured(self, chat_id: ChatId) -> bool:
        return await self.send_text(
            chat_id, await self.resolver.text("payment_not_configured_text"), keyboards.back_home_kb()
        )

    async def show_payment_check(self, chat_id: ChatId, payment: Optional[PaymentIntent]) -> bool:
        """Answer to the "Check payment" button."""
        if payment is None:
            return await self.send_text(chat_id, await self.resolver.text("payment_not_found_text"))
        if payment.status == PaymentStatus.PAID:
            return await self.send_text(chat_id, await self._paid_text(payment))
        if payment.status == PaymentStatus.CANCELLED:
            return await self.send_text(
                chat_id, await self.resolver.text("payment_check_cancelled_text"), keyboards.payment_retry_kb()
            )
        return await self.send_text(
            chat_id, await self.resolver.text("payment_processing_text"), keyboards.payment_processing_kb(payment.id)
        )

    async def notify_payment_paid(self, payment: PaymentIntent) -> bool:
        return await self.send_text(payment.external_id, await self._paid_text(payment))

    async def notify_payment_cancelled(self, payment: PaymentIntent) -> bool:
        return await self.send_text(payment.external_id, await self.resolver.text("payment_cancelled_text"))

    async def ack_manager_request(self, chat_id: ChatId) -> bool:
        return await self.send_text(chat_id, await self.resolver.text("manager_ack_text"))

    async def ack_message_forwarded(self, chat_id: ChatId) -> bool:
        return await self.send_text(chat_id, await self.resolver.text("message_forwarded_text"))

    async def _paid_text(self, payment: PaymentIntent) -> str:
        return await self.resolver.text(
            "payment_paid_text",
            amount=payment.amount,
            currency=self.resolver.currency_symbol,
            player_id=payment.player_ref,
        )
