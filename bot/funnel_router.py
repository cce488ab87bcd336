import logging

from aiogram import F, Router
from aiogram.filters import CommandStart
from aiogram.types import CallbackQuery, ErrorEvent, Message

from bot.callbacks import decode
from bot.controller import FunnelController

logger = logging.getLogger(__name__)

router = Router(name="funnel")


@router.message(CommandStart())
async def cmd_start(message: Message, controller: FunnelController):
    user = message.from_user
    await controller.handle_start(str(user.id), user.username, message.chat.id)


@router.callback_query()
async def on_button(cb: CallbackQuery, controller: FunnelController):
    """Every funnel button. Data is decoded once; unknown data is ignored."""
    await cb.answer()
    event = decode(cb.data)
    if event is None:
        logger.debug(f"Unknown callback data: {cb.data!r}")
        return
    chat_id = cb.message.chat.id if cb.message else cb.from_user.id
    await controller.handle_event(str(cb.from_user.id), cb.from_user.username, chat_id, event)


@router.message(F.chat.type == "private", F.text, ~F.text.startswith("/"))
async def on_text(message: Message, controller: FunnelController):
    user = message.from_user
    await controller.handle_text(str(user.id), user.username, message.chat.id, message.text)


@router.errors()
async def on_funnel_error(event: ErrorEvent):
    logger.exception(f"Funnel handler failed: {event.exception}", exc_info=event.exception)
    update = event.update
    message = update.message or (update.callback_query.message if update.callback_query else None)
    if message is not None:
        try:
            await message.answer("⚠️ Something went wrong. Please try again or use /start.")
        except Exception as e:
            logger.error(f"Could not report error to chat {message.chat.id}: {e}")
    return True
