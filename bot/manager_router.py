"""
Operator chat handlers: Reply buttons, /broadcast, /cancel and the free text
that completes an armed reply or broadcast.
"""
import logging
from typing import Union

from aiogram import F, Router
from aiogram.filters import BaseFilter, Command, CommandObject
from aiogram.types import CallbackQuery, Message

from bot.callbacks import REPLY_PREFIX, decode_reply
from services.config_resolver import ConfigResolver
from services.manager_relay import BroadcastReport, ManagerRelay

logger = logging.getLogger(__name__)


class OperatorChatFilter(BaseFilter):
    """Passes only for the configured manager chat."""

    async def __call__(self, event: Union[Message, CallbackQuery], resolver: ConfigResolver) -> bool:
        manager_chat = await resolver.manager_chat_id()
        if not manager_chat:
            return False
        message = event.message if isinstance(event, CallbackQuery) else event
        if message is None:
            return False
        return str(message.chat.id) == manager_chat


router = Router(name="manager")
router.message.filter(OperatorChatFilter())
router.callback_query.filter(OperatorChatFilter())


def _report_text(report: BroadcastReport) -> str:
    return f"📣 Broadcast finished\n\n✅ Sent: {report.sent}\n❌ Failed: {report.failed}"


@router.callback_query(F.data.startswith(REPLY_PREFIX))
async def on_reply_button(cb: CallbackQuery, relay: ManagerRelay):
    target = decode_reply(cb.data)
    if target is None:
        await cb.answer("Malformed reply button", show_alert=True)
        return
    relay.begin_operator_reply(str(cb.message.chat.id), target.ticket_id, target.external_id)
    await cb.answer()
    await cb.message.answer(f"✍️ Type your reply to user {target.external_id}.\n/cancel to abort.")


@router.message(Command("broadcast"))
async def cmd_broadcast(message: Message, command: CommandObject, relay: ManagerRelay):
    if command.args:
        report = await relay.send_broadcast(command.args)
        await message.answer(_report_text(report))
        return
    relay.arm_broadcast(str(message.chat.id))
    await message.answer("📣 Send the broadcast text as your next message.\n/cancel to abort.")


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, relay: ManagerRelay):
    if relay.cancel(str(message.chat.id)):
        await message.answer("❎ Cancelled.")
    else:
        await message.answer("Nothing to cancel.")


@router.message(F.text, ~F.text.startswith("/"))
async def on_operator_text(message: Message, relay: ManagerRelay):
    operator_chat = str(message.chat.id)

    if relay.consume_broadcast(operator_chat):
        report = await relay.send_broadcast(message.text)
        await message.answer(_report_text(report))
        return

    reply = await relay.deliver_operator_reply(operator_chat, message.text)
    if reply is not None:
        await message.answer("✅ Reply sent.")
        return

    # Not mid-flow: do not route this anywhere
    await message.answer("ℹ️ Press ↩️ Reply under a user message to answer it, or use /broadcast.")
