"""Operator chat handlers driven with mocked aiogram messages."""
from unittest.mock import AsyncMock, MagicMock

from aiogram.filters import CommandObject
from aiogram.types import CallbackQuery

from bot import callbacks
from bot.manager_router import (
    OperatorChatFilter,
    cmd_broadcast,
    cmd_cancel,
    on_operator_text,
    on_reply_button,
)
from conftest import sent_texts
from services.models import ReplySource, UserSession


def make_message(chat_id, text=None):
    message = MagicMock()
    message.chat.id = chat_id
    message.text = text
    message.answer = AsyncMock()
    return message


def make_callback(chat_id, data):
    cb = MagicMock(spec=CallbackQuery)
    cb.data = data
    cb.message = make_message(chat_id)
    cb.answer = AsyncMock()
    return cb


def answered(message):
    return [call.args[0] for call in message.answer.await_args_list]


def broadcast_command(args=None):
    return CommandObject(prefix="/", command="broadcast", args=args)


async def test_filter_passes_only_manager_chat(resolver, manager_chat):
    chat_filter = OperatorChatFilter()

    assert await chat_filter(make_message(int(manager_chat)), resolver=resolver) is True
    assert await chat_filter(make_message(111), resolver=resolver) is False
    assert await chat_filter(make_callback(int(manager_chat), "reply:t:1"), resolver=resolver) is True


async def test_filter_rejects_everything_without_manager_chat(resolver):
    assert await OperatorChatFilter()(make_message(-100500), resolver=resolver) is False


async def test_bare_broadcast_then_text(relay, storage, bot, manager_chat):
    for i in range(3):
        await storage.create_session(UserSession(external_id=str(i)))

    await cmd_broadcast(make_message(manager_chat, "/broadcast"), broadcast_command(), relay)
    bot.send_message.assert_not_awaited()

    text = make_message(manager_chat, "Big news")
    await on_operator_text(text, relay)

    assert sent_texts(bot) == ["Big news"] * 3
    assert "Sent: 3" in answered(text)[0]
    assert not relay.is_broadcast_armed(manager_chat)


async def test_broadcast_with_inline_text(relay, storage, bot, manager_chat):
    await storage.create_session(UserSession(external_id="1"))

    message = make_message(manager_chat, "/broadcast hello all")
    await cmd_broadcast(message, broadcast_command("hello all"), relay)

    assert sent_texts(bot, "1") == ["hello all"]
    assert "Sent: 1" in answered(message)[0]


async def test_reply_button_then_text(relay, storage, bot, manager_chat):
    ticket = await relay.escalate(UserSession(external_id="111", display_handle="alice"), "x")
    bot.send_message.reset_mock()

    cb = make_callback(manager_chat, callbacks.reply_data(ticket.id, "111"))
    await on_reply_button(cb, relay)
    cb.answer.assert_awaited()

    text = make_message(manager_chat, "we are on it")
    await on_operator_text(text, relay)

    assert sent_texts(bot, "111") == ["we are on it"]
    replies = await storage.list_replies(ticket.id)
    assert [r.source for r in replies] == [ReplySource.OPERATOR_TELEGRAM]
    assert answered(text) == ["✅ Reply sent."]


async def test_malformed_reply_button(relay, manager_chat):
    cb = make_callback(manager_chat, "reply:broken")

    await on_reply_button(cb, relay)

    assert cb.answer.await_args.kwargs["show_alert"] is True
    assert not relay.is_replying(manager_chat)


async def test_operator_text_with_nothing_armed_gets_hint(relay, storage, bot, manager_chat):
    await storage.create_session(UserSession(external_id="111"))
    message = make_message(manager_chat, "random chatter")

    await on_operator_text(message, relay)

    bot.send_message.assert_not_awaited()
    assert storage.replies == []
    assert answered(message)[0].startswith("ℹ️")


async def test_cancel_command(relay, manager_chat):
    await cmd_broadcast(make_message(manager_chat, "/broadcast"), broadcast_command(), relay)

    first = make_message(manager_chat, "/cancel")
    await cmd_cancel(first, relay)
    second = make_message(manager_chat, "/cancel")
    await cmd_cancel(second, relay)

    assert answered(first) == ["❎ Cancelled."]
    assert answered(second) == ["Nothing to cancel."]
