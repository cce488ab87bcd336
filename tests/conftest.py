"""Pytest configuration: path setup and shared service fixtures."""
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from fakes.memory_storage import MemoryStorage  # noqa: E402

from bot.controller import FunnelController  # noqa: E402
from config.feature_config import FeatureConfig  # noqa: E402
from services.config_resolver import ConfigResolver  # noqa: E402
from services.manager_relay import ManagerRelay  # noqa: E402
from services.notifier import Notifier  # noqa: E402
from services.payment_service import PaymentService  # noqa: E402
from services.payments.gateway import PaymentGateway  # noqa: E402

MANAGER_CHAT = "-100500"


def make_bot():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.send_photo = AsyncMock()
    bot.send_video = AsyncMock()
    return bot


def sent_texts(bot, chat_id=None):
    """Texts passed to bot.send_message, optionally for one chat."""
    texts = []
    for call in bot.send_message.await_args_list:
        if chat_id is None or str(call.kwargs["chat_id"]) == str(chat_id):
            texts.append(call.kwargs["text"])
    return texts


def sent_markups(bot, chat_id=None):
    markups = []
    for call in bot.send_message.await_args_list:
        if chat_id is None or str(call.kwargs["chat_id"]) == str(chat_id):
            markups.append(call.kwargs.get("reply_markup"))
    return markups


def callback_datas(markup):
    return [b.callback_data for row in markup.inline_keyboard for b in row if b.callback_data]


def button_urls(markup):
    return [b.url for row in markup.inline_keyboard for b in row if b.url]


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def defaults():
    return FeatureConfig(environment="test")


@pytest.fixture
def resolver(storage, defaults):
    return ConfigResolver(storage, defaults)


@pytest.fixture
def bot():
    return make_bot()


@pytest.fixture
def notifier(bot, resolver, tmp_path):
    return Notifier(bot, resolver, tmp_path)


@pytest.fixture
def relay(storage, resolver, notifier):
    return ManagerRelay(storage, resolver, notifier, broadcast_delay=0)


@pytest.fixture
def gateway(resolver):
    return PaymentGateway(resolver, timeout=1.0)


@pytest.fixture
def payments(storage, notifier, relay, gateway):
    return PaymentService(storage, notifier, relay, gateway)


@pytest.fixture
def controller(storage, notifier, relay, payments):
    return FunnelController(storage, notifier, relay, payments)


@pytest.fixture
def manager_chat(storage):
    storage.config["manager_chat_id"] = MANAGER_CHAT
    return MANAGER_CHAT
