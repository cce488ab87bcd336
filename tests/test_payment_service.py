"""Payment status policy: terminal states are sticky."""
import pytest

from conftest import sent_texts
from services.models import PaymentIntent, PaymentStatus, UserSession
from services.payment_service import PaymentNotFound, PaymentStatusConflict


@pytest.fixture
async def payment(storage):
    await storage.create_session(UserSession(external_id="111", display_handle="alice"))
    return await storage.create_payment(PaymentIntent(external_id="111", player_ref="P-1", amount=500))


async def test_pending_and_processing_may_alternate(payments, payment, bot):
    assert (await payments.change_status(payment.id, PaymentStatus.PROCESSING)).changed
    assert (await payments.change_status(payment.id, PaymentStatus.PENDING)).changed
    bot.send_message.assert_not_awaited()


@pytest.mark.parametrize("terminal", [PaymentStatus.PAID, PaymentStatus.CANCELLED])
@pytest.mark.parametrize("requested", [PaymentStatus.PENDING, PaymentStatus.PROCESSING])
async def test_terminal_status_is_sticky(payments, payment, storage, terminal, requested):
    await payments.change_status(payment.id, terminal)

    with pytest.raises(PaymentStatusConflict):
        await payments.change_status(payment.id, requested)

    assert (await storage.get_payment(payment.id)).status == terminal


async def test_paid_cannot_become_cancelled(payments, payment, storage):
    await payments.change_status(payment.id, PaymentStatus.PAID)

    with pytest.raises(PaymentStatusConflict):
        await payments.change_status(payment.id, PaymentStatus.CANCELLED)

    assert (await storage.get_payment(payment.id)).status == PaymentStatus.PAID


async def test_repeating_terminal_status_is_a_quiet_no_op(payments, payment, bot):
    await payments.change_status(payment.id, PaymentStatus.PAID)
    bot.send_message.reset_mock()

    change = await payments.change_status(payment.id, PaymentStatus.PAID)

    assert change.changed is False
    bot.send_message.assert_not_awaited()


async def test_paid_notifies_user_and_operator(payments, payment, bot, manager_chat):
    await payments.change_status(payment.id, PaymentStatus.PAID)

    user_texts = sent_texts(bot, "111")
    assert len(user_texts) == 1 and "P-1" in user_texts[0] and "500" in user_texts[0]
    operator_texts = sent_texts(bot, manager_chat)
    assert len(operator_texts) == 1 and "@alice" in operator_texts[0]


async def test_cancelled_notifies_user_only(payments, payment, bot, manager_chat):
    await payments.change_status(payment.id, PaymentStatus.CANCELLED)

    assert len(sent_texts(bot, "111")) == 1
    assert sent_texts(bot, manager_chat) == []


async def test_unknown_payment(payments):
    with pytest.raises(PaymentNotFound):
        await payments.change_status("missing", PaymentStatus.PAID)


async def test_find_by_invoice_ref(payments, storage, payment):
    payment.provider_invoice_ref = "inv-9"
    await storage.update_payment(payment)

    assert (await payments.find(invoice_ref="inv-9")).id == payment.id
    assert (await payments.find(payment_id="nope", invoice_ref="inv-9")).id == payment.id
    assert await payments.find(payment_id="nope") is None
