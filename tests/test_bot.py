"""Telegram handler tests with mocked updates."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from owo.bot import handler


@pytest.fixture(autouse=True)
def use_test_ledger(ledger, monkeypatch):
    monkeypatch.setattr(handler, "get_ledger", lambda: ledger)


def make_update(text: str = ""):
    message = MagicMock()
    message.text = text
    message.reply_text = AsyncMock()
    return SimpleNamespace(message=message, callback_query=None)


def make_context(args=None, user_data=None):
    return SimpleNamespace(args=args or [], user_data=user_data if user_data is not None else {})


def last_reply(update) -> str:
    return update.message.reply_text.call_args.args[0]


class TestLogin:
    def test_opens_account_on_first_login(self, ledger):
        update, context = make_update(), make_context(args=["Ada"])
        asyncio.run(handler.login_command(update, context))
        assert context.user_data["account_id"] == "ada"
        assert ledger.get_balance("ada") == 10000
        assert last_reply(update).startswith("Account created for ada.")

    def test_existing_account_welcomed_back(self, ledger):
        ledger.open_account("ada", 500)
        update, context = make_update(), make_context(args=["ada"])
        asyncio.run(handler.login_command(update, context))
        assert "Welcome back" in last_reply(update)
        assert "₦500" in last_reply(update)

    def test_requires_login_before_messages(self):
        update, context = make_update("what is my balance"), make_context()
        asyncio.run(handler.handle_message(update, context))
        assert last_reply(update).startswith("Please log in first")


class TestMessages:
    def test_balance_replies_directly(self, ledger):
        ledger.open_account("ada")
        update = make_update("what is my balance")
        context = make_context(user_data={"account_id": "ada"})
        asyncio.run(handler.handle_message(update, context))
        assert last_reply(update) == "💰 Your balance is ₦10,000."

    def test_transfer_waits_for_confirmation(self, ledger):
        ledger.open_account("ada")
        ledger.open_account("bola")
        update = make_update("send 1,000 to bola")
        context = make_context(user_data={"account_id": "ada"})
        asyncio.run(handler.handle_message(update, context))

        assert last_reply(update) == "Send ₦1,000 to bola?"
        assert context.user_data["pending_intent"]["intent"] == "transfer"
        assert ledger.get_balance("ada") == 10000

        query = MagicMock()
        query.data = "confirm_yes"
        query.answer = AsyncMock()
        query.edit_message_text = AsyncMock()
        asyncio.run(handler.handle_confirmation(SimpleNamespace(callback_query=query), context))

        assert ledger.get_balance("ada") == 9000
        assert ledger.get_balance("bola") == 11000
        assert "pending_intent" not in context.user_data

    def test_declined_transfer_moves_nothing(self, ledger):
        ledger.open_account("ada")
        ledger.open_account("bola")
        context = make_context(user_data={"account_id": "ada"})
        asyncio.run(handler.handle_message(make_update("send 1000 to bola"), context))

        query = MagicMock()
        query.data = "confirm_no"
        query.message.text = "Send ₦1,000 to bola?"
        query.answer = AsyncMock()
        query.edit_message_text = AsyncMock()
        asyncio.run(handler.handle_confirmation(SimpleNamespace(callback_query=query), context))

        assert ledger.get_balance("ada") == 10000
        assert query.edit_message_text.call_args.args[0].endswith("Cancelled.")


class TestStatusCommand:
    def test_shows_pending_members(self, ledger, full_trio):
        ledger.contribute(full_trio.id, "bob", 1)
        update = make_update()
        asyncio.run(handler.status_command(update, make_context(args=[str(full_trio.id)])))
        reply = last_reply(update)
        assert "Paid: bob" in reply
        assert "Pending: alice, carol" in reply
        assert "Next to collect: alice" in reply

    def test_usage_on_bad_args(self):
        update = make_update()
        asyncio.run(handler.status_command(update, make_context(args=["abc"])))
        assert last_reply(update).startswith("Usage")
