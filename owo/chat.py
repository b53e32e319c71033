from loguru import logger

from owo.errors import InsufficientFunds, LedgerError, NotFound
from owo.ledger.orchestrator import Ledger
from owo.models.schemas import (
    BuyAirtime,
    CheckBalance,
    Intent,
    ShowHistory,
    Transfer,
    TransactionRecord,
)

HELP_TEXT = (
    "I can check your balance, send money, buy airtime and show your history.\n"
    "Examples:\n"
    '• "What is my balance?"\n'
    '• "Send 2,000 to tunde"\n'
    '• "Buy 500 airtime"\n'
    '• "Show my transactions"'
)

HISTORY_LIMIT = 8


def format_naira(amount: int) -> str:
    return f"₦{amount:,}"


def format_record(record: TransactionRecord) -> str:
    line = f"{record.timestamp:%d %b %H:%M} — {record.kind} — {format_naira(record.amount)}"
    if record.counterparty:
        line += f" — {record.counterparty}"
    return line


def describe(intent: Intent) -> str:
    """One-line summary used when asking the user to confirm an action."""
    if isinstance(intent, Transfer):
        return f"Send {format_naira(intent.amount or 0)} to {intent.recipient}?"
    if isinstance(intent, BuyAirtime):
        return f"Buy {format_naira(intent.amount or 0)} airtime?"
    return "Continue?"


def needs_confirmation(intent: Intent) -> bool:
    return isinstance(intent, (Transfer, BuyAirtime)) and missing_detail(intent) is None


def missing_detail(intent: Intent) -> str | None:
    """Ask for whatever a money-moving intent is missing, or None if it is complete."""
    if isinstance(intent, Transfer):
        if not intent.amount:
            return "How much should I send? Try: send 2,000 to tunde"
        if not intent.recipient:
            return "Who should I send it to? Try: send 2,000 to tunde"
    if isinstance(intent, BuyAirtime) and not intent.amount:
        return "How much airtime? Try: buy 500 airtime"
    return None


def reply_to(ledger: Ledger, account_id: str, intent: Intent) -> str:
    """Carry out an intent for an account and describe the outcome."""
    question = missing_detail(intent)
    if question:
        return question

    try:
        if isinstance(intent, CheckBalance):
            return f"💰 Your balance is {format_naira(ledger.get_balance(account_id))}."

        if isinstance(intent, Transfer):
            balance = ledger.transfer(account_id, intent.recipient, intent.amount)
            return (
                f"✅ Sent {format_naira(intent.amount)} to {intent.recipient}. "
                f"New balance: {format_naira(balance)}."
            )

        if isinstance(intent, BuyAirtime):
            balance = ledger.buy_airtime(account_id, intent.amount)
            return (
                f"📱 Bought {format_naira(intent.amount)} airtime. "
                f"New balance: {format_naira(balance)}."
            )

        if isinstance(intent, ShowHistory):
            records = ledger.history(account_id, limit=HISTORY_LIMIT)
            if not records:
                return "You have no transactions yet."
            return "📜 Recent transactions:\n" + "\n".join(format_record(r) for r in records)

    except InsufficientFunds:
        return "Transaction failed: insufficient funds."
    except NotFound as e:
        return str(e)
    except LedgerError as e:
        logger.warning("Chat action for '{}' failed: {}", account_id, e)
        return f"Something went wrong: {e}"

    return "Sorry, I didn't understand that.\n\n" + HELP_TEXT
