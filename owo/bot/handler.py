from loguru import logger
from pydantic import TypeAdapter
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from owo.chat import (
    HELP_TEXT,
    describe,
    format_naira,
    format_record,
    missing_detail,
    needs_confirmation,
    reply_to,
)
from owo.deps import get_ledger
from owo.errors import AccountExists, LedgerError
from owo.intent.parser import parse_intent
from owo.models.schemas import Intent, Unknown

_intent_adapter = TypeAdapter(Intent)


def _account_id(context: ContextTypes.DEFAULT_TYPE) -> str | None:
    return context.user_data.get("account_id")


async def _require_login(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str | None:
    account_id = _account_id(context)
    if account_id is None:
        await update.message.reply_text("Please log in first: /login <your name>")
    return account_id


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    await update.message.reply_text(
        "👋 Welcome to Owo, your money assistant.\n\n"
        + HELP_TEXT
        + "\n\nCommands:\n"
        "/login <name> — Log in, opening an account on first use\n"
        "/balance — Show your balance\n"
        "/history — Show recent transactions\n"
        "/groups — Show your esusu groups\n"
        "/status <group id> [cycle] — Show who has paid in a group\n"
        "/help — Show this message"
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command."""
    await start_command(update, context)


async def login_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /login <name>, opening the account on first use."""
    if not context.args:
        await update.message.reply_text("Usage: /login <your name>")
        return

    account_id = context.args[0].strip().lower()
    ledger = get_ledger()
    try:
        ledger.open_account(account_id)
        greeting = f"Account created for {account_id}."
    except AccountExists:
        greeting = f"Welcome back, {account_id}."
    except LedgerError as e:
        await update.message.reply_text(f"Could not log in: {e}")
        return

    context.user_data["account_id"] = account_id
    balance = ledger.get_balance(account_id)
    await update.message.reply_text(f"{greeting} Your balance is {format_naira(balance)}.")


async def balance_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /balance command."""
    account_id = await _require_login(update, context)
    if account_id:
        balance = get_ledger().get_balance(account_id)
        await update.message.reply_text(f"💰 Your balance is {format_naira(balance)}.")


async def history_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /history command."""
    account_id = await _require_login(update, context)
    if not account_id:
        return
    records = get_ledger().history(account_id)
    if not records:
        await update.message.reply_text("You have no transactions yet.")
        return
    lines = ["Recent transactions:\n"] + [format_record(r) for r in records]
    await update.message.reply_text("\n".join(lines))


async def groups_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /groups command."""
    account_id = await _require_login(update, context)
    if not account_id:
        return
    groups = get_ledger().list_groups_for_account(account_id)
    if not groups:
        await update.message.reply_text("You are not in any esusu group yet.")
        return

    lines = ["Your groups:\n"]
    for group in groups:
        line = (
            f"#{group.id} {group.name} — {format_naira(group.amount_per_person)} "
            f"{group.frequency}, {group.total_members} members"
        )
        if group.status == "closed":
            line += " (closed)"
        lines.append(line)
    await update.message.reply_text("\n".join(lines))


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /status <group id> [cycle]."""
    args = context.args or []
    try:
        group_id = int(args[0])
        cycle = int(args[1]) if len(args) > 1 else None
    except (IndexError, ValueError):
        await update.message.reply_text("Usage: /status <group id> [cycle]")
        return

    try:
        status = get_ledger().group_status(group_id, cycle)
    except LedgerError as e:
        await update.message.reply_text(str(e))
        return

    lines = [
        f"Group #{group_id} — cycle {status.cycle_number} ({status.phase.replace('_', ' ')})",
        f"Paid: {', '.join(status.contributed) or 'nobody yet'}",
        f"Pending: {', '.join(status.pending) or 'nobody'}",
    ]
    if status.next_collector:
        lines.append(f"Next to collect: {status.next_collector}")
    await update.message.reply_text("\n".join(lines))


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming text messages: the main conversation entry point."""
    user_text = update.message.text.strip()
    logger.info("Telegram message: {}", user_text)

    account_id = await _require_login(update, context)
    if not account_id:
        return

    # Drop any confirmation still waiting from a previous message
    context.user_data.pop("pending_intent", None)

    intent = parse_intent(user_text)
    if isinstance(intent, Unknown):
        await update.message.reply_text("Sorry, I didn't understand that.\n\n" + HELP_TEXT)
        return

    question = missing_detail(intent)
    if question:
        await update.message.reply_text(question)
        return

    if needs_confirmation(intent):
        context.user_data["pending_intent"] = intent.model_dump()
        keyboard = InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton("Yes ✓", callback_data="confirm_yes"),
                    InlineKeyboardButton("No ✗", callback_data="confirm_no"),
                ]
            ]
        )
        await update.message.reply_text(describe(intent), reply_markup=keyboard)
        return

    await update.message.reply_text(reply_to(get_ledger(), account_id, intent))


async def handle_confirmation(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle Yes/No button presses."""
    query = update.callback_query
    await query.answer()

    pending = context.user_data.pop("pending_intent", None)
    if query.data == "confirm_no":
        await query.edit_message_text(query.message.text + "\n\nCancelled.")
        return

    account_id = _account_id(context)
    if not pending or not account_id:
        await query.edit_message_text("Nothing to confirm. Send a new message.")
        return

    intent = _intent_adapter.validate_python(pending)
    await query.edit_message_text(reply_to(get_ledger(), account_id, intent))


def build_bot_app(token: str) -> Application:
    """Build and return the Telegram bot application."""
    app = Application.builder().token(token).build()

    # Command handlers
    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("login", login_command))
    app.add_handler(CommandHandler("balance", balance_command))
    app.add_handler(CommandHandler("history", history_command))
    app.add_handler(CommandHandler("groups", groups_command))
    app.add_handler(CommandHandler("status", status_command))

    # Callback query handler for confirmations
    app.add_handler(CallbackQueryHandler(handle_confirmation))

    # Message handlers
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    return app
