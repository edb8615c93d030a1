import logging

from telegram import Update
from telegram.ext import ContextTypes, CommandHandler, MessageHandler, filters

from src.bot.access import is_authorized

logger = logging.getLogger(__name__)

# (command, args_hint, description)
# Use "" for args_hint when command takes no arguments.
COMMAND_LIST = [
    ("__header__", "", "💼 *Portfolio*"),
    ("accounts", "", "Net liquidation, P&L and cash per account"),
    ("positions", "[account]", "Open positions with P&L in base currency"),

    ("__header__", "", "📰 *Reports*"),
    ("report", "", "Daily report for yesterday (also sent every morning)"),

    ("__header__", "", "🛠 *Admin*"),
    ("status", "", "Gateway session and counters since restart"),
    ("help", "", "This list"),
]


def _build_help_text() -> str:
    lines = ["📈 *IBKR Pulse — available commands*", ""]
    for cmd, args, desc in COMMAND_LIST:
        if cmd == "__header__":
            lines += ["", desc]
        elif args:
            lines.append(f"`/{cmd} {args}` — {desc}")
        else:
            lines.append(f"`/{cmd}` — {desc}")
    return "\n".join(lines)


_HELP_TEXT = _build_help_text()


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not is_authorized(update):
        return
    await update.message.reply_text(_HELP_TEXT, parse_mode="Markdown")


async def cmd_unknown(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.message or not is_authorized(update):
        return
    raw = update.message.text or ""
    token = raw.split()[0] if raw.split() else "unknown"
    cmd = token.split("@")[0]  # group chats append @botname
    await update.message.reply_text(
        f"❓ Unknown command: `{cmd}`\n\n{_HELP_TEXT}",
        parse_mode="Markdown",
    )


def get_handlers():
    return [
        CommandHandler(["help", "start"], cmd_help),
        MessageHandler(filters.COMMAND, cmd_unknown),
    ]
