"""Chat restriction and command accounting for bot handlers.

The bot reports private account data, so it only answers in the chat named by
``TELEGRAM_CHAT``. Every command outcome is counted in
``ibkrpulse_commands_total``.
"""
import functools
import logging

from telegram import Update

from src.config import settings
from src.metrics import commands_total

logger = logging.getLogger(__name__)


def is_authorized(update: Update, allowed_chat: str | None = None) -> bool:
    allowed = settings.telegram_chat if allowed_chat is None else allowed_chat
    chat = update.effective_chat
    if not allowed or chat is None:
        return False
    return str(chat.id) == str(allowed).strip()


def command(name: str):
    """Decorator for command handlers.

    Ignores updates without a message or from other chats. The wrapped
    handler returns ``False`` to record a failed command.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(update: Update, context) -> None:
            if not update.message:
                return
            if not is_authorized(update):
                chat_id = update.effective_chat.id if update.effective_chat else None
                logger.warning(f"/{name} ignored from unauthorized chat {chat_id}")
                return
            ok = await func(update, context)
            success = "false" if ok is False else "true"
            commands_total.labels(command=name, success=success).inc()
        return wrapper
    return decorator
