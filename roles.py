"""Admin gate — shared static password, flag kept in user_data."""

from __future__ import annotations

import functools
import logging
import secrets
from typing import Callable

from telegram import Update
from telegram.ext import ContextTypes

from config import ADMIN_PASSWORD

logger = logging.getLogger(__name__)

ADMIN_FLAG = "is_admin"


def check_password(candidate: str) -> bool:
    return secrets.compare_digest(
        candidate.strip().encode("utf-8"), ADMIN_PASSWORD.encode("utf-8"),
    )


def is_admin(context: ContextTypes.DEFAULT_TYPE) -> bool:
    return bool(context.user_data.get(ADMIN_FLAG))


def grant_admin(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data[ADMIN_FLAG] = True


def revoke_admin(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.pop(ADMIN_FLAG, None)


def require_admin(func: Callable) -> Callable:
    """Decorator: only run the handler for chats unlocked with /admin."""

    @functools.wraps(func)
    async def wrapper(
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
        *args, **kwargs,
    ):
        if not is_admin(context):
            if update.callback_query:
                await update.callback_query.answer("Admin login required.", show_alert=True)
            elif update.effective_message:
                await update.effective_message.reply_text(
                    "Admin login required. Send /admin first."
                )
            return None
        return await func(update, context, *args, **kwargs)

    return wrapper
