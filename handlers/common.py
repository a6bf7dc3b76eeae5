"""Helpers shared by the handler modules."""

import functools
from typing import Callable

from telegram import Update
from telegram.ext import ApplicationHandlerStop, ContextTypes

# Conversations that take over a chat (admin login, event forms, scan mode)
# live in this group so their text input never reaches the registration
# conversation in group 0.
MODAL_GROUP = -1


def exclusive(func: Callable) -> Callable:
    """Run a conversation callback and stop the update at its group.

    The returned state is carried by ApplicationHandlerStop, which
    ConversationHandler applies before ending dispatch for the update.
    """

    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        state = await func(update, context)
        raise ApplicationHandlerStop(state)

    return wrapper
