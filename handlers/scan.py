"""Scan mode — staff chats act as check-in stations."""

from __future__ import annotations

import logging

from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

from checkin import ScanStatus, check_in
from handlers.common import MODAL_GROUP, exclusive
from roles import require_admin

logger = logging.getLogger(__name__)

SCANNING = 40

_ICONS = {
    ScanStatus.ALREADY_PRESENT: "⚠️",
    ScanStatus.NOT_FOUND: "❌",
    ScanStatus.DECODE_ERROR: "❌",
    ScanStatus.ERROR: "❌",
}

SCAN_HELP = (
    "Scan mode on. Send each scanned ticket code as a message.\n"
    "/done to leave scan mode."
)


@require_admin
async def scan_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    if update.callback_query:
        await update.callback_query.answer()
    await update.effective_message.reply_text(SCAN_HELP)
    return SCANNING


async def on_scan(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    result = await check_in(update.message.text)
    if result.ok:
        icon = "✅"
    else:
        icon = _ICONS[result.status]
        logger.info("Scan from %s: %s", update.effective_user.id, result.status.value)
    await update.message.reply_text(f"{icon} {result.message}")
    return SCANNING


async def scan_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text("Scan mode off.")
    return ConversationHandler.END


def register(app: Application) -> None:
    conv = ConversationHandler(
        entry_points=[
            CommandHandler("scan", exclusive(scan_start)),
            CallbackQueryHandler(exclusive(scan_start), pattern=r"^adm:scan$"),
        ],
        states={
            SCANNING: [MessageHandler(filters.TEXT & ~filters.COMMAND, exclusive(on_scan))],
        },
        fallbacks=[
            CommandHandler("done", exclusive(scan_done)),
            CommandHandler("cancel", exclusive(scan_done)),
        ],
        name="scan",
        per_user=True,
        per_chat=True,
    )
    app.add_handler(conv, group=MODAL_GROUP)
