"""User handlers — /start, /help, /events, /tickets."""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Update
from telegram.ext import Application, CommandHandler, ContextTypes

import db
import tickets
from config import CURRENCY_SYMBOL
from models import Event, PaymentStatus, PricingMode, Registration
from state import AppState

logger = logging.getLogger(__name__)


def get_state(context: ContextTypes.DEFAULT_TYPE) -> AppState:
    return context.bot_data["state"]


def price_label(event: Event) -> str:
    if event.is_free:
        return "Free"
    if event.pricing_mode == PricingMode.PER_PERSON:
        return f"{CURRENCY_SYMBOL}{event.price_per_person} per person"
    return f"{CURRENCY_SYMBOL}{event.price_per_team} per team"


def event_summary(event: Event) -> str:
    lines = [f"{event.name}", f"Date: {event.date:%d %b %Y}"]
    if event.venue:
        lines.append(f"Venue: {event.venue}")
    lines.append(f"Price: {price_label(event)}")
    lines.append(f"Team size: up to {event.max_team_size}")
    if event.description:
        lines.append(event.description)
    return "\n".join(lines)


async def send_tickets(bot: Bot, chat_id: int, reg: Registration) -> int:
    """Send one QR ticket per member. Returns the number sent."""
    sent = 0
    for member in reg.members:
        png = tickets.render_png(tickets.payload_for(reg, member))
        await bot.send_document(
            chat_id,
            document=InputFile(png, filename=tickets.ticket_filename(reg, member)),
            caption=f"Ticket: {member.name} ({reg.team_name})",
        )
        sent += 1
    return sent


# ---------------------------------------------------------------------------
# /start, /help
# ---------------------------------------------------------------------------

HELP_TEXT = (
    "Commands:\n"
    "/events — open events\n"
    "/register — continue your saved registration\n"
    "/reset — discard your saved registration\n"
    "/tickets — get QR tickets for approved registrations\n"
    "/admin — organizer panel"
)


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    name = update.effective_user.first_name or "there"
    await update.message.reply_text(
        f"Welcome to HMS, {name}!\n\n"
        "Register your team for hackathon events and get QR tickets "
        "for check-in.\n\n" + HELP_TEXT
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(HELP_TEXT)


# ---------------------------------------------------------------------------
# /events
# ---------------------------------------------------------------------------

async def cmd_events(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    events = get_state(context).open_events()
    if not events:
        await update.message.reply_text("No events are open for registration right now.")
        return

    for e in events:
        buttons = [[InlineKeyboardButton("Register", callback_data=f"reg_start:{e.id}")]]
        if e.group_link:
            buttons.append([InlineKeyboardButton("Join group", url=e.group_link)])
        await update.message.reply_text(
            event_summary(e), reply_markup=InlineKeyboardMarkup(buttons),
        )


# ---------------------------------------------------------------------------
# /tickets
# ---------------------------------------------------------------------------

async def cmd_tickets(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    tg = update.effective_user
    try:
        regs = await db.list_registrations_for_lead(tg.id)
    except Exception:
        logger.exception("Failed to load registrations for %s", tg.id)
        await update.message.reply_text("Could not load your registrations. Try again later.")
        return

    if not regs:
        await update.message.reply_text("You have no registrations yet. See /events.")
        return

    state = get_state(context)
    for reg in regs:
        event = state.event(reg.event_id)
        title = f"{reg.team_name} — {event.name if event else 'event #%d' % reg.event_id}"
        if reg.payment_status == PaymentStatus.APPROVED:
            await update.message.reply_text(f"{title}: payment approved, tickets below.")
            await send_tickets(context.bot, update.effective_chat.id, reg)
        elif reg.payment_status == PaymentStatus.PENDING:
            await update.message.reply_text(f"{title}: payment awaiting verification.")
        else:
            await update.message.reply_text(
                f"{title}: payment was rejected. Contact the organizers."
            )


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

def register(app: Application) -> None:
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("events", cmd_events))
    app.add_handler(CommandHandler("tickets", cmd_tickets))
