"""Admin handlers — /admin login, panel, event CRUD, payment moderation, exports."""

from __future__ import annotations

import logging
from datetime import date

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

import db
import reports
import sheets_sync
import storage
from config import CURRENCY_SYMBOL
from errors import HMSError, ValidationError
from handlers.common import MODAL_GROUP, exclusive
from handlers.user import get_state, price_label
from images import normalize_image_async
from models import Event, PaymentStatus, PricingMode, Registration
from roles import check_password, grant_admin, is_admin, require_admin, revoke_admin

logger = logging.getLogger(__name__)

# Login conversation
LOGIN_PASSWORD = 0

# Conversation states for event creation
(
    EVT_NAME, EVT_DATE, EVT_VENUE, EVT_DESC, EVT_PRICING, EVT_PRICE,
    EVT_MAX, EVT_QR, EVT_BANK, EVT_LINK, EVT_CONFIRM,
) = range(10, 21)

# Conversation states for event editing
EDIT_FIELD, EDIT_VALUE = range(30, 32)


# ---------------------------------------------------------------------------
# /admin login and main panel
# ---------------------------------------------------------------------------

def _panel_markup() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Create event", callback_data="adm:create_event")],
        [InlineKeyboardButton("Events & stats", callback_data="adm:list_events")],
        [InlineKeyboardButton("Pending payments", callback_data="adm:pending")],
        [InlineKeyboardButton("Scan tickets", callback_data="adm:scan")],
        [InlineKeyboardButton("Attendance CSV", callback_data="adm:attendance")],
        [InlineKeyboardButton("Export to Google Sheets", callback_data="adm:export_sheets")],
    ])


async def cmd_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    if is_admin(context):
        await update.message.reply_text("Admin panel:", reply_markup=_panel_markup())
        return ConversationHandler.END
    await update.message.reply_text("Enter the admin password (/cancel to abort):")
    return LOGIN_PASSWORD


async def login_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    ok = check_password(update.message.text)
    try:
        await update.message.delete()
    except Exception:
        logger.warning("Could not delete password message in chat %s", update.effective_chat.id)

    if not ok:
        logger.info("Failed admin login from %s", update.effective_user.id)
        await update.effective_chat.send_message("Incorrect password.")
        return ConversationHandler.END

    grant_admin(context)
    logger.info("Admin login from %s", update.effective_user.id)
    await update.effective_chat.send_message("Admin panel:", reply_markup=_panel_markup())
    return ConversationHandler.END


async def login_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text("Login cancelled.")
    return ConversationHandler.END


async def cmd_logout(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    revoke_admin(context)
    await update.message.reply_text("Logged out of admin mode.")


# ---------------------------------------------------------------------------
# Callback router for admin panel buttons
# ---------------------------------------------------------------------------

@require_admin
async def admin_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    data = query.data

    if data == "adm:list_events":
        await _list_events(query, context)
    elif data == "adm:pending":
        await _pending_payments(query, context)
    elif data == "adm:attendance":
        await _attendance_csv(query, context)
    elif data == "adm:export_sheets":
        await _export_sheets(query, context)
    elif data.startswith("adm:event_detail:"):
        await _event_detail(query, context)
    elif data.startswith("adm:event_toggle:"):
        await _event_toggle(query, context)
    elif data.startswith("adm:event_export:"):
        await _event_export(query, context)
    elif data.startswith("adm:event_delete:"):
        await _event_delete_ask(query, context)
    elif data.startswith("adm:event_delete_yes:"):
        await _event_delete(query, context)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

async def _list_events(query, context) -> None:
    events = get_state(context).sorted_events()
    if not events:
        await query.edit_message_text("No events yet.")
        return

    buttons = []
    for e in events:
        label = f"{'' if e.is_open else '[closed] '}{e.name} ({e.date:%d %b})"
        buttons.append([InlineKeyboardButton(label, callback_data=f"adm:event_detail:{e.id}")])
    await query.edit_message_text("Events:", reply_markup=InlineKeyboardMarkup(buttons))


def _event_text(event, stats: reports.EventStats) -> str:
    return (
        f"{event.name}\n"
        f"Status: {'open' if event.is_open else 'closed'}\n"
        f"Date: {event.date:%d %b %Y}\n"
        f"Venue: {event.venue or '—'}\n"
        f"Pricing: {price_label(event)}\n"
        f"Max team size: {event.max_team_size}\n\n"
        f"Teams: {stats.teams}\n"
        f"Members: {stats.members}\n"
        f"Present: {stats.present}\n"
        f"Estimated revenue: {CURRENCY_SYMBOL}{stats.revenue}"
    )


async def _event_detail(query, context) -> None:
    event_id = int(query.data.split(":")[-1])
    state = get_state(context)
    event = state.event(event_id)
    if not event:
        await query.edit_message_text("Event not found.")
        return

    stats = reports.event_stats(event, state.registrations_for(event_id))
    buttons = [
        [InlineKeyboardButton(
            "Close registrations" if event.is_open else "Open registrations",
            callback_data=f"adm:event_toggle:{event_id}",
        )],
        [InlineKeyboardButton("Edit", callback_data=f"adm:event_edit:{event_id}")],
        [InlineKeyboardButton("Export CSV", callback_data=f"adm:event_export:{event_id}")],
        [InlineKeyboardButton("Delete", callback_data=f"adm:event_delete:{event_id}")],
    ]
    await query.edit_message_text(
        _event_text(event, stats), reply_markup=InlineKeyboardMarkup(buttons),
    )


async def _event_toggle(query, context) -> None:
    event_id = int(query.data.split(":")[-1])
    current = get_state(context).event(event_id)
    if not current:
        await query.edit_message_text("Event not found.")
        return
    try:
        event = await db.set_event_open(event_id, not current.is_open)
    except HMSError as exc:
        await query.edit_message_text(exc.message)
        return
    if not event:
        await query.edit_message_text("Event not found.")
        return
    logger.info("Event #%s is now %s", event_id, "open" if event.is_open else "closed")
    await query.edit_message_text(
        f"Registrations for {event.name} are now {'open' if event.is_open else 'closed'}."
    )


async def _event_export(query, context) -> None:
    event_id = int(query.data.split(":")[-1])
    state = get_state(context)
    event = state.event(event_id)
    if not event:
        await query.edit_message_text("Event not found.")
        return
    try:
        data = reports.event_roster_csv(event, state.registrations_for(event_id))
    except HMSError as exc:
        await query.message.reply_text(exc.message)
        return
    await query.message.reply_document(
        InputFile(data, filename=reports.roster_csv_filename(event)),
    )


async def _event_delete_ask(query, context) -> None:
    event_id = int(query.data.split(":")[-1])
    event = get_state(context).event(event_id)
    if not event:
        await query.edit_message_text("Event not found.")
        return
    await query.edit_message_text(
        f"Delete {event.name}? This cannot be undone.",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Delete", callback_data=f"adm:event_delete_yes:{event_id}"),
            InlineKeyboardButton("Keep", callback_data=f"adm:event_detail:{event_id}"),
        ]]),
    )


async def _event_delete(query, context) -> None:
    event_id = int(query.data.split(":")[-1])
    try:
        ok = await db.delete_event(event_id)
    except HMSError as exc:
        await query.edit_message_text(exc.message)
        return
    if ok:
        logger.info("Deleted event #%s", event_id)
        await query.edit_message_text("Event deleted.")
    else:
        await query.edit_message_text("Event not found.")


# ---------------------------------------------------------------------------
# Payment moderation
# ---------------------------------------------------------------------------

def _registration_text(reg: Registration, event_name: str) -> str:
    members = "\n".join(f"  • {m.name} ({m.reg_no})" for m in reg.members)
    return (
        f"#{reg.id} {reg.team_name} — {event_name}\n"
        f"Lead: {reg.lead_email} | {reg.lead_phone}\n"
        f"Members ({len(reg.members)}):\n{members}\n"
        f"Transaction ref: {reg.transaction_ref or '—'}\n"
        f"Proof: {reg.payment_proof_url or '—'}\n"
        f"Status: {reg.payment_status.value}"
    )


async def _pending_payments(query, context) -> None:
    try:
        regs = await db.list_registrations_by_status(PaymentStatus.PENDING)
    except Exception:
        logger.exception("Failed to load pending registrations")
        await query.edit_message_text("Could not load pending payments.")
        return
    if not regs:
        await query.edit_message_text("No payments awaiting verification.")
        return

    await query.edit_message_text(f"Pending payments: {len(regs)}")
    state = get_state(context)
    for reg in regs:
        event = state.event(reg.event_id)
        await query.message.reply_text(
            _registration_text(reg, event.name if event else f"event #{reg.event_id}"),
            reply_markup=InlineKeyboardMarkup([[
                InlineKeyboardButton("Approve", callback_data=f"pay:approve:{reg.id}"),
                InlineKeyboardButton("Reject", callback_data=f"pay:reject:{reg.id}"),
            ]]),
        )


@require_admin
async def payment_decision(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    # "pay:approve:12" or "pay:reject:12"
    _, action, reg_id = query.data.split(":")
    status = PaymentStatus.APPROVED if action == "approve" else PaymentStatus.REJECTED

    try:
        reg = await db.set_payment_status(int(reg_id), status)
    except HMSError as exc:
        await query.message.reply_text(exc.message)
        return
    if not reg:
        await query.edit_message_text(f"Registration #{reg_id} not found.")
        return

    logger.info("Registration #%s payment %s", reg.id, status.value)
    await query.edit_message_text(
        f"#{reg.id} {reg.team_name}: payment {status.value}."
    )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

async def _attendance_csv(query, context) -> None:
    state = get_state(context)
    try:
        data = reports.attendance_csv(state.events, state.all_registrations())
    except HMSError as exc:
        await query.message.reply_text(exc.message)
        return
    await query.message.reply_document(
        InputFile(data, filename=reports.attendance_csv_filename()),
    )


async def _export_sheets(query, context) -> None:
    await query.edit_message_text("Exporting to Google Sheets...")
    try:
        result = await sheets_sync.export_all(get_state(context))
        await query.edit_message_text(result)
    except Exception:
        logger.exception("Sheets export error")
        await query.edit_message_text("Export failed. Check the Google Sheets settings.")


# ---------------------------------------------------------------------------
# Event creation (ConversationHandler)
# ---------------------------------------------------------------------------

def _skip(text: str) -> bool:
    return text.strip() == "/skip"


@require_admin
async def evt_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    context.user_data["evt"] = {}
    await query.edit_message_text("Event name:")
    return EVT_NAME


async def evt_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    if not text:
        await update.message.reply_text("Name is required:")
        return EVT_NAME
    context.user_data["evt"]["name"] = text
    await update.message.reply_text("Event date (YYYY-MM-DD):")
    return EVT_DATE


async def evt_date(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    try:
        context.user_data["evt"]["date"] = date.fromisoformat(text)
    except ValueError:
        await update.message.reply_text("Invalid date. Use YYYY-MM-DD:")
        return EVT_DATE
    await update.message.reply_text("Venue (or /skip):")
    return EVT_VENUE


async def evt_venue(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    context.user_data["evt"]["venue"] = None if _skip(text) else text
    await update.message.reply_text("Description (or /skip):")
    return EVT_DESC


async def evt_desc(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    context.user_data["evt"]["description"] = None if _skip(text) else text
    await update.message.reply_text(
        "Pricing:",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Per person", callback_data=f"evt_pricing:{PricingMode.PER_PERSON.value}"),
            InlineKeyboardButton("Per team", callback_data=f"evt_pricing:{PricingMode.PER_TEAM.value}"),
        ]]),
    )
    return EVT_PRICING


async def evt_pricing(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    mode = PricingMode(query.data.split(":", 1)[1])
    context.user_data["evt"]["pricing_mode"] = mode.value
    unit = "person" if mode == PricingMode.PER_PERSON else "team"
    await query.edit_message_text(f"Price per {unit} in {CURRENCY_SYMBOL} (0 = free):")
    return EVT_PRICE


async def evt_price(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    try:
        price = int(text)
        if price < 0:
            raise ValueError(text)
    except ValueError:
        await update.message.reply_text("Enter a whole number (0 or more):")
        return EVT_PRICE
    evt = context.user_data["evt"]
    if evt["pricing_mode"] == PricingMode.PER_PERSON.value:
        evt["price_per_person"], evt["price_per_team"] = price, 0
    else:
        evt["price_per_person"], evt["price_per_team"] = 0, price
    await update.message.reply_text("Maximum team size:")
    return EVT_MAX


async def evt_max(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    try:
        size = int(text)
        if size < 1:
            raise ValueError(text)
    except ValueError:
        await update.message.reply_text("Team size must be a number of at least 1:")
        return EVT_MAX
    context.user_data["evt"]["max_team_size"] = size
    await update.message.reply_text("Send the payment QR image (or /skip):")
    return EVT_QR


async def evt_qr(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    msg = update.message
    evt = context.user_data["evt"]
    if msg.photo:
        evt["qr_file_id"] = msg.photo[-1].file_id
    elif msg.document:
        evt["qr_file_id"] = msg.document.file_id
    else:
        evt["qr_file_id"] = None
    await msg.reply_text("Bank transfer details (or /skip):")
    return EVT_BANK


async def evt_bank(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    context.user_data["evt"]["bank_details"] = None if _skip(text) else text
    await update.message.reply_text("Group invite link (or /skip):")
    return EVT_LINK


async def evt_link(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = update.message.text.strip()
    evt = context.user_data["evt"]
    evt["group_link"] = None if _skip(text) else text

    mode = PricingMode(evt["pricing_mode"])
    price = evt["price_per_person"] if mode == PricingMode.PER_PERSON else evt["price_per_team"]
    await update.message.reply_text(
        "Create this event?\n\n"
        f"Name: {evt['name']}\nDate: {evt['date']}\nVenue: {evt.get('venue') or '—'}\n"
        f"Pricing: {CURRENCY_SYMBOL}{price} {mode.value}\n"
        f"Max team size: {evt['max_team_size']}\n"
        f"Payment QR: {'yes' if evt.get('qr_file_id') else 'no'}",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Create", callback_data="evt_confirm:yes"),
            InlineKeyboardButton("Cancel", callback_data="evt_confirm:no"),
        ]]),
    )
    return EVT_CONFIRM


async def evt_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    if query.data == "evt_confirm:no":
        context.user_data.pop("evt", None)
        await query.edit_message_text("Event creation cancelled.")
        return ConversationHandler.END

    evt = context.user_data["evt"]
    await query.edit_message_reply_markup(None)
    try:
        qr_url = None
        if evt.get("qr_file_id"):
            tg_file = await context.bot.get_file(evt["qr_file_id"])
            blob = bytes(await tg_file.download_as_bytearray())
            storage.check_size(blob)
            blob = await normalize_image_async(blob)
            qr_url = await storage.upload(blob, f"{evt['name']}-qr.jpg", storage.PAYMENT_QRS)

        event = await db.create_event(
            name=evt["name"],
            date=evt["date"],
            venue=evt.get("venue"),
            description=evt.get("description"),
            pricing_mode=PricingMode(evt["pricing_mode"]),
            price_per_person=evt["price_per_person"],
            price_per_team=evt["price_per_team"],
            max_team_size=evt["max_team_size"],
            payment_qr_url=qr_url,
            bank_details=evt.get("bank_details"),
            group_link=evt.get("group_link"),
        )
    except HMSError as exc:
        await query.message.reply_text(
            exc.message,
            reply_markup=InlineKeyboardMarkup([[
                InlineKeyboardButton("Retry", callback_data="evt_confirm:yes"),
                InlineKeyboardButton("Cancel", callback_data="evt_confirm:no"),
            ]]),
        )
        return EVT_CONFIRM
    except Exception:
        logger.exception("Error saving event")
        await query.message.reply_text(
            "Error saving event.",
            reply_markup=InlineKeyboardMarkup([[
                InlineKeyboardButton("Retry", callback_data="evt_confirm:yes"),
                InlineKeyboardButton("Cancel", callback_data="evt_confirm:no"),
            ]]),
        )
        return EVT_CONFIRM

    context.user_data.pop("evt", None)
    logger.info("Created event #%s (%s)", event.id, event.name)
    await query.message.reply_text(f"Event «{event.name}» created (#{event.id}).")
    return ConversationHandler.END


async def evt_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop("evt", None)
    await update.message.reply_text("Event creation cancelled.")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Event editing (ConversationHandler)
# ---------------------------------------------------------------------------

EDITABLE_FIELDS = {
    "name": "Name",
    "date": "Date",
    "venue": "Venue",
    "description": "Description",
    "price": "Price",
    "max_team_size": "Max team size",
    "bank_details": "Bank details",
    "group_link": "Group link",
}

# Fields an admin may blank out by sending "-"
_CLEARABLE = {"venue", "description", "bank_details", "group_link"}


def _current_value(event: Event, field: str) -> str:
    if field == "price":
        return price_label(event)
    value = getattr(event, field)
    return "—" if value in (None, "") else str(value)


def parse_event_edit(event: Event, field: str, text: str) -> dict:
    """Turn an admin's answer into ``update_event`` fields.

    Lowering ``max_team_size`` only affects registrations made afterwards.
    """
    text = text.strip()
    if field == "name":
        if not text:
            raise ValidationError("Name is required.", "name")
        return {"name": text}
    if field == "date":
        try:
            return {"date": date.fromisoformat(text)}
        except ValueError:
            raise ValidationError("Invalid date. Use YYYY-MM-DD.", "date") from None
    if field == "price":
        try:
            price = int(text)
        except ValueError:
            price = -1
        if price < 0:
            raise ValidationError("Enter a whole number (0 or more).", "price")
        if event.pricing_mode == PricingMode.PER_PERSON:
            return {"price_per_person": price}
        return {"price_per_team": price}
    if field == "max_team_size":
        try:
            size = int(text)
        except ValueError:
            size = 0
        if size < 1:
            raise ValidationError("Team size must be a number of at least 1.", "max_team_size")
        return {"max_team_size": size}
    if field in _CLEARABLE:
        return {field: None if text in ("", "-") else text}
    raise ValidationError(f"{field} cannot be edited.", field)


@require_admin
async def edit_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    event_id = int(query.data.split(":")[-1])
    event = get_state(context).event(event_id)
    if not event:
        await query.edit_message_text("Event not found.")
        return ConversationHandler.END

    context.user_data["evt_edit"] = {"event_id": event_id}
    fields = list(EDITABLE_FIELDS.items())
    buttons = [
        [InlineKeyboardButton(label, callback_data=f"evt_edit_field:{key}") for key, label in fields[i:i + 2]]
        for i in range(0, len(fields), 2)
    ]
    await query.edit_message_text(
        f"Edit {event.name}: which field? (/cancel to stop)",
        reply_markup=InlineKeyboardMarkup(buttons),
    )
    return EDIT_FIELD


async def edit_field(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    field = query.data.split(":", 1)[1]
    edit = context.user_data.get("evt_edit") or {}
    event = get_state(context).event(edit.get("event_id"))
    if not event:
        await query.edit_message_text("Event not found.")
        return ConversationHandler.END

    edit["field"] = field
    hint = {
        "date": " (YYYY-MM-DD)",
        "price": f" in {CURRENCY_SYMBOL}, {event.pricing_mode.value}",
    }.get(field, "")
    text = f"{EDITABLE_FIELDS[field]}{hint}\nCurrent: {_current_value(event, field)}\n\nSend the new value"
    if field in _CLEARABLE:
        text += " (or - to clear)"
    await query.edit_message_text(text + ":")
    return EDIT_VALUE


async def edit_value(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    edit = context.user_data.get("evt_edit") or {}
    event_id = edit.get("event_id")
    event = get_state(context).event(event_id)
    if not event:
        context.user_data.pop("evt_edit", None)
        await update.message.reply_text("Event not found.")
        return ConversationHandler.END

    try:
        fields = parse_event_edit(event, edit["field"], update.message.text)
        updated = await db.update_event(event_id, **fields)
    except HMSError as exc:
        await update.message.reply_text(exc.message)
        return EDIT_VALUE
    if not updated:
        context.user_data.pop("evt_edit", None)
        await update.message.reply_text("Event not found.")
        return ConversationHandler.END

    context.user_data.pop("evt_edit", None)
    logger.info("Event #%s updated: %s", event_id, ", ".join(fields))
    stats = reports.event_stats(updated, get_state(context).registrations_for(event_id))
    await update.message.reply_text(
        f"{EDITABLE_FIELDS[edit['field']]} updated.\n\n{_event_text(updated, stats)}"
    )
    return ConversationHandler.END


async def edit_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop("evt_edit", None)
    await update.message.reply_text("Edit cancelled.")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

def register(app: Application) -> None:
    text = filters.TEXT & ~filters.COMMAND

    login_conv = ConversationHandler(
        entry_points=[CommandHandler("admin", exclusive(cmd_admin))],
        states={LOGIN_PASSWORD: [MessageHandler(text, exclusive(login_password))]},
        fallbacks=[CommandHandler("cancel", exclusive(login_cancel))],
        name="admin_login",
        per_user=True,
        per_chat=True,
    )
    app.add_handler(login_conv, group=MODAL_GROUP)
    app.add_handler(CommandHandler("logout", cmd_logout))

    app.add_handler(CallbackQueryHandler(
        admin_callback,
        pattern=r"^adm:(list_events|pending|attendance|export_sheets|event_detail:\d+|event_toggle:\d+|event_export:\d+|event_delete:\d+|event_delete_yes:\d+)$",
    ))
    app.add_handler(CallbackQueryHandler(
        payment_decision, pattern=r"^pay:(approve|reject):\d+$",
    ))

    evt_conv = ConversationHandler(
        entry_points=[
            CallbackQueryHandler(exclusive(evt_start), pattern=r"^adm:create_event$"),
        ],
        states={
            EVT_NAME: [MessageHandler(text, exclusive(evt_name))],
            EVT_DATE: [MessageHandler(text, exclusive(evt_date))],
            EVT_VENUE: [
                MessageHandler(text, exclusive(evt_venue)),
                CommandHandler("skip", exclusive(evt_venue)),
            ],
            EVT_DESC: [
                MessageHandler(text, exclusive(evt_desc)),
                CommandHandler("skip", exclusive(evt_desc)),
            ],
            EVT_PRICING: [
                CallbackQueryHandler(exclusive(evt_pricing), pattern=r"^evt_pricing:(per-person|per-team)$"),
            ],
            EVT_PRICE: [MessageHandler(text, exclusive(evt_price))],
            EVT_MAX: [MessageHandler(text, exclusive(evt_max))],
            EVT_QR: [
                MessageHandler(filters.PHOTO | filters.Document.IMAGE, exclusive(evt_qr)),
                CommandHandler("skip", exclusive(evt_qr)),
            ],
            EVT_BANK: [
                MessageHandler(text, exclusive(evt_bank)),
                CommandHandler("skip", exclusive(evt_bank)),
            ],
            EVT_LINK: [
                MessageHandler(text, exclusive(evt_link)),
                CommandHandler("skip", exclusive(evt_link)),
            ],
            EVT_CONFIRM: [
                CallbackQueryHandler(exclusive(evt_confirm), pattern=r"^evt_confirm:(yes|no)$"),
            ],
        },
        fallbacks=[CommandHandler("cancel", exclusive(evt_cancel))],
        name="create_event",
        per_user=True,
        per_chat=True,
    )
    app.add_handler(evt_conv, group=MODAL_GROUP)

    edit_conv = ConversationHandler(
        entry_points=[
            CallbackQueryHandler(exclusive(edit_start), pattern=r"^adm:event_edit:\d+$"),
        ],
        states={
            EDIT_FIELD: [
                CallbackQueryHandler(
                    exclusive(edit_field),
                    pattern=rf"^evt_edit_field:({'|'.join(EDITABLE_FIELDS)})$",
                ),
            ],
            EDIT_VALUE: [MessageHandler(text, exclusive(edit_value))],
        },
        fallbacks=[CommandHandler("cancel", exclusive(edit_cancel))],
        name="edit_event",
        per_user=True,
        per_chat=True,
    )
    app.add_handler(edit_conv, group=MODAL_GROUP)
