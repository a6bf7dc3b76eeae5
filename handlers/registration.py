"""Registration ConversationHandler — team details, members, payment, confirmation.

Drives ``wizard.RegistrationWizard``; the draft is written to the persisted
``user_data`` after every accepted answer so /register can resume it.
"""

from __future__ import annotations

import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, Message, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

import reports
from config import CURRENCY_SYMBOL, INSTITUTION_EMAIL_DOMAIN, MAX_UPLOAD_BYTES
from errors import HMSError, ValidationError
from handlers.user import get_state, send_tickets
from models import Department, Member, PaymentStatus, PricingMode, YearOfStudy
from wizard import DraftStore, RegistrationWizard, Step, is_institutional_email

logger = logging.getLogger(__name__)

# Conversation states
(
    TEAM_NAME, LEAD_EMAIL, LEAD_PHONE,
    MEMBER_NAME, MEMBER_REGNO, MEMBER_EMAIL, MEMBER_YEAR, MEMBER_DEPT,
    MEMBER_DEPT_OTHER, MEMBERS_MENU,
    PAYMENT_PROOF, PAYMENT_TXN, CONFIRM,
) = range(13)


# ---------------------------------------------------------------------------
# Wizard / draft plumbing
# ---------------------------------------------------------------------------

def _wizard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> RegistrationWizard:
    state = get_state(context)
    uid = update.effective_user.id
    wiz = state.wizards.get(uid)
    if wiz is None:
        wiz = RegistrationWizard.from_draft(DraftStore(context.user_data).get(), state.events)
        state.wizards[uid] = wiz
    return wiz


def _save(context: ContextTypes.DEFAULT_TYPE, wiz: RegistrationWizard) -> None:
    DraftStore(context.user_data).set(wiz.to_draft())


def _discard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    DraftStore(context.user_data).remove()
    get_state(context).wizards.pop(update.effective_user.id, None)


def _price_text(wiz: RegistrationWizard) -> str:
    event = wiz.event
    total = wiz.price()
    if event.pricing_mode == PricingMode.PER_PERSON:
        return (
            f"{CURRENCY_SYMBOL}{total} "
            f"({len(wiz.members)} × {CURRENCY_SYMBOL}{event.price_per_person})"
        )
    return f"{CURRENCY_SYMBOL}{total} (per team)"


def _members_text(wiz: RegistrationWizard) -> str:
    lines = [f"Team «{wiz.team_name}» — {wiz.event.name}"]
    for i, m in enumerate(wiz.members, 1):
        lines.append(f"{i}. {m.name} | {m.reg_no} | {m.year.value} | {m.department_label}")
    lines.append(f"\nMembers: {len(wiz.members)}/{wiz.event.max_team_size}")
    lines.append(f"Total: {_price_text(wiz)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

async def _prompt_next(msg: Message, context, wiz: RegistrationWizard) -> int:
    """Ask for the first missing piece of the draft and return its state."""
    if wiz.step == Step.PAYMENT:
        return await _prompt_payment(msg, context, wiz)
    if not wiz.team_name:
        await msg.reply_text(f"Registering for «{wiz.event.name}».\n\nEnter your team name:")
        return TEAM_NAME
    if not wiz.lead_email:
        await msg.reply_text(f"Team lead email (@{INSTITUTION_EMAIL_DOMAIN}):")
        return LEAD_EMAIL
    if not wiz.lead_phone:
        await msg.reply_text("Team lead mobile number:")
        return LEAD_PHONE
    if wiz.pending_member or not wiz.members:
        return await _prompt_member(msg, wiz)
    return await _prompt_menu(msg, wiz)


async def _prompt_member(msg: Message, wiz: RegistrationWizard) -> int:
    pm = wiz.pending_member
    n = len(wiz.members) + 1
    if "name" not in pm:
        await msg.reply_text(f"Member {n} — full name:")
        return MEMBER_NAME
    if "reg_no" not in pm:
        await msg.reply_text(f"Member {n} — registration number:")
        return MEMBER_REGNO
    if "email" not in pm:
        await msg.reply_text(f"Member {n} — email (@{INSTITUTION_EMAIL_DOMAIN}):")
        return MEMBER_EMAIL
    if "year" not in pm:
        buttons = [[
            InlineKeyboardButton(y.value, callback_data=f"reg_year:{y.value}")
            for y in YearOfStudy
        ]]
        await msg.reply_text(
            f"Member {n} — year of study:", reply_markup=InlineKeyboardMarkup(buttons),
        )
        return MEMBER_YEAR
    if pm.get("department") == Department.OTHER.value:
        await msg.reply_text(f"Member {n} — type the department name:")
        return MEMBER_DEPT_OTHER
    depts = list(Department)
    buttons = [
        [InlineKeyboardButton(d.value, callback_data=f"reg_dept:{d.value}") for d in depts[i:i + 3]]
        for i in range(0, len(depts), 3)
    ]
    await msg.reply_text(
        f"Member {n} — department:", reply_markup=InlineKeyboardMarkup(buttons),
    )
    return MEMBER_DEPT


async def _prompt_menu(msg: Message, wiz: RegistrationWizard) -> int:
    buttons = []
    if wiz.can_add_member:
        buttons.append([InlineKeyboardButton("Add member", callback_data="reg_menu:add")])
    if len(wiz.members) > 1:
        buttons.append([InlineKeyboardButton("Remove last member", callback_data="reg_menu:remove")])
    buttons.append([InlineKeyboardButton("Continue to payment", callback_data="reg_menu:next")])
    await msg.reply_text(_members_text(wiz), reply_markup=InlineKeyboardMarkup(buttons))
    return MEMBERS_MENU


async def _prompt_payment(msg: Message, context, wiz: RegistrationWizard) -> int:
    event = wiz.event
    if wiz.price() == 0:
        await msg.reply_text(
            f"{_members_text(wiz)}\n\n{event.name} is free — no payment needed.\n"
            "Confirm the registration?",
            reply_markup=_confirm_markup(),
        )
        return CONFIRM

    if not wiz.proof_file_id:
        text = f"Amount to pay: {_price_text(wiz)}"
        if event.bank_details:
            text += f"\n\nBank details:\n{event.bank_details}"
        if event.payment_qr_url:
            try:
                await msg.reply_photo(event.payment_qr_url, caption="Scan to pay")
            except Exception:
                logger.exception("Could not send payment QR for event #%s", event.id)
        await msg.reply_text(
            text + "\n\nAfter paying, send a screenshot of the payment "
            "(or /back to edit the team)."
        )
        return PAYMENT_PROOF
    if not wiz.transaction_ref:
        await msg.reply_text("Enter the transaction reference (UTR / transaction id):")
        return PAYMENT_TXN

    await msg.reply_text(
        f"{_members_text(wiz)}\n\nTransaction ref: {wiz.transaction_ref}\n"
        "Payment proof: attached\n\nSubmit the registration?",
        reply_markup=_confirm_markup(),
    )
    return CONFIRM


def _confirm_markup() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("Submit", callback_data="reg_submit"),
        InlineKeyboardButton("Back", callback_data="reg_back"),
    ]])


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def reg_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    event_id = int(query.data.split(":")[1])
    event = get_state(context).event(event_id)
    if event is None:
        await query.edit_message_text("Event not found.")
        return ConversationHandler.END

    wiz = _wizard(update, context)
    if wiz.event is None or wiz.event.id != event.id:
        try:
            wiz.select_event(event)
        except ValidationError as exc:
            await query.message.reply_text(exc.message)
            return ConversationHandler.END
        _save(context, wiz)
    return await _prompt_next(query.message, context, wiz)


async def cmd_register(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    if wiz.event is None:
        await update.message.reply_text("Pick an event first: /events")
        return ConversationHandler.END
    await update.message.reply_text("Resuming your saved registration.")
    return await _prompt_next(update.message, context, wiz)


# ---------------------------------------------------------------------------
# Team details
# ---------------------------------------------------------------------------

async def ask_team_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    wiz.set_team_name(update.message.text)
    if not wiz.team_name:
        await update.message.reply_text("Team name cannot be empty:")
        return TEAM_NAME
    _save(context, wiz)
    return await _prompt_next(update.message, context, wiz)


async def ask_lead_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    try:
        wiz.set_lead_email(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(exc.message)
        return LEAD_EMAIL
    _save(context, wiz)
    return await _prompt_next(update.message, context, wiz)


async def ask_lead_phone(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    wiz.set_lead_phone(update.message.text)
    if not wiz.lead_phone:
        await update.message.reply_text("Mobile number cannot be empty:")
        return LEAD_PHONE
    _save(context, wiz)
    return await _prompt_next(update.message, context, wiz)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

async def ask_member_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    text = update.message.text.strip()
    if not text:
        return MEMBER_NAME
    wiz.pending_member["name"] = text
    _save(context, wiz)
    return await _prompt_member(update.message, wiz)


async def ask_member_regno(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    text = update.message.text.strip()
    if not text:
        return MEMBER_REGNO
    wiz.pending_member["reg_no"] = text
    _save(context, wiz)
    return await _prompt_member(update.message, wiz)


async def ask_member_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    text = update.message.text.strip()
    if not is_institutional_email(text):
        await update.message.reply_text(f"Use an @{INSTITUTION_EMAIL_DOMAIN} email:")
        return MEMBER_EMAIL
    wiz.pending_member["email"] = text
    _save(context, wiz)
    return await _prompt_member(update.message, wiz)


async def ask_member_year(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    wiz = _wizard(update, context)
    wiz.pending_member["year"] = YearOfStudy(query.data.split(":", 1)[1]).value
    _save(context, wiz)
    await query.edit_message_text(f"Year: {wiz.pending_member['year']}")
    return await _prompt_member(query.message, wiz)


async def ask_member_dept(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    wiz = _wizard(update, context)
    dept = Department(query.data.split(":", 1)[1])
    wiz.pending_member["department"] = dept.value
    await query.edit_message_text(f"Department: {dept.value}")
    if dept == Department.OTHER:
        _save(context, wiz)
        return await _prompt_member(query.message, wiz)
    return await _finish_member(query.message, context, wiz)


async def ask_member_dept_other(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    text = update.message.text.strip()
    if not text:
        return MEMBER_DEPT_OTHER
    wiz.pending_member["department_other"] = text
    return await _finish_member(update.message, context, wiz)


async def _finish_member(msg: Message, context, wiz: RegistrationWizard) -> int:
    pm = wiz.pending_member
    member = Member(
        name=pm["name"],
        reg_no=pm["reg_no"],
        email=pm["email"],
        year=YearOfStudy(pm["year"]),
        department=Department(pm["department"]),
        department_other=pm.get("department_other"),
    )
    try:
        wiz.add_member(member)
    except ValidationError as exc:
        wiz.pending_member = {}
        _save(context, wiz)
        await msg.reply_text(exc.message)
        return await _prompt_menu(msg, wiz)
    _save(context, wiz)
    return await _prompt_menu(msg, wiz)


async def members_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    wiz = _wizard(update, context)
    action = query.data.split(":", 1)[1]
    await query.edit_message_reply_markup(None)

    if action == "add":
        if not wiz.can_add_member:
            await query.message.reply_text(f"Maximum team size is {wiz.max_team_size}.")
            return await _prompt_menu(query.message, wiz)
        return await _prompt_member(query.message, wiz)

    if action == "remove":
        if len(wiz.members) > 1:
            removed = wiz.remove_member(len(wiz.members) - 1)
            _save(context, wiz)
            await query.message.reply_text(f"Removed {removed.name}.")
        return await _prompt_menu(query.message, wiz)

    try:
        wiz.go_to_payment()
    except ValidationError as exc:
        await query.message.reply_text(exc.message)
        if exc.field == "event":
            return ConversationHandler.END
        if exc.field == "lead_email":
            wiz.lead_email = ""
            _save(context, wiz)
        return await _prompt_next(query.message, context, wiz)
    _save(context, wiz)
    return await _prompt_payment(query.message, context, wiz)


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

async def receive_proof(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    msg = update.message
    if msg.photo:
        photo = msg.photo[-1]
        file_id, file_name, size = photo.file_id, "payment.jpg", photo.file_size
    else:
        doc = msg.document
        file_id, file_name, size = doc.file_id, doc.file_name, doc.file_size
    if size and size > MAX_UPLOAD_BYTES:
        await msg.reply_text(
            f"File is too large (max {MAX_UPLOAD_BYTES // (1024 * 1024)} MB). Send a smaller image:"
        )
        return PAYMENT_PROOF
    wiz.attach_proof(file_id, file_name)
    _save(context, wiz)
    return await _prompt_payment(msg, context, wiz)


async def proof_not_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text("Please send the payment screenshot as an image.")
    return PAYMENT_PROOF


async def ask_transaction_ref(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    wiz.set_transaction_ref(update.message.text)
    if not wiz.transaction_ref:
        await update.message.reply_text("Transaction reference cannot be empty:")
        return PAYMENT_TXN
    _save(context, wiz)
    return await _prompt_payment(update.message, context, wiz)


async def back_to_team(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    wiz = _wizard(update, context)
    if update.callback_query:
        await update.callback_query.answer()
        await update.callback_query.edit_message_reply_markup(None)
    wiz.back_to_details()
    _save(context, wiz)
    if wiz.event is None:
        await update.effective_message.reply_text("Pick an event first: /events")
        return ConversationHandler.END
    return await _prompt_next(update.effective_message, context, wiz)


# ---------------------------------------------------------------------------
# Submit
# ---------------------------------------------------------------------------

async def submit(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    wiz = _wizard(update, context)
    if wiz.submitting:
        await query.answer("Submission in progress…")
        return CONFIRM
    await query.answer()
    await query.edit_message_reply_markup(None)
    await query.message.reply_text("Submitting…")

    async def fetch_proof(file_id: str) -> bytes:
        tg_file = await context.bot.get_file(file_id)
        return bytes(await tg_file.download_as_bytearray())

    try:
        reg = await wiz.submit(fetch_proof, lead_telegram_id=update.effective_user.id)
    except HMSError as exc:
        logger.warning("Registration submit rejected: %s", exc.message)
        await query.message.reply_text(exc.message, reply_markup=_confirm_markup())
        return CONFIRM
    except Exception:
        logger.exception("Registration failed")
        await query.message.reply_text(
            "Registration failed. Please try again.", reply_markup=_confirm_markup(),
        )
        return CONFIRM

    event = wiz.event
    _discard(update, context)

    total = event.price_for(len(reg.members))
    if reg.payment_status == PaymentStatus.APPROVED:
        await query.message.reply_text(
            f"Team «{reg.team_name}» is registered for {event.name}! "
            "Your tickets are below."
        )
        try:
            await send_tickets(context.bot, update.effective_chat.id, reg)
        except Exception:
            logger.exception("Failed to send tickets for registration #%s", reg.id)
            await query.message.reply_text("Could not send tickets now. Use /tickets later.")
    else:
        await query.message.reply_text(
            f"Team «{reg.team_name}» registered for {event.name}.\n"
            f"Total: {CURRENCY_SYMBOL}{total}. Payment status: pending verification.\n"
            "You can fetch tickets with /tickets once the payment is approved."
        )
    await query.message.reply_document(
        InputFile(reports.team_csv(reg), filename=reports.team_csv_filename(reg)),
        caption="Your team details",
    )
    if event.group_link:
        await query.message.reply_text(f"Join the event group: {event.group_link}")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Cancel / reset
# ---------------------------------------------------------------------------

async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    await update.message.reply_text("Paused. Your draft is saved — send /register to continue.")
    return ConversationHandler.END


async def cmd_reset(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    _discard(update, context)
    await update.message.reply_text("Registration draft discarded.")
    return ConversationHandler.END


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

def register(app: Application) -> None:
    text = filters.TEXT & ~filters.COMMAND
    conv = ConversationHandler(
        entry_points=[
            CallbackQueryHandler(reg_start, pattern=r"^reg_start:\d+$"),
            CommandHandler("register", cmd_register),
        ],
        states={
            TEAM_NAME: [MessageHandler(text, ask_team_name)],
            LEAD_EMAIL: [MessageHandler(text, ask_lead_email)],
            LEAD_PHONE: [MessageHandler(text, ask_lead_phone)],
            MEMBER_NAME: [MessageHandler(text, ask_member_name)],
            MEMBER_REGNO: [MessageHandler(text, ask_member_regno)],
            MEMBER_EMAIL: [MessageHandler(text, ask_member_email)],
            MEMBER_YEAR: [CallbackQueryHandler(ask_member_year, pattern=r"^reg_year:.+$")],
            MEMBER_DEPT: [CallbackQueryHandler(ask_member_dept, pattern=r"^reg_dept:.+$")],
            MEMBER_DEPT_OTHER: [MessageHandler(text, ask_member_dept_other)],
            MEMBERS_MENU: [
                CallbackQueryHandler(members_menu, pattern=r"^reg_menu:(add|remove|next)$"),
            ],
            PAYMENT_PROOF: [
                MessageHandler(filters.PHOTO | filters.Document.IMAGE, receive_proof),
                MessageHandler(text | filters.Document.ALL, proof_not_image),
            ],
            PAYMENT_TXN: [MessageHandler(text, ask_transaction_ref)],
            CONFIRM: [
                CallbackQueryHandler(submit, pattern=r"^reg_submit$"),
                CallbackQueryHandler(back_to_team, pattern=r"^reg_back$"),
            ],
        },
        fallbacks=[
            CommandHandler("back", back_to_team),
            CommandHandler("reset", cmd_reset),
            CommandHandler("cancel", cancel),
        ],
        name="registration",
        allow_reentry=True,
        persistent=True,
        per_user=True,
        per_chat=True,
    )
    app.add_handler(conv)
    app.add_handler(CommandHandler("reset", cmd_reset))
