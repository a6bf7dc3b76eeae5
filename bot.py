"""HMS Bot — entry point."""

import logging

from telegram.ext import Application, PersistenceInput, PicklePersistence

from config import TELEGRAM_BOT_TOKEN, PERSISTENCE_PATH
import db
from handlers import register_handlers
from state import AppState

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
# httpx logs every Telegram poll at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def post_init(app: Application) -> None:
    """Called after the Application is built — DB pool, snapshots, LISTEN."""
    await db.init_db()
    logger.info("DB pool ready")

    state = AppState()
    await state.load()
    app.bot_data["state"] = state
    app.bot_data["listener"] = await db.subscribe(state.dispatch)


async def post_shutdown(app: Application) -> None:
    """Called when the Application shuts down — stop LISTEN, close DB pool."""
    listener = app.bot_data.get("listener")
    if listener is not None:
        await db.unsubscribe(listener)
    state = app.bot_data.get("state")
    if state is not None:
        await state.close()
    await db.close_db()
    logger.info("DB pool closed")


def main() -> None:
    # Only user_data (drafts, admin flag) and conversation states survive restarts
    persistence = PicklePersistence(
        filepath=PERSISTENCE_PATH,
        store_data=PersistenceInput(bot_data=False, chat_data=False, callback_data=False),
    )
    app = (
        Application.builder()
        .token(TELEGRAM_BOT_TOKEN)
        .persistence(persistence)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    register_handlers(app)

    logger.info("Starting HMS bot…")
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
