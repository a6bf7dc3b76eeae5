"""Register all handlers with the Application."""

from telegram.ext import Application

from handlers.user import register as register_user
from handlers.registration import register as register_registration
from handlers.admin import register as register_admin
from handlers.scan import register as register_scan


def register_handlers(app: Application) -> None:
    register_user(app)
    register_registration(app)
    register_admin(app)
    register_scan(app)
