"""Configuration — all settings from environment variables."""

import os
from dotenv import load_dotenv

load_dotenv()

TELEGRAM_BOT_TOKEN = os.environ["TELEGRAM_BOT_TOKEN"]
DATABASE_URL = os.environ["DATABASE_URL"]

# Shared secret that unlocks the admin panel
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]

# Lead and member emails must belong to this domain
INSTITUTION_EMAIL_DOMAIN = os.getenv("INSTITUTION_EMAIL_DOMAIN", "kluniversity.in").lower()

CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

# Cloudinary object store (payment proofs, payment QR images)
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "hms-storage")

# Pickle file backing user_data (registration drafts, admin flag)
PERSISTENCE_PATH = os.getenv("PERSISTENCE_PATH", "hms_bot.pickle")

# Google Sheets (optional, only needed for export)
GOOGLE_SHEETS_ID = os.getenv("GOOGLE_SHEETS_ID", "")
GOOGLE_CREDENTIALS_JSON = os.getenv("GOOGLE_CREDENTIALS_JSON", "")

# Uploads
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
IMAGE_MAX_WIDTH = 1024
IMAGE_JPEG_QUALITY = 70

# Check-in compare-and-swap attempts before giving up
CHECKIN_MAX_ATTEMPTS = 3
