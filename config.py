# ════════════════════════════════════════════════
# ▶ IMPORTS
# ════════════════════════════════════════════════

import os
from datetime import timedelta
from dotenv import load_dotenv


# ════════════════════════════════════════════════
# ▶ LOAD VARIABLES
# ════════════════════════════════════════════════

# Load environment variables from .env file (for development deployment only)
load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

APP_ENV = os.environ.get("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

SECRET_KEY = os.environ.get("SECRET_KEY", "school-website-secret-key-change-this-in-production")
DATABASE_URL = os.environ.get("DATABASE_URL", "postgresql://localhost/school_website")
DB_POOL_MIN = int(os.environ.get("DB_POOL_MIN", 1))
DB_POOL_MAX = int(os.environ.get("DB_POOL_MAX", 10))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

SITE_NAME = os.environ.get("SITE_NAME", "School Website")
SITE_DESCRIPTION = os.environ.get("SITE_DESCRIPTION", "Keeping our school community informed and connected.")


# ════════════════════════════════════════════════
# ▶ POST LIMITS
# ════════════════════════════════════════════════

MAX_TITLE_LENGTH = 255
MAX_CONTENT_LENGTH = 10000


# ════════════════════════════════════════════════
# ▶ IMAGE UPLOADS
# ════════════════════════════════════════════════

# Originals are staged privately, processed images are served from static/uploads
UPLOAD_TEMP_DIR = os.environ.get("UPLOAD_TEMP_DIR", os.path.join(BASE_DIR, "uploads"))
UPLOAD_PUBLIC_DIR = os.environ.get("UPLOAD_PUBLIC_DIR", os.path.join(BASE_DIR, "static", "uploads"))
UPLOAD_PUBLIC_URL = "/uploads"

MAX_UPLOAD_FILES = 2
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
ALLOWED_IMAGE_TYPES = tuple(
    t.strip() for t in os.environ.get("ALLOWED_IMAGE_TYPES", "image/jpeg,image/jpg,image/png").split(",") if t.strip()
)

# Whole request body, the per-file limits are checked by the image store
MAX_REQUEST_SIZE = (MAX_UPLOAD_FILES + 2) * MAX_FILE_SIZE

IMAGE_MAX_SIZE = (1200, 800)
IMAGE_QUALITY = 85
THUMBNAIL_SIZE = (300, 200)
THUMBNAIL_QUALITY = 80


# ════════════════════════════════════════════════
# ▶ SESSION
# ════════════════════════════════════════════════

SESSION_LIFETIME = timedelta(hours=24)
SESSION_COOKIE_NAME = "school.sid"
SESSION_COOKIE_SAMESITE = "Strict" if IS_PRODUCTION else "Lax"


# ════════════════════════════════════════════════
# ▶ ACTIVITY TYPES
# ════════════════════════════════════════════════

ACTIVITY_LOGIN = "LOGIN"
ACTIVITY_LOGOUT = "LOGOUT"
ACTIVITY_CREATE = "CREATE"
ACTIVITY_UPDATE = "UPDATE"
ACTIVITY_DELETE = "DELETE"
ACTIVITY_REORDER = "REORDER"
ACTIVITY_ACTIVATE = "ACTIVATE"
ACTIVITY_DEACTIVATE = "DEACTIVATE"
