import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))

COOKIE_NAME = os.getenv("COOKIE_NAME", "token")
COOKIE_SECURE = _flag("COOKIE_SECURE", "true")
COOKIE_MAX_AGE = JWT_EXPIRES_DAYS * 24 * 60 * 60

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
MAIL_FROM = os.getenv("MAIL_FROM", "EcoBloom <no-reply@ecobloom.app>")

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "2"))

OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@ecobloom.app")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin12345")
