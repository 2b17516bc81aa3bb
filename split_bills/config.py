import os
from dotenv import load_dotenv

load_dotenv()


def _split_origins(value: str):
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or "*"


class Config:
    # Secret key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    CORS_ORIGINS = _split_origins(os.environ.get("CORS_ORIGINS", "*"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Session store (MySQL)
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", 3306))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "split_bills")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 10))

    # Receipt extraction
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_API_MODEL = os.environ.get("OPENAI_API_MODEL", "")
    OPENAI_API_TEMPERATURE = float(os.environ.get("OPENAI_API_TEMPERATURE", 0.5))

    # Outbound email
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
    RESEND_FROM_EMAIL = os.environ.get("RESEND_FROM_EMAIL", "Split Bills <billsplitter@ddoffy.org>")

    # Largest request body accepted, receipt photos included
    MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))

    # Duplicate suppression for AI endpoints
    IDEMPOTENCY_TTL_SECONDS = int(os.environ.get("IDEMPOTENCY_TTL_SECONDS", 60))

config = Config()
