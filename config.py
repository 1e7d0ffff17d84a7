import os

from sqlalchemy.pool import StaticPool

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # Bearer tokens are issued by the auth service and verified with this secret
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-only-jwt-secret")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "0"))

    # SQLite file for local runs; Postgres in production
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "bookati.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Checkout lock lifetime
    BOOKING_LOCK_SECONDS = int(os.getenv("BOOKING_LOCK_SECONDS", "120"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

    # WhatsApp Cloud API
    WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN")
    WHATSAPP_API_BASE = os.getenv("WHATSAPP_API_BASE", "https://graph.facebook.com/v19.0")

    # Zoho Invoice
    ZOHO_CLIENT_ID = os.getenv("ZOHO_CLIENT_ID")
    ZOHO_CLIENT_SECRET = os.getenv("ZOHO_CLIENT_SECRET")
    ZOHO_REFRESH_TOKEN = os.getenv("ZOHO_REFRESH_TOKEN")
    ZOHO_ORGANIZATION_ID = os.getenv("ZOHO_ORGANIZATION_ID")
    ZOHO_API_BASE = os.getenv("ZOHO_API_BASE", "https://www.zohoapis.com/invoice/v3")
    ZOHO_ACCOUNTS_URL = os.getenv("ZOHO_ACCOUNTS_URL", "https://accounts.zoho.com")

    # Celery
    CELERY = dict(
        broker_url=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
        result_backend=os.getenv("CELERY_RESULT_BACKEND"),
        task_ignore_result=True,
        task_serializer="json",
        accept_content=["json"],
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_always_eager=_env_bool("CELERY_TASK_ALWAYS_EAGER"),
    )

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_SECRET = "test-jwt-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {
        # one shared in-memory database for the whole app
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    LOG_LEVEL = "WARNING"

    SMTP_HOST = None
    WHATSAPP_PHONE_NUMBER_ID = None
    WHATSAPP_ACCESS_TOKEN = None
    ZOHO_CLIENT_ID = None

    CELERY = dict(
        broker_url="memory://",
        result_backend=None,
        task_ignore_result=True,
        task_always_eager=True,
        task_eager_propagates=False,
    )
