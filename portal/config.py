import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "procurement_portal.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", True)

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-procurement-portal")
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    # email:password:role:user_id[:display_name], comma separated
    APP_USERS = os.environ.get(
        "APP_USERS",
        "admin@portal.local:admin123:admin:user-admin:Administrator",
    )
    AUTH_RETRY_ATTEMPTS = _int_env("AUTH_RETRY_ATTEMPTS", 3)
    AUTH_RETRY_BACKOFF_MS = _int_env("AUTH_RETRY_BACKOFF_MS", 200)

    # "legacy": token is the owning vendor's user id; "signed": timed itsdangerous token
    PUBLIC_PAYMENT_TOKEN_MODE = os.environ.get("PUBLIC_PAYMENT_TOKEN_MODE", "legacy")
    PUBLIC_PAYMENT_TOKEN_MAX_AGE_SECONDS = _int_env("PUBLIC_PAYMENT_TOKEN_MAX_AGE_SECONDS", 7 * 24 * 3600)

    RATE_LIMIT_ENABLED = _bool_env("RATE_LIMIT_ENABLED", True)
    RATE_LIMIT_WINDOW_SECONDS = _int_env("RATE_LIMIT_WINDOW_SECONDS", 60)
    RATE_LIMIT_MAX_REQUESTS = _int_env("RATE_LIMIT_MAX_REQUESTS", 300)
    SECURITY_HEADERS_ENABLED = _bool_env("SECURITY_HEADERS_ENABLED", True)

    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    def __init__(self):
        env = os.environ.get("FLASK_ENV", "development").lower()
        if env == "production" and not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not set for the production environment.")
        if env == "production" and self.SECRET_KEY == "dev-secret-procurement-portal":
            raise RuntimeError("Insecure SECRET_KEY for production.")
