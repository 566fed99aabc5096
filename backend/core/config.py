import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ALLOW_ORIGINS = _get_list(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:4200"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

ZOOM_ACCOUNT_ID = os.getenv("ZOOM_ACCOUNT_ID", "")
ZOOM_CLIENT_ID = os.getenv("ZOOM_CLIENT_ID", "")
ZOOM_CLIENT_SECRET = os.getenv("ZOOM_CLIENT_SECRET", "")
ZOOM_WEBHOOK_SECRET = os.getenv("ZOOM_WEBHOOK_SECRET", "")
ZOOM_OAUTH_URL = os.getenv("ZOOM_OAUTH_URL", "https://zoom.us/oauth/token")
ZOOM_API_BASE_URL = os.getenv("ZOOM_API_BASE_URL", "https://api.zoom.us/v2")
ZOOM_HTTP_TIMEOUT_SECONDS = float(os.getenv("ZOOM_HTTP_TIMEOUT_SECONDS", "10"))
# Signed deliveries older than this are rejected as replays.
ZOOM_WEBHOOK_MAX_AGE_SECONDS = int(os.getenv("ZOOM_WEBHOOK_MAX_AGE_SECONDS", "300"))

# A meeting shorter than this share of the booked duration is refunded.
SETTLEMENT_MIN_ATTENDANCE_RATIO = float(os.getenv("SETTLEMENT_MIN_ATTENDANCE_RATIO", "0.5"))
PAYOUT_DELAY_DAYS = int(os.getenv("PAYOUT_DELAY_DAYS", "7"))
PAYOUT_BATCH_SIZE = int(os.getenv("PAYOUT_BATCH_SIZE", "50"))

UPCOMING_BOOKINGS_LIMIT = int(os.getenv("UPCOMING_BOOKINGS_LIMIT", "20"))

def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not ZOOM_WEBHOOK_SECRET:
        raise RuntimeError("ZOOM_WEBHOOK_SECRET must be set in production.")
