import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from ENV_FILE if specified, or .env.local, or .env
env_file = os.getenv('ENV_FILE')
if env_file:
    load_dotenv(Path(env_file))
else:
    env_local = Path(__file__).parent.parent / '.env.local'
    if env_local.exists():
        load_dotenv(env_local)
    else:
        load_dotenv()


def _number_from_env(key: str, fallback: int) -> int:
    """Extract integer from environment variable with fallback."""
    raw = os.getenv(key)
    if raw is None:
        return fallback

    try:
        return int(raw)
    except ValueError:
        return fallback


def _list_from_env(key: str, fallback: str) -> list[str]:
    """Split a comma separated environment variable into trimmed, non-empty items."""
    raw = os.getenv(key, fallback)
    return [item.strip() for item in raw.split(',') if item.strip()]


# Broker configuration
BROKER_SERVER_NAME = os.getenv('BROKER_SERVER_NAME', 'toolkit-broker')
BROKER_VERSION = '1.0.0'

DISPATCH_TIMEOUT_MS = _number_from_env('DISPATCH_TIMEOUT_MS', 30 * 1000)
ERROR_MESSAGE_MAX_CHARS = _number_from_env('ERROR_MESSAGE_MAX_CHARS', 500)
LIST_OPERATIONS_DEFAULT_LIMIT = _number_from_env('LIST_OPERATIONS_DEFAULT_LIMIT', 50)
SEARCH_DEFAULT_LIMIT = _number_from_env('SEARCH_DEFAULT_LIMIT', 10)

ENABLED_INTEGRATIONS = _list_from_env('ENABLED_INTEGRATIONS', 'resend,sendgrid,twilio')

DEFAULT_MAX_CONCURRENCY = _number_from_env('DEFAULT_MAX_CONCURRENCY', 4)

# Health server port (0 to disable)
HEALTH_PORT = _number_from_env('HEALTH_PORT', 8080)


def dispatch_timeout_seconds() -> float | None:
    """Per-call handler timeout in seconds, or None when disabled."""
    if DISPATCH_TIMEOUT_MS <= 0:
        return None
    return DISPATCH_TIMEOUT_MS / 1000


def max_concurrency_for(category: str) -> int:
    """In-flight handler bound for one integration, e.g. TWILIO_MAX_CONCURRENCY."""
    key = f"{category.upper().replace('-', '_')}_MAX_CONCURRENCY"
    return _number_from_env(key, DEFAULT_MAX_CONCURRENCY)


# Provider credentials
RESEND_API_KEY = os.getenv('RESEND_API_KEY')
RESEND_FROM = os.getenv('RESEND_FROM', 'no-reply@example.com')
RESEND_API_URL = os.getenv('RESEND_API_URL', 'https://api.resend.com')

SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
SENDGRID_FROM = os.getenv('SENDGRID_FROM', 'no-reply@example.com')

TWILIO_ACCOUNT_SID = os.getenv('TWILIO_ACCOUNT_SID')
TWILIO_AUTH_TOKEN = os.getenv('TWILIO_AUTH_TOKEN')
TWILIO_FROM_NUMBER = os.getenv('TWILIO_FROM_NUMBER')
