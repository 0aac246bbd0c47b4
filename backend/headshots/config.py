import os
from typing import Optional


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_IMAGE_ENDPOINT = os.getenv(
    "GEMINI_IMAGE_ENDPOINT",
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.5-flash-image-preview:generateContent",
)
GEMINI_TEXT_ENDPOINT = os.getenv(
    "GEMINI_TEXT_ENDPOINT",
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.5-flash:generateContent",
)

# Unset means no timeout beyond the transport default
GEMINI_TIMEOUT: Optional[float]
try:
    GEMINI_TIMEOUT = float(os.environ["GEMINI_TIMEOUT"])
except (KeyError, ValueError):
    GEMINI_TIMEOUT = None

GENERATION_COST = max(1, _int_env("GENERATION_COST", 50))
CREDIT_PACK_SIZE = max(1, _int_env("CREDIT_PACK_SIZE", 50))
MAX_UPLOADS = max(1, _int_env("MAX_UPLOADS", 5))
MAX_INPUT_BYTES = _int_env("MAX_INPUT_BYTES", 8 * 1024 * 1024)

# Hosts where the redirect handshake is unreliable; sign-in uses a pop-up there
APP_HOST = os.getenv("APP_HOST", "localhost")
LOCAL_HOSTS = frozenset(
    h.strip() for h in os.getenv("LOCAL_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()
)

DEV_USER_ID = os.getenv("DEV_USER_ID", "dev-user")
DEV_USER_EMAIL = os.getenv("DEV_USER_EMAIL", "dev@example.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

PROFILES = "profiles"
GENERATIONS = "generations"
