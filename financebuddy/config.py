import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

_DATA_DIR = Path(__file__).parent / "data"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


_raw_url = os.getenv("DATABASE_URL", "sqlite:///./financebuddy.db")
DATABASE_URL = _raw_url.replace("sqlite:///", "sqlite+aiosqlite:///")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Simulated generation latency, in seconds
RESPONSE_LATENCY_MIN = _env_float("RESPONSE_LATENCY_MIN", 1.0)
RESPONSE_LATENCY_MAX = _env_float("RESPONSE_LATENCY_MAX", 3.0)

DISPATCH_RULES_PATH = Path(os.getenv("DISPATCH_RULES_PATH", str(_DATA_DIR / "dispatch_rules.json")))
PROFILE_PATH = Path(os.getenv("PROFILE_PATH", str(_DATA_DIR / "demo_profile.json")))

WHATSAPP_API_ENDPOINT = os.getenv("WHATSAPP_API_ENDPOINT", "")
WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
ALLOWED_NUMBERS = [n.strip() for n in os.getenv("ALLOWED_NUMBERS", "").split(",") if n.strip()]

DIGEST_ENABLED = _env_bool("DIGEST_ENABLED", False)
DIGEST_INTERVAL_SECONDS = _env_float("DIGEST_INTERVAL_SECONDS", 24 * 3600)
DIGEST_SEND_DELAY_SECONDS = _env_float("DIGEST_SEND_DELAY_SECONDS", 1.0)
